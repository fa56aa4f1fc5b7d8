#!/usr/bin/env python3
"""
Data Model

Value types passed between the discovery, DNS state and reconciliation
stages of one run. Nothing here outlives a single invocation.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union


class DomainState(Enum):
    """Power state reported by the hypervisor."""
    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


@dataclass
class GuestInterface:
    """One network interface with its (ip_type, address) pairs."""
    name: str
    mac: Optional[str] = None
    addresses: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class DiscoveryAttempt:
    """State of a single polling iteration."""
    number: int
    strategies_tried: List[str] = field(default_factory=list)
    address: Optional[str] = None


@dataclass(frozen=True)
class DnsZone:
    """Provider zone resolved once per run."""
    id: str
    name: str


@dataclass(frozen=True)
class Hostname:
    """Record name relative to the zone plus the fully qualified name."""
    record_name: str
    fqdn: str


@dataclass(frozen=True)
class DnsRecordView:
    """A record as seen by the authoritative provider."""
    record_id: Optional[str] = None
    record_type: str = "A"
    current_value: Optional[str] = None

    @property
    def exists(self) -> bool:
        return self.record_id is not None


@dataclass(frozen=True)
class Skip:
    """DNS already matches the VM address."""


@dataclass(frozen=True)
class Create:
    """No record at the provider yet."""
    fqdn: str
    record_name: str
    address: str


@dataclass(frozen=True)
class Update:
    """Existing record must be pointed at the VM address."""
    record_id: str
    fqdn: str
    record_name: str
    address: str


ReconciliationDecision = Union[Skip, Create, Update]


@dataclass
class RunContext:
    """Values handed from one workflow step to the next."""
    vm: str
    zone: Optional[DnsZone] = None
    address: Optional[str] = None
    hostname: Optional[Hostname] = None
    local_view: Optional[str] = None
    provider_view: Optional[DnsRecordView] = None
    decision: Optional[ReconciliationDecision] = None

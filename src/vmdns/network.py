#!/usr/bin/env python3
"""
Guest Network Prober

Discovers the IPv4 address of a booting guest through an ordered list of
independent strategies. Each strategy may come up empty; the first usable
(non-loopback) address wins and the remaining strategies are not run.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

################################################################################
# IMPORTS & DEPENDENCIES
################################################################################

import logging
from typing import List, Optional, Protocol

from .models import DiscoveryAttempt
from .parsers import (
    extract_mac_address,
    find_neighbor_ipv4,
    first_usable_ipv4,
    interface_ipv4_addresses,
    parse_agent_interfaces,
)

logger = logging.getLogger(__name__)

################################################################################
# STRATEGY PROTOCOL
################################################################################

class DiscoveryStrategy(Protocol):
    """One way of asking "what address does this VM have right now?"."""

    name: str

    def discover(self, vm: str) -> Optional[str]:
        """Return a usable IPv4 address or None. Never raises for a missing address."""
        ...

################################################################################
# STRATEGIES - In Priority Order
################################################################################

class GuestAgentStrategy:
    """Interface addresses reported by the in-guest agent."""

    name = "guest-agent"

    def __init__(self, hypervisor) -> None:
        self.hypervisor = hypervisor

    def discover(self, vm: str) -> Optional[str]:
        interfaces = self.hypervisor.domain_interfaces(vm, via_agent=True)
        return first_usable_ipv4(interface_ipv4_addresses(interfaces))


class HypervisorLeaseStrategy:
    """Interface addresses the hypervisor knows without asking the agent."""

    name = "hypervisor-lease"

    def __init__(self, hypervisor) -> None:
        self.hypervisor = hypervisor

    def discover(self, vm: str) -> Optional[str]:
        interfaces = self.hypervisor.domain_interfaces(vm, via_agent=False)
        return first_usable_ipv4(interface_ipv4_addresses(interfaces))


class GuestAgentEnumerationStrategy:
    """Full interface enumeration through a raw guest agent command."""

    name = "guest-agent-enumeration"

    def __init__(self, hypervisor) -> None:
        self.hypervisor = hypervisor

    def discover(self, vm: str) -> Optional[str]:
        if not self.hypervisor.guest_agent_ping(vm):
            return None
        reply = self.hypervisor.guest_agent_exec(vm, "guest-network-get-interfaces")
        if not reply:
            return None
        interfaces = parse_agent_interfaces(reply)
        return first_usable_ipv4(interface_ipv4_addresses(interfaces, skip_names=("lo",)))


class NeighborTableStrategy:
    """Looks the VM's MAC address up in the host neighbor cache.

    Last resort: only works once the host has exchanged traffic with the
    guest. With a primer, an empty lookup triggers a ping sweep and one
    more lookup.
    """

    name = "neighbor-table"

    def __init__(self, hypervisor, neighbors, primer=None) -> None:
        self.hypervisor = hypervisor
        self.neighbors = neighbors
        self.primer = primer

    def discover(self, vm: str) -> Optional[str]:
        mac = extract_mac_address(self.hypervisor.domain_definition_xml(vm))
        if not mac:
            logger.debug(f"No MAC address found in definition of {vm}")
            return None

        address = find_neighbor_ipv4(self.neighbors.table(), mac)
        if address or self.primer is None:
            return address

        logger.debug(f"MAC {mac} not in neighbor table, priming cache")
        self.primer.prime()
        return find_neighbor_ipv4(self.neighbors.table(), mac)

################################################################################
# PROBER CLASS - Strategy Iteration
################################################################################

class NetworkProber:
    """Runs discovery strategies in order until one yields an address."""

    def __init__(self, strategies: List[DiscoveryStrategy]) -> None:
        self.strategies = list(strategies)

    def probe(self, vm: str, attempt: Optional[DiscoveryAttempt] = None) -> Optional[str]:
        """Single discovery pass. Returns the first usable address or None."""
        for strategy in self.strategies:
            if attempt is not None:
                attempt.strategies_tried.append(strategy.name)
            try:
                address = strategy.discover(vm)
            except Exception as e:
                # A failing channel is the same as an empty one; the next attempt retries it
                logger.debug(f"Strategy {strategy.name} failed for {vm}: {e}")
                continue

            if address and first_usable_ipv4([address]):
                logger.debug(f"Strategy {strategy.name} found {address} for {vm}")
                if attempt is not None:
                    attempt.address = address
                return address
        return None


def build_prober(hypervisor, neighbors, primer=None) -> NetworkProber:
    """Standard strategy order: agent, hypervisor lease, agent enumeration, neighbor table."""
    return NetworkProber([
        GuestAgentStrategy(hypervisor),
        HypervisorLeaseStrategy(hypervisor),
        GuestAgentEnumerationStrategy(hypervisor),
        NeighborTableStrategy(hypervisor, neighbors, primer=primer),
    ])

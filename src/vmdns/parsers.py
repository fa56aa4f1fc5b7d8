#!/usr/bin/env python3
"""
Output Parsers

Pure functions that scrape addresses, MACs and states out of virsh,
qemu-guest-agent and iproute2 output. Kept apart from process invocation
so each format can be tested against captured samples.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

################################################################################
# IMPORTS & DEPENDENCIES
################################################################################

import ipaddress
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import DomainState, GuestInterface

################################################################################
# PATTERNS
################################################################################

MAC_PATTERN = re.compile(r"\b(?:[0-9a-fA-F]{2}:){5}[0-9a-fA-F]{2}\b")

################################################################################
# ADDRESS HELPERS
################################################################################

def is_usable_ipv4(value: Optional[str]) -> bool:
    """True for a valid dotted-quad IPv4 address outside 127.0.0.0/8."""
    if not value:
        return False
    try:
        address = ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return not address.is_loopback


def first_usable_ipv4(candidates: Iterable[str]) -> Optional[str]:
    """First candidate that is a valid non-loopback IPv4 address."""
    for candidate in candidates:
        if is_usable_ipv4(candidate):
            return candidate
    return None


def interface_ipv4_addresses(interfaces: Iterable[GuestInterface], skip_names: Tuple[str, ...] = ()) -> List[str]:
    """Flatten interfaces to their IPv4 addresses, optionally skipping interfaces by name."""
    addresses = []
    for interface in interfaces:
        if interface.name in skip_names:
            continue
        for ip_type, address in interface.addresses:
            if ip_type == "ipv4":
                addresses.append(address)
    return addresses

################################################################################
# VIRSH OUTPUT
################################################################################

def parse_domifaddr(output: str) -> List[GuestInterface]:
    """Parse `virsh domifaddr` table output.

    Continuation rows (name column '-') belong to the interface above them.
    Addresses are returned without their prefix length.
    """
    interfaces: List[GuestInterface] = []
    for line in (output or "").splitlines():
        parts = line.split()
        if len(parts) < 4 or parts[0] == "Name" or set(line.strip()) == {"-"}:
            continue

        name, mac, ip_type, address = parts[:4]
        address = address.split("/")[0]

        if name == "-" and interfaces:
            interfaces[-1].addresses.append((ip_type, address))
            continue

        interfaces.append(GuestInterface(
            name=name,
            mac=None if mac == "-" else mac.lower(),
            addresses=[(ip_type, address)],
        ))
    return interfaces


def parse_domain_state(output: str) -> DomainState:
    """Map `virsh domstate` output to a DomainState."""
    state = (output or "").strip().lower()
    if state.startswith("running"):
        return DomainState.RUNNING
    if state in ("shut off", "shutoff", "crashed", "pmsuspended") or state.startswith("shut"):
        return DomainState.STOPPED
    return DomainState.UNKNOWN


def extract_mac_address(domain_xml: str) -> Optional[str]:
    """First interface MAC from a domain definition (`virsh dumpxml`)."""
    if not domain_xml:
        return None
    try:
        root = ET.fromstring(domain_xml)
    except ET.ParseError:
        match = MAC_PATTERN.search(domain_xml)
        return match.group(0).lower() if match else None

    for mac in root.iterfind("./devices/interface/mac"):
        address = mac.get("address")
        if address:
            return address.lower()
    return None

################################################################################
# GUEST AGENT OUTPUT
################################################################################

def _agent_field(entry: Dict[str, Any], name: str) -> Any:
    # qemu-ga uses hyphenated keys; accept underscores as well
    if name in entry:
        return entry[name]
    return entry.get(name.replace("-", "_"))


def parse_agent_interfaces(payload: Dict[str, Any]) -> List[GuestInterface]:
    """Parse a `guest-network-get-interfaces` reply ({"return": [...]})."""
    interfaces = []
    for entry in (payload or {}).get("return") or []:
        addresses = []
        for ip in _agent_field(entry, "ip-addresses") or []:
            ip_type = _agent_field(ip, "ip-address-type")
            address = _agent_field(ip, "ip-address")
            if ip_type and address:
                addresses.append((ip_type, address))
        mac = _agent_field(entry, "hardware-address")
        interfaces.append(GuestInterface(
            name=entry.get("name", ""),
            mac=mac.lower() if mac else None,
            addresses=addresses,
        ))
    return interfaces

################################################################################
# NEIGHBOR TABLE OUTPUT
################################################################################

def parse_neighbor_table(output: str) -> List[Tuple[str, Optional[str], str]]:
    """Parse `ip neigh` into (address, mac, state) tuples. mac is None for unresolved entries."""
    entries = []
    for line in (output or "").splitlines():
        parts = line.split()
        if not parts:
            continue
        mac = None
        if "lladdr" in parts:
            index = parts.index("lladdr")
            if index + 1 < len(parts):
                mac = parts[index + 1].lower()
        state = parts[-1] if parts[-1].isupper() else ""
        entries.append((parts[0], mac, state))
    return entries


def find_neighbor_ipv4(output: str, mac: str) -> Optional[str]:
    """First usable IPv4 neighbor entry whose link-layer address matches mac."""
    mac = mac.lower()
    candidates = [address for address, lladdr, _state in parse_neighbor_table(output) if lladdr == mac]
    return first_usable_ipv4(candidates)

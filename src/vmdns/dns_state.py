#!/usr/bin/env python3
"""
DNS State Resolver

Gathers the current view of a VM's A record: the provider zone, the
authoritative record (id + value) and what the host's resolver answers.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

################################################################################
# IMPORTS & DEPENDENCIES
################################################################################

import logging
from typing import Optional

import dns.exception
import dns.resolver

from .exceptions import ZoneNotFoundError
from .models import DnsRecordView, DnsZone, Hostname
from .parsers import is_usable_ipv4

logger = logging.getLogger(__name__)

################################################################################
# HOSTNAME DERIVATION
################################################################################

def derive_hostname(vm: str, domain: str) -> Hostname:
    """Record name and FQDN for a VM. A VM named '<x>.<domain>' is not suffixed twice."""
    domain = domain.rstrip(".")
    suffix = f".{domain}"
    if vm.endswith(suffix):
        return Hostname(record_name=vm[:-len(suffix)], fqdn=vm)
    return Hostname(record_name=vm, fqdn=f"{vm}{suffix}")

################################################################################
# DNS STATE RESOLVER CLASS
################################################################################

class DnsStateResolver:
    """Reads zone and record state from the provider and the local resolver."""

    def __init__(self, client, resolver: Optional[dns.resolver.Resolver] = None, lifetime: float = 5.0) -> None:
        self.client = client
        self._resolver = resolver
        self.lifetime = lifetime

    def resolve_zone(self, domain: str) -> DnsZone:
        """Look up the provider zone for domain. Raises ZoneNotFoundError if there is none."""
        logger.info(f"Retrieving Zone ID for {domain}...")
        zones = self.client.list_zones(domain)
        zone = next((z for z in zones if z.get("id")), None)
        if zone is None:
            raise ZoneNotFoundError(
                f"Could not retrieve Zone ID for domain {domain}. "
                f"Please check your API token permissions and domain name."
            )
        logger.info(f"Found Zone ID: {zone['id']}")
        return DnsZone(id=zone["id"], name=zone.get("name", domain))

    def current_record(self, zone: DnsZone, fqdn: str) -> DnsRecordView:
        """Authoritative A record for fqdn; both fields None when absent."""
        records = self.client.list_a_records(zone.id, fqdn)
        if not records:
            return DnsRecordView()
        record = records[0]
        return DnsRecordView(
            record_id=record.get("id"),
            record_type=record.get("type", "A"),
            current_value=record.get("content"),
        )

    def local_resolver_view(self, fqdn: str) -> Optional[str]:
        """First A answer from the host's configured resolver, or None."""
        try:
            answer = self.resolver.resolve(fqdn, "A", lifetime=self.lifetime)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer, dns.resolver.NoNameservers) as e:
            logger.debug(f"Local resolver has no A record for {fqdn}: {e}")
            return None
        except dns.exception.DNSException as e:
            logger.debug(f"Local resolver lookup for {fqdn} failed: {e}")
            return None

        for rdata in answer:
            address = rdata.to_text()
            if is_usable_ipv4(address):
                return address
        return None

    @property
    def resolver(self) -> dns.resolver.Resolver:
        if self._resolver is None:
            self._resolver = dns.resolver.Resolver()
        return self._resolver

#!/usr/bin/env python3
"""
Reconciliation

decide() classifies the DNS situation of a VM as Skip, Create or Update;
RecordUpserter applies that decision to the provider zone.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

################################################################################
# IMPORTS & DEPENDENCIES
################################################################################

import logging
from typing import Optional

from .logger import LOG_SYMBOLS
from .models import Create, DnsRecordView, DnsZone, Hostname, ReconciliationDecision, Skip, Update

logger = logging.getLogger(__name__)

################################################################################
# DECISION
################################################################################

def decide(vm_address: str, local_view: Optional[str], provider_view: DnsRecordView,
           hostname: Hostname, trust_local_resolver: bool = True) -> ReconciliationDecision:
    """Compare the VM address with both DNS views. First matching rule wins.

    1. local resolver answers with a different address -> update
    2. provider has no record                          -> create
    3. provider record differs                         -> update
    4. otherwise                                       -> skip

    A stale local answer forces an update even when the provider already
    agrees; pass trust_local_resolver=False to rely on the provider only.
    """
    def upsert() -> ReconciliationDecision:
        if provider_view.exists:
            return Update(
                record_id=provider_view.record_id,
                fqdn=hostname.fqdn,
                record_name=hostname.record_name,
                address=vm_address,
            )
        return Create(fqdn=hostname.fqdn, record_name=hostname.record_name, address=vm_address)

    if trust_local_resolver and local_view and local_view != vm_address:
        logger.info(f"Local DNS record mismatch: {local_view} vs {vm_address}")
        return upsert()

    if provider_view.current_value is None:
        logger.info("No DNS record found in Cloudflare zone.")
        return Create(fqdn=hostname.fqdn, record_name=hostname.record_name, address=vm_address)

    if provider_view.current_value != vm_address:
        logger.info(f"Cloudflare DNS record mismatch: {provider_view.current_value} vs {vm_address}")
        return upsert()

    logger.info("DNS records match the VM IP. No update needed.")
    return Skip()

################################################################################
# RECORD UPSERT
################################################################################

class RecordUpserter:
    """Applies a ReconciliationDecision to one provider zone."""

    RECORD_TYPE = "A"

    def __init__(self, client, zone: DnsZone, ttl: int = 120, proxied: bool = False) -> None:
        self.client = client
        self.zone = zone
        self.ttl = ttl
        self.proxied = proxied

    def apply(self, decision: ReconciliationDecision) -> None:
        """Issue the create/update call. Skip makes no network call. Raises APIError on failure."""
        if isinstance(decision, Skip):
            logger.info("Skipping DNS update as record is already correct.")
            return
        if not isinstance(decision, (Create, Update)):
            raise TypeError(f"Unknown reconciliation decision: {decision!r}")

        payload = self.client.build_record_dict(
            record_name=decision.record_name,
            record_type=self.RECORD_TYPE,
            content=decision.address,
            ttl=self.ttl,
            proxied=self.proxied,
        )

        if isinstance(decision, Create):
            logger.info(f"Creating new DNS record for {decision.fqdn}...")
            self.client.create_record(self.zone.id, payload)
            logger.success(f"Created {decision.fqdn} {LOG_SYMBOLS['ARROW']} {decision.address}")
        else:
            logger.info(f"Updating DNS record for {decision.fqdn}...")
            self.client.update_record(self.zone.id, decision.record_id, payload)
            logger.success(f"Updated {decision.fqdn} {LOG_SYMBOLS['ARROW']} {decision.address}")

#!/usr/bin/env python3
"""
Main Application Module

The two workflows: start an existing VM or clone a new one, discover its
address, then reconcile its Cloudflare A record and/or set its hostname.
State moves between steps in a RunContext.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

################################################################################
# IMPORTS & DEPENDENCIES
################################################################################

# Standard library imports
import time
from typing import Any, Callable, Optional

# Project imports
from .api import CloudflareClient
from .logger import LOG_SYMBOLS
from .dns_state import DnsStateResolver, derive_hostname
from .exceptions import DiscoveryTimeout, HypervisorError
from .guest import GuestConfigurator
from .hypervisor import HostNeighbors, NeighborPrimer, VirshHypervisor
from .models import DomainState, RunContext
from .network import NetworkProber, build_prober
from .polling import PollingController
from .reconcile import RecordUpserter, decide

################################################################################
# APPLICATION CLASS - Workflow Orchestration
################################################################################

class Application:
    """Runs the start and clone workflows against injected collaborators."""

    def __init__(self, config: Any, logger: Any, hypervisor: Optional[Any] = None,
                 client: Optional[Any] = None, neighbors: Optional[Any] = None,
                 guest: Optional[Any] = None, resolver: Optional[Any] = None,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        """
        Initialize application.

        Args:
            config: ConfigManager instance
            logger: Logger instance from LoggerManager
            hypervisor, client, neighbors, guest, resolver: collaborators,
                built from config when omitted
            sleep: sleep function used for boot waits and polling
        """
        self.config = config
        self.logger = logger
        self.sleep = sleep

        self.hypervisor = hypervisor or VirshHypervisor(
            uri=config.hypervisor_uri,
            timeout=config.hypervisor_timeout,
        )
        self.neighbors = neighbors or HostNeighbors()
        self._client = client
        self._resolver = resolver
        self._dns_state = None
        self.guest = guest or GuestConfigurator(
            ssh_user=config.clone_ssh_user,
            connect_timeout=config.clone_ssh_connect_timeout,
        )

    ################################################################################
    # DNS COLLABORATORS - Built on First Use
    ################################################################################

    @property
    def client(self) -> Any:
        """Cloudflare client; a clone run without DNS updates never builds one."""
        if self._client is None:
            self._client = CloudflareClient(
                api_token=self.config.cf_api_token,
                base_url=self.config.cf_base_url,
                api_email=self.config.cf_api_email,
                auth_mode=self.config.cf_auth_mode,
                timeout=self.config.cf_timeout,
                retries=self.config.cf_retry_attempts,
                logger=self.logger,
            )
        return self._client

    @property
    def dns_state(self) -> DnsStateResolver:
        if self._dns_state is None:
            self._dns_state = DnsStateResolver(self.client, resolver=self._resolver)
        return self._dns_state

    ################################################################################
    # PUBLIC INTERFACE - Workflows
    ################################################################################

    def run_start(self, vm: str) -> RunContext:
        """Start VM (if needed), discover its IP, reconcile DNS. Raises VmDnsError subclasses."""
        ctx = RunContext(vm=vm)

        self._step_resolve_zone(ctx)
        self._step_start_vm(ctx)
        self._step_discover_address(ctx, self._prober())
        self._step_check_dns(ctx)
        self._step_update_dns(ctx)

        return ctx

    def run_clone(self, new_vm: str) -> RunContext:
        """Clone from the template (unless new_vm exists), discover its IP, set its hostname."""
        ctx = RunContext(vm=new_vm)

        if self.config.clone_update_dns:
            self._step_resolve_zone(ctx)

        if self.hypervisor.domain_exists(new_vm):
            self.logger.info(f"VM {new_vm} already exists. Retrieving IP address...")
        else:
            self._step_clone_vm(ctx)

        primer = NeighborPrimer(
            subnet=self.config.network_prime_subnet,
            workers=self.config.network_ping_workers,
            settle_seconds=self.config.network_settle_seconds,
            sleep=self.sleep,
        )
        self._step_discover_address(ctx, self._prober(primer))

        if self.config.clone_update_dns:
            self._step_check_dns(ctx)
            self._step_update_dns(ctx)

        self._step_configure_guest(ctx)
        return ctx

    ################################################################################
    # PRIVATE METHODS - Workflow Steps
    ################################################################################

    def _step_resolve_zone(self, ctx: RunContext) -> None:
        """Zone lookup first, so misconfiguration fails before the VM is touched."""
        ctx.zone = self.dns_state.resolve_zone(self.config.cf_domain)

    def _step_start_vm(self, ctx: RunContext) -> None:
        if self.hypervisor.domain_state(ctx.vm) == DomainState.RUNNING:
            self.logger.info(f"VM {ctx.vm} is already running.")
            return

        self.logger.info(f"Starting VM: {ctx.vm}...")
        self.hypervisor.start_domain(ctx.vm)
        self.logger.info("Waiting for VM to boot and acquire an IP address...")
        self.sleep(self.config.discovery_boot_wait)

    def _step_clone_vm(self, ctx: RunContext) -> None:
        template = self.config.clone_template
        self.logger.info("Checking if template VM is running...")
        if self.hypervisor.domain_state(template) == DomainState.RUNNING:
            self.logger.info("Shutting down template VM...")
            self.hypervisor.shutdown_domain(template)
            self._wait_for_shutdown(template)

        self.logger.info(f"Cloning template VM to {ctx.vm} with a new MAC address...")
        mac = self.hypervisor.clone_domain(template, ctx.vm)
        if mac:
            self.logger.info(f"Clone {ctx.vm} has MAC address {mac}")

        self.logger.info(f"Starting new VM: {ctx.vm}...")
        self.hypervisor.start_domain(ctx.vm)
        self.logger.info("Waiting for VM to boot and acquire an IP address...")
        self.sleep(self.config.discovery_clone_boot_wait)

    def _step_discover_address(self, ctx: RunContext, prober: NetworkProber) -> None:
        controller = PollingController(
            prober,
            max_attempts=self.config.discovery_max_attempts,
            delay_seconds=self.config.discovery_delay_seconds,
            sleep=self.sleep,
        )
        try:
            ctx.address = controller.resolve(ctx.vm)
        except DiscoveryTimeout:
            self.logger.warning("Make sure qemu-guest-agent is installed and running inside the VM.")
            self.logger.warning("You may need to manually determine the IP address.")
            raise

    def _step_check_dns(self, ctx: RunContext) -> None:
        ctx.hostname = derive_hostname(ctx.vm, self.config.cf_domain)
        ctx.local_view = self.dns_state.local_resolver_view(ctx.hostname.fqdn)
        ctx.provider_view = self.dns_state.current_record(ctx.zone, ctx.hostname.fqdn)

        self.logger.info("Comparing DNS records:")
        self.logger.info(f"  {LOG_SYMBOLS['BULLET']} VM Name: {ctx.vm}")
        self.logger.info(f"  {LOG_SYMBOLS['BULLET']} Record Name: {ctx.hostname.record_name}")
        self.logger.info(f"  {LOG_SYMBOLS['BULLET']} FQDN: {ctx.hostname.fqdn}")
        self.logger.info(f"  {LOG_SYMBOLS['BULLET']} VM Current IP: {ctx.address}")
        self.logger.info(f"  {LOG_SYMBOLS['BULLET']} Local DNS IP: {ctx.local_view or '-'}")
        self.logger.info(f"  {LOG_SYMBOLS['BULLET']} Cloudflare DNS IP: {ctx.provider_view.current_value or '-'}")

        ctx.decision = decide(
            ctx.address,
            ctx.local_view,
            ctx.provider_view,
            ctx.hostname,
            trust_local_resolver=self.config.dns_trust_local_resolver,
        )

    def _step_update_dns(self, ctx: RunContext) -> None:
        upserter = RecordUpserter(
            self.client,
            ctx.zone,
            ttl=self.config.dns_ttl,
            proxied=self.config.dns_proxied,
        )
        upserter.apply(ctx.decision)

    def _step_configure_guest(self, ctx: RunContext) -> None:
        self.guest.set_hostname(ctx.address, ctx.vm)
        self.guest.reboot(ctx.address)

    ################################################################################
    # PRIVATE METHODS - Helpers
    ################################################################################

    def _prober(self, primer: Optional[NeighborPrimer] = None) -> NetworkProber:
        return build_prober(self.hypervisor, self.neighbors, primer=primer)

    def _wait_for_shutdown(self, template: str) -> None:
        waited = 0
        while self.hypervisor.domain_state(template) == DomainState.RUNNING:
            if waited >= self.config.clone_shutdown_timeout:
                raise HypervisorError(
                    f"Template VM {template} did not shut down within {self.config.clone_shutdown_timeout}s"
                )
            self.logger.info("Waiting for template VM to shut down...")
            self.sleep(self.config.clone_shutdown_poll)
            waited += self.config.clone_shutdown_poll

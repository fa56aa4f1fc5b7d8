#!/usr/bin/env python3
"""
Hypervisor Module

Thin wrappers around the libvirt command line (virsh, virt-clone) and the
host's iproute2 neighbor table. Query methods return empty results on
failure; mutating methods raise HypervisorError.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

################################################################################
# IMPORTS & DEPENDENCIES
################################################################################

import ipaddress
import json
import logging
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from .exceptions import HypervisorError
from .models import DomainState, GuestInterface
from .parsers import extract_mac_address, parse_domain_state, parse_domifaddr

logger = logging.getLogger(__name__)

################################################################################
# VIRSH HYPERVISOR CLASS - libvirt Domain Control and Introspection
################################################################################

class VirshHypervisor:
    """libvirt access through `virsh -c <uri>` subprocess calls."""

    def __init__(self, uri: str = "qemu:///system", timeout: int = 30) -> None:
        self.uri = uri
        self.timeout = timeout

    ################################################################################
    # PUBLIC INTERFACE - Domain Lifecycle
    ################################################################################

    def domain_exists(self, vm: str) -> bool:
        """True if libvirt knows a domain by this name."""
        return self._virsh("dominfo", vm).returncode == 0

    def domain_state(self, vm: str) -> DomainState:
        result = self._virsh("domstate", vm)
        if result.returncode != 0:
            return DomainState.UNKNOWN
        return parse_domain_state(result.stdout)

    def start_domain(self, vm: str) -> None:
        self._check(self._virsh("start", vm), f"Failed to start VM {vm}")

    def shutdown_domain(self, vm: str) -> None:
        self._check(self._virsh("shutdown", vm), f"Failed to shut down VM {vm}")

    def clone_domain(self, template: str, new_name: str) -> Optional[str]:
        """Clone template with a random MAC. Returns the new domain's MAC address."""
        result = self._run(
            ["virt-clone", "--connect", self.uri, "--original", template,
             "--name", new_name, "--auto-clone", "--mac", "RANDOM"],
            timeout=None,
        )
        self._check(result, f"Failed to clone {template} to {new_name}")
        return extract_mac_address(self.domain_definition_xml(new_name))

    ################################################################################
    # PUBLIC INTERFACE - Introspection
    ################################################################################

    def domain_interfaces(self, vm: str, via_agent: bool) -> List[GuestInterface]:
        """Interfaces from `virsh domifaddr`, via the guest agent or the hypervisor's lease view."""
        args = ["domifaddr", vm]
        if via_agent:
            args += ["--source", "agent"]
        result = self._virsh(*args)
        if result.returncode != 0:
            return []
        return parse_domifaddr(result.stdout)

    def domain_definition_xml(self, vm: str) -> str:
        result = self._virsh("dumpxml", vm)
        return result.stdout if result.returncode == 0 else ""

    def guest_agent_ping(self, vm: str) -> bool:
        return self._virsh("qemu-agent-command", vm, json.dumps({"execute": "guest-ping"})).returncode == 0

    def guest_agent_exec(self, vm: str, command: str) -> Optional[Dict[str, Any]]:
        """Run a guest agent command (e.g. guest-network-get-interfaces). Returns the decoded reply."""
        result = self._virsh("qemu-agent-command", vm, json.dumps({"execute": command}))
        if result.returncode != 0:
            return None
        try:
            return json.loads(result.stdout)
        except ValueError:
            logger.debug(f"Guest agent returned non-JSON output for {command}: {result.stdout!r}")
            return None

    ################################################################################
    # PRIVATE METHODS - Process Invocation
    ################################################################################

    def _virsh(self, *args: str) -> subprocess.CompletedProcess:
        return self._run(["virsh", "-c", self.uri, *args], timeout=self.timeout)

    def _run(self, command: List[str], timeout: Optional[float]) -> subprocess.CompletedProcess:
        logger.debug(f"Running: {' '.join(command)}")
        try:
            return subprocess.run(command, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.debug(f"Command timed out after {timeout}s: {' '.join(command)}")
            return subprocess.CompletedProcess(command, 124, "", "timed out")
        except FileNotFoundError:
            logger.debug(f"Command not found: {command[0]}")
            return subprocess.CompletedProcess(command, 127, "", f"{command[0]}: not found")

    def _check(self, result: subprocess.CompletedProcess, message: str) -> None:
        if result.returncode != 0:
            raise HypervisorError(f"{message}: {result.stderr.strip() or result.stdout.strip()}")

################################################################################
# HOST NEIGHBOR TABLE
################################################################################

class HostNeighbors:
    """Reads the host's IP neighbor (ARP) cache."""

    def __init__(self, timeout: int = 10) -> None:
        self.timeout = timeout

    def table(self) -> str:
        """Raw `ip neigh` output, empty on failure."""
        try:
            result = subprocess.run(["ip", "neigh"], capture_output=True, text=True, timeout=self.timeout)
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.debug(f"ip neigh failed: {e}")
            return ""
        return result.stdout if result.returncode == 0 else ""


class NeighborPrimer:
    """Populates the neighbor cache with a fire-and-forget ping sweep of a subnet."""

    def __init__(self, subnet: str, workers: int = 64, settle_seconds: float = 3,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        self.network = ipaddress.IPv4Network(subnet, strict=False)
        self.workers = workers
        self.settle_seconds = settle_seconds
        self.sleep = sleep

    def prime(self) -> None:
        """Ping every host address without waiting on results, then wait the settle delay."""
        hosts = [str(host) for host in self.network.hosts()]
        logger.debug(f"Priming neighbor cache: pinging {len(hosts)} hosts in {self.network}")

        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="ping")
        for host in hosts:
            executor.submit(self._ping, host)
        executor.shutdown(wait=False)

        self.sleep(self.settle_seconds)

    @staticmethod
    def _ping(host: str) -> None:
        try:
            subprocess.run(["ping", "-c", "1", "-W", "1", host],
                           stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, timeout=5)
        except (subprocess.TimeoutExpired, OSError):
            pass

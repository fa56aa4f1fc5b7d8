#!/usr/bin/env python3
"""
Guest Configuration

Sets a freshly cloned guest's hostname over SSH and reboots it.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

import logging
import os
import shlex
import subprocess
from typing import List

from .exceptions import GuestConfigurationError

logger = logging.getLogger(__name__)


class GuestConfigurator:
    """Runs hostname commands on the guest through the system ssh client."""

    def __init__(self, ssh_user: str, connect_timeout: int = 10, known_hosts: str = "~/.ssh/known_hosts") -> None:
        self.ssh_user = ssh_user
        self.connect_timeout = connect_timeout
        self.known_hosts = os.path.expanduser(known_hosts)

    def set_hostname(self, address: str, hostname: str) -> None:
        """Change hostname and the 127.0.1.1 hosts entry. Raises GuestConfigurationError."""
        logger.info(f"Changing hostname to {hostname}...")
        self._forget_host_key(address)

        quoted = shlex.quote(hostname)
        hosts_expr = shlex.quote(f"s/127.0.1.1.*/127.0.1.1 {hostname}/g")
        remote = (
            f"sudo hostnamectl set-hostname {quoted} && "
            f"sudo sed -i {hosts_expr} /etc/hosts"
        )

        logger.info(f"Connecting as {self.ssh_user}...")
        try:
            result = subprocess.run(
                self._ssh_command(address, remote, connect_timeout=True),
                capture_output=True, text=True, timeout=self.connect_timeout + 60,
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            raise GuestConfigurationError(
                f"Could not SSH into the VM as {self.ssh_user}: {e}. "
                f"VM is running with IP: {address}"
            )

        if result.returncode != 0:
            raise GuestConfigurationError(
                f"Could not SSH into the VM as {self.ssh_user} ({result.stderr.strip() or 'exit ' + str(result.returncode)}). "
                f"You'll need to change the hostname manually. VM is running with IP: {address}"
            )
        logger.info(f"Hostname successfully changed to {hostname}")

    def reboot(self, address: str) -> None:
        """Request a reboot. The connection drops as the guest goes down, so failures are ignored."""
        logger.info("Rebooting VM to apply changes...")
        try:
            subprocess.run(self._ssh_command(address, "sudo reboot"),
                           capture_output=True, text=True, timeout=self.connect_timeout + 30)
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug(f"Reboot command did not complete cleanly: {e}")

    def _forget_host_key(self, address: str) -> None:
        # stale entry from the template or an earlier guest on this address
        try:
            subprocess.run(["ssh-keygen", "-f", self.known_hosts, "-R", address],
                           capture_output=True, text=True, timeout=10)
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug(f"Could not remove {address} from {self.known_hosts}: {e}")

    def _ssh_command(self, address: str, remote: str, connect_timeout: bool = False) -> List[str]:
        command = ["ssh", "-o", "StrictHostKeyChecking=no"]
        if connect_timeout:
            command += ["-o", f"ConnectTimeout={self.connect_timeout}"]
        return command + [f"{self.ssh_user}@{address}", remote]

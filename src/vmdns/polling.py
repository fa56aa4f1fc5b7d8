#!/usr/bin/env python3
"""
Polling Controller

Drives the network prober in a bounded loop with a fixed delay between
attempts (12 x 10s by default, the boot-wait window of a fresh guest).

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

import logging
import time
from typing import Callable, Optional

from .exceptions import DiscoveryTimeout
from .models import DiscoveryAttempt

logger = logging.getLogger(__name__)


class PollingController:
    """Fixed-interval retry loop around NetworkProber.probe()."""

    def __init__(self, prober, max_attempts: int = 12, delay_seconds: float = 10,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        self.prober = prober
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self.sleep = sleep

    def resolve(self, vm: str, max_attempts: Optional[int] = None, delay_seconds: Optional[float] = None) -> str:
        """Return the VM's address or raise DiscoveryTimeout after max_attempts empty probes."""
        max_attempts = self.max_attempts if max_attempts is None else max_attempts
        delay_seconds = self.delay_seconds if delay_seconds is None else delay_seconds

        for number in range(1, max_attempts + 1):
            attempt = DiscoveryAttempt(number=number)
            address = self.prober.probe(vm, attempt)
            if address:
                logger.success(f"VM {vm} is running with IP address: {address}")
                return address

            logger.debug(f"Attempt {number} tried: {', '.join(attempt.strategies_tried) or 'nothing'}")
            logger.info(f"Waiting for IP address... (attempt {number}/{max_attempts})")
            if number < max_attempts:  # Don't sleep after the last attempt
                self.sleep(delay_seconds)

        raise DiscoveryTimeout(vm, max_attempts)

#!/usr/bin/env python3
"""
VM-DNS

Start or clone libvirt VMs, discover their addresses and keep their
Cloudflare A records in sync.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

# Package metadata
__version__ = "1.0.0"
__author__ = "Manuel Ziel"
__description__ = "Libvirt VM address discovery and Cloudflare DNS reconciliation"
__software_name__ = "VM-DNS"
__syslog_identifier__ = "vm-dns"  # Used for systemd journal logging

# Package imports
from .logger import LOG_COLORS, LOG_SYMBOLS, LoggerManager
from .config import ConfigManager
from .api import CloudflareClient, HTTPClient
from .network import NetworkProber, build_prober
from .polling import PollingController
from .dns_state import DnsStateResolver, derive_hostname
from .reconcile import RecordUpserter, decide
from .application import Application

__all__ = [
    'LOG_COLORS',
    'LOG_SYMBOLS',
    'LoggerManager',
    'ConfigManager',
    'CloudflareClient',
    'HTTPClient',
    'NetworkProber',
    'build_prober',
    'PollingController',
    'DnsStateResolver',
    'derive_hostname',
    'RecordUpserter',
    'decide',
    'Application',
]

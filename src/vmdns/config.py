#!/usr/bin/env python3
"""
Configuration Manager

Loads the TOML configuration (Cloudflare credentials, polling limits,
hypervisor and clone settings) from the first valid candidate path.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

################################################################################
# IMPORTS & DEPENDENCIES
################################################################################

import getpass
import logging
import os
import tomllib
from typing import Dict, Any, Iterable, List, Mapping, Optional

from .encryption import KEY_FILE_NAME, EncryptionManager
from .exceptions import ConfigError

################################################################################
# CONSTANTS
################################################################################

SYSTEM_CONFIG_PATH = "/etc/vm-dns/config.toml"
CONFIG_FILE_NAME = "config.toml"
CONFIG_ENV_VAR = "VM_DNS_CONFIG"

# Credential variable names of the legacy cloudflare.env file
ENV_OVERRIDES = {
    "CF_API_TOKEN": "cf_api_token",
    "CF_API_EMAIL": "cf_api_email",
    "CF_DOMAIN": "cf_domain",
}

REQUIRED_HINT = "cloudflare.domain, cloudflare.api_token (or api_token_encrypted; the global API key in global_key mode), cloudflare.api_email (global_key mode only)"

logger = logging.getLogger(__name__)

################################################################################
# CONFIG DISCOVERY
################################################################################

def candidate_config_paths(explicit: Optional[str] = None, tool_dir: Optional[str] = None,
                           environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """Return config paths in lookup order: explicit, $VM_DNS_CONFIG, /etc, tool directory."""
    environ = os.environ if environ is None else environ
    if explicit:
        return [explicit]

    paths = []
    if environ.get(CONFIG_ENV_VAR):
        paths.append(environ[CONFIG_ENV_VAR])
    paths.append(SYSTEM_CONFIG_PATH)
    if tool_dir:
        paths.append(os.path.join(tool_dir, CONFIG_FILE_NAME))
    return paths


def find_config_file(candidates: Iterable[str]) -> Optional[str]:
    """First candidate that exists on disk, or None."""
    return next((path for path in candidates if os.path.isfile(path)), None)


def read_config_file(path: str) -> Dict[str, Any]:
    """Parse a TOML file. Raises ConfigError."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}")
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML syntax in {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Error loading configuration from {path}: {e}")


def encryption_key_path(config: Mapping[str, Any], config_dir: str) -> str:
    """[encryption] key_path, relative paths taken from the config file's directory."""
    key_file = config.get("encryption", {}).get("key_path", KEY_FILE_NAME)
    if not os.path.isabs(key_file):
        key_file = os.path.join(config_dir, key_file)
    return key_file

################################################################################
# CONFIGURATION MANAGER CLASS - TOML Configuration with Environment Integration
################################################################################

class ConfigManager:
    """Configuration handler for TOML config with CF_* environment overrides.

    Cloudflare settings are only required when the workflow touches DNS:
    always for "start", for "clone" only with [clone] update_dns = true.
    """

    def __init__(self, config_path: Optional[str], environ: Optional[Mapping[str, str]] = None,
                 workflow: str = "start") -> None:
        """Load and validate configuration. config_path=None builds it from environment and defaults."""
        self.config_path = config_path
        self.workflow = workflow
        self.config = self.load_config(config_path) if config_path else {}
        self.config_dir = os.path.dirname(os.path.abspath(config_path)) if config_path else os.getcwd()

        self._load_debug_config()
        self._load_cloudflare_config()
        self._load_dns_config()
        self._load_discovery_config()
        self._load_network_config()
        self._load_hypervisor_config()
        self._load_clone_config()
        self._load_encryption_config()
        self._apply_environment(os.environ if environ is None else environ)

        self.dns_required = workflow == "start" or bool(self.clone_update_dns)
        self.validate()
        if self.dns_required:
            self._decrypt_api_token()

    @classmethod
    def discover(cls, candidates: Iterable[str], environ: Optional[Mapping[str, str]] = None,
                 workflow: str = "start") -> "ConfigManager":
        """Return config from the first candidate that exists and validates. Raises ConfigError otherwise."""
        environ = os.environ if environ is None else environ
        tried = []
        for path in candidates:
            tried.append(path)
            if not os.path.isfile(path):
                logger.debug(f"Configuration file not found at {path}")
                continue

            logger.info(f"Loading configuration from {path}...")
            try:
                return cls(path, environ=environ, workflow=workflow)
            except ConfigError as e:
                logger.warning(str(e))

        try:
            config = cls(None, environ=environ, workflow=workflow)
        except ConfigError:
            raise ConfigError(
                f"No valid configuration found (tried: {', '.join(tried)}). "
                f"Required values: {REQUIRED_HINT}"
            )
        logger.info("No configuration file used, running with environment and defaults")
        return config

    ################################################################################
    # PUBLIC INTERFACE - Configuration Loading and Validation
    ################################################################################

    def load_config(self, path: str) -> Dict[str, Any]:
        """Load configuration from TOML file."""
        return read_config_file(path)

    def validate(self) -> None:
        """Fail fast on missing credentials or nonsensical values."""
        source = self.config_path or "environment"

        if self.dns_required:
            missing = []
            if not self.cf_domain:
                missing.append("cloudflare.domain")
            if not self.cf_api_token and not self.cf_api_token_encrypted:
                missing.append("cloudflare.api_token")
            if self.cf_auth_mode == "global_key" and not self.cf_api_email:
                missing.append("cloudflare.api_email")
            if missing:
                raise ConfigError(f"Required configuration values missing in {source}: {', '.join(missing)}")

        if self.cf_auth_mode not in ("token", "global_key"):
            raise ConfigError(f"Invalid cloudflare.auth_mode '{self.cf_auth_mode}' in {source}. Must be 'token' or 'global_key'")
        if self.discovery_max_attempts < 1:
            raise ConfigError(f"discovery.max_attempts must be at least 1 (got {self.discovery_max_attempts})")
        if self.discovery_delay_seconds < 0:
            raise ConfigError(f"discovery.delay_seconds must not be negative (got {self.discovery_delay_seconds})")

    ################################################################################
    # PRIVATE METHODS - Section Loaders
    ################################################################################

    def _load_debug_config(self) -> None:
        """Load debug config from [debug] section."""
        self.log_level = self.config.get("debug", {}).get("level", "INFO")
        self.console_colors = self.config.get("debug", {}).get("console_colors", True)

    def _load_cloudflare_config(self) -> None:
        """Load API config from [cloudflare] section."""
        section = self.config.get("cloudflare", {})
        self.cf_api_token = section.get("api_token", "")
        self.cf_api_token_encrypted = section.get("api_token_encrypted", "")
        self.cf_api_email = section.get("api_email", "")
        self.cf_auth_mode = section.get("auth_mode", "token")
        self.cf_domain = section.get("domain", "")
        self.cf_base_url = section.get("base_url", "https://api.cloudflare.com/client/v4")
        self.cf_timeout = section.get("timeout", 30)
        self.cf_retry_attempts = section.get("retry_attempts", 3)

    def _load_dns_config(self) -> None:
        """Load DNS config from [dns] section."""
        self.dns_ttl = self.config.get("dns", {}).get("ttl", 120)
        self.dns_proxied = self.config.get("dns", {}).get("proxied", False)
        self.dns_trust_local_resolver = self.config.get("dns", {}).get("trust_local_resolver", True)

    def _load_discovery_config(self) -> None:
        """Load polling limits from [discovery] section."""
        self.discovery_max_attempts = self.config.get("discovery", {}).get("max_attempts", 12)
        self.discovery_delay_seconds = self.config.get("discovery", {}).get("delay_seconds", 10)
        self.discovery_boot_wait = self.config.get("discovery", {}).get("boot_wait_seconds", 15)
        self.discovery_clone_boot_wait = self.config.get("discovery", {}).get("clone_boot_wait_seconds", 30)

    def _load_network_config(self) -> None:
        """Load neighbor priming config from [network] section."""
        self.network_prime_subnet = self.config.get("network", {}).get("prime_subnet", "192.168.122.0/24")
        self.network_ping_workers = self.config.get("network", {}).get("ping_workers", 64)
        self.network_settle_seconds = self.config.get("network", {}).get("settle_seconds", 3)

    def _load_hypervisor_config(self) -> None:
        """Load libvirt config from [hypervisor] section."""
        self.hypervisor_uri = self.config.get("hypervisor", {}).get("uri", "qemu:///system")
        self.hypervisor_timeout = self.config.get("hypervisor", {}).get("timeout", 30)

    def _load_clone_config(self) -> None:
        """Load clone workflow config from [clone] section."""
        self.clone_template = self.config.get("clone", {}).get("template", "ubuntu22.04")
        self.clone_ssh_user = self.config.get("clone", {}).get("ssh_user") or getpass.getuser()
        self.clone_ssh_connect_timeout = self.config.get("clone", {}).get("ssh_connect_timeout", 10)
        self.clone_shutdown_poll = self.config.get("clone", {}).get("shutdown_poll_seconds", 5)
        self.clone_shutdown_timeout = self.config.get("clone", {}).get("shutdown_timeout_seconds", 300)
        self.clone_update_dns = self.config.get("clone", {}).get("update_dns", False)

    def _load_encryption_config(self) -> None:
        """Load key file location from [encryption] section, relative to the config file."""
        self.encryption_key_path = encryption_key_path(self.config, self.config_dir)

    def _apply_environment(self, environ: Mapping[str, str]) -> None:
        """Let CF_API_TOKEN / CF_API_EMAIL / CF_DOMAIN override file values."""
        for env_name, attribute in ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if value:
                setattr(self, attribute, value)

    def _decrypt_api_token(self) -> None:
        """Replace an encrypted token with its plain text for this run only."""
        if self.cf_api_token or not self.cf_api_token_encrypted:
            return
        manager = EncryptionManager(self.encryption_key_path, create=False)
        self.cf_api_token = manager.decrypt(self.cf_api_token_encrypted)

"""
Custom Exception Classes for VM-DNS.

Exception Hierarchy:
    VmDnsError (Base)
    ├─ ConfigError              - Configuration issues (TOML parsing, missing keys)
    ├─ EncryptionError          - Encryption/Decryption failures
    ├─ HypervisorError          - virsh / virt-clone invocation failed
    ├─ DiscoveryTimeout         - No IP address within the attempt limit
    ├─ GuestConfigurationError  - Hostname change over SSH failed
    └─ APIError                 - DNS provider API communication
       ├─ AuthenticationError   - Token rejected (401/403)
       └─ ZoneNotFoundError     - No zone for the configured domain
"""

from typing import Optional


class VmDnsError(Exception):
    """Base exception for all VM-DNS errors."""
    pass


class ConfigError(VmDnsError):
    """Configuration error (TOML parsing, missing keys, invalid values)."""
    pass


class EncryptionError(VmDnsError):
    """Encryption/Decryption operation failed."""
    pass


class HypervisorError(VmDnsError):
    """Hypervisor command failed (start, shutdown, clone)."""
    pass


class DiscoveryTimeout(VmDnsError):
    """No discovery strategy produced an address within the attempt limit."""

    def __init__(self, vm: str, attempts: int) -> None:
        self.vm = vm
        self.attempts = attempts
        super().__init__(f"Could not get IP address for VM {vm} after {attempts} attempts")


class GuestConfigurationError(VmDnsError):
    """Post-resolution guest configuration (hostname change) failed."""
    pass


class APIError(VmDnsError):
    """Provider API communication error."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 body: Optional[str] = None, retryable: bool = False) -> None:
        self.status_code = status_code
        self.body = body
        self.retryable = retryable
        super().__init__(message)


class AuthenticationError(APIError):
    """API credentials rejected by provider (401/403)."""
    pass


class ZoneNotFoundError(APIError):
    """DNS zone not found on provider."""
    pass

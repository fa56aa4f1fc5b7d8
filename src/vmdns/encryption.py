#!/usr/bin/env python3
"""
Encryption Manager

Keeps the Cloudflare API token out of config.toml in plain text. The
token is stored as `api_token_encrypted`, a Fernet token (AES-128 CBC +
HMAC-SHA256), and the key lives in `.encryption_key` next to the config
file unless [encryption] key_path says otherwise.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

################################################################################
# IMPORTS & DEPENDENCIES
################################################################################

import os
import logging
from typing import Optional, Any

from cryptography.fernet import Fernet, InvalidToken

from .exceptions import EncryptionError

KEY_FILE_NAME = ".encryption_key"
KEY_LENGTH = 44  # 32 bytes, URL-safe base64

################################################################################
# ENCRYPTION MANAGER CLASS
################################################################################

class EncryptionManager:
    """Fernet cipher bound to one key file."""

    def __init__(self, key_file_path: str, logger: Optional[Any] = None, create: bool = True) -> None:
        """Load the key, or generate it when create=True. Raises EncryptionError."""
        self.key_file = key_file_path
        self.logger = logger if logger else logging.getLogger(__name__)

        if os.path.exists(self.key_file):
            key = self._load_key()
        elif create:
            key = self._generate_key()
        else:
            raise EncryptionError(
                f"Encryption key file not found: {self.key_file} "
                f"(api_token_encrypted cannot be read without it)"
            )

        if len(key) != KEY_LENGTH:
            raise EncryptionError(f"Invalid encryption key length in {self.key_file}: {len(key)} (expected {KEY_LENGTH})")
        self._cipher = Fernet(key)

    ################################################################################
    # PUBLIC METHODS - Token Encryption
    ################################################################################

    def encrypt(self, data: str) -> str:
        """Encrypt a token. Returns the URL-safe base64 string to paste into the config."""
        if not data:
            raise ValueError("Cannot encrypt empty data")
        return self._cipher.encrypt(data.encode()).decode()

    def decrypt(self, encrypted_data: str) -> str:
        """Decrypt api_token_encrypted. Raises EncryptionError on a wrong key or corrupt value."""
        if not encrypted_data:
            raise ValueError("Cannot decrypt empty data")
        try:
            return self._cipher.decrypt(encrypted_data.encode()).decode()
        except InvalidToken:
            raise EncryptionError(f"Could not decrypt api_token_encrypted with key {self.key_file}")

    ################################################################################
    # PRIVATE METHODS - Key File
    ################################################################################

    def _load_key(self) -> bytes:
        try:
            with open(self.key_file, 'rb') as f:
                key = f.read().strip()
            if os.stat(self.key_file).st_mode & 0o777 != 0o600:
                os.chmod(self.key_file, 0o600)
                self.logger.warning(f"Fixed encryption key permissions: {self.key_file}")
        except OSError as e:
            raise EncryptionError(f"Could not read encryption key {self.key_file}: {e}")
        return key

    def _generate_key(self) -> bytes:
        key = Fernet.generate_key()
        try:
            key_dir = os.path.dirname(self.key_file)
            if key_dir:
                os.makedirs(key_dir, mode=0o700, exist_ok=True)
            fd = os.open(self.key_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, 'wb') as f:
                f.write(key)
        except OSError as e:
            raise EncryptionError(f"Could not create encryption key {self.key_file}: {e}")
        self.logger.info(f"Generated new encryption key: {self.key_file}")
        return key

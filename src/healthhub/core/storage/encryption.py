"""Fernet-based field encryption for sensitive values at rest.

OAuth access/refresh tokens and menstrual-cycle entries are encrypted before
writing to SQLite. Metrics, logs and insights stay in plain columns so the
aggregator can filter them by time window in SQL.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Encrypts JSON values and bare strings using Fernet symmetric encryption.

    Usage::

        encryptor = FieldEncryptor(key="...")
        token_enc = encryptor.encrypt_text("ya29.a0Af...")
        entry_enc = encryptor.encrypt({"phase": "luteal", "flow": None})
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Args:
            key: A valid Fernet key string. Generate with
                :meth:`generate_key`.

        Raises:
            EncryptionError: If the key is empty or invalid.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode())
        except (ValueError, TypeError) as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, data: Any) -> str:
        """Encrypt a JSON-serializable value. ``None`` encrypts to ``""``.

        Raises:
            EncryptionError: If serialization fails.
        """
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self.encrypt_text(plaintext)

    def decrypt(self, token: str) -> Any:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            EncryptionError: If the token is invalid or not JSON.
        """
        plaintext = self.decrypt_text(token)
        if plaintext is None:
            return None
        try:
            return json.loads(plaintext)
        except json.JSONDecodeError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    def encrypt_text(self, value: str | None) -> str:
        """Encrypt a plain string (e.g. an OAuth token)."""
        if value is None:
            return ""
        return self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")

    def decrypt_text(self, token: str | None) -> str | None:
        """Decrypt a string produced by :meth:`encrypt_text`.

        Returns:
            The plaintext, or None for an empty/missing token.

        Raises:
            EncryptionError: If the token was not produced with this key.
        """
        if not token:
            return None
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new URL-safe base64-encoded Fernet key."""
        return Fernet.generate_key().decode("utf-8")

"""
Symmetric encryption for stored portal and vault secrets.

Secrets are encrypted with Fernet (AES-128-CBC + HMAC) before they are
written to storage and decrypted only when a caller explicitly asks for
the plaintext.
"""

from __future__ import annotations

import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when a value cannot be encrypted or decrypted."""

    pass


class EncryptionService:
    """
    Fernet-based encryption service.

    Usage:
        service = EncryptionService(EncryptionService.generate_key())
        token = service.encrypt("hunter2")
        service.decrypt(token)  # "hunter2"
    """

    def __init__(self, key: str | bytes):
        """
        Initialize the service with a Fernet key.

        Args:
            key: URL-safe base64-encoded 32-byte key

        Raises:
            EncryptionError: If the key is not a valid Fernet key
        """
        if isinstance(key, str):
            key = key.encode("utf-8")
        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as e:
            raise EncryptionError(f"Invalid encryption key: {e}") from e

    @staticmethod
    def generate_key() -> str:
        """Generate a new random Fernet key."""
        return Fernet.generate_key().decode("utf-8")

    def encrypt(self, value: str) -> str:
        """
        Encrypt a plaintext string.

        Raises:
            EncryptionError: If encryption fails
        """
        try:
            token = self._fernet.encrypt(value.encode("utf-8"))
        except (TypeError, AttributeError) as e:
            raise EncryptionError(f"Could not encrypt value: {e}") from e
        return token.decode("utf-8")

    def decrypt(self, token: str) -> str:
        """
        Decrypt a ciphertext string.

        Raises:
            EncryptionError: If the token is invalid or was made with another key
        """
        try:
            raw = self._fernet.decrypt(token.encode("utf-8"))
        except (InvalidToken, TypeError, AttributeError) as e:
            raise EncryptionError("Could not decrypt value") from e
        return raw.decode("utf-8")

    def decrypt_or_none(self, token: str | None) -> str | None:
        """
        Decrypt a ciphertext, degrading to None on failure.

        Empty and None values are returned as-is.
        """
        if not token:
            return token
        try:
            return self.decrypt(token)
        except EncryptionError:
            logger.warning("Failed to decrypt stored secret; returning None")
            return None


def encrypt_value(encryptor: EncryptionService, value: str | None) -> str | None:
    """
    Encrypt a value, passing falsy values through untouched.

    None stays None and "" stays "" without calling the encryptor.

    Args:
        encryptor: Service used for non-empty values
        value: Plaintext, "" or None

    Returns:
        Ciphertext, "" or None
    """
    if value is None or value == "":
        return value
    return encryptor.encrypt(value)

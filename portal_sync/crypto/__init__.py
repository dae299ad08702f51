"""
portal_sync.crypto - Secret encryption module
"""

from portal_sync.crypto.encryption import (
    EncryptionError,
    EncryptionService,
    encrypt_value,
)

__all__ = ["EncryptionError", "EncryptionService", "encrypt_value"]

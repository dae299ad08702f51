"""
Tests for the encryption module.
"""

from unittest.mock import MagicMock

import pytest

from portal_sync.crypto.encryption import (
    EncryptionError,
    EncryptionService,
    encrypt_value,
)


@pytest.fixture
def service(encryptor):
    """Alias of the shared encryptor fixture."""
    return encryptor


class TestEncryptionService:
    """Tests for EncryptionService."""

    def test_encrypt_decrypt(self, service):
        """Test that ciphertext differs from and decrypts to the plaintext."""
        token = service.encrypt("hunter2")
        assert token != "hunter2"
        assert service.decrypt(token) == "hunter2"

    def test_invalid_key_raises(self):
        """Test that a malformed key is rejected."""
        with pytest.raises(EncryptionError, match="Invalid encryption key"):
            EncryptionService("not-a-key")

    def test_decrypt_with_other_key_fails(self, service):
        """Test that a token from another key cannot be decrypted."""
        other = EncryptionService(EncryptionService.generate_key())
        with pytest.raises(EncryptionError):
            service.decrypt(other.encrypt("secret"))

    def test_decrypt_garbage_fails(self, service):
        """Test that non-token input raises EncryptionError."""
        with pytest.raises(EncryptionError):
            service.decrypt("garbage")


class TestDecryptOrNone:
    """Tests for decrypt_or_none."""

    def test_returns_plaintext(self, service):
        """Test successful decryption."""
        assert service.decrypt_or_none(service.encrypt("pw")) == "pw"

    def test_failure_returns_none_and_warns(self, service, caplog):
        """Test that undecryptable values degrade to None with a warning."""
        with caplog.at_level("WARNING"):
            assert service.decrypt_or_none("garbage") is None
        assert "Failed to decrypt" in caplog.text

    def test_passes_through_empty(self, service):
        """Test that None and empty values are returned unchanged."""
        assert service.decrypt_or_none(None) is None
        assert service.decrypt_or_none("") == ""


class TestEncryptValue:
    """Tests for encrypt_value."""

    def test_none_and_empty_skip_encryptor(self):
        """Test that falsy values never reach the encryptor."""
        encryptor = MagicMock(spec=EncryptionService)
        assert encrypt_value(encryptor, None) is None
        assert encrypt_value(encryptor, "") == ""
        encryptor.encrypt.assert_not_called()

    def test_value_is_encrypted(self):
        """Test that non-empty values are encrypted."""
        encryptor = MagicMock(spec=EncryptionService)
        encryptor.encrypt.return_value = "cipher"
        assert encrypt_value(encryptor, "pw") == "cipher"
        encryptor.encrypt.assert_called_once_with("pw")

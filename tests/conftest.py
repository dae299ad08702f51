"""Shared pytest fixtures."""

import logging
from unittest.mock import MagicMock

import pytest

from portal_sync.crypto.encryption import EncryptionService
from portal_sync.storage.db import PortalDatabase
from portal_sync.utils.logging import ROOT_LOGGER_NAME


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo setup_logging so caplog sees package records in every test."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def db():
    """Provide an initialized in-memory database."""
    database = PortalDatabase(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def encryptor():
    """Provide an encryption service with a fresh key."""
    return EncryptionService(EncryptionService.generate_key())


@pytest.fixture
def mock_encryptor():
    """Provide a mock encryptor that tags values instead of encrypting."""
    encryptor = MagicMock(spec=EncryptionService)
    encryptor.encrypt.side_effect = lambda value: f"enc({value})"
    return encryptor

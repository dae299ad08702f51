"""
portal_sync.storage - SQLite storage module
"""

from portal_sync.storage.db import PortalDatabase, StorageError

__all__ = ["PortalDatabase", "StorageError"]

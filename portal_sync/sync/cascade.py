"""
Deletion cascade from portals (or their providers) to vault entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from portal_sync.storage.db import PortalDatabase, StorageError

logger = logging.getLogger(__name__)


@dataclass
class DeletePortalResult:
    """Outcome of deleting one portal by id."""

    deleted_portal: bool = False
    deleted_passwords: int = 0
    success: bool = True
    error: Optional[str] = None


@dataclass
class DeleteProviderResult:
    """Outcome of deleting every portal of an external provider."""

    deleted_portals: int = 0
    deleted_passwords: int = 0
    success: bool = True
    error: Optional[str] = None


class DeletionCascade:
    """
    Removes portals and every vault entry that references them.

    For each portal the linked ``password_id`` row is deleted first, then any
    rows whose ``source_reference`` is the portal id, and finally the portal
    itself. Password deletions are best-effort: a failure is logged and the
    cascade continues so the portal is still removed.
    """

    def __init__(self, db: PortalDatabase):
        self.db = db

    def _delete_password(self, password_id: str, portal_id: str) -> int:
        try:
            return 1 if self.db.delete_password(password_id) else 0
        except StorageError as e:
            logger.warning(
                f"Failed to delete password {password_id} of portal {portal_id}: {e}"
            )
            return 0

    def _cascade(self, portal: dict[str, Any]) -> DeletePortalResult:
        portal_id = portal["id"]
        deleted_passwords = 0
        handled: set[str] = set()

        password_id = portal.get("password_id")
        if password_id:
            handled.add(password_id)
            deleted_passwords += self._delete_password(password_id, portal_id)

        try:
            legacy = self.db.find_passwords_by_source_reference(portal_id)
        except StorageError as e:
            logger.warning(f"Failed to look up passwords for portal {portal_id}: {e}")
            legacy = []

        for row in legacy:
            if row["id"] in handled:
                continue
            handled.add(row["id"])
            deleted_passwords += self._delete_password(row["id"], portal_id)

        deleted_portal = self.db.delete_portal(portal_id)
        logger.info(
            f"Deleted portal {portal_id} and {deleted_passwords} linked password(s)"
        )
        return DeletePortalResult(
            deleted_portal=deleted_portal, deleted_passwords=deleted_passwords
        )

    def delete_portal_by_id(self, portal_id: str) -> DeletePortalResult:
        """
        Delete one portal and its vault entries.

        Deleting a missing portal is a no-op that reports nothing deleted.

        Args:
            portal_id: Portal identifier

        Returns:
            DeletePortalResult with the deletion counts

        Raises:
            StorageError: If the portal cannot be read or deleted
        """
        portal = self.db.get_portal(portal_id)
        if portal is None:
            logger.debug(f"Portal {portal_id} not found; nothing to delete")
            return DeletePortalResult()
        return self._cascade(portal)

    def delete_portal_and_password(
        self, provider_type: str, provider_id: str
    ) -> DeleteProviderResult:
        """
        Delete every portal belonging to an external provider.

        Args:
            provider_type: 'medical', 'pet' or 'academic'
            provider_id: External provider identifier (e.g. a doctor id)

        Returns:
            DeleteProviderResult with counts; success is False with the error
            message when storage fails
        """
        result = DeleteProviderResult()
        if not provider_type or not provider_id:
            result.success = False
            result.error = "provider_type and provider_id are required"
            return result

        try:
            portals = self.db.find_portals_by_entity(provider_type, provider_id)
        except StorageError as e:
            logger.error(
                f"Failed to look up portals for {provider_type} provider "
                f"{provider_id}: {e}"
            )
            result.success = False
            result.error = str(e)
            return result

        for portal in portals:
            try:
                outcome = self._cascade(portal)
            except StorageError as e:
                logger.error(f"Failed to delete portal {portal['id']}: {e}")
                result.success = False
                result.error = str(e)
                continue
            result.deleted_portals += int(outcome.deleted_portal)
            result.deleted_passwords += outcome.deleted_passwords

        return result

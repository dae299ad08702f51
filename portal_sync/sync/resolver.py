"""
Portal resolution: find or create the canonical portal for a provider.
"""

from __future__ import annotations

import logging
from typing import Any

from portal_sync.crypto.encryption import EncryptionService, encrypt_value
from portal_sync.storage.db import PortalDatabase, StorageError, utc_now
from portal_sync.sync.request import SyncRequest
from portal_sync.utils.normalization import normalize_url, unique_ids

logger = logging.getLogger(__name__)


class PortalResolver:
    """
    Finds or creates the portal record for a sync request.

    Lookup order:
        1. Explicit ``portal_id`` (partial update of that row)
        2. (portal_type, case-insensitive provider_name), as one atomic upsert
        3. New portal (the insert branch of the same upsert)

    Only the columns the request supplies are written on update; notes,
    associated entities and the provider back-reference keep their stored
    values when the request leaves them out.
    """

    def __init__(self, db: PortalDatabase, encryptor: EncryptionService):
        self.db = db
        self.encryptor = encryptor

    def _build_updates(self, request: SyncRequest) -> dict[str, Any]:
        updates: dict[str, Any] = {
            "portal_name": request.display_name,
            "provider_name": request.provider_name.strip(),
            "portal_url": normalize_url(request.portal_url),
            "username": request.portal_username or None,
            "password": encrypt_value(self.encryptor, request.portal_password),
            "updated_at": utc_now(),
        }

        entity_ids = unique_ids(request.entity_ids)
        if entity_ids:
            updates["patient_ids"] = entity_ids
        if request.has_notes:
            updates["notes"] = request.notes
        if request.has_provider_id:
            updates["entity_id"] = request.provider_id
        return updates

    def resolve(self, request: SyncRequest) -> tuple[dict[str, Any], bool]:
        """
        Resolve the portal for a request, writing the supplied fields.

        Args:
            request: Validated sync request

        Returns:
            Tuple of (portal row, existed)

        Raises:
            StorageError: If a storage write fails
            EncryptionError: If the password cannot be encrypted
        """
        updates = self._build_updates(request)

        if request.portal_id:
            existing = self.db.get_portal(request.portal_id)
            if existing is not None:
                portal = self.db.update_portal(existing["id"], updates)
                if portal is None:
                    raise StorageError(
                        f"Portal {request.portal_id} disappeared during update"
                    )
                logger.debug(f"Updated portal {portal['id']} by explicit id")
                return portal, True
            logger.warning(
                f"Portal {request.portal_id} not found; resolving by provider name"
            )

        values = {
            **updates,
            "portal_type": request.provider_type,
            "created_by": request.created_by,
            "created_at": updates["updated_at"],
        }
        portal, existed = self.db.upsert_portal_by_provider(values, updates.keys())
        logger.debug(
            f"{'Updated' if existed else 'Created'} {request.provider_type} portal "
            f"{portal['id']} for '{request.provider_name}'"
        )
        return portal, existed

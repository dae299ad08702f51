"""
Password reconciliation: keep the vault entry paired with a portal in step.

The reconciler finds the vault entry belonging to a portal, or creates
one, and writes the owner, sharing, URL, credential and tag metadata
derived from the sync request.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from portal_sync.crypto.encryption import EncryptionService, encrypt_value
from portal_sync.storage.db import PortalDatabase, StorageError, utc_now
from portal_sync.sync.models import category_for_provider_type
from portal_sync.sync.request import SyncRequest, SyncValidationError
from portal_sync.utils.normalization import (
    extract_domain,
    family_tags,
    merge_family_tags,
    normalize_url,
)

logger = logging.getLogger(__name__)


class PasswordReconciler:
    """
    Finds, creates or updates the vault entry for a portal.

    Match order:
        1. The portal's linked ``password_id``
        2. Same owner, exact username and a URL containing the portal domain
        3. A vault entry whose ``source_reference`` is the portal id
        4. None (a new entry is created)

    Attributes:
        db: Storage backend
        encryptor: Encryption service for password and notes
        strict_domain_match: When True, step 2 requires the stored URL's
            hostname to equal the portal hostname instead of containing it
    """

    def __init__(
        self,
        db: PortalDatabase,
        encryptor: EncryptionService,
        strict_domain_match: bool = False,
    ):
        self.db = db
        self.encryptor = encryptor
        self.strict_domain_match = strict_domain_match

    def _url_matches(self, candidate: dict[str, Any], domain: str) -> bool:
        for url in (candidate.get("website_url"), candidate.get("url")):
            if not url:
                continue
            if self.strict_domain_match:
                if extract_domain(url) == domain:
                    return True
            elif domain in url.lower():
                return True
        return False

    def find_existing(
        self,
        portal: dict[str, Any],
        owner_id: str,
        username: Optional[str],
        portal_url: Optional[str],
    ) -> Optional[dict[str, Any]]:
        """
        Locate the vault entry paired with a portal.

        Args:
            portal: Resolved portal row
            owner_id: Effective owner of the vault entry
            username: Login username of this sync
            portal_url: Portal URL of this sync

        Returns:
            The matching password row, or None
        """
        password_id = portal.get("password_id")
        if password_id:
            linked = self.db.get_password(password_id)
            if linked is not None:
                return linked
            logger.debug(f"Linked password {password_id} no longer exists")

        domain = extract_domain(portal_url)
        if username and domain:
            candidates = self.db.find_passwords_by_owner_username_domain(
                owner_id, username, domain
            )
            for candidate in candidates:
                if self._url_matches(candidate, domain):
                    logger.debug(
                        f"Matched password {candidate['id']} by owner, "
                        f"username and domain '{domain}'"
                    )
                    return candidate

        legacy = self.db.find_passwords_by_source_reference(portal["id"])
        if legacy:
            logger.debug(f"Matched password {legacy[0]['id']} by source reference")
            return legacy[0]

        return None

    def reconcile(
        self, portal: dict[str, Any], request: SyncRequest
    ) -> tuple[dict[str, Any], bool]:
        """
        Create or update the vault entry for a portal.

        Args:
            portal: Resolved portal row
            request: Validated sync request

        Returns:
            Tuple of (password row, created)

        Raises:
            SyncValidationError: If no owner can be determined
            StorageError: If a storage write fails
            EncryptionError: If a secret cannot be encrypted
        """
        owner = request.effective_owner()
        if owner is None:
            raise SyncValidationError("Cannot reconcile a password without an owner")
        shared_with = request.effective_shared_with()
        url = normalize_url(request.portal_url)

        existing = self.find_existing(portal, owner, request.portal_username, url)

        now = utc_now()
        payload: dict[str, Any] = {
            "service_name": request.display_name,
            "title": request.display_name,
            "username": request.portal_username or None,
            "password": encrypt_value(self.encryptor, request.portal_password),
            "url": url,
            "website_url": url,
            "category": category_for_provider_type(request.provider_type),
            "owner_id": owner,
            "shared_with": shared_with,
            "is_shared": bool(shared_with),
            "source": request.effective_source,
            "source_page": request.effective_source_page,
            "source_reference": portal["id"],
            "updated_at": now,
            "last_changed": now,
        }
        if request.has_notes:
            payload["notes"] = encrypt_value(self.encryptor, request.notes)

        if existing is not None:
            payload["tags"] = merge_family_tags(existing.get("tags"), request.entity_ids)
            password = self.db.update_password(existing["id"], payload)
            if password is None:
                raise StorageError(f"Password {existing['id']} disappeared during update")
            logger.debug(f"Updated password {password['id']} for portal {portal['id']}")
            return password, False

        payload.update(
            {
                "tags": family_tags(request.entity_ids),
                "is_favorite": False,
                "created_by": request.created_by or owner,
                "created_at": now,
            }
        )
        password = self.db.insert_password(payload)
        logger.debug(f"Created password {password['id']} for portal {portal['id']}")
        return password, True

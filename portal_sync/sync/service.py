"""
Portal/password synchronization service.

Orchestrates one sync call: validate the request, resolve the portal,
reconcile the paired vault entry, write back the portal linkage and
dispatch an activity-log entry. Also hosts the deletion cascade entry
points and the bulk maintenance operations (resync, doctor migration).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Union

from portal_sync.config.loader import ConfigError
from portal_sync.config.settings import ServiceSettings
from portal_sync.crypto.encryption import EncryptionError, EncryptionService
from portal_sync.storage.db import PortalDatabase, StorageError
from portal_sync.sync.audit import (
    DEFAULT_AUDIT_PAGE,
    SYNC_ENTITY_TYPE,
    ActivityEntry,
    ActivityLogger,
)
from portal_sync.sync.cascade import (
    DeletePortalResult,
    DeleteProviderResult,
    DeletionCascade,
)
from portal_sync.sync.identity import resolve_family_members_to_users
from portal_sync.sync.models import (
    PORTAL_TYPES,
    RESYNC_SOURCE_PAGE,
    Password,
    Portal,
)
from portal_sync.sync.reconciler import PasswordReconciler
from portal_sync.sync.request import SyncRequest, SyncValidationError
from portal_sync.sync.resolver import PortalResolver
from portal_sync.utils.logging import redact

logger = logging.getLogger(__name__)

# Error kinds reported on a failed SyncOutcome
ERROR_VALIDATION = "validation"
ERROR_DEPENDENCY = "dependency"
ERROR_UNEXPECTED = "unexpected"

# Source tag for credentials migrated from legacy doctor rows
MIGRATION_SOURCE = "medical_migration"


@dataclass
class SyncOutcome:
    """
    Result of one sync call.

    Attributes:
        success: True if portal, password and linkage were all written
        portal: The resolved portal (ciphertext secrets)
        password: The reconciled vault entry (ciphertext secrets)
        error: Error message when success is False
        error_kind: 'validation', 'dependency' or 'unexpected'
        portal_created: True if a new portal row was inserted
        password_created: True if a new vault entry was inserted
    """

    success: bool
    portal: Optional[Portal] = None
    password: Optional[Password] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    portal_created: bool = False
    password_created: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "portal": self.portal.to_dict() if self.portal else None,
            "password": self.password.to_dict() if self.password else None,
            "error": self.error,
            "error_kind": self.error_kind,
            "portal_created": self.portal_created,
            "password_created": self.password_created,
        }


@dataclass
class ResyncReport:
    """Summary of a bulk portal resync."""

    total: int = 0
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class MigrationReport:
    """Summary of a legacy doctor-credential migration."""

    synced: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class PortalPasswordSync:
    """
    Keeps portal records and vault entries consistent.

    Usage:
        service = PortalPasswordSync.from_settings(load_settings())
        outcome = service.sync(SyncRequest.from_dict(payload))
        if not outcome.success:
            logger.error(outcome.error)
        service.close()
    """

    def __init__(
        self,
        db: PortalDatabase,
        encryptor: EncryptionService,
        audit: Optional[ActivityLogger] = None,
        strict_domain_match: bool = False,
        default_source_page: Optional[str] = None,
    ):
        """
        Initialize the service.

        Args:
            db: Initialized storage backend
            encryptor: Encryption service for stored secrets
            audit: Activity-log sink; defaults to an asynchronous logger on db
            strict_domain_match: Require hostname equality in fuzzy matching
            default_source_page: Source page used when a request gives none
        """
        self.db = db
        self.encryptor = encryptor
        self.audit = audit if audit is not None else ActivityLogger(db)
        self.default_source_page = default_source_page
        self.resolver = PortalResolver(db, encryptor)
        self.reconciler = PasswordReconciler(
            db, encryptor, strict_domain_match=strict_domain_match
        )
        self.cascade = DeletionCascade(db)

    @classmethod
    def from_settings(cls, settings: ServiceSettings) -> PortalPasswordSync:
        """
        Build a service from runtime settings.

        Raises:
            ConfigError: If the database path or encryption key is missing or
                         the key is invalid
            StorageError: If the database cannot be initialized
        """
        key = settings.require_runtime()
        try:
            encryptor = EncryptionService(key)
        except EncryptionError as e:
            raise ConfigError(str(e)) from e

        db = PortalDatabase(str(settings.database_path))
        db.initialize()

        audit = ActivityLogger(
            db,
            enabled=settings.audit_enabled,
            async_dispatch=settings.audit_async,
        )
        return cls(
            db,
            encryptor,
            audit=audit,
            strict_domain_match=settings.strict_domain_match,
            default_source_page=settings.default_source_page,
        )

    def close(self) -> None:
        """Flush pending activity-log writes and release resources."""
        self.audit.close()
        self.db.close()

    def __enter__(self) -> PortalPasswordSync:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================================================================
    # Sync
    # =========================================================================

    def sync(self, request: Union[SyncRequest, dict[str, Any]]) -> SyncOutcome:
        """
        Ensure a portal and its paired vault entry exist and are linked.

        Never raises: failures are logged and reported on the outcome.

        Args:
            request: SyncRequest or request payload dictionary

        Returns:
            SyncOutcome describing the written records or the failure
        """
        try:
            if isinstance(request, dict):
                request = SyncRequest.from_dict(request)
            request.validate()
        except SyncValidationError as e:
            logger.warning(f"Rejected sync request: {e}")
            return SyncOutcome(success=False, error=str(e), error_kind=ERROR_VALIDATION)

        if self.default_source_page and not request.source_page:
            request = replace(request, source_page=self.default_source_page)

        logger.debug(
            f"Syncing {request.provider_type} portal '{request.provider_name}' "
            f"for owner {request.effective_owner()}"
        )

        try:
            portal, portal_existed = self.resolver.resolve(request)
            had_link = bool(portal.get("password_id"))

            password, password_created = self.reconciler.reconcile(portal, request)

            if portal.get("password_id") != password["id"]:
                linked = self.db.update_portal(
                    portal["id"], {"password_id": password["id"]}
                )
                if linked is None:
                    raise StorageError(f"Portal {portal['id']} disappeared before linking")
                portal = linked

        except SyncValidationError as e:
            logger.warning(f"Rejected sync request: {e}")
            return SyncOutcome(success=False, error=str(e), error_kind=ERROR_VALIDATION)
        except (StorageError, EncryptionError) as e:
            logger.error(
                f"Portal/password sync failed for {request.provider_type} "
                f"'{request.provider_name}': {e}"
            )
            return SyncOutcome(success=False, error=str(e), error_kind=ERROR_DEPENDENCY)
        except Exception as e:
            logger.exception(
                f"Unexpected error syncing {request.provider_type} "
                f"'{request.provider_name}': {e}"
            )
            return SyncOutcome(success=False, error=str(e), error_kind=ERROR_UNEXPECTED)

        self._record_sync(request, portal, password, had_link)
        logger.info(
            f"Synced {request.provider_type} portal {portal['id']} "
            f"with password {password['id']}"
        )
        logger.debug(f"Password row: {redact(password)}")

        return SyncOutcome(
            success=True,
            portal=Portal.from_row(portal),
            password=Password.from_row(password),
            portal_created=not portal_existed,
            password_created=password_created,
        )

    def _record_sync(
        self,
        request: SyncRequest,
        portal: dict[str, Any],
        password: dict[str, Any],
        had_link: bool,
    ) -> None:
        owner = request.effective_owner()
        entry = ActivityEntry(
            user_id=request.created_by or request.session_user_id or owner,
            action="update" if had_link else "create",
            entity_type=SYNC_ENTITY_TYPE,
            entity_id=portal["id"],
            entity_name=request.provider_name,
            page=request.source or DEFAULT_AUDIT_PAGE,
            details={
                "portal_id": portal["id"],
                "password_id": password["id"],
                "provider_type": request.provider_type,
                "owner_id": owner,
                "shared_with_count": len(password.get("shared_with") or []),
            },
        )
        self.audit.log(entry)

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete_portal_and_password(
        self, provider_type: str, provider_id: str
    ) -> DeleteProviderResult:
        """Delete every portal of a provider together with its vault entries."""
        return self.cascade.delete_portal_and_password(provider_type, provider_id)

    def delete_portal_by_id(self, portal_id: str) -> DeletePortalResult:
        """
        Delete one portal together with its vault entries.

        Storage failures are reported on the result instead of raised.
        """
        try:
            return self.cascade.delete_portal_by_id(portal_id)
        except StorageError as e:
            logger.error(f"Failed to delete portal {portal_id}: {e}")
            return DeletePortalResult(success=False, error=str(e))

    def unlink_portal_password(self, portal_id: str) -> bool:
        """
        Clear a portal's password link without deleting either record.

        Returns:
            True if the portal was found and unlinked
        """
        try:
            portal = self.db.update_portal(portal_id, {"password_id": None})
        except StorageError as e:
            logger.error(f"Failed to unlink password from portal {portal_id}: {e}")
            return False
        if portal is None:
            logger.debug(f"Portal {portal_id} not found; nothing to unlink")
            return False
        logger.info(f"Unlinked password from portal {portal_id}")
        return True

    # =========================================================================
    # Reads
    # =========================================================================

    def get_portal(self, portal_id: str, reveal: bool = False) -> Optional[Portal]:
        """
        Get a portal by id.

        Args:
            portal_id: Portal identifier
            reveal: Decrypt the stored password; undecryptable values read as None

        Returns:
            Portal, or None if not found
        """
        row = self.db.get_portal(portal_id)
        if row is None:
            return None
        portal = Portal.from_row(row)
        if reveal:
            portal.password = self.encryptor.decrypt_or_none(portal.password)
        return portal

    def get_password(self, password_id: str, reveal: bool = False) -> Optional[Password]:
        """
        Get a vault entry by id.

        Args:
            password_id: Vault entry identifier
            reveal: Decrypt password and notes; undecryptable values read as None

        Returns:
            Password, or None if not found
        """
        row = self.db.get_password(password_id)
        if row is None:
            return None
        password = Password.from_row(row)
        if reveal:
            password.password = self.encryptor.decrypt_or_none(password.password)
            password.notes = self.encryptor.decrypt_or_none(password.notes)
        return password

    def get_portals_for_person(
        self, person_id: str, provider_type: Optional[str] = None
    ) -> list[Portal]:
        """
        List portals associated with a family member.

        Lookup failures are logged and produce an empty list.
        """
        try:
            rows = self.db.find_portals_for_person(person_id, provider_type)
        except StorageError as e:
            logger.error(f"Failed to list portals for {person_id}: {e}")
            return []
        return [Portal.from_row(row) for row in rows]

    # =========================================================================
    # Maintenance
    # =========================================================================

    def _portal_family_members(self, portal: dict[str, Any]) -> list[str]:
        portal_type = portal["portal_type"]
        if portal_type == "medical":
            members = list(portal.get("patient_ids") or [])
        elif portal_type == "pet":
            members = [portal["entity_id"]] if portal.get("entity_id") else []
        elif portal_type == "academic":
            members = self.db.get_academic_portal_children(portal["id"])
        else:
            members = []
        return [str(m) for m in dict.fromkeys(members) if m]

    def _resync_request(self, portal: dict[str, Any]) -> Optional[SyncRequest]:
        portal_id = portal["id"]
        portal_type = portal["portal_type"]

        plain_password = self.encryptor.decrypt_or_none(portal.get("password"))
        if not plain_password:
            logger.warning(f"Skipping portal {portal_id}: password cannot be decrypted")
            return None

        members = self._portal_family_members(portal)
        users = resolve_family_members_to_users(self.db, members)
        owner = users[0] if users else portal.get("created_by")
        if not owner:
            logger.warning(f"Skipping portal {portal_id}: unable to determine owner")
            return None

        notes = portal.get("notes")
        display_name = (
            portal.get("portal_name") or portal.get("provider_name") or "Portal"
        ).strip()

        return SyncRequest(
            provider_type=portal_type,
            provider_name=portal.get("provider_name") or display_name,
            provider_id=portal.get("entity_id") if portal_type != "academic" else None,
            portal_name=display_name,
            portal_id=portal_id,
            portal_url=portal.get("portal_url") or "",
            portal_username=portal.get("username"),
            portal_password=plain_password,
            owner_id=owner,
            shared_with=[u for u in users[1:] if u != owner],
            created_by=portal.get("created_by") or owner,
            notes=notes.strip() if isinstance(notes, str) and notes.strip() else None,
            source=f"{portal_type}_portal",
            source_page=RESYNC_SOURCE_PAGE.get(portal_type, portal_type),
            entity_ids=members,
        )

    def resync_all(self, provider_types: Iterable[str] = PORTAL_TYPES) -> ResyncReport:
        """
        Re-run sync for every stored portal that holds credentials.

        Portals without a username or password, with an undecryptable
        password or without a resolvable owner are skipped.

        Args:
            provider_types: Portal types to resync

        Returns:
            ResyncReport with per-portal counts
        """
        report = ResyncReport()
        try:
            portals = self.db.list_portals(list(provider_types))
        except StorageError as e:
            logger.error(f"Failed to list portals for resync: {e}")
            report.errors.append(str(e))
            return report

        report.total = len(portals)
        for portal in portals:
            if not portal.get("username") or not portal.get("password"):
                report.skipped += 1
                continue

            try:
                request = self._resync_request(portal)
            except StorageError as e:
                logger.error(f"Failed to prepare resync of portal {portal['id']}: {e}")
                report.failed += 1
                report.errors.append(f"{portal['id']}: {e}")
                continue

            if request is None:
                report.skipped += 1
                continue

            outcome = self.sync(request)
            if outcome.success:
                report.synced += 1
            else:
                report.failed += 1
                report.errors.append(f"{portal['id']}: {outcome.error}")

        logger.info(
            f"Resync complete: {report.synced} synced, {report.skipped} skipped, "
            f"{report.failed} failed"
        )
        return report

    def sync_existing_doctor_portals(self, user_id: str) -> MigrationReport:
        """
        Migrate portal credentials held on legacy doctor rows.

        The first patient that resolves to a user owns the vault entry, the
        remaining resolved patients share it; without any resolved patient
        the migrating user owns it.

        Args:
            user_id: User performing the migration

        Returns:
            MigrationReport with per-doctor counts
        """
        report = MigrationReport()
        try:
            doctors = self.db.list_doctors_with_credentials()
        except StorageError as e:
            logger.error(f"Failed to list doctors for migration: {e}")
            report.errors.append(str(e))
            return report

        for doctor in doctors:
            if not (
                doctor.get("portal_url")
                and doctor.get("portal_username")
                and doctor.get("portal_password")
            ):
                continue

            patients = [p for p in doctor.get("patients") or [] if p]
            users = resolve_family_members_to_users(self.db, patients)
            owner = users[0] if users else user_id

            outcome = self.sync(
                SyncRequest(
                    provider_type="medical",
                    provider_id=doctor["id"],
                    provider_name=doctor["name"],
                    portal_name=doctor["name"],
                    portal_url=doctor["portal_url"],
                    portal_username=doctor["portal_username"],
                    portal_password=doctor["portal_password"],
                    owner_id=owner,
                    shared_with=users[1:],
                    created_by=user_id,
                    notes=f"Migrated from doctor record: {doctor['name']}",
                    source=MIGRATION_SOURCE,
                    entity_ids=patients,
                )
            )
            if outcome.success:
                report.synced += 1
            else:
                report.failed += 1
                report.errors.append(f"Failed to sync {doctor['name']}: {outcome.error}")

        logger.info(
            f"Doctor portal migration: {report.synced} synced, {report.failed} failed"
        )
        return report

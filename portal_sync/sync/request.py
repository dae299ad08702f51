"""
Sync request model and validation.

A SyncRequest carries everything one sync call needs. Optional fields that
must distinguish "not supplied" from "set to None" default to UNSET.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from portal_sync.sync.models import PORTAL_TYPES, UNSET, is_set
from portal_sync.utils.normalization import unique_ids


class SyncValidationError(Exception):
    """Raised when a sync request is missing required fields."""

    pass


# (attribute, accepted payload keys) in lookup order
_PAYLOAD_KEYS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("provider_type", ("providerType", "provider_type")),
    ("provider_id", ("providerId", "provider_id")),
    ("provider_name", ("providerName", "provider_name")),
    ("portal_name", ("portalName", "portal_name")),
    ("portal_id", ("portalId", "portal_id")),
    ("portal_url", ("portal_url", "portalUrl")),
    ("portal_username", ("portal_username", "portalUsername")),
    ("portal_password", ("portal_password", "portalPassword")),
    ("owner_id", ("ownerId", "owner_id")),
    ("shared_with", ("sharedWith", "shared_with")),
    ("created_by", ("createdBy", "created_by")),
    ("notes", ("notes",)),
    ("source", ("source",)),
    ("source_page", ("sourcePage", "source_page")),
    ("entity_ids", ("entityIds", "entity_ids")),
    ("session_user_id", ("sessionUserId", "session_user_id")),
)


@dataclass
class SyncRequest:
    """
    Input of one portal/password sync call.

    Attributes:
        provider_type: 'medical', 'pet' or 'academic'
        provider_name: Provider display name; identity together with the type
        provider_id: External provider id, UNSET keeps the stored value
        portal_name: Portal display name, defaults to provider_name
        portal_id: Explicit portal to update
        portal_url: Portal URL in any user-entered form
        portal_username: Login username
        portal_password: Plaintext password ("" and None are stored as-is)
        owner_id: Owning user id
        shared_with: Users the vault entry is shared with
        created_by: Acting/creating user id
        notes: UNSET leaves notes untouched, None clears them
        source: Vault source tag, defaults to the provider type
        source_page: Vault source page, defaults to source
        entity_ids: Associated person/pet ids; empty leaves associations as-is
        session_user_id: Identity of the authenticated session, last owner fallback
    """

    provider_type: str
    provider_name: str
    provider_id: Any = UNSET
    portal_name: Optional[str] = None
    portal_id: Optional[str] = None
    portal_url: Optional[str] = None
    portal_username: Optional[str] = None
    portal_password: Optional[str] = None
    owner_id: Optional[str] = None
    shared_with: list[str] = field(default_factory=list)
    created_by: Optional[str] = None
    notes: Any = UNSET
    source: Optional[str] = None
    source_page: Optional[str] = None
    entity_ids: list[str] = field(default_factory=list)
    session_user_id: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> SyncRequest:
        """
        Create a SyncRequest from a request payload.

        Accepts both the camelCase keys used by route handlers
        (``providerType``, ``ownerId``, ``sharedWith``...) and snake_case keys.
        A missing ``notes`` key means "leave notes untouched"; a missing or
        null ``providerId`` keeps the stored provider reference.

        Args:
            payload: Request dictionary

        Returns:
            SyncRequest instance

        Raises:
            SyncValidationError: If the payload is not a dictionary or has
                                 values of the wrong shape
        """
        if not isinstance(payload, dict):
            raise SyncValidationError(
                f"Sync request must be a dictionary, got {type(payload).__name__}"
            )

        values: dict[str, Any] = {}
        for attribute, keys in _PAYLOAD_KEYS:
            for key in keys:
                if key in payload:
                    values[attribute] = payload[key]
                    break

        if values.get("provider_id") is None:
            values.pop("provider_id", None)

        for list_field in ("shared_with", "entity_ids"):
            raw = values.get(list_field)
            if raw is None:
                values[list_field] = []
            elif not isinstance(raw, (list, tuple)):
                raise SyncValidationError(f"{list_field} must be a list")
            else:
                values[list_field] = list(raw)

        values.setdefault("provider_type", "")
        values.setdefault("provider_name", "")
        return cls(**values)

    @property
    def display_name(self) -> str:
        """Portal display name, falling back to the provider name."""
        return self.portal_name or self.provider_name

    @property
    def effective_source(self) -> str:
        return self.source or self.provider_type

    @property
    def effective_source_page(self) -> str:
        return self.source_page or self.effective_source

    @property
    def has_notes(self) -> bool:
        return is_set(self.notes)

    @property
    def has_provider_id(self) -> bool:
        return is_set(self.provider_id) and self.provider_id is not None

    def effective_owner(self) -> Optional[str]:
        """Owner of the vault entry: owner, else creator, else session user."""
        return self.owner_id or self.created_by or self.session_user_id or None

    def effective_shared_with(self) -> list[str]:
        """
        Users the vault entry is shared with.

        The creator is added when it is not the owner; the owner is always
        removed; duplicates and empty ids are dropped in first-seen order.
        """
        owner = self.effective_owner()
        candidates = list(self.shared_with)
        if self.created_by and self.created_by != owner:
            candidates.append(self.created_by)
        return [user for user in unique_ids(candidates) if user != owner]

    def validate(self) -> None:
        """
        Check the request before any write.

        Raises:
            SyncValidationError: If a required field is missing or invalid
        """
        if not self.provider_type:
            raise SyncValidationError("provider_type is required")
        if self.provider_type not in PORTAL_TYPES:
            raise SyncValidationError(
                f"Invalid provider_type '{self.provider_type}'. "
                f"Must be one of: {', '.join(PORTAL_TYPES)}"
            )
        if not self.provider_name or not self.provider_name.strip():
            raise SyncValidationError("provider_name is required")
        if self.effective_owner() is None:
            raise SyncValidationError(
                "An owner is required: set owner_id, created_by or a session user"
            )
        for value, name in (
            (self.portal_password, "portal_password"),
            (self.portal_username, "portal_username"),
        ):
            if value is not None and not isinstance(value, str):
                raise SyncValidationError(f"{name} must be a string")
        if is_set(self.notes) and self.notes is not None and not isinstance(
            self.notes, str
        ):
            raise SyncValidationError("notes must be a string or None")

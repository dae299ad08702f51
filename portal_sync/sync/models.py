"""
Data models for portal/password synchronization.

Provides the Portal and Password record types returned by the sync
service, the provider-type vocabulary and the UNSET sentinel that
distinguishes "field not supplied" from "field set to None".
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


class _Unset:
    """Marker type for optional fields that were not supplied."""

    _instance: Optional[_Unset] = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def is_set(value: Any) -> bool:
    """Return True if an optional field was supplied (even as None)."""
    return value is not UNSET


# Supported provider / portal types
PORTAL_TYPES = ("medical", "pet", "academic")

# Vault category per provider type
CATEGORY_BY_TYPE = {
    "medical": "Health",
    "pet": "Pets",
    "academic": "J3 Academics",
}

DEFAULT_CATEGORY = "Other"

# Source page recorded by bulk resync, per provider type
RESYNC_SOURCE_PAGE = {
    "medical": "health",
    "pet": "pets",
    "academic": "j3-academics",
}


def category_for_provider_type(provider_type: str) -> str:
    """Map a provider type to its vault category."""
    return CATEGORY_BY_TYPE.get(provider_type, DEFAULT_CATEGORY)


@dataclass
class Portal:
    """
    A stored login for an external provider website.

    Attributes:
        id: Portal identifier
        portal_type: 'medical', 'pet' or 'academic'
        provider_name: Provider display name (unique per type, any casing)
        portal_name: Display name of the portal
        provider_id: External provider back-reference (e.g. doctor id)
        portal_url: Normalized portal URL
        username: Login username
        password: Ciphertext, or plaintext when revealed
        patient_ids: Associated person/pet ids
        notes: Free-form notes
        password_id: Linked vault entry id
        created_by: Creating user id
        created_at: ISO timestamp
        updated_at: ISO timestamp
    """

    id: str
    portal_type: str
    provider_name: str
    portal_name: Optional[str] = None
    provider_id: Optional[str] = None
    portal_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    patient_ids: list[str] = field(default_factory=list)
    notes: Optional[str] = None
    password_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Portal:
        """Create a Portal from a storage row."""
        return cls(
            id=row["id"],
            portal_type=row["portal_type"],
            provider_name=row["provider_name"],
            portal_name=row.get("portal_name"),
            provider_id=row.get("entity_id"),
            portal_url=row.get("portal_url"),
            username=row.get("username"),
            password=row.get("password"),
            patient_ids=list(row.get("patient_ids") or []),
            notes=row.get("notes"),
            password_id=row.get("password_id"),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Password:
    """
    A general-purpose vault entry.

    Attributes mirror the ``passwords`` table; ``password`` and ``notes``
    hold ciphertext unless the record was read with reveal=True.
    """

    id: str
    title: Optional[str] = None
    service_name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    url: Optional[str] = None
    website_url: Optional[str] = None
    category: Optional[str] = None
    owner_id: Optional[str] = None
    shared_with: list[str] = field(default_factory=list)
    is_shared: bool = False
    source: Optional[str] = None
    source_page: Optional[str] = None
    source_reference: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    notes: Optional[str] = None
    is_favorite: bool = False
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    last_changed: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Password:
        """Create a Password from a storage row."""
        return cls(
            id=row["id"],
            title=row.get("title"),
            service_name=row.get("service_name"),
            username=row.get("username"),
            password=row.get("password"),
            url=row.get("url"),
            website_url=row.get("website_url"),
            category=row.get("category"),
            owner_id=row.get("owner_id"),
            shared_with=list(row.get("shared_with") or []),
            is_shared=bool(row.get("is_shared")),
            source=row.get("source"),
            source_page=row.get("source_page"),
            source_reference=row.get("source_reference"),
            tags=list(row.get("tags") or []),
            notes=row.get("notes"),
            is_favorite=bool(row.get("is_favorite")),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            last_changed=row.get("last_changed"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

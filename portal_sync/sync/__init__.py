"""
portal_sync.sync - Portal/password synchronization module

Contains the sync service, its request and record models, and the
resolver, reconciler, cascade and audit collaborators.
"""

from portal_sync.sync.audit import ActivityEntry, ActivityLogger
from portal_sync.sync.cascade import (
    DeletePortalResult,
    DeleteProviderResult,
    DeletionCascade,
)
from portal_sync.sync.identity import resolve_family_member_to_user
from portal_sync.sync.models import (
    PORTAL_TYPES,
    UNSET,
    Password,
    Portal,
    category_for_provider_type,
)
from portal_sync.sync.reconciler import PasswordReconciler
from portal_sync.sync.request import SyncRequest, SyncValidationError
from portal_sync.sync.resolver import PortalResolver
from portal_sync.sync.service import (
    MigrationReport,
    PortalPasswordSync,
    ResyncReport,
    SyncOutcome,
)

__all__ = [
    "PORTAL_TYPES",
    "UNSET",
    "ActivityEntry",
    "ActivityLogger",
    "DeletePortalResult",
    "DeleteProviderResult",
    "DeletionCascade",
    "MigrationReport",
    "Password",
    "PasswordReconciler",
    "Portal",
    "PortalPasswordSync",
    "PortalResolver",
    "ResyncReport",
    "SyncOutcome",
    "SyncRequest",
    "SyncValidationError",
    "category_for_provider_type",
    "resolve_family_member_to_user",
]

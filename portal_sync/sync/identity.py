"""
Family member to application user resolution.
"""

from __future__ import annotations

import logging
from typing import Optional

from portal_sync.storage.db import PortalDatabase, StorageError

logger = logging.getLogger(__name__)


def resolve_family_member_to_user(
    db: PortalDatabase, family_member_id: Optional[str]
) -> Optional[str]:
    """
    Resolve a family member (person or pet) to an application user id.

    Resolution order:
        1. The member's own user_id
        2. The user_id of the member's parent (pets and children)
        3. A user whose email matches the member's email, case-insensitively

    Lookup failures are logged and resolve to None.

    Args:
        db: Database holding family_members and users
        family_member_id: Family member identifier

    Returns:
        User id, or None if the member cannot be resolved
    """
    if not family_member_id:
        return None

    try:
        member = db.get_family_member(family_member_id)
        if member is None:
            logger.debug(f"Family member {family_member_id} not found")
            return None

        if member.get("user_id"):
            logger.debug(
                f"Resolved family member {family_member_id} via user_id "
                f"to {member['user_id']}"
            )
            return member["user_id"]

        parent_id = member.get("parent_id")
        if parent_id:
            parent = db.get_family_member(parent_id)
            if parent and parent.get("user_id"):
                logger.debug(
                    f"Resolved family member {family_member_id} via parent "
                    f"{parent_id} to {parent['user_id']}"
                )
                return parent["user_id"]

        email = member.get("email")
        if email:
            user = db.get_user_by_email(email)
            if user:
                logger.debug(
                    f"Resolved family member {family_member_id} via email "
                    f"to {user['id']}"
                )
                return user["id"]

    except StorageError as e:
        logger.error(f"Error resolving family member {family_member_id}: {e}")
        return None

    logger.debug(f"No user found for family member {family_member_id}")
    return None


def resolve_family_members_to_users(
    db: PortalDatabase, family_member_ids: list[str]
) -> list[str]:
    """Resolve several family members, dropping unresolved and duplicate users."""
    users: list[str] = []
    for member_id in family_member_ids:
        user_id = resolve_family_member_to_user(db, member_id)
        if user_id and user_id not in users:
            users.append(user_id)
    return users

"""
Tests for family member to user resolution.
"""

from unittest.mock import MagicMock

from portal_sync.storage.db import PortalDatabase, StorageError
from portal_sync.sync.identity import (
    resolve_family_member_to_user,
    resolve_family_members_to_users,
)


class TestResolveFamilyMemberToUser:
    """Tests for resolve_family_member_to_user."""

    def test_direct_user_id(self, db):
        """Test that a linked user id wins."""
        db.upsert_family_member("P1", user_id="U1", email="x@example.com")
        db.upsert_user("U9", "x@example.com")
        assert resolve_family_member_to_user(db, "P1") == "U1"

    def test_parent_user_id(self, db):
        """Test fallback to the parent's user for pets and children."""
        db.upsert_family_member("PARENT", user_id="U2")
        db.upsert_family_member("PET", parent_id="PARENT")
        assert resolve_family_member_to_user(db, "PET") == "U2"

    def test_email_match_is_case_insensitive(self, db):
        """Test fallback to a user with the same email."""
        db.upsert_family_member("P1", email="Pat@Example.com")
        db.upsert_user("U3", "pat@example.com")
        assert resolve_family_member_to_user(db, "P1") == "U3"

    def test_parent_without_user_falls_through_to_email(self, db):
        """Test that a parent without a user does not stop resolution."""
        db.upsert_family_member("PARENT")
        db.upsert_family_member("P1", parent_id="PARENT", email="p@example.com")
        db.upsert_user("U4", "p@example.com")
        assert resolve_family_member_to_user(db, "P1") == "U4"

    def test_unresolvable(self, db):
        """Test members without any link resolve to None."""
        db.upsert_family_member("P1", email="nobody@example.com")
        assert resolve_family_member_to_user(db, "P1") is None
        assert resolve_family_member_to_user(db, "missing") is None
        assert resolve_family_member_to_user(db, None) is None
        assert resolve_family_member_to_user(db, "") is None

    def test_storage_error_resolves_to_none(self):
        """Test that lookup failures degrade to None."""
        db = MagicMock(spec=PortalDatabase)
        db.get_family_member.side_effect = StorageError("boom")
        assert resolve_family_member_to_user(db, "P1") is None


class TestResolveFamilyMembersToUsers:
    """Tests for resolving several members."""

    def test_drops_unresolved_and_duplicates(self, db):
        """Test order is kept and duplicates removed."""
        db.upsert_family_member("P1", user_id="U1")
        db.upsert_family_member("P2", user_id="U1")
        db.upsert_family_member("P3")
        db.upsert_family_member("P4", user_id="U2")

        users = resolve_family_members_to_users(db, ["P1", "P2", "P3", "P4"])
        assert users == ["U1", "U2"]

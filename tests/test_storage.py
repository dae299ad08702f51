"""
Unit tests for the storage module.

Tests the PortalDatabase class for portal, password, activity-log and
identity operations.
"""

import sqlite3
from unittest.mock import patch

import pytest

from portal_sync.storage.db import PortalDatabase, StorageError


def _portal(**overrides):
    values = {
        "portal_type": "medical",
        "provider_name": "Dr. Lee",
        "portal_name": "Dr. Lee",
        "portal_url": "https://portal.clinic.com",
        "username": "lee",
        "password": "cipher",
    }
    values.update(overrides)
    return values


class TestPortalDatabaseInitialization:
    """Tests for database initialization."""

    def test_create_in_memory_database(self):
        """Test creating an in-memory database."""
        db = PortalDatabase(":memory:")
        assert db.db_path == ":memory:"
        assert db.is_shared

    def test_initialize_creates_tables(self, db):
        """Test that initialize creates every table."""
        with db.connection() as conn:
            names = {
                row["name"]
                for row in conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table'"
                )
            }
        assert {
            "portals",
            "passwords",
            "activity_logs",
            "users",
            "family_members",
            "academic_portal_children",
            "doctors",
        } <= names

    def test_initialize_is_idempotent(self, db):
        """Test that initialize can be called repeatedly."""
        db.initialize()
        db.initialize()

    def test_file_database_persists(self, tmp_path):
        """Test that a file database keeps rows across connections."""
        path = str(tmp_path / "portal_sync.db")
        db = PortalDatabase(path)
        db.initialize()
        portal = db.insert_portal(_portal())

        reopened = PortalDatabase(path)
        assert reopened.get_portal(portal["id"])["provider_name"] == "Dr. Lee"

    def test_sqlite_errors_become_storage_errors(self, db):
        """Test that sqlite failures are wrapped and rolled back."""
        with pytest.raises(StorageError):
            with db.connection() as conn:
                conn.execute("INSERT INTO portals (id) VALUES ('x')")

    def test_unopenable_database_raises_storage_error(self, tmp_path):
        """Test that a bad path surfaces as StorageError."""
        db = PortalDatabase(str(tmp_path / "missing" / "dir" / "db.sqlite"))
        with pytest.raises(StorageError):
            db.initialize()

    def test_connection_error_is_wrapped(self, db):
        """Test that a failing connect call is wrapped."""
        with patch.object(
            db, "_get_connection", side_effect=sqlite3.OperationalError("locked")
        ):
            with pytest.raises(StorageError, match="locked"):
                db.counts()

    def test_repr(self):
        """Test the string representation."""
        assert repr(PortalDatabase(":memory:")) == "PortalDatabase(db_path=':memory:')"


class TestPortalOperations:
    """Tests for portal rows."""

    def test_insert_and_get(self, db):
        """Test inserting a portal fills defaults."""
        portal = db.insert_portal(_portal(patient_ids=["P1"]))

        fetched = db.get_portal(portal["id"])
        assert fetched["provider_key"] == "dr. lee"
        assert fetched["patient_ids"] == ["P1"]
        assert fetched["password_id"] is None
        assert fetched["created_at"] == fetched["updated_at"]

    def test_get_missing_returns_none(self, db):
        """Test fetching an unknown portal."""
        assert db.get_portal("nope") is None

    def test_find_by_provider_is_case_insensitive(self, db):
        """Test provider lookup ignores case and outer spacing only."""
        portal = db.insert_portal(_portal())
        found = db.find_portal_by_provider("medical", "  dr. LEE ")
        assert found["id"] == portal["id"]
        assert db.find_portal_by_provider("medical", "dr.  lee") is None
        assert db.find_portal_by_provider("pet", "Dr. Lee") is None

    def test_unique_identity_enforced(self, db):
        """Test that a second portal with the same identity is rejected."""
        db.insert_portal(_portal())
        with pytest.raises(StorageError):
            db.insert_portal(_portal(provider_name="DR. LEE"))

    def test_same_name_different_type_allowed(self, db):
        """Test that identity is per portal type."""
        db.insert_portal(_portal())
        db.insert_portal(_portal(portal_type="pet"))
        assert len(db.list_portals()) == 2

    def test_update_portal_partial(self, db):
        """Test that only supplied columns change."""
        portal = db.insert_portal(_portal(notes="keep me"))
        updated = db.update_portal(portal["id"], {"username": "new"})

        assert updated["username"] == "new"
        assert updated["notes"] == "keep me"
        assert updated["portal_url"] == "https://portal.clinic.com"

    def test_update_portal_recomputes_key(self, db):
        """Test that renaming a provider updates its identity key."""
        portal = db.insert_portal(_portal())
        db.update_portal(portal["id"], {"provider_name": "Dr. Kim"})
        assert db.find_portal_by_provider("medical", "dr. kim")["id"] == portal["id"]

    def test_update_missing_returns_none(self, db):
        """Test updating an unknown portal."""
        assert db.update_portal("nope", {"username": "x"}) is None

    def test_update_unknown_column_rejected(self, db):
        """Test that unknown columns are a programming error."""
        portal = db.insert_portal(_portal())
        with pytest.raises(ValueError, match="Unknown portals columns"):
            db.update_portal(portal["id"], {"bogus": 1})

    def test_upsert_inserts_then_updates(self, db):
        """Test the atomic upsert reports whether the portal existed."""
        first, existed = db.upsert_portal_by_provider(
            _portal(notes="original"), ["username", "password"]
        )
        assert existed is False

        second, existed = db.upsert_portal_by_provider(
            _portal(provider_name="dr. lee", username="lee2", notes="ignored"),
            ["username", "password"],
        )
        assert existed is True
        assert second["id"] == first["id"]
        assert second["username"] == "lee2"
        assert second["notes"] == "original"
        assert len(db.list_portals()) == 1

    def test_upsert_keeps_created_at(self, db):
        """Test that the insert-only columns survive a conflict update."""
        first, _ = db.upsert_portal_by_provider(
            _portal(created_at="2024-01-01T00:00:00+00:00", created_by="U1"),
            ["username"],
        )
        second, _ = db.upsert_portal_by_provider(
            _portal(created_by="U9"), ["username"]
        )
        assert second["created_by"] == "U1"
        assert second["created_at"] == first["created_at"]

    def test_list_portals_filtered_by_type(self, db):
        """Test listing restricted to portal types."""
        db.insert_portal(_portal())
        db.insert_portal(_portal(portal_type="pet", provider_name="Vet"))
        db.insert_portal(_portal(portal_type="academic", provider_name="School"))

        pets = db.list_portals(["pet"])
        assert [p["provider_name"] for p in pets] == ["Vet"]
        assert len(db.list_portals(["pet", "academic"])) == 2

    def test_find_portals_by_entity(self, db):
        """Test lookup by provider back-reference."""
        db.insert_portal(_portal(entity_id="D1"))
        db.insert_portal(_portal(provider_name="Dr. Lee Clinic 2", entity_id="D1"))
        db.insert_portal(_portal(provider_name="Other", entity_id="D2"))

        assert len(db.find_portals_by_entity("medical", "D1")) == 2
        assert db.find_portals_by_entity("pet", "D1") == []

    def test_find_portals_for_person(self, db):
        """Test the JSON array contains query."""
        db.insert_portal(_portal(patient_ids=["P1", "P2"]))
        db.insert_portal(
            _portal(portal_type="pet", provider_name="Vet", patient_ids=["P2"])
        )
        db.insert_portal(_portal(provider_name="Other", patient_ids=["P3"]))

        assert len(db.find_portals_for_person("P2")) == 2
        assert len(db.find_portals_for_person("P2", "pet")) == 1
        assert db.find_portals_for_person("P9") == []

    def test_delete_portal(self, db):
        """Test deleting a portal reports whether a row was removed."""
        portal = db.insert_portal(_portal())
        assert db.delete_portal(portal["id"]) is True
        assert db.delete_portal(portal["id"]) is False


class TestPasswordOperations:
    """Tests for vault rows."""

    def test_insert_decodes_json_and_bools(self, db):
        """Test that list and bool columns round-trip as Python values."""
        row = db.insert_password(
            {
                "title": "Dr. Lee",
                "shared_with": ["U2"],
                "is_shared": True,
                "tags": ["family:P1"],
            }
        )
        assert row["shared_with"] == ["U2"]
        assert row["is_shared"] is True
        assert row["is_favorite"] is False
        assert row["tags"] == ["family:P1"]

    def test_find_by_owner_username_domain(self, db):
        """Test the fuzzy candidate query."""
        match = db.insert_password(
            {
                "owner_id": "U1",
                "username": "lee",
                "website_url": "https://Portal.Clinic.com/login",
            }
        )
        db.insert_password(
            {"owner_id": "U1", "username": "lee", "url": "https://other.com"}
        )
        db.insert_password(
            {"owner_id": "U2", "username": "lee", "url": "https://portal.clinic.com"}
        )

        found = db.find_passwords_by_owner_username_domain(
            "U1", "lee", "portal.clinic.com"
        )
        assert [row["id"] for row in found] == [match["id"]]

    def test_find_by_source_reference(self, db):
        """Test lookup of vault rows by back-reference."""
        row = db.insert_password({"source_reference": "portal-1"})
        db.insert_password({"source_reference": "portal-2"})
        found = db.find_passwords_by_source_reference("portal-1")
        assert [r["id"] for r in found] == [row["id"]]

    def test_update_and_delete(self, db):
        """Test partial update and deletion."""
        row = db.insert_password({"title": "a", "username": "u"})
        updated = db.update_password(row["id"], {"title": "b"})
        assert updated["title"] == "b"
        assert updated["username"] == "u"

        assert db.delete_password(row["id"]) is True
        assert db.delete_password(row["id"]) is False
        assert db.update_password(row["id"], {"title": "c"}) is None


class TestActivityLogOperations:
    """Tests for activity-log rows."""

    def test_insert_and_list(self, db):
        """Test appending and listing entries."""
        db.insert_activity_log(
            {
                "action": "create",
                "entity_type": "portal_password_sync",
                "entity_id": "portal-1",
                "details": {"shared_with_count": 1},
            }
        )
        db.insert_activity_log(
            {"action": "update", "entity_type": "x", "entity_id": "portal-2"}
        )

        logs = db.list_activity_logs()
        assert [log["action"] for log in logs] == ["create", "update"]
        assert logs[0]["details"] == {"shared_with_count": 1}
        assert logs[1]["details"] == {}
        assert len(db.list_activity_logs("portal-1")) == 1


class TestIdentityOperations:
    """Tests for users, family members and academic children."""

    def test_family_member_round_trip(self, db):
        """Test inserting and updating a family member."""
        db.upsert_family_member("P1", name="Pat", user_id="U1")
        db.upsert_family_member("P1", name="Pat", user_id="U2")
        assert db.get_family_member("P1")["user_id"] == "U2"
        assert db.get_family_member("P9") is None

    def test_user_by_email_case_insensitive(self, db):
        """Test email lookup ignores case."""
        db.upsert_user("U1", "Pat@Example.com")
        assert db.get_user_by_email(" pat@example.COM ")["id"] == "U1"
        assert db.get_user_by_email("nobody@example.com") is None

    def test_academic_children(self, db):
        """Test child associations keep insertion order and ignore duplicates."""
        db.add_academic_portal_child("portal-1", "C2")
        db.add_academic_portal_child("portal-1", "C1")
        db.add_academic_portal_child("portal-1", "C2")
        assert db.get_academic_portal_children("portal-1") == ["C2", "C1"]


class TestDoctorsAndCounts:
    """Tests for legacy doctor rows and status counts."""

    def test_list_doctors_with_credentials(self, db):
        """Test that only doctors with credentials are listed."""
        db.insert_doctor(
            {
                "name": "Dr. B",
                "portal_username": "b",
                "portal_password": "pw",
                "patients": ["P1"],
            }
        )
        db.insert_doctor({"name": "Dr. A", "portal_username": "a"})

        doctors = db.list_doctors_with_credentials()
        assert [d["name"] for d in doctors] == ["Dr. B"]
        assert doctors[0]["patients"] == ["P1"]

    def test_counts(self, db):
        """Test table counts."""
        portal = db.insert_portal(_portal())
        db.insert_portal(_portal(provider_name="Other"))
        password = db.insert_password({"title": "x"})
        db.update_portal(portal["id"], {"password_id": password["id"]})

        assert db.counts() == {
            "portals": 2,
            "linked_portals": 1,
            "passwords": 1,
            "activity_logs": 0,
        }

"""
SQLite database module for portal, vault and activity-log storage.

Provides the row-level CRUD and query operations the sync service needs:
equality filters, case-insensitive provider lookup, "contains" queries on
JSON array columns and insert-on-conflict upserts.
"""

import json
import sqlite3
import threading
import uuid
from collections.abc import Generator, Iterable
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Any, Optional

from portal_sync.utils.normalization import normalize_provider_key

SCHEMA = """
CREATE TABLE IF NOT EXISTS portals (
    id TEXT PRIMARY KEY,
    portal_type TEXT NOT NULL,
    portal_name TEXT,
    provider_name TEXT NOT NULL,
    provider_key TEXT NOT NULL,
    entity_id TEXT,
    portal_url TEXT,
    username TEXT,
    password TEXT,
    patient_ids TEXT NOT NULL DEFAULT '[]',
    notes TEXT,
    password_id TEXT,
    created_by TEXT,
    created_at TEXT,
    updated_at TEXT,
    UNIQUE(portal_type, provider_key)
);

CREATE INDEX IF NOT EXISTS idx_portals_entity ON portals(portal_type, entity_id);
CREATE INDEX IF NOT EXISTS idx_portals_password ON portals(password_id);

CREATE TABLE IF NOT EXISTS passwords (
    id TEXT PRIMARY KEY,
    title TEXT,
    service_name TEXT,
    username TEXT,
    password TEXT,
    url TEXT,
    website_url TEXT,
    category TEXT,
    owner_id TEXT,
    shared_with TEXT NOT NULL DEFAULT '[]',
    is_shared INTEGER NOT NULL DEFAULT 0,
    source TEXT,
    source_page TEXT,
    source_reference TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    notes TEXT,
    is_favorite INTEGER NOT NULL DEFAULT 0,
    created_by TEXT,
    created_at TEXT,
    updated_at TEXT,
    last_changed TEXT
);

CREATE INDEX IF NOT EXISTS idx_passwords_source_reference
    ON passwords(source_reference);
CREATE INDEX IF NOT EXISTS idx_passwords_owner_username
    ON passwords(owner_id, username);

CREATE TABLE IF NOT EXISTS activity_logs (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    action TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id TEXT,
    entity_name TEXT,
    page TEXT,
    details TEXT NOT NULL DEFAULT '{}',
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_activity_logs_entity ON activity_logs(entity_id);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT
);

CREATE TABLE IF NOT EXISTS family_members (
    id TEXT PRIMARY KEY,
    name TEXT,
    user_id TEXT,
    parent_id TEXT,
    email TEXT
);

CREATE TABLE IF NOT EXISTS academic_portal_children (
    portal_id TEXT NOT NULL,
    child_id TEXT NOT NULL,
    PRIMARY KEY (portal_id, child_id)
);

CREATE TABLE IF NOT EXISTS doctors (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    portal_url TEXT,
    portal_username TEXT,
    portal_password TEXT,
    patients TEXT NOT NULL DEFAULT '[]'
);
"""

PORTAL_COLUMNS = frozenset(
    {
        "id",
        "portal_type",
        "portal_name",
        "provider_name",
        "provider_key",
        "entity_id",
        "portal_url",
        "username",
        "password",
        "patient_ids",
        "notes",
        "password_id",
        "created_by",
        "created_at",
        "updated_at",
    }
)

PASSWORD_COLUMNS = frozenset(
    {
        "id",
        "title",
        "service_name",
        "username",
        "password",
        "url",
        "website_url",
        "category",
        "owner_id",
        "shared_with",
        "is_shared",
        "source",
        "source_page",
        "source_reference",
        "tags",
        "notes",
        "is_favorite",
        "created_by",
        "created_at",
        "updated_at",
        "last_changed",
    }
)

ACTIVITY_LOG_COLUMNS = frozenset(
    {
        "id",
        "user_id",
        "action",
        "entity_type",
        "entity_id",
        "entity_name",
        "page",
        "details",
        "created_at",
    }
)

DOCTOR_COLUMNS = frozenset(
    {"id", "name", "portal_url", "portal_username", "portal_password", "patients"}
)

# Columns holding JSON documents, per table
JSON_COLUMNS = {
    "portals": ("patient_ids",),
    "passwords": ("shared_with", "tags"),
    "activity_logs": ("details",),
    "doctors": ("patients",),
}

# Columns holding booleans stored as INTEGER, per table
BOOL_COLUMNS = {
    "passwords": ("is_shared", "is_favorite"),
}

TABLE_COLUMNS = {
    "portals": PORTAL_COLUMNS,
    "passwords": PASSWORD_COLUMNS,
    "activity_logs": ACTIVITY_LOG_COLUMNS,
    "doctors": DOCTOR_COLUMNS,
}


class StorageError(Exception):
    """Raised when a storage operation fails."""

    pass


def utc_now() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    """Return a new random row identifier."""
    return str(uuid.uuid4())


def _encode_value(value: Any) -> Any:
    """Encode a Python value for storage in SQLite."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(list(value) if isinstance(value, tuple) else value)
    return value


def _decode_row(table: str, row: Optional[sqlite3.Row]) -> Optional[dict[str, Any]]:
    """Convert a sqlite3.Row into a plain dict, decoding JSON and bool columns."""
    if row is None:
        return None

    data = dict(row)
    for column in JSON_COLUMNS.get(table, ()):
        raw = data.get(column)
        if isinstance(raw, str):
            try:
                data[column] = json.loads(raw)
            except json.JSONDecodeError:
                data[column] = []
        elif raw is None:
            data[column] = {} if column == "details" else []
    for column in BOOL_COLUMNS.get(table, ()):
        if column in data:
            data[column] = bool(data[column])
    return data


class PortalDatabase:
    """
    SQLite database manager for portals, vault entries and activity logs.

    Provides methods for:
    - Resolving and upserting portal rows by provider identity
    - Matching, writing and deleting vault (password) rows
    - Appending activity-log entries
    - Looking up family members and users for identity resolution

    Usage:
        db = PortalDatabase('/path/to/portal_sync.db')
        db.initialize()

        # Or use in-memory for testing:
        db = PortalDatabase(':memory:')
        db.initialize()
    """

    def __init__(self, db_path: str):
        """
        Initialize the database manager.

        Args:
            db_path: Path to SQLite database file, or ':memory:' for in-memory database
        """
        self.db_path = db_path
        self._shared_connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @property
    def is_shared(self) -> bool:
        """True when a single connection is shared across calls (in-memory)."""
        return self.db_path == ":memory:"

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get a database connection.

        For in-memory databases, returns a shared connection so the schema
        persists across operations; access is serialized by a lock because the
        audit worker thread writes through the same connection. For file
        databases, creates a new connection each time.
        """
        if self.is_shared:
            if self._shared_connection is None:
                self._shared_connection = sqlite3.connect(
                    ":memory:", check_same_thread=False
                )
                self._shared_connection.row_factory = sqlite3.Row
            return self._shared_connection

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Commits on success and rolls back on failure. SQLite errors are
        re-raised as StorageError.

        Usage:
            with db.connection() as conn:
                conn.execute("SELECT * FROM portals")
        """
        guard = self._lock if self.is_shared else nullcontext()
        with guard:
            try:
                conn = self._get_connection()
            except sqlite3.Error as e:
                raise StorageError(f"Could not open database {self.db_path}: {e}") from e

            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(str(e)) from e
            except Exception:
                conn.rollback()
                raise
            finally:
                if not self.is_shared:
                    conn.close()

    def initialize(self) -> None:
        """Create all tables and indexes if they don't exist."""
        with self.connection() as conn:
            conn.executescript(SCHEMA)

    def close(self) -> None:
        """Close the shared in-memory connection, if any."""
        with self._lock:
            if self._shared_connection is not None:
                self._shared_connection.close()
                self._shared_connection = None

    # =========================================================================
    # Generic Row Helpers
    # =========================================================================

    def _check_columns(self, table: str, columns: Iterable[str]) -> None:
        unknown = set(columns) - TABLE_COLUMNS[table]
        if unknown:
            raise ValueError(f"Unknown {table} columns: {', '.join(sorted(unknown))}")

    def _fetch_by_id(self, table: str, row_id: str) -> Optional[dict[str, Any]]:
        with self.connection() as conn:
            cursor = conn.execute(
                f"SELECT * FROM {table} WHERE id = ?",  # nosec B608
                (row_id,),
            )
            return _decode_row(table, cursor.fetchone())

    def _fetch_all(
        self, table: str, sql: str, params: Iterable[Any] = ()
    ) -> list[dict[str, Any]]:
        with self.connection() as conn:
            cursor = conn.execute(sql, tuple(params))
            return [
                row
                for row in (_decode_row(table, r) for r in cursor.fetchall())
                if row is not None
            ]

    def _insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        self._check_columns(table, values)
        row = {key: _encode_value(value) for key, value in values.items()}
        row.setdefault("id", new_id())
        columns = list(row)
        placeholders = ", ".join("?" for _ in columns)

        with self.connection() as conn:
            conn.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) "  # nosec B608
                f"VALUES ({placeholders})",
                [row[c] for c in columns],
            )
            cursor = conn.execute(
                f"SELECT * FROM {table} WHERE id = ?",  # nosec B608
                (row["id"],),
            )
            inserted = _decode_row(table, cursor.fetchone())

        if inserted is None:
            raise StorageError(f"Inserted {table} row {row['id']} could not be read")
        return inserted

    def _update(
        self, table: str, row_id: str, values: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        self._check_columns(table, values)
        updates = {k: _encode_value(v) for k, v in values.items() if k != "id"}
        if not updates:
            return self._fetch_by_id(table, row_id)

        assignments = ", ".join(f"{column} = ?" for column in updates)
        with self.connection() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?",  # nosec B608
                [*updates.values(), row_id],
            )
            if cursor.rowcount == 0:
                return None
            cursor = conn.execute(
                f"SELECT * FROM {table} WHERE id = ?",  # nosec B608
                (row_id,),
            )
            return _decode_row(table, cursor.fetchone())

    def _delete_by_id(self, table: str, row_id: str) -> bool:
        with self.connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM {table} WHERE id = ?",  # nosec B608
                (row_id,),
            )
            return cursor.rowcount > 0

    # =========================================================================
    # Portal Operations
    # =========================================================================

    def _prepare_portal_insert(self, values: dict[str, Any]) -> dict[str, Any]:
        now = values.get("updated_at") or utc_now()
        row = dict(values)
        row.setdefault("id", new_id())
        row["provider_key"] = normalize_provider_key(row.get("provider_name"))
        row.setdefault("patient_ids", [])
        row.setdefault("created_at", now)
        row.setdefault("updated_at", now)
        return row

    def get_portal(self, portal_id: str) -> Optional[dict[str, Any]]:
        """
        Get a portal by id.

        Args:
            portal_id: Portal identifier

        Returns:
            Portal row dictionary, or None if not found
        """
        return self._fetch_by_id("portals", portal_id)

    def find_portal_by_provider(
        self, portal_type: str, provider_name: str
    ) -> Optional[dict[str, Any]]:
        """
        Find a portal by type and case-insensitive provider name.

        Args:
            portal_type: 'medical', 'pet' or 'academic'
            provider_name: Provider display name, any casing

        Returns:
            Portal row dictionary, or None if not found
        """
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM portals WHERE portal_type = ? AND provider_key = ?",
                (portal_type, normalize_provider_key(provider_name)),
            )
            return _decode_row("portals", cursor.fetchone())

    def insert_portal(self, values: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a new portal row.

        Args:
            values: Column values; id, provider_key and timestamps are filled in

        Returns:
            The inserted portal row
        """
        return self._insert("portals", self._prepare_portal_insert(values))

    def update_portal(
        self, portal_id: str, values: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        """
        Partially update a portal row.

        Only the given columns are written. ``updated_at`` is refreshed and
        ``provider_key`` follows ``provider_name`` when it changes.

        Args:
            portal_id: Portal identifier
            values: Columns to write

        Returns:
            The updated portal row, or None if the portal does not exist
        """
        updates = dict(values)
        if "provider_name" in updates:
            updates["provider_key"] = normalize_provider_key(updates["provider_name"])
        updates.setdefault("updated_at", utc_now())
        return self._update("portals", portal_id, updates)

    def upsert_portal_by_provider(
        self, values: dict[str, Any], update_columns: Iterable[str]
    ) -> tuple[dict[str, Any], bool]:
        """
        Atomically insert a portal or update the one with the same identity.

        The identity is (portal_type, provider_key). On conflict only
        ``update_columns`` (plus ``updated_at``) are overwritten so columns
        the caller did not supply keep their stored values.

        Args:
            values: Full column values for the insert case
            update_columns: Columns to overwrite when the portal already exists

        Returns:
            Tuple of (portal row, existed) where existed is True when an
            existing portal was updated
        """
        row = self._prepare_portal_insert(values)
        self._check_columns("portals", row)
        self._check_columns("portals", update_columns)
        encoded = {key: _encode_value(value) for key, value in row.items()}

        set_columns = [
            c
            for c in dict.fromkeys([*update_columns, "updated_at"])
            if c in encoded and c not in ("id", "portal_type", "provider_key")
        ]
        columns = list(encoded)
        placeholders = ", ".join("?" for _ in columns)
        assignments = ", ".join(f"{c} = excluded.{c}" for c in set_columns)

        with self.connection() as conn:
            conn.execute(
                f"INSERT INTO portals ({', '.join(columns)}) "  # nosec B608
                f"VALUES ({placeholders}) "
                f"ON CONFLICT(portal_type, provider_key) DO UPDATE SET {assignments}",
                [encoded[c] for c in columns],
            )
            cursor = conn.execute(
                "SELECT * FROM portals WHERE portal_type = ? AND provider_key = ?",
                (encoded["portal_type"], encoded["provider_key"]),
            )
            portal = _decode_row("portals", cursor.fetchone())

        if portal is None:
            raise StorageError("Portal upsert did not produce a row")
        return portal, portal["id"] != row["id"]

    def list_portals(
        self, portal_types: Optional[Iterable[str]] = None
    ) -> list[dict[str, Any]]:
        """
        List portals, optionally restricted to some portal types.

        Args:
            portal_types: Portal types to include, or None for all

        Returns:
            List of portal rows ordered by type and provider name
        """
        types = list(portal_types or [])
        if not types:
            return self._fetch_all(
                "portals", "SELECT * FROM portals ORDER BY portal_type, provider_key"
            )
        placeholders = ", ".join("?" for _ in types)
        return self._fetch_all(
            "portals",
            f"SELECT * FROM portals WHERE portal_type IN ({placeholders}) "  # nosec B608
            "ORDER BY portal_type, provider_key",
            types,
        )

    def find_portals_by_entity(
        self, portal_type: str, entity_id: str
    ) -> list[dict[str, Any]]:
        """
        Find every portal of a type that belongs to an external provider.

        Args:
            portal_type: 'medical', 'pet' or 'academic'
            entity_id: Provider identifier (e.g. a doctor id)

        Returns:
            List of portal rows
        """
        return self._fetch_all(
            "portals",
            "SELECT * FROM portals WHERE portal_type = ? AND entity_id = ?",
            (portal_type, entity_id),
        )

    def find_portals_for_person(
        self, person_id: str, portal_type: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """
        Find portals whose associated-entity list contains a person.

        Args:
            person_id: Family member identifier
            portal_type: Optional portal type filter

        Returns:
            List of portal rows
        """
        sql = (
            "SELECT * FROM portals WHERE EXISTS ("
            "SELECT 1 FROM json_each(portals.patient_ids) WHERE json_each.value = ?)"
        )
        params: list[Any] = [person_id]
        if portal_type:
            sql += " AND portal_type = ?"
            params.append(portal_type)
        return self._fetch_all("portals", sql + " ORDER BY provider_key", params)

    def delete_portal(self, portal_id: str) -> bool:
        """
        Delete a portal row.

        Returns:
            True if a portal was deleted, False if not found
        """
        return self._delete_by_id("portals", portal_id)

    # =========================================================================
    # Password (Vault) Operations
    # =========================================================================

    def get_password(self, password_id: str) -> Optional[dict[str, Any]]:
        """Get a vault entry by id, or None if not found."""
        return self._fetch_by_id("passwords", password_id)

    def find_passwords_by_owner_username_domain(
        self, owner_id: str, username: str, domain: str
    ) -> list[dict[str, Any]]:
        """
        Find vault entries for an owner and username whose URL mentions a domain.

        The URL comparison is a case-insensitive substring match on either
        ``website_url`` or ``url``.

        Args:
            owner_id: Owning user id
            username: Exact login username
            domain: Normalized hostname

        Returns:
            List of candidate password rows
        """
        pattern = f"%{domain}%"
        return self._fetch_all(
            "passwords",
            "SELECT * FROM passwords WHERE owner_id = ? AND username = ? "
            "AND (website_url LIKE ? OR url LIKE ?) ORDER BY created_at",
            (owner_id, username, pattern, pattern),
        )

    def find_passwords_by_source_reference(
        self, source_reference: str
    ) -> list[dict[str, Any]]:
        """Find vault entries whose source_reference points at a record."""
        return self._fetch_all(
            "passwords",
            "SELECT * FROM passwords WHERE source_reference = ? ORDER BY created_at",
            (source_reference,),
        )

    def insert_password(self, values: dict[str, Any]) -> dict[str, Any]:
        """Insert a new vault entry and return the stored row."""
        now = utc_now()
        row = dict(values)
        row.setdefault("created_at", now)
        row.setdefault("updated_at", now)
        return self._insert("passwords", row)

    def update_password(
        self, password_id: str, values: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        """Partially update a vault entry; returns None if it does not exist."""
        return self._update("passwords", password_id, values)

    def delete_password(self, password_id: str) -> bool:
        """Delete a vault entry. Returns True if a row was deleted."""
        return self._delete_by_id("passwords", password_id)

    # =========================================================================
    # Activity Log Operations
    # =========================================================================

    def insert_activity_log(self, values: dict[str, Any]) -> dict[str, Any]:
        """Append an activity-log entry and return the stored row."""
        row = dict(values)
        row.setdefault("created_at", utc_now())
        return self._insert("activity_logs", row)

    def list_activity_logs(
        self, entity_id: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """List activity-log entries, optionally for one entity, oldest first."""
        if entity_id is None:
            return self._fetch_all(
                "activity_logs", "SELECT * FROM activity_logs ORDER BY rowid"
            )
        return self._fetch_all(
            "activity_logs",
            "SELECT * FROM activity_logs WHERE entity_id = ? ORDER BY rowid",
            (entity_id,),
        )

    # =========================================================================
    # Identity Operations
    # =========================================================================

    def upsert_user(self, user_id: str, email: Optional[str] = None) -> None:
        """Insert or update an application user."""
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO users (id, email) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET email = excluded.email
                """,
                (user_id, email),
            )

    def get_user_by_email(self, email: str) -> Optional[dict[str, Any]]:
        """Find a user by case-insensitive email match."""
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM users WHERE lower(email) = lower(?)", (email.strip(),)
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def upsert_family_member(
        self,
        member_id: str,
        name: Optional[str] = None,
        user_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> None:
        """Insert or update a family member (person or pet)."""
        with self.connection() as conn:
            conn.execute(
                """
                INSERT INTO family_members (id, name, user_id, parent_id, email)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    user_id = excluded.user_id,
                    parent_id = excluded.parent_id,
                    email = excluded.email
                """,
                (member_id, name, user_id, parent_id, email),
            )

    def get_family_member(self, member_id: str) -> Optional[dict[str, Any]]:
        """Get a family member by id, or None if not found."""
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT * FROM family_members WHERE id = ?", (member_id,)
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def add_academic_portal_child(self, portal_id: str, child_id: str) -> None:
        """Associate a child with an academic portal."""
        with self.connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO academic_portal_children (portal_id, child_id) "
                "VALUES (?, ?)",
                (portal_id, child_id),
            )

    def get_academic_portal_children(self, portal_id: str) -> list[str]:
        """Return the child ids associated with an academic portal."""
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT child_id FROM academic_portal_children WHERE portal_id = ? "
                "ORDER BY rowid",
                (portal_id,),
            )
            return [row["child_id"] for row in cursor.fetchall()]

    # =========================================================================
    # Legacy Doctor Records
    # =========================================================================

    def insert_doctor(self, values: dict[str, Any]) -> dict[str, Any]:
        """Insert a doctor row carrying legacy portal credentials."""
        return self._insert("doctors", values)

    def list_doctors_with_credentials(self) -> list[dict[str, Any]]:
        """List doctors that still hold a portal username and password."""
        return self._fetch_all(
            "doctors",
            "SELECT * FROM doctors WHERE portal_username IS NOT NULL "
            "AND portal_password IS NOT NULL ORDER BY name",
        )

    # =========================================================================
    # Status
    # =========================================================================

    def counts(self) -> dict[str, int]:
        """
        Count rows in the synchronized tables.

        Returns:
            Dictionary with counts for portals, passwords, linked portals and
            activity logs
        """
        with self.connection() as conn:
            return {
                "portals": conn.execute("SELECT COUNT(*) FROM portals").fetchone()[0],
                "linked_portals": conn.execute(
                    "SELECT COUNT(*) FROM portals WHERE password_id IS NOT NULL"
                ).fetchone()[0],
                "passwords": conn.execute(
                    "SELECT COUNT(*) FROM passwords"
                ).fetchone()[0],
                "activity_logs": conn.execute(
                    "SELECT COUNT(*) FROM activity_logs"
                ).fetchone()[0],
            }

    def __repr__(self) -> str:
        return f"PortalDatabase(db_path={self.db_path!r})"

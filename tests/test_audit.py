"""
Tests for the activity logger.
"""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

from portal_sync.storage.db import PortalDatabase, StorageError
from portal_sync.sync.audit import ActivityEntry, ActivityLogger


def _entry(**overrides):
    values = {
        "action": "create",
        "entity_type": "portal_password_sync",
        "user_id": "U1",
        "entity_id": "portal-1",
        "entity_name": "Dr. Lee",
        "page": "portal_sync",
        "details": {"shared_with_count": 0},
    }
    values.update(overrides)
    return ActivityEntry(**values)


class TestActivityEntry:
    """Tests for ActivityEntry."""

    def test_to_row(self):
        """Test the storage row shape."""
        row = _entry().to_row()
        assert row["action"] == "create"
        assert row["entity_type"] == "portal_password_sync"
        assert row["details"] == {"shared_with_count": 0}


class TestActivityLogger:
    """Tests for ActivityLogger dispatch."""

    def test_synchronous_write(self, db):
        """Test that a synchronous logger writes immediately."""
        audit = ActivityLogger(db, async_dispatch=False)
        audit.log(_entry())
        assert len(db.list_activity_logs("portal-1")) == 1

    def test_asynchronous_write_after_flush(self, db):
        """Test that flush waits for background writes."""
        audit = ActivityLogger(db)
        audit.log(_entry())
        audit.log(_entry(entity_id="portal-2"))
        audit.flush()
        assert len(db.list_activity_logs()) == 2
        audit.close()

    def test_disabled_logger_writes_nothing(self, db):
        """Test that a disabled logger is a no-op."""
        audit = ActivityLogger(db, enabled=False, async_dispatch=False)
        audit.log(_entry())
        assert db.list_activity_logs() == []

    def test_failures_are_logged_not_raised(self, caplog):
        """Test that a failing write never reaches the caller."""
        db = MagicMock(spec=PortalDatabase)
        db.insert_activity_log.side_effect = StorageError("disk full")
        audit = ActivityLogger(db, async_dispatch=False)

        with caplog.at_level("WARNING", logger="portal_sync.audit"):
            audit.log(_entry())

        assert "Failed to write activity log" in caplog.text

    def test_async_failures_are_swallowed(self):
        """Test that a failing background write does not raise on flush."""
        db = MagicMock(spec=PortalDatabase)
        db.insert_activity_log.side_effect = StorageError("disk full")
        audit = ActivityLogger(db)
        audit.log(_entry())
        audit.flush()
        audit.close()
        db.insert_activity_log.assert_called_once()

    def test_external_executor_not_shut_down(self, db):
        """Test that a caller-supplied executor stays usable after close."""
        executor = ThreadPoolExecutor(max_workers=1)
        audit = ActivityLogger(db, executor=executor)
        audit.log(_entry())
        audit.close()

        assert executor.submit(lambda: 42).result() == 42
        executor.shutdown()

    def test_rejected_dispatch_is_logged(self, db, caplog):
        """Test that a shut-down executor does not raise."""
        executor = ThreadPoolExecutor(max_workers=1)
        executor.shutdown()
        audit = ActivityLogger(db, executor=executor)

        with caplog.at_level("WARNING", logger="portal_sync.audit"):
            audit.log(_entry())

        assert "dispatch rejected" in caplog.text

    def test_log_after_close_writes_synchronously(self, db):
        """Test that a closed logger writes inline without a new worker."""
        audit = ActivityLogger(db)
        audit.log(_entry())
        audit.close()

        audit.log(_entry(entity_id="portal-2"))

        assert len(db.list_activity_logs("portal-2")) == 1
        assert audit._executor is None

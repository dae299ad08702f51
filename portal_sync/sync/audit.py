"""
Best-effort activity logging for sync calls.

Entries are written on a single background worker by default. A failed
write is logged on the audit logger and never reaches the caller.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Optional

from portal_sync.storage.db import PortalDatabase
from portal_sync.utils.logging import get_audit_logger

logger = get_audit_logger()

# Entity type recorded for portal/password sync entries
SYNC_ENTITY_TYPE = "portal_password_sync"

# Page recorded when a request names no source
DEFAULT_AUDIT_PAGE = "portal_sync"


@dataclass
class ActivityEntry:
    """One activity-log row."""

    action: str
    entity_type: str
    user_id: Optional[str] = None
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    page: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_row(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "page": self.page,
            "details": self.details,
        }


class ActivityLogger:
    """
    Fire-and-forget sink for activity-log entries.

    Usage:
        audit = ActivityLogger(db)
        audit.log(entry)
        audit.flush()   # wait for pending writes
        audit.close()
    """

    def __init__(
        self,
        db: PortalDatabase,
        enabled: bool = True,
        async_dispatch: bool = True,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.db = db
        self.enabled = enabled
        self.async_dispatch = async_dispatch
        self._executor = executor
        self._owns_executor = executor is None
        self._pending: list[Future] = []
        self._lock = threading.Lock()
        self._closed = False

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="portal-sync-audit"
            )
        return self._executor

    def _write(self, entry: ActivityEntry) -> None:
        try:
            self.db.insert_activity_log(entry.to_row())
        except Exception as e:
            logger.warning(
                f"Failed to write activity log for {entry.entity_type} "
                f"{entry.entity_id}: {e}"
            )

    def log(self, entry: ActivityEntry) -> None:
        """
        Record an activity-log entry.

        Returns immediately when dispatch is asynchronous; after close() the
        entry is written synchronously. Never raises.
        """
        if not self.enabled:
            return

        if not self.async_dispatch or self._closed:
            self._write(entry)
            return

        try:
            future = self._get_executor().submit(self._write, entry)
        except RuntimeError as e:
            logger.warning(f"Activity log dispatch rejected: {e}")
            return

        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for pending asynchronous writes to finish."""
        with self._lock:
            pending = list(self._pending)
            self._pending = []
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        """Flush pending writes and stop the worker if this logger owns it."""
        self._closed = True
        self.flush()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

"""Operator-facing activity log stored in DuckDB."""

import json
import logging
import threading
from typing import Any

import duckdb

from event_faces.models import ActivityLogEntry

logger = logging.getLogger(__name__)

MODULE_EVENT = "event_management"
MODULE_IMAGE = "image_processing"


def log_activity(
    conn: duckdb.DuckDBPyConnection,
    level: str,
    module: str,
    action: str,
    user_id: str | None = None,
    event_id: str | int | None = None,
    ip_address: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Insert a single activity record."""
    details_json = json.dumps(details, ensure_ascii=False) if details is not None else None
    conn.execute(
        """
        INSERT INTO system_log (level, module, action, user_id, event_id, ip_address, details)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [
            level,
            module,
            action,
            user_id,
            str(event_id) if event_id is not None else None,
            ip_address,
            details_json,
        ],
    )


def get_logs(
    conn: duckdb.DuckDBPyConnection,
    page: int = 1,
    per_page: int = 20,
    level: str | None = None,
    module: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> tuple[list[ActivityLogEntry], int]:
    """Return (entries, total) for one page of filtered records, newest first."""
    where = " WHERE 1=1"
    params: list = []
    if level:
        where += " AND level = ?"
        params.append(level)
    if module:
        where += " AND module = ?"
        params.append(module)
    if start_date:
        where += " AND timestamp >= CAST(? AS TIMESTAMP)"
        params.append(start_date)
    if end_date:
        where += " AND timestamp <= CAST(? AS TIMESTAMP)"
        params.append(end_date)

    total_row = conn.execute(f"SELECT COUNT(*) FROM system_log{where}", params).fetchone()
    total = total_row[0] if total_row else 0

    page = max(page, 1)
    rows = conn.execute(
        f"""
        SELECT id, timestamp, level, module, action, user_id, event_id, ip_address, details
        FROM system_log{where}
        ORDER BY timestamp DESC, id DESC
        LIMIT ?
        OFFSET ?
        """,
        [*params, per_page, (page - 1) * per_page],
    ).fetchall()
    return [_row_to_entry(row) for row in rows], total


def _row_to_entry(row: tuple) -> ActivityLogEntry:
    details = row[8]
    if isinstance(details, str):
        details = json.loads(details)
    return ActivityLogEntry(
        id=row[0],
        timestamp=row[1],
        level=row[2],
        module=row[3],
        action=row[4],
        user_id=row[5],
        event_id=row[6],
        ip_address=row[7],
        details=details,
    )


class ActivityLog:
    """Thread-safe wrapper around a DuckDB connection for pipeline workers.

    Recording never raises: a failed insert is logged and dropped so that it
    cannot abort the operation being recorded.
    """

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self.conn = conn
        self._lock = threading.Lock()

    @classmethod
    def open(cls, db_path: str | None = None) -> "ActivityLog":
        from event_faces.db import get_connection

        return cls(get_connection(db_path))

    def record(
        self,
        level: str,
        module: str,
        action: str,
        user_id: str | None = None,
        event_id: str | int | None = None,
        ip_address: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        try:
            with self._lock:
                log_activity(
                    self.conn, level, module, action, user_id, event_id, ip_address, details
                )
        except (duckdb.Error, TypeError, ValueError):
            logger.exception("Failed to record activity %s/%s", module, action)

    def query(self, **filters: Any) -> tuple[list[ActivityLogEntry], int]:
        with self._lock:
            return get_logs(self.conn, **filters)

    def close(self) -> None:
        with self._lock:
            self.conn.close()

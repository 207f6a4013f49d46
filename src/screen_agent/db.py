"""SQLite database layer for activity events."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from .models import ActivityEvent

SCHEMA_VERSION = 1
DEFAULT_SEARCH_LIMIT = 200

Timestamp = Union[datetime, float]

_EVENT_COLUMNS = (
    "id",
    "ts_start",
    "ts_end",
    "app_bundle",
    "app_name",
    "window_title",
    "summary",
    "tags",
    "sensitivity_flag",
    "thumbnail_path",
    "text_snippet",
)


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA foreign_keys = ON;")
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS events (
            id TEXT PRIMARY KEY,
            ts_start REAL NOT NULL,
            ts_end REAL NOT NULL,
            app_bundle TEXT NOT NULL DEFAULT '',
            app_name TEXT NOT NULL DEFAULT '',
            window_title TEXT NOT NULL DEFAULT '',
            summary TEXT NOT NULL DEFAULT '',
            tags TEXT NOT NULL DEFAULT '[]',
            sensitivity_flag INTEGER NOT NULL DEFAULT 0,
            thumbnail_path TEXT,
            text_snippet TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts_start);
        CREATE INDEX IF NOT EXISTS idx_events_app ON events(app_bundle);

        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY
        );
        """
    )
    migrate(conn)


def migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("SELECT MAX(version) AS version FROM schema_version").fetchone()
    current = row["version"] or 0
    if current < 1:
        conn.execute("INSERT OR REPLACE INTO schema_version(version) VALUES (1)")


def insert_event(conn: sqlite3.Connection, event: ActivityEvent) -> None:
    """Insert or overwrite an event; replaying the same id replaces it."""
    insert_events(conn, [event])


def insert_events(conn: sqlite3.Connection, events: Iterable[ActivityEvent]) -> None:
    placeholders = ", ".join("?" for _ in _EVENT_COLUMNS)
    conn.executemany(
        f"INSERT OR REPLACE INTO events ({', '.join(_EVENT_COLUMNS)}) VALUES ({placeholders})",
        [
            tuple(record[column] for column in _EVENT_COLUMNS)
            for record in (event.to_record() for event in events)
        ],
    )


def count_events_since(conn: sqlite3.Connection, since: Timestamp) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS total FROM events WHERE ts_start >= ?",
        (_epoch(since),),
    ).fetchone()
    return int(row["total"])


def search_events(
    conn: sqlite3.Connection,
    keyword: str = "",
    date_from: Optional[Timestamp] = None,
    date_to: Optional[Timestamp] = None,
    app_bundle: Optional[str] = None,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[ActivityEvent]:
    """Return matching events, newest first."""
    conditions: list[str] = []
    params: list[object] = []

    keyword = keyword.strip()
    if keyword:
        like = f"%{_escape_like(keyword)}%"
        conditions.append(
            "(summary LIKE ? ESCAPE '\\' OR window_title LIKE ? ESCAPE '\\'"
            " OR tags LIKE ? ESCAPE '\\' OR app_name LIKE ? ESCAPE '\\')"
        )
        params.extend([like, like, like, like])
    if date_from is not None:
        conditions.append("ts_start >= ?")
        params.append(_epoch(date_from))
    if date_to is not None:
        conditions.append("ts_end <= ?")
        params.append(_epoch(date_to))
    if app_bundle:
        conditions.append("app_bundle = ?")
        params.append(app_bundle)

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    params.append(max(int(limit), 0))
    rows = conn.execute(
        f"SELECT * FROM events {where} ORDER BY ts_start DESC LIMIT ?",
        params,
    )
    return [ActivityEvent.from_record(row) for row in rows]


def fetch_event(conn: sqlite3.Connection, event_id: str) -> Optional[ActivityEvent]:
    row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
    return ActivityEvent.from_record(row) if row is not None else None


def fetch_app_bundles(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute(
        "SELECT DISTINCT app_bundle FROM events WHERE app_bundle != '' ORDER BY app_bundle"
    )
    return [row["app_bundle"] for row in rows]


def fetch_summary_by_day(
    conn: sqlite3.Connection, day: datetime
) -> list[sqlite3.Row]:
    """Return total seconds, event count and sensitivity per app on a given day."""
    start = day.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    return list(
        conn.execute(
            """
            SELECT
                app_bundle,
                app_name,
                MAX(sensitivity_flag) AS sensitivity_flag,
                COUNT(*) AS events,
                SUM(ts_end - ts_start) AS seconds
            FROM events
            WHERE ts_start >= ? AND ts_start < ?
            GROUP BY app_bundle, app_name
            ORDER BY seconds DESC;
            """,
            (start.timestamp(), end.timestamp()),
        )
    )


def fetch_events_for_day(conn: sqlite3.Connection, day: datetime) -> list[ActivityEvent]:
    start = day.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    rows = conn.execute(
        "SELECT * FROM events WHERE ts_start >= ? AND ts_start < ? ORDER BY ts_start",
        (start.timestamp(), end.timestamp()),
    )
    return [ActivityEvent.from_record(row) for row in rows]


def delete_event(conn: sqlite3.Connection, event_id: str) -> None:
    cur = conn.execute("DELETE FROM events WHERE id = ?", (event_id,))
    if cur.rowcount == 0:
        raise ValueError(f"No event found for id={event_id}")


def _epoch(value: Timestamp) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    return float(value)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")

"""Background persistence of finalized events."""

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from pathlib import Path
from typing import Optional, Protocol

from .db import insert_event, open_database
from .models import ActivityEvent

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256

_STOP = object()


class EventSink(Protocol):
    """Receives finalized events. ``insert`` must return without blocking."""

    def insert(self, event: ActivityEvent) -> None: ...


class EventWriter:
    """Writes events to SQLite from a dedicated thread.

    ``insert`` only enqueues. Write failures are logged and the event is
    dropped; there is no retry.
    """

    def __init__(self, db_path: Path, *, max_queue: int = DEFAULT_QUEUE_SIZE) -> None:
        self.db_path = Path(db_path)
        self._queue: queue.Queue[object] = queue.Queue(maxsize=max_queue)
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.written = 0
        self.failed = 0
        self.dropped = 0

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            thread = threading.Thread(target=self._run, name="event-writer", daemon=True)
            self._thread = thread
            thread.start()

    def insert(self, event: ActivityEvent) -> None:
        self.start()
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self.dropped += 1
            logger.error("Write queue full; dropping event %s (%s)", event.id, event.app_name)

    def close(self, timeout: float = 10.0) -> None:
        """Write everything already queued, then stop the writer thread."""
        with self._lock:
            thread = self._thread
            self._thread = None
        if not thread or not thread.is_alive():
            return
        self._queue.put(_STOP)
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("Event writer did not stop within %.1fs", timeout)

    def _run(self) -> None:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = open_database(self.db_path, check_same_thread=False)
        except (sqlite3.Error, OSError):
            logger.exception("Cannot open event database %s", self.db_path)

        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            if not isinstance(item, ActivityEvent):
                continue
            if conn is None:
                self.failed += 1
                logger.error("Database unavailable; event %s not written", item.id)
                continue
            try:
                insert_event(conn, item)
            except sqlite3.Error:
                self.failed += 1
                logger.exception("Failed to write event %s", item.id)
            else:
                self.written += 1
                logger.debug("Wrote event %s (%.1fs)", item.id, item.duration_seconds)

        if conn is not None:
            conn.close()

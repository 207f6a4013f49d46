"""Restartable one-shot timer used to close events after visual inactivity."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


class CoalesceScheduler:
    """Schedules a single delayed callback; every ``reset`` supersedes the last.

    Each arming gets a token. The callback receives the token of the timer
    that fired, and ``is_current`` tells the receiver whether that firing is
    still wanted or lost a race with a later ``reset``/``cancel``.
    """

    def __init__(
        self,
        callback: Callable[[int], None],
        *,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._callback = callback
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._token = 0
        self._armed = False

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._armed

    def reset(self, delay: float) -> int:
        with self._lock:
            self._cancel_locked()
            self._token += 1
            token = self._token
            timer = self._timer_factory(delay, lambda: self._fire(token))
            timer.daemon = True
            self._timer = timer
            self._armed = True
        timer.start()
        return token

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def is_current(self, token: int) -> bool:
        with self._lock:
            return self._armed and token == self._token

    def disarm(self, token: int) -> None:
        """Mark the timer for ``token`` as consumed."""
        with self._lock:
            if token == self._token:
                self._armed = False
                self._timer = None

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._armed:
            # Invalidate any firing already past its cancel point.
            self._token += 1
        self._armed = False

    def _fire(self, token: int) -> None:
        try:
            self._callback(token)
        except Exception:  # pragma: no cover - timer thread must not die silently
            logger.exception("Coalesce callback failed.")

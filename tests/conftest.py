from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

import numpy as np
import pytest

from screen_agent.config import SegmenterSettings
from screen_agent.models import ActivityEvent, AppContext, FrameUpdate, ImageBuffer, MetadataUpdate
from screen_agent.segmenter import EventSegmenter


def solid_frame(width: int = 64, height: int = 48, color=(40, 80, 120)) -> ImageBuffer:
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[:, :, :3] = color
    pixels[:, :, 3] = 255
    return ImageBuffer(width=width, height=height, data=pixels.tobytes())


def striped_frame(width: int = 64, height: int = 48, offset: int = 0) -> ImageBuffer:
    """A busy, non-blank frame: vertical stripes 3px wide."""
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    columns = (np.arange(width) + offset) // 3 % 2 == 0
    pixels[:, columns, :3] = 220
    pixels[:, ~columns, :3] = 20
    pixels[:, :, 3] = 255
    return ImageBuffer(width=width, height=height, data=pixels.tobytes())


def with_changed_rows(frame: ImageBuffer, fraction: float) -> ImageBuffer:
    """Invert the leading ``fraction`` of rows of ``frame``."""
    pixels = frame.as_array().copy()
    rows = int(round(frame.height * fraction))
    pixels[:rows, :, :3] = 255 - pixels[:rows, :, :3]
    return ImageBuffer(width=frame.width, height=frame.height, data=pixels.tobytes())


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 10, 18, 9, 0, 0)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> datetime:
        with self._lock:
            self.now += timedelta(seconds=seconds)
            return self.now


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[ActivityEvent] = []

    def insert(self, event: ActivityEvent) -> None:
        self.events.append(event)


class ManualTimer:
    def __init__(self, interval: float, function: Callable[[], None]) -> None:
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.function()


class ManualTimerFactory:
    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> ManualTimer:
        return self.timers[-1]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def make_segmenter(clock, sink, timers):
    def factory(settings: Optional[SegmenterSettings] = None, **kwargs) -> EventSegmenter:
        return EventSegmenter(
            settings or SegmenterSettings(),
            sink,
            clock=clock,
            timer_factory=timers,
            **kwargs,
        )

    return factory


def frame_update(
    frame: ImageBuffer,
    bundle_id: str = "com.example.editor",
    app_name: str = "Editor",
    window_title: str = "Foo",
    text: Optional[str] = None,
) -> FrameUpdate:
    return FrameUpdate(
        frame=frame,
        context=AppContext(bundle_id=bundle_id, app_name=app_name, window_title=window_title),
        text=text,
    )


def metadata_update(
    bundle_id: str, app_name: str = "App", window_title: str = ""
) -> MetadataUpdate:
    return MetadataUpdate(
        AppContext(bundle_id=bundle_id, app_name=app_name, window_title=window_title)
    )

"""Screen and foreground-window sampling that feeds the event segmenter."""

from __future__ import annotations

import ctypes
import logging
import sys
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Protocol

import mss
import psutil
from mss.exception import ScreenShotError
from PIL import Image

from .config import AgentSettings
from .models import AppContext, FrameUpdate, ImageBuffer, MetadataUpdate
from .paths import get_thumbnail_dir
from .segmenter import EventSegmenter
from .thumbnails import ThumbnailStore
from .writer import EventWriter

try:
    from AppKit import NSWorkspace  # type: ignore
    from Quartz import (  # type: ignore
        CGWindowListCopyWindowInfo,
        kCGNullWindowID,
        kCGWindowListOptionOnScreenOnly,
    )
except ImportError:  # pragma: no cover - optional on non-mac systems
    NSWorkspace = None
    CGWindowListCopyWindowInfo = None
    kCGNullWindowID = None
    kCGWindowListOptionOnScreenOnly = None

logger = logging.getLogger(__name__)


class WindowProbe(Protocol):
    def get_active_window(self) -> Optional[AppContext]: ...


class WindowsActiveWindowProbe:
    """Retrieves the foreground window title and owning process."""

    def __init__(self) -> None:
        from ctypes import wintypes

        self._wintypes = wintypes
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]

    def get_active_window(self) -> Optional[AppContext]:
        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None

        length = self._user32.GetWindowTextLengthW(hwnd)
        buffer = ctypes.create_unicode_buffer(length + 1)
        self._user32.GetWindowTextW(hwnd, buffer, length + 1)
        window_title = buffer.value.strip()

        pid = self._wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        try:
            if not pid.value:
                return None
            process_name = psutil.Process(pid.value).name()
        except (psutil.Error, ProcessLookupError):
            return None

        return AppContext(
            bundle_id=process_name.lower(),
            app_name=Path(process_name).stem,
            window_title=window_title,
        )


class MacActiveWindowProbe:
    """Reads the frontmost application and its first on-screen window."""

    def get_active_window(self) -> Optional[AppContext]:
        try:
            active_app = NSWorkspace.sharedWorkspace().frontmostApplication()
            if active_app is None:
                return None
            bundle_id = active_app.bundleIdentifier() or "unknown"
            app_name = active_app.localizedName() or "Unknown"
            pid = active_app.processIdentifier()
            windows = CGWindowListCopyWindowInfo(
                kCGWindowListOptionOnScreenOnly, kCGNullWindowID
            )
        except Exception:
            logger.exception("Failed to query the frontmost application.")
            return None
        return AppContext(
            bundle_id=str(bundle_id),
            app_name=str(app_name),
            window_title=self._window_title(pid, windows),
        )

    @staticmethod
    def _window_title(pid: int, windows: Optional[list]) -> str:
        for window in windows or []:
            if window.get("kCGWindowOwnerPID") != pid:
                continue
            if window.get("kCGWindowLayer", 0) != 0:
                continue
            return str(window.get("kCGWindowName") or "")
        return ""


class NullWindowProbe:
    def get_active_window(self) -> Optional[AppContext]:
        return None


def create_window_probe() -> WindowProbe:
    if sys.platform == "win32":
        return WindowsActiveWindowProbe()
    if sys.platform == "darwin" and NSWorkspace is not None:
        return MacActiveWindowProbe()
    logger.warning("No foreground window probe for platform %s.", sys.platform)
    return NullWindowProbe()


class ScreenGrabber:
    """Grabs the full virtual screen at reduced resolution."""

    def __init__(self, downscale: float = 0.25) -> None:
        self.downscale = downscale

    def grab(self) -> ImageBuffer:
        with mss.mss() as sct:
            raw = sct.grab(sct.monitors[0])
            image = Image.frombytes("RGB", raw.size, raw.bgra, "raw", "BGRX")
        if self.downscale < 1.0:
            size = (
                max(1, int(image.width * self.downscale)),
                max(1, int(image.height * self.downscale)),
            )
            image = image.resize(size, Image.Resampling.BILINEAR)
        return ImageBuffer.from_image(image)


TextProvider = Callable[[], Optional[str]]


class ScreenCollector:
    """Samples the screen and foreground window and feeds the segmenter.

    Frames arrive at ``capture.frame_rate``; window metadata is polled on its
    own, faster schedule so app switches are noticed between frames.
    """

    def __init__(
        self,
        db_path: Path,
        settings: AgentSettings,
        *,
        grabber: Optional[ScreenGrabber] = None,
        probe: Optional[WindowProbe] = None,
        text_provider: Optional[TextProvider] = None,
        thumbnail_dir: Optional[Path] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.db_path = Path(db_path)
        self.settings = settings
        self._grabber = grabber or ScreenGrabber(settings.capture.downscale)
        self._probe = probe or create_window_probe()
        self._text_provider = text_provider
        self._clock = clock
        self.writer = EventWriter(self.db_path)
        self.segmenter = EventSegmenter(
            settings.segmenter,
            self.writer,
            thumbnails=ThumbnailStore(thumbnail_dir or get_thumbnail_dir()),
            clock=clock,
        )

    def update_settings(self, settings: AgentSettings) -> None:
        self.settings = settings
        self.segmenter.update_settings(settings.segmenter)

    def run_forever(self) -> None:
        stop_event = threading.Event()
        try:
            self._run_loop(stop_event)
        except KeyboardInterrupt:
            logger.info("Collector interrupted; flushing open event.")
        finally:
            self._shutdown()

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run the collector until the provided event is set."""
        try:
            self._run_loop(stop_event)
        finally:
            self._shutdown()

    def sample_metadata(self) -> None:
        context = self._probe.get_active_window()
        if context is None:
            return
        self.segmenter.ingest_metadata(MetadataUpdate(context))

    def sample_frame(self) -> None:
        context = self._probe.get_active_window()
        if context is None:
            return
        try:
            frame = self._grabber.grab()
        except (ScreenShotError, OSError, ValueError):
            logger.exception("Screen grab failed; skipping frame.")
            return

        text: Optional[str] = None
        if self._text_provider is not None:
            try:
                text = self._text_provider()
            except Exception:
                logger.exception("Text extraction failed; continuing without text.")
            if text:
                text = text[: self.settings.segmenter.text_snippet_max]

        self.segmenter.ingest_frame(
            FrameUpdate(frame=frame, context=context, timestamp=self._clock(), text=text)
        )
        logger.debug(
            "Frame sampled: app=%s title=%s", context.bundle_id, context.window_title
        )

    def _run_loop(self, stop_event: threading.Event) -> None:
        logger.info("Starting collector; writing to %s", self.db_path)
        self.writer.start()
        next_metadata = next_frame = time.monotonic()
        while not stop_event.is_set():
            capture = self.settings.capture
            now = time.monotonic()
            if now >= next_metadata:
                self.sample_metadata()
                next_metadata = now + capture.metadata_interval.total_seconds()
            if now >= next_frame:
                self.sample_frame()
                next_frame = now + capture.frame_interval.total_seconds()
            # Sleep in an interruptible manner.
            stop_event.wait(max(0.0, min(next_metadata, next_frame) - time.monotonic()))

    def _shutdown(self) -> None:
        try:
            self.segmenter.flush()
        finally:
            self.writer.close()
            logger.info("Collector stopped.")

"""Event segmentation: turns frames and window metadata into activity events."""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .config import SegmenterSettings
from .frame_diff import FrameComparator
from .models import (
    ActivityEvent,
    AppContext,
    FinalizeReason,
    FrameUpdate,
    ImageBuffer,
    MetadataUpdate,
    SensitivityLevel,
    Update,
)
from .normalization import generate_summary, generate_tags
from .scheduler import CoalesceScheduler, TimerFactory
from .sensitivity import SensitivityClassifier
from .thumbnails import ThumbnailStore
from .writer import EventSink

logger = logging.getLogger(__name__)

MIN_EVENT_SECONDS = 1.0


@dataclass(slots=True)
class SegmenterState:
    current_event: Optional[ActivityEvent] = None
    previous_frame: Optional[ImageBuffer] = None
    last_bundle_id: str = ""
    last_window_title: str = ""


@dataclass(frozen=True, slots=True)
class _ThumbnailJob:
    event_id: str
    frame: ImageBuffer
    max_width: int


class EventSegmenter:
    """State machine deciding when activity events open, continue and close.

    At most one event is open at any time. Frame updates, metadata updates
    and coalesce-timer firings all take the same lock, so they are applied
    one at a time in arrival order. Completed events are handed to ``sink``,
    which must not block.
    """

    def __init__(
        self,
        settings: SegmenterSettings,
        sink: EventSink,
        *,
        comparator: Optional[FrameComparator] = None,
        classifier: Optional[SensitivityClassifier] = None,
        thumbnails: Optional[ThumbnailStore] = None,
        clock: Callable[[], datetime] = datetime.now,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self._settings = settings
        self._sink = sink
        self._comparator = (comparator or FrameComparator()).with_threshold(
            settings.frame_diff_threshold
        )
        self._classifier = classifier or SensitivityClassifier()
        self._thumbnails = thumbnails
        self._clock = clock
        if timer_factory is None:
            self._scheduler = CoalesceScheduler(self._on_coalesce_timer)
        else:
            self._scheduler = CoalesceScheduler(
                self._on_coalesce_timer, timer_factory=timer_factory
            )
        self._state = SegmenterState()
        self._lock = threading.Lock()

    @property
    def settings(self) -> SegmenterSettings:
        return self._settings

    @property
    def current_event(self) -> Optional[ActivityEvent]:
        """A copy of the open event, or None when idle."""
        with self._lock:
            event = self._state.current_event
            if event is None:
                return None
            return dataclasses.replace(event, tags=list(event.tags))

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._state.current_event is not None

    @property
    def coalesce_pending(self) -> bool:
        return self._scheduler.pending

    def update_settings(self, settings: SegmenterSettings) -> None:
        """Swap the settings snapshot; the open event is left untouched."""
        with self._lock:
            self._settings = settings
            self._comparator = self._comparator.with_threshold(settings.frame_diff_threshold)

    def ingest(self, update: Update) -> None:
        if isinstance(update, FrameUpdate):
            self.ingest_frame(update)
        elif isinstance(update, MetadataUpdate):
            self.ingest_metadata(update)
        else:
            raise TypeError(f"Unsupported update type: {type(update).__name__}")

    def ingest_frame(self, update: FrameUpdate) -> None:
        context = update.context
        frame = update.frame
        thumbnail_job: Optional[_ThumbnailJob] = None
        with self._lock:
            settings = self._settings
            if settings.is_excluded(context.bundle_id):
                return

            state = self._state
            now = update.timestamp or self._clock()

            if self._comparator.is_blank_screen(frame):
                self._finalize_locked(FinalizeReason.BLANK_SCREEN, now)
                state.previous_frame = frame
                return

            sensitivity = self._classifier.assess_from_metadata(
                context.bundle_id, context.window_title
            )
            if sensitivity == SensitivityLevel.BLOCKED:
                self._finalize_locked(FinalizeReason.SENSITIVE, now)
                self._record_sensitive_locked(context, now)
                state.previous_frame = frame
                return

            app_switched = (
                context.bundle_id != state.last_bundle_id
                or context.window_title != state.last_window_title
            )
            if state.previous_frame is None:
                is_significant = True
            else:
                is_significant = self._comparator.compare(
                    state.previous_frame, frame, now
                ).is_significant

            if app_switched:
                self._finalize_locked(FinalizeReason.APP_SWITCH, now)
                opened = self._open_locked(context, sensitivity, now, text=update.text)
                thumbnail_job = self._plan_thumbnail_locked(opened, frame)
            elif is_significant:
                current = state.current_event
                if current is None:
                    opened = self._open_locked(context, sensitivity, now, text=update.text)
                    thumbnail_job = self._plan_thumbnail_locked(opened, frame)
                else:
                    current.timestamp_end = max(now, current.timestamp_start)
                    if context.window_title and context.window_title != current.window_title:
                        current.window_title = context.window_title
                self._scheduler.reset(settings.idle_coalesce_seconds)

            state.previous_frame = frame
            state.last_bundle_id = context.bundle_id
            state.last_window_title = context.window_title

        if thumbnail_job is not None:
            self._write_thumbnail(thumbnail_job)

    def ingest_metadata(self, update: MetadataUpdate) -> None:
        context = update.context
        with self._lock:
            if self._settings.is_excluded(context.bundle_id):
                return
            state = self._state
            if context.bundle_id == state.last_bundle_id:
                return

            self._finalize_locked(FinalizeReason.APP_SWITCH_META)
            sensitivity = self._classifier.assess_from_metadata(
                context.bundle_id, context.window_title
            )
            if sensitivity != SensitivityLevel.BLOCKED:
                self._open_locked(context, sensitivity, self._clock())

            state.last_bundle_id = context.bundle_id
            state.last_window_title = context.window_title

    def flush(self) -> None:
        """Close the open event, if any, and cancel the coalesce timer."""
        with self._lock:
            self._finalize_locked(FinalizeReason.FLUSH)
        self._scheduler.cancel()

    def _on_coalesce_timer(self, token: int) -> None:
        with self._lock:
            if not self._scheduler.is_current(token):
                logger.debug("Ignoring stale coalesce timer %d", token)
                return
            self._scheduler.disarm(token)
            self._finalize_locked(FinalizeReason.IDLE_COALESCE)

    def _open_locked(
        self,
        context: AppContext,
        sensitivity: SensitivityLevel,
        now: datetime,
        *,
        text: Optional[str] = None,
    ) -> ActivityEvent:
        if text and sensitivity == SensitivityLevel.NONE:
            sensitivity = self._classifier.assess_with_text(
                context.bundle_id, context.window_title, text
            )
            if sensitivity != SensitivityLevel.NONE:
                logger.debug(
                    "Text raised sensitivity of %s to %s (detectors: %s)",
                    context.app_name,
                    sensitivity.name,
                    ", ".join(self._classifier.detect(text)),
                )

        event = ActivityEvent(
            timestamp_start=now,
            timestamp_end=now,
            app_bundle_id=context.bundle_id,
            app_name=context.app_name,
            window_title=context.window_title,
            summary=generate_summary(context.app_name, context.window_title),
            tags=generate_tags(context.bundle_id, context.window_title),
            sensitivity_flag=sensitivity,
        )

        if sensitivity == SensitivityLevel.NONE and text:
            limit = self._settings.text_snippet_max
            event.text_snippet = self._classifier.mask_sensitive_text(text)[:limit]

        self._state.current_event = event
        logger.debug(
            "Opened event %s: %s (sensitivity=%s)", event.id, event.summary, sensitivity.name
        )
        return event

    def _plan_thumbnail_locked(
        self, event: ActivityEvent, frame: ImageBuffer
    ) -> Optional[_ThumbnailJob]:
        """Reserve the thumbnail path; the file is written once the lock is released."""
        if (
            event.sensitivity_flag != SensitivityLevel.NONE
            or not self._settings.thumbnail_enabled
            or self._thumbnails is None
        ):
            return None
        event.thumbnail_path = str(self._thumbnails.path_for(event.id))
        return _ThumbnailJob(event.id, frame, self._settings.thumbnail_max_width)

    def _write_thumbnail(self, job: _ThumbnailJob) -> None:
        store = self._thumbnails
        if store is None or store.save(job.frame, job.event_id, job.max_width) is not None:
            return
        with self._lock:
            current = self._state.current_event
            if current is not None and current.id == job.event_id:
                current.thumbnail_path = None

    def _finalize_locked(
        self, reason: FinalizeReason, now: Optional[datetime] = None
    ) -> None:
        self._scheduler.cancel()
        event = self._state.current_event
        if event is None:
            return
        self._state.current_event = None

        event.timestamp_end = max(now or self._clock(), event.timestamp_start)
        duration = event.duration_seconds
        if duration < MIN_EVENT_SECONDS:
            logger.debug(
                "Discarded event %s after %.2fs (reason=%s)", event.id, duration, reason.value
            )
            return

        logger.debug(
            "Finalized event %s after %.1fs (reason=%s)", event.id, duration, reason.value
        )
        self._sink.insert(event)

    def _record_sensitive_locked(self, context: AppContext, now: datetime) -> None:
        placeholder = ActivityEvent.sensitive_placeholder(
            context.bundle_id, context.app_name, now
        )
        logger.info("Sensitive screen detected in %s; content not recorded.", context.app_name)
        self._sink.insert(placeholder)

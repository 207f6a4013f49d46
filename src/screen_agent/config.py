"""Configuration models and helpers for the screen agent."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class SegmenterSettings:
    """Immutable snapshot of the knobs the event segmenter reads."""

    frame_diff_threshold: float = 0.05
    idle_coalesce_seconds: float = 30.0
    excluded_apps: frozenset[str] = frozenset()
    thumbnail_enabled: bool = False
    thumbnail_max_width: int = 320
    text_snippet_max: int = 2000

    def __post_init__(self) -> None:
        if not 0.0 <= self.frame_diff_threshold <= 1.0:
            raise ValueError(
                f"frame_diff_threshold must be within [0, 1], got {self.frame_diff_threshold}"
            )
        if self.idle_coalesce_seconds <= 0:
            raise ValueError(
                f"idle_coalesce_seconds must be positive, got {self.idle_coalesce_seconds}"
            )
        if self.thumbnail_max_width < 1:
            raise ValueError(
                f"thumbnail_max_width must be positive, got {self.thumbnail_max_width}"
            )
        if self.text_snippet_max < 1:
            raise ValueError(
                f"text_snippet_max must be positive, got {self.text_snippet_max}"
            )
        if not isinstance(self.excluded_apps, frozenset):
            object.__setattr__(self, "excluded_apps", frozenset(self.excluded_apps))

    def is_excluded(self, bundle_id: str) -> bool:
        return bundle_id in self.excluded_apps


@dataclass(frozen=True, slots=True)
class CaptureSettings:
    """Runtime configuration for the capture loop."""

    frame_rate: float = 1.0
    metadata_interval: timedelta = timedelta(seconds=1)
    downscale: float = 0.25

    def __post_init__(self) -> None:
        if self.frame_rate <= 0:
            raise ValueError(f"frame_rate must be positive, got {self.frame_rate}")
        if self.metadata_interval <= timedelta(0):
            raise ValueError("metadata_interval must be positive")
        if not 0.0 < self.downscale <= 1.0:
            raise ValueError(f"downscale must be within (0, 1], got {self.downscale}")

    @property
    def frame_interval(self) -> timedelta:
        return timedelta(seconds=1.0 / self.frame_rate)

    @classmethod
    def from_intervals(
        cls,
        frame_rate: float,
        metadata_seconds: float | None = None,
        downscale: float | None = None,
    ) -> "CaptureSettings":
        return cls(
            frame_rate=frame_rate,
            metadata_interval=timedelta(seconds=metadata_seconds or 1.0),
            downscale=downscale if downscale is not None else 0.25,
        )


@dataclass(frozen=True, slots=True)
class AgentSettings:
    """Everything persisted in ``settings.json``."""

    segmenter: SegmenterSettings = field(default_factory=SegmenterSettings)
    capture: CaptureSettings = field(default_factory=CaptureSettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AgentSettings":
        """Build settings from the JSON keys; a missing or bad key keeps its default."""
        seg = SegmenterSettings()
        cap = CaptureSettings()
        segmenter = SegmenterSettings(
            frame_diff_threshold=_read(
                data, "frameDiffThreshold", seg.frame_diff_threshold, float,
                lambda value: 0.0 <= value <= 1.0,
            ),
            idle_coalesce_seconds=_read(
                data, "idleCoalesceSeconds", seg.idle_coalesce_seconds, float,
                lambda value: value > 0,
            ),
            excluded_apps=_read(data, "excludedApps", seg.excluded_apps, _as_bundle_set),
            thumbnail_enabled=_read(data, "saveThumbnails", seg.thumbnail_enabled, bool),
            thumbnail_max_width=_read(
                data, "thumbnailMaxWidth", seg.thumbnail_max_width, int,
                lambda value: value >= 1,
            ),
            text_snippet_max=seg.text_snippet_max,
        )
        capture = CaptureSettings(
            frame_rate=_read(
                data, "captureFrameRate", cap.frame_rate, float, lambda value: value > 0
            ),
            metadata_interval=cap.metadata_interval,
            downscale=cap.downscale,
        )
        return cls(segmenter=segmenter, capture=capture)

    def to_mapping(self) -> dict[str, Any]:
        return {
            "frameDiffThreshold": self.segmenter.frame_diff_threshold,
            "idleCoalesceSeconds": self.segmenter.idle_coalesce_seconds,
            "excludedApps": sorted(self.segmenter.excluded_apps),
            "saveThumbnails": self.segmenter.thumbnail_enabled,
            "thumbnailMaxWidth": self.segmenter.thumbnail_max_width,
            "captureFrameRate": self.capture.frame_rate,
        }

    @classmethod
    def load(cls, path: Path) -> "AgentSettings":
        """Read settings from ``path``; fall back to defaults when absent or bad."""
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("settings file must contain a JSON object")
            return cls.from_mapping(data)
        except (OSError, ValueError, TypeError):
            logger.warning("Ignoring unreadable settings file %s", path, exc_info=True)
            return cls()

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self.to_mapping(), indent=2), encoding="utf-8")
        tmp_path.replace(path)


def _as_bundle_set(values: Iterable[Any]) -> frozenset[str]:
    if isinstance(values, str):
        values = [values]
    return frozenset(str(value).strip() for value in values if str(value).strip())


def _read(
    data: Mapping[str, Any],
    key: str,
    default: T,
    convert: Callable[[Any], T],
    valid: Optional[Callable[[T], bool]] = None,
) -> T:
    raw = data.get(key)
    if raw is None:
        return default
    try:
        value = convert(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid %s=%r in settings file", key, raw)
        return default
    if valid is not None and not valid(value):
        logger.warning("Ignoring out-of-range %s=%r in settings file", key, raw)
        return default
    return value

"""Domain models for screen activity events."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Mapping, Optional, Union

import numpy as np
from PIL import Image

REDACTED_TITLE = "[Sensitive — not recorded]"
REDACTED_SUMMARY = "Sensitive screen detected"
DEFAULT_TAGS = ("general",)
SENSITIVE_TAGS = ("sensitive",)

BYTES_PER_PIXEL = 4


class SensitivityLevel(IntEnum):
    NONE = 0
    LOW = 1
    HIGH = 2
    BLOCKED = 3


class FinalizeReason(str, Enum):
    BLANK_SCREEN = "blank_screen"
    SENSITIVE = "sensitive_content"
    APP_SWITCH = "app_switch"
    APP_SWITCH_META = "app_switch_meta"
    IDLE_COALESCE = "idle_coalesce"
    FLUSH = "flush"


@dataclass(frozen=True, slots=True)
class AppContext:
    """Foreground application identity as reported by the capture layer."""

    bundle_id: str
    app_name: str
    window_title: str = ""


@dataclass(frozen=True, slots=True)
class ImageBuffer:
    """An immutable RGBA frame, row-major, four bytes per pixel."""

    width: int
    height: int
    data: Optional[bytes]

    @classmethod
    def from_image(cls, image: Image.Image) -> "ImageBuffer":
        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        return cls(width=rgba.width, height=rgba.height, data=rgba.tobytes())

    def as_array(self) -> np.ndarray:
        """Return a read-only ``(height, width, 4)`` view of the pixels.

        Raises ``ValueError`` when the buffer cannot be read as pixels.
        """
        if self.data is None:
            raise ValueError("frame has no pixel data")
        if self.width < 0 or self.height < 0:
            raise ValueError(f"invalid frame size {self.width}x{self.height}")
        expected = self.width * self.height * BYTES_PER_PIXEL
        if len(self.data) != expected:
            raise ValueError(
                f"expected {expected} bytes for {self.width}x{self.height}, got {len(self.data)}"
            )
        pixels = np.frombuffer(self.data, dtype=np.uint8)
        return pixels.reshape((self.height, self.width, BYTES_PER_PIXEL))

    def to_image(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height), self.data or b"")


@dataclass(frozen=True, slots=True)
class DiffResult:
    change_ratio: float
    timestamp: datetime
    is_significant: bool

    @property
    def change_percent(self) -> str:
        return f"{self.change_ratio * 100:.1f}%"


@dataclass(frozen=True, slots=True)
class FrameUpdate:
    """A captured frame plus the metadata that was current when it was taken."""

    frame: ImageBuffer
    context: AppContext
    timestamp: Optional[datetime] = None
    text: Optional[str] = None


@dataclass(frozen=True, slots=True)
class MetadataUpdate:
    context: AppContext


Update = Union[FrameUpdate, MetadataUpdate]


def _new_event_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class ActivityEvent:
    """A bounded stretch of activity in a single application context."""

    timestamp_start: datetime
    timestamp_end: datetime
    app_bundle_id: str
    app_name: str
    window_title: str
    summary: str
    tags: list[str] = field(default_factory=lambda: list(DEFAULT_TAGS))
    sensitivity_flag: SensitivityLevel = SensitivityLevel.NONE
    thumbnail_path: Optional[str] = None
    text_snippet: Optional[str] = None
    id: str = field(default_factory=_new_event_id)

    @property
    def duration_seconds(self) -> float:
        return (self.timestamp_end - self.timestamp_start).total_seconds()

    @classmethod
    def sensitive_placeholder(
        cls, app_bundle_id: str, app_name: str, at: datetime
    ) -> "ActivityEvent":
        return cls(
            timestamp_start=at,
            timestamp_end=at,
            app_bundle_id=app_bundle_id,
            app_name=app_name,
            window_title=REDACTED_TITLE,
            summary=REDACTED_SUMMARY,
            tags=list(SENSITIVE_TAGS),
            sensitivity_flag=SensitivityLevel.BLOCKED,
        )

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted record layout.

        Blocked events never carry their original title, summary, thumbnail
        or text, whatever the in-memory object holds.
        """
        blocked = self.sensitivity_flag >= SensitivityLevel.BLOCKED
        return {
            "id": self.id,
            "ts_start": self.timestamp_start.timestamp(),
            "ts_end": self.timestamp_end.timestamp(),
            "app_bundle": self.app_bundle_id,
            "app_name": self.app_name,
            "window_title": REDACTED_TITLE if blocked else self.window_title,
            "summary": REDACTED_SUMMARY if blocked else self.summary,
            "tags": json.dumps(list(self.tags) or list(DEFAULT_TAGS)),
            "sensitivity_flag": int(self.sensitivity_flag),
            "thumbnail_path": None if blocked else self.thumbnail_path,
            "text_snippet": None if blocked else self.text_snippet,
        }

    @classmethod
    def from_record(cls, row: Mapping[str, Any]) -> "ActivityEvent":
        try:
            tags = json.loads(row["tags"] or "[]")
        except (TypeError, ValueError):
            tags = []
        return cls(
            id=row["id"],
            timestamp_start=datetime.fromtimestamp(row["ts_start"]),
            timestamp_end=datetime.fromtimestamp(row["ts_end"]),
            app_bundle_id=row["app_bundle"] or "",
            app_name=row["app_name"] or "",
            window_title=row["window_title"] or "",
            summary=row["summary"] or "",
            tags=list(tags) or list(DEFAULT_TAGS),
            sensitivity_flag=SensitivityLevel(int(row["sensitivity_flag"] or 0)),
            thumbnail_path=row["thumbnail_path"],
            text_snippet=row["text_snippet"],
        )

"""Sparse pixel sampling to detect meaningful screen changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

import numpy as np

from .models import DiffResult, ImageBuffer

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FrameComparator:
    """Compares frames on a regular sampling grid instead of pixel by pixel.

    ``sample_step`` of 4 samples one pixel in sixteen; ``blank_step`` uses a
    coarser grid since blank detection only needs a rough colour census.
    """

    threshold: float = 0.05
    sample_step: int = 4
    pixel_threshold: int = 30
    blank_step: int = 8
    blank_tolerance: int = 10
    blank_fraction: float = 0.95

    def __post_init__(self) -> None:
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {self.threshold}")
        if self.sample_step < 1 or self.blank_step < 1:
            raise ValueError("sampling steps must be positive")

    def with_threshold(self, threshold: float) -> "FrameComparator":
        if threshold == self.threshold:
            return self
        return replace(self, threshold=threshold)

    def compare(
        self, a: ImageBuffer, b: ImageBuffer, timestamp: Optional[datetime] = None
    ) -> DiffResult:
        now = timestamp or datetime.now()

        # Resizing to compare is not worth it; a new size is a new scene.
        if a.width != b.width or a.height != b.height:
            return DiffResult(change_ratio=1.0, timestamp=now, is_significant=True)

        try:
            pixels_a = a.as_array()
            pixels_b = b.as_array()
        except ValueError as exc:
            logger.debug("Unreadable frame treated as full change: %s", exc)
            return DiffResult(change_ratio=1.0, timestamp=now, is_significant=True)

        step = self.sample_step
        sampled_a = pixels_a[::step, ::step, :3].astype(np.int16)
        sampled_b = pixels_b[::step, ::step, :3].astype(np.int16)
        total = sampled_a.shape[0] * sampled_a.shape[1]
        if total == 0:
            return DiffResult(change_ratio=0.0, timestamp=now, is_significant=False)

        differing = np.any(np.abs(sampled_a - sampled_b) > self.pixel_threshold, axis=2)
        ratio = float(np.count_nonzero(differing)) / total
        return DiffResult(
            change_ratio=ratio,
            timestamp=now,
            is_significant=ratio >= self.threshold,
        )

    def is_blank_screen(self, frame: ImageBuffer) -> bool:
        """Return True for near-uniform frames such as lock screens."""
        try:
            pixels = frame.as_array()
        except ValueError:
            return False
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            return False

        reference = pixels[0, 0, :3].astype(np.int16)
        step = self.blank_step
        sampled = pixels[::step, ::step, :3].astype(np.int16)
        same = np.all(np.abs(sampled - reference) < self.blank_tolerance, axis=2)
        return float(np.count_nonzero(same)) / same.size > self.blank_fraction

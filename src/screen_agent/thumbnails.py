"""Small JPEG thumbnails for recorded events."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PIL import Image

from .models import ImageBuffer

logger = logging.getLogger(__name__)

JPEG_QUALITY = 50


class ThumbnailStore:
    """Writes downscaled frames as ``<event id>.jpg`` under one directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, event_id: str) -> Path:
        return self.directory / f"{event_id}.jpg"

    def save(self, frame: ImageBuffer, event_id: str, max_width: int) -> Optional[str]:
        try:
            image = frame.to_image().convert("RGB")
            scale = min(max_width / image.width, 1.0) if image.width else 1.0
            size = (max(1, int(image.width * scale)), max(1, int(image.height * scale)))
            if size != image.size:
                image = image.resize(size, Image.Resampling.BILINEAR)
            self.directory.mkdir(parents=True, exist_ok=True)
            path = self.path_for(event_id)
            image.save(path, format="JPEG", quality=JPEG_QUALITY)
        except (OSError, ValueError):
            logger.exception("Failed to save thumbnail for event %s", event_id)
            return None
        return str(path)

"""Helpers for locating application directories."""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs


APP_NAME = "ScreenAgent"
APP_AUTHOR = "ScreenAgent"


def get_data_dir() -> Path:
    """Return the base directory for persistent data."""
    dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
    path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    return get_data_dir() / "screenagent.db"


def get_settings_path() -> Path:
    return get_data_dir() / "settings.json"


def get_thumbnail_dir() -> Path:
    return get_data_dir() / "thumbnails"

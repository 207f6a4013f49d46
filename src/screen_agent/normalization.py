"""Utilities to turn window metadata into event summaries and tags."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .models import DEFAULT_TAGS

_TITLE_SUFFIXES: tuple[str, ...] = (
    " — Mozilla Firefox",
    " - Mozilla Firefox",
    " - Google Chrome",
    " – Safari",
    " - Safari",
    " - Microsoft Edge",
    " - Brave",
    " - Opera",
    " - Visual Studio Code",
    " — Visual Studio Code",
)

_EXTRA_TAB_COUNT_PATTERN = re.compile(r"\s+and\s+\d+\s+more\s+pages?", re.IGNORECASE)


def clean_window_title(window_title: Optional[str]) -> str:
    """Remove browser and editor chrome to surface the document or tab name."""
    if not window_title:
        return ""
    normalized = window_title.strip()
    for suffix in _TITLE_SUFFIXES:
        if normalized.endswith(suffix):
            normalized = normalized[: -len(suffix)].rstrip(" -")
            break

    normalized = _strip_tab_count(normalized)
    return re.sub(r"\s{2,}", " ", normalized).strip()


def _strip_tab_count(value: str) -> str:
    cleaned = _EXTRA_TAB_COUNT_PATTERN.sub("", value)
    return cleaned.strip(" -|")


def generate_summary(app_name: str, window_title: Optional[str]) -> str:
    title = clean_window_title(window_title)
    if not title:
        return f"Using {app_name}"
    return f"{app_name}: {title}"


@dataclass(frozen=True, slots=True)
class TagRule:
    tag: str
    bundle_keywords: tuple[str, ...] = ()
    title_keywords: tuple[str, ...] = ()

    def matches(self, bundle: str, title: str) -> bool:
        return any(k in bundle for k in self.bundle_keywords) or any(
            k in title for k in self.title_keywords
        )


# Evaluated top to bottom; output order follows this table.
TAG_RULES: tuple[TagRule, ...] = (
    TagRule("browsing", ("browser", "safari", "chrome", "firefox", "webkit", "msedge", "brave")),
    TagRule("terminal", ("terminal", "iterm", "warp", "alacritty", "windowsterminal", "wezterm")),
    TagRule("coding", ("code", "xcode", "intellij", "pycharm", "sublime", "vim", "cursor")),
    TagRule("email", ("mail", "outlook"), ("inbox", "mail")),
    TagRule("communication", ("slack", "discord", "teams", "zoom", "messages")),
    TagRule("files", ("finder", "pathfinder", "explorer")),
    TagRule("writing", ("pages", "word", "docs", "notion", "obsidian", "bear")),
    TagRule("design", ("figma", "sketch", "photoshop", "preview")),
    TagRule("error", (), ("error", "exception", "failed", "crash")),
    TagRule("settings", (), ("settings", "preferences", "configuration")),
    TagRule("search", (), ("search", "google")),
)


def generate_tags(bundle_id: Optional[str], window_title: Optional[str]) -> list[str]:
    bundle = (bundle_id or "").lower()
    title = (window_title or "").lower()
    tags = [rule.tag for rule in TAG_RULES if rule.matches(bundle, title)]
    return tags or list(DEFAULT_TAGS)

"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from .db import database_connection, fetch_events_for_day, search_events
from .models import ActivityEvent, SensitivityLevel


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def print_daily_summary(self, day: datetime) -> None:
        with database_connection(self.db_path) as conn:
            events = fetch_events_for_day(conn, day)
        if not events:
            print("No activity recorded for the selected day.")
            return

        recorded = [e for e in events if e.sensitivity_flag < SensitivityLevel.BLOCKED]
        sensitive = len(events) - len(recorded)
        total = sum(e.duration_seconds for e in recorded)

        print(f"Summary for {day.strftime('%Y-%m-%d')}")
        print("-" * 40)
        print(f"Events:          {len(events)}")
        print(f"Recorded time:   {format_duration(total)}")
        print(f"Sensitive hits:  {sensitive}")
        print()

        top_apps = aggregate_by_app(recorded)
        if top_apps:
            print("Top applications:")
            for app_name, seconds in top_apps[:5]:
                print(f"  {app_name:<30} {format_duration(seconds)}")

        top_tags = aggregate_by_tag(recorded)
        if top_tags:
            print()
            print("Top tags:")
            for tag, seconds in top_tags[:5]:
                print(f"  {tag:<30} {format_duration(seconds)}")

    def print_search(
        self,
        keyword: str = "",
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        app_bundle: Optional[str] = None,
        limit: int = 50,
    ) -> None:
        with database_connection(self.db_path) as conn:
            events = search_events(
                conn,
                keyword=keyword,
                date_from=date_from,
                date_to=date_to,
                app_bundle=app_bundle,
                limit=limit,
            )
        if not events:
            print("No matching events.")
            return
        for event in events:
            print(format_event_line(event))


def aggregate_by_app(events: Iterable[ActivityEvent]) -> list[tuple[str, float]]:
    totals: defaultdict[str, float] = defaultdict(float)
    for event in events:
        totals[event.app_name or event.app_bundle_id or "Unknown"] += event.duration_seconds
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def aggregate_by_tag(events: Iterable[ActivityEvent]) -> list[tuple[str, float]]:
    totals: defaultdict[str, float] = defaultdict(float)
    for event in events:
        for tag in event.tags:
            totals[tag] += event.duration_seconds
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def format_event_line(event: ActivityEvent) -> str:
    start = event.timestamp_start.strftime("%Y-%m-%d %H:%M:%S")
    tags = ",".join(event.tags)
    return f"{start}  {format_duration(event.duration_seconds)}  {event.summary[:60]:<60}  [{tags}]"


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"

"""FastAPI application exposing a local JSON API over recorded events."""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from .collector import ScreenCollector
from .config import AgentSettings
from .db import (
    count_events_since,
    database_connection,
    delete_event,
    fetch_app_bundles,
    fetch_summary_by_day,
    search_events,
)
from .models import ActivityEvent, SensitivityLevel
from .paths import get_db_path

logger = logging.getLogger(__name__)


class CollectorRunner:
    """Manage the screen collector in a background thread."""

    def __init__(self, db_path: Path, settings: AgentSettings) -> None:
        self._db_path = Path(db_path)
        self._settings = settings
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._collector: Optional[ScreenCollector] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            collector = ScreenCollector(db_path=self._db_path, settings=self._settings)
            thread = threading.Thread(
                target=collector.run_until_stopped,
                args=(stop_event,),
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            self._collector = collector
            thread.start()
            logger.info("Collector background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
            self._collector = None
        if thread:
            thread.join(timeout=10)
            logger.info("Collector background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def current_event(self) -> Optional[ActivityEvent]:
        with self._lock:
            collector = self._collector
        return collector.segmenter.current_event if collector else None


class CollectorControl(BaseModel):
    running: bool

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[AgentSettings] = None,
    autostart: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    resolved_settings = settings or AgentSettings()
    runner = CollectorRunner(resolved_db_path, resolved_settings)

    app = FastAPI(title="Screen Agent", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.collector_runner = runner

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        if autostart:
            runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        runner: CollectorRunner = request.app.state.collector_runner
        with database_connection(request.app.state.db_path) as conn:
            events_today = count_events_since(conn, _start_of_day(datetime.now()))
        current = runner.current_event()
        segmenter_settings = resolved_settings.segmenter
        return {
            "collector_running": runner.is_running(),
            "database_path": str(request.app.state.db_path),
            "events_today": events_today,
            "current_event": _event_payload(current) if current else None,
            "frame_rate": resolved_settings.capture.frame_rate,
            "frame_diff_threshold": segmenter_settings.frame_diff_threshold,
            "idle_coalesce_seconds": segmenter_settings.idle_coalesce_seconds,
            "excluded_apps": sorted(segmenter_settings.excluded_apps),
        }

    @app.post("/api/collector")
    def control_collector(payload: CollectorControl, request: Request) -> Dict[str, Any]:
        runner: CollectorRunner = request.app.state.collector_runner
        if payload.running:
            runner.start()
        else:
            runner.stop()
        return {"collector_running": runner.is_running()}

    @app.get("/api/events")
    def events(
        request: Request,
        keyword: str = Query(default="", description="Matches summary, title, tags or app name."),
        date_from: Optional[str] = Query(default=None, description="ISO date or datetime."),
        date_to: Optional[str] = Query(default=None, description="ISO date or datetime."),
        app_bundle: Optional[str] = Query(default=None),
        limit: int = Query(default=200, ge=1, le=1000),
    ) -> Dict[str, Any]:
        start = _parse_datetime(date_from) if date_from else None
        end = _parse_datetime(date_to, end_of_day=True) if date_to else None
        if start and end and end < start:
            raise HTTPException(
                status_code=400, detail="date_to must be on or after date_from"
            )
        with database_connection(request.app.state.db_path) as conn:
            results = search_events(
                conn,
                keyword=keyword,
                date_from=start,
                date_to=end,
                app_bundle=app_bundle,
                limit=limit,
            )
        return {"events": [_event_payload(event) for event in results]}

    @app.get("/api/events/count")
    def events_count(
        request: Request,
        since: Optional[str] = Query(
            default=None, description="ISO date or datetime; defaults to today."
        ),
    ) -> Dict[str, Any]:
        start = _parse_datetime(since) if since else _start_of_day(datetime.now())
        with database_connection(request.app.state.db_path) as conn:
            total = count_events_since(conn, start)
        return {"since": start.isoformat(), "count": total}

    @app.delete("/api/events/{event_id}")
    def delete_event_endpoint(event_id: str, request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            try:
                delete_event(conn, event_id)
            except ValueError as exc:
                raise HTTPException(status_code=404, detail="Event not found") from exc
        return {"deleted": event_id}

    @app.get("/api/apps")
    def apps(request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            bundles = fetch_app_bundles(conn)
        return {"apps": bundles}

    @app.get("/api/summary")
    def summary(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        target_day = _parse_date(date)
        with database_connection(request.app.state.db_path) as conn:
            rows = fetch_summary_by_day(conn, target_day)
        recorded = [row for row in rows if row["sensitivity_flag"] < SensitivityLevel.BLOCKED]
        return {
            "date": target_day.strftime("%Y-%m-%d"),
            "totals": {
                "recorded_seconds": sum(row["seconds"] or 0 for row in recorded),
                "events": sum(row["events"] for row in rows),
            },
            "entries": [
                {
                    "app_bundle": row["app_bundle"],
                    "app_name": row["app_name"],
                    "events": row["events"],
                    "seconds": row["seconds"] or 0,
                    "sensitivity_flag": row["sensitivity_flag"],
                }
                for row in rows
            ],
        }

    return app


def _parse_date(value: Optional[str]) -> datetime:
    if not value:
        return _start_of_day(datetime.now())
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
    return _start_of_day(parsed)


def _parse_datetime(value: str, *, end_of_day: bool = False) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
    if end_of_day and _is_date_only(value):
        return datetime.combine(parsed.date(), time.max)
    return parsed


def _is_date_only(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _event_payload(event: ActivityEvent) -> Dict[str, Any]:
    record = event.to_record()
    return {
        "id": record["id"],
        "start_time": event.timestamp_start.isoformat(),
        "end_time": event.timestamp_end.isoformat(),
        "duration_seconds": event.duration_seconds,
        "app_bundle": record["app_bundle"],
        "app_name": record["app_name"],
        "window_title": record["window_title"],
        "summary": record["summary"],
        "tags": list(event.tags),
        "sensitivity_flag": record["sensitivity_flag"],
        "thumbnail_path": record["thumbnail_path"],
        "text_snippet": record["text_snippet"],
    }

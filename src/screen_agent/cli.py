"""Command-line interface for the screen agent."""

from __future__ import annotations

import logging
from datetime import datetime, time
from pathlib import Path
from typing import Optional

import typer

from .config import AgentSettings, CaptureSettings, SegmenterSettings
from .paths import get_db_path, get_settings_path
from .server_runner import run_dashboard

app = typer.Typer(help="Local-first screen activity recorder.")


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _load_settings(
    settings_path: Optional[Path],
    frame_rate: Optional[float] = None,
    threshold: Optional[float] = None,
    idle_seconds: Optional[float] = None,
    exclude: Optional[list[str]] = None,
    thumbnails: Optional[bool] = None,
) -> AgentSettings:
    settings = AgentSettings.load(settings_path or get_settings_path())
    seg = settings.segmenter
    try:
        segmenter = SegmenterSettings(
            frame_diff_threshold=threshold if threshold is not None else seg.frame_diff_threshold,
            idle_coalesce_seconds=(
                idle_seconds if idle_seconds is not None else seg.idle_coalesce_seconds
            ),
            excluded_apps=seg.excluded_apps | frozenset(exclude or ()),
            thumbnail_enabled=thumbnails if thumbnails is not None else seg.thumbnail_enabled,
            thumbnail_max_width=seg.thumbnail_max_width,
            text_snippet_max=seg.text_snippet_max,
        )
        capture = (
            CaptureSettings.from_intervals(frame_rate, downscale=settings.capture.downscale)
            if frame_rate is not None
            else settings.capture
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return AgentSettings(segmenter=segmenter, capture=capture)


def _parse_date(
    value: Optional[str], option: str, *, end_of_day: bool = False
) -> Optional[datetime]:
    """Parse a CLI date; a bare date used as an upper bound covers the whole day."""
    if not value:
        return None
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        pass
    else:
        return datetime.combine(parsed.date(), time.max) if end_of_day else parsed
    raise typer.BadParameter(f"Invalid date for {option}: {value!r}")


@app.command()
def collect(
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the event SQLite database.",
    ),
    settings_path: Optional[Path] = typer.Option(
        None, "--settings", path_type=Path, help="Settings JSON file."
    ),
    frame_rate: Optional[float] = typer.Option(
        None,
        "--fps",
        min=0.1,
        max=10.0,
        help="Frames captured per second.",
    ),
    threshold: Optional[float] = typer.Option(
        None,
        "--threshold",
        min=0.0,
        max=1.0,
        help="Fraction of sampled pixels that must change to count as activity.",
    ),
    idle_seconds: Optional[float] = typer.Option(
        None,
        "--idle-coalesce",
        min=1.0,
        help="Seconds without visual change before an event is closed.",
    ),
    exclude: Optional[list[str]] = typer.Option(
        None, "--exclude", help="Bundle id / process name to ignore (repeatable)."
    ),
    thumbnails: Optional[bool] = typer.Option(
        None, "--thumbnails/--no-thumbnails", help="Save a thumbnail per event."
    ),
) -> None:
    """Run the background collector until interrupted."""
    from .collector import ScreenCollector

    settings = _load_settings(
        settings_path, frame_rate, threshold, idle_seconds, exclude, thumbnails
    )
    collector = ScreenCollector(db_path=db_path or get_db_path(), settings=settings)
    collector.run_forever()


@app.command()
def search(
    keyword: str = typer.Argument("", help="Text to look for in summaries, titles and tags."),
    date_from: Optional[str] = typer.Option(None, "--from", help="Earliest start (YYYY-MM-DD)."),
    date_to: Optional[str] = typer.Option(None, "--to", help="Latest end (YYYY-MM-DD, whole day included)."),
    app_bundle: Optional[str] = typer.Option(None, "--app", help="Restrict to a bundle id."),
    limit: int = typer.Option(50, "--limit", min=1, max=1000),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the event SQLite database."
    ),
) -> None:
    """List recorded events matching the filters."""
    from .reporting import SummaryPrinter

    printer = SummaryPrinter(db_path=db_path or get_db_path())
    printer.print_search(
        keyword=keyword,
        date_from=_parse_date(date_from, "--from"),
        date_to=_parse_date(date_to, "--to", end_of_day=True),
        app_bundle=app_bundle,
        limit=limit,
    )


@app.command()
def summary(
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to summarize. Defaults to today.",
    ),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the event SQLite database.",
    ),
) -> None:
    """Print a high-level summary for a specific day."""
    from .reporting import SummaryPrinter

    target = _parse_date(date, "--date") or datetime.now()
    summary_printer = SummaryPrinter(db_path=db_path or get_db_path())
    summary_printer.print_daily_summary(target)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the event SQLite database."
    ),
    settings_path: Optional[Path] = typer.Option(
        None, "--settings", path_type=Path, help="Settings JSON file."
    ),
    run_collector: bool = typer.Option(
        True,
        "--collect/--no-collect",
        help="Run the collector in the background while serving.",
    ),
) -> None:
    """Serve the local JSON API, optionally with the background collector."""
    run_dashboard(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        settings=_load_settings(settings_path),
        autostart=run_collector,
    )

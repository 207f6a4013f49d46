from datetime import datetime, timedelta

import pytest
from typer.testing import CliRunner

from screen_agent import cli
from screen_agent.db import database_connection, insert_event
from screen_agent.models import ActivityEvent

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "events.db"
    start = datetime(2026, 10, 15, 16, 0, 0)
    with database_connection(path) as conn:
        insert_event(
            conn,
            ActivityEvent(
                timestamp_start=start,
                timestamp_end=start + timedelta(minutes=25),
                app_bundle_id="com.apple.Terminal",
                app_name="Terminal",
                window_title="pytest",
                summary="Terminal: pytest",
                tags=["terminal"],
            ),
        )
    return path


def test_search_command(db_path):
    result = runner.invoke(cli.app, ["search", "pytest", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "Terminal: pytest" in result.output


def test_search_same_day_range_includes_that_day(db_path):
    result = runner.invoke(
        cli.app,
        ["search", "--from", "2026-10-15", "--to", "2026-10-15", "--db", str(db_path)],
    )

    assert result.exit_code == 0
    assert "Terminal: pytest" in result.output


def test_parse_date_upper_bound_covers_whole_day():
    end = cli._parse_date("2026-10-15", "--to", end_of_day=True)

    assert end.date() == datetime(2026, 10, 15).date()
    assert end.hour == 23 and end.minute == 59
    assert cli._parse_date("2026-10-15 08:30:00", "--to", end_of_day=True) == datetime(
        2026, 10, 15, 8, 30
    )


def test_search_rejects_bad_date(db_path):
    result = runner.invoke(cli.app, ["search", "--from", "last week", "--db", str(db_path)])

    assert result.exit_code != 0


def test_summary_command(db_path):
    result = runner.invoke(cli.app, ["summary", "--date", "2026-10-15", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "Recorded time:   00:25:00" in result.output


def test_load_settings_applies_overrides(tmp_path):
    settings = cli._load_settings(
        tmp_path / "settings.json",
        frame_rate=2.0,
        threshold=0.2,
        idle_seconds=10,
        exclude=["com.example.secret"],
        thumbnails=True,
    )

    assert settings.capture.frame_rate == 2.0
    assert settings.segmenter.frame_diff_threshold == 0.2
    assert settings.segmenter.idle_coalesce_seconds == 10
    assert settings.segmenter.excluded_apps == frozenset({"com.example.secret"})
    assert settings.segmenter.thumbnail_enabled is True


def test_web_command_passes_options(monkeypatch, db_path):
    calls = {}
    monkeypatch.setattr(cli, "run_dashboard", lambda **kwargs: calls.update(kwargs))

    result = runner.invoke(
        cli.app, ["web", "--port", "9000", "--no-collect", "--db", str(db_path)]
    )

    assert result.exit_code == 0
    assert calls["port"] == 9000
    assert calls["autostart"] is False
    assert calls["db_path"] == db_path

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from screen_agent.db import database_connection, insert_events
from screen_agent.models import ActivityEvent, SensitivityLevel
from screen_agent.webapp import create_app

DAY = datetime(2026, 10, 17, 14, 0, 0)


def make_event(offset_minutes: float, seconds: float = 120, **overrides) -> ActivityEvent:
    start = DAY + timedelta(minutes=offset_minutes)
    fields = dict(
        timestamp_start=start,
        timestamp_end=start + timedelta(seconds=seconds),
        app_bundle_id="com.microsoft.VSCode",
        app_name="Code",
        window_title="segmenter.py",
        summary="Code: segmenter.py",
        tags=["coding"],
    )
    fields.update(overrides)
    return ActivityEvent(**fields)


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "events.db"
    with database_connection(path) as conn:
        insert_events(
            conn,
            [
                make_event(0),
                make_event(10, seconds=60, app_bundle_id="com.apple.Safari", app_name="Safari",
                           window_title="Docs", summary="Safari: Docs", tags=["browsing"]),
                make_event(20, seconds=0, app_bundle_id="com.agilebits.onepassword7",
                           app_name="1Password", sensitivity_flag=SensitivityLevel.BLOCKED),
            ],
        )
    return path


@pytest.fixture
def client(db_path):
    app = create_app(db_path=db_path, autostart=False)
    with TestClient(app) as test_client:
        yield test_client


def test_status_reports_idle_collector(client, db_path):
    response = client.get("/api/status")

    assert response.status_code == 200
    body = response.json()
    assert body["collector_running"] is False
    assert body["current_event"] is None
    assert body["database_path"] == str(db_path)
    assert body["frame_diff_threshold"] == 0.05
    assert body["idle_coalesce_seconds"] == 30
    assert body["excluded_apps"] == []


def test_collector_control_rejects_unknown_fields(client):
    assert client.post("/api/collector", json={"running": False, "fps": 3}).status_code == 422

    response = client.post("/api/collector", json={"running": False})
    assert response.status_code == 200
    assert response.json() == {"collector_running": False}


def test_events_search(client):
    body = client.get("/api/events", params={"keyword": "segmenter"}).json()

    assert [event["app_name"] for event in body["events"]] == ["Code"]
    event = body["events"][0]
    assert event["duration_seconds"] == 120
    assert event["tags"] == ["coding"]
    assert event["start_time"] == DAY.isoformat()


def test_events_are_newest_first_and_blocked_redacted(client):
    events = client.get("/api/events").json()["events"]

    assert [event["app_name"] for event in events] == ["1Password", "Safari", "Code"]
    assert events[0]["window_title"] == "[Sensitive — not recorded]"
    assert events[0]["sensitivity_flag"] == 3


def test_events_date_filters(client):
    params = {
        "date_from": (DAY + timedelta(minutes=5)).isoformat(),
        "date_to": (DAY + timedelta(minutes=15)).isoformat(),
    }

    events = client.get("/api/events", params=params).json()["events"]

    assert [event["app_name"] for event in events] == ["Safari"]


def test_same_day_date_range_includes_the_whole_day(client):
    params = {"date_from": "2026-10-17", "date_to": "2026-10-17"}

    events = client.get("/api/events", params=params).json()["events"]

    assert [event["app_name"] for event in events] == ["1Password", "Safari", "Code"]


def test_events_rejects_bad_dates(client):
    assert client.get("/api/events", params={"date_from": "yesterday"}).status_code == 400
    reversed_range = {"date_from": "2026-10-18", "date_to": "2026-10-17"}
    assert client.get("/api/events", params=reversed_range).status_code == 400
    assert client.get("/api/events", params={"limit": 0}).status_code == 422


def test_events_count(client):
    body = client.get("/api/events/count", params={"since": "2026-10-17"}).json()

    assert body == {"since": "2026-10-17T00:00:00", "count": 3}


def test_delete_event(client):
    event_id = client.get("/api/events", params={"app_bundle": "com.apple.Safari"}).json()[
        "events"
    ][0]["id"]

    assert client.delete(f"/api/events/{event_id}").json() == {"deleted": event_id}
    assert client.delete(f"/api/events/{event_id}").status_code == 404


def test_apps(client):
    assert client.get("/api/apps").json() == {
        "apps": ["com.agilebits.onepassword7", "com.apple.Safari", "com.microsoft.VSCode"]
    }


def test_summary_excludes_blocked_time_from_totals(client):
    body = client.get("/api/summary", params={"date": "2026-10-17"}).json()

    assert body["date"] == "2026-10-17"
    assert body["totals"] == {"recorded_seconds": 180, "events": 3}
    assert [entry["app_name"] for entry in body["entries"]][:2] == ["Code", "Safari"]


def test_summary_rejects_bad_date(client):
    assert client.get("/api/summary", params={"date": "17/10/2026"}).status_code == 400

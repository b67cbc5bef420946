"""Tests for the HTTP layer."""

import importlib
import logging
from datetime import datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tutor_assist.api import server
from tutor_assist.api.server import create_app
from tutor_assist.core.config import Settings
from tutor_assist.engine.store import InMemoryStore

NOW = datetime(2026, 3, 10, 18, 0)

ROSTER = [
    {
        "id": "s1",
        "name": "Alice",
        "session_time": "10:00",
        "phone": "+201000000001",
        "sessions": [
            {"id": "a1", "date": "2026-03-10", "time": "10:00"},
            {"id": "a2", "date": "2026-03-10", "time": "14:00", "status": "cancelled"},
        ],
    },
    {
        "id": "s2",
        "name": "Omar",
        "sessions": [{"id": "o1", "date": "2026-03-10", "time": "12:00"}],
    },
]
PAID = [
    {"student_id": "s1", "payments": [{"month": 2, "year": 2026, "is_paid": True}]},
    {"student_id": "s2", "payments": [{"month": 2, "year": 2026, "is_paid": True}]},
]


@pytest.fixture
def client():
    app = create_app(Settings(), store=InMemoryStore(), clock=lambda: NOW)
    return TestClient(app)


def test_health(client):
    response = client.get("/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["components"]["store"] == "InMemoryStore"


def test_request_id_is_echoed(client):
    response = client.get("/v1/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"


@pytest.mark.parametrize("time, duration, severity, gap", [
    ("10:30", 60, "error", -30),
    ("11:05", 30, "warning", 5),
    ("13:30", 60, "none", None),
])
def test_conflict_check(client, time, duration, severity, gap):
    response = client.post("/v1/conflicts/check", json={
        "candidate": {"date": "2026-03-10", "start_time": time, "duration_minutes": duration},
        "roster": ROSTER,
    })
    body = response.json()
    assert response.status_code == 200
    assert body["severity"] == severity
    if gap is None:
        assert body["conflicts"] == []
    else:
        assert body["conflicts"][0]["gap"] == gap
        assert body["conflicts"][0]["student_name"] == "Alice"


def test_restore_check(client):
    response = client.post("/v1/conflicts/restore", json={
        "roster": ROSTER, "student_id": "s1", "session_id": "a2",
    })
    assert response.json()["severity"] == "none"


def test_scan_and_day_overview(client):
    scan = client.post("/v1/conflicts/scan", json={"roster": ROSTER}).json()
    assert scan["results"] == {}

    day = client.post("/v1/schedule/day", json={"roster": ROSTER, "date": "2026-03-10"}).json()
    assert [s["session_id"] for s in day["sessions"]] == ["a1", "o1"]
    assert day["sessions"][0]["gap_after"] == 60


def test_slot_suggestions(client):
    response = client.post("/v1/slots/suggest", json={
        "roster": ROSTER, "date": "2026-03-10", "duration_minutes": 60,
        "range_start": "08:00", "range_end": "13:00",
    })
    times = [s["time"] for s in response.json()["slots"]]
    assert times == ["08:00", "08:30"]


def test_invalid_body_is_rejected(client):
    response = client.post("/v1/conflicts/check", json={"candidate": {"date": "not a date"}, "roster": []})
    assert response.status_code == 422


def test_sync_dismiss_and_history(client):
    sync = client.post("/v1/suggestions/sync", json={"roster": ROSTER, "payments": PAID}).json()
    assert sync["new_interrupt"] is True
    current = sync["current"]
    assert current["type"] == "end_of_day"
    assert current["context"]["count"] == 2

    assert client.post(f"/v1/suggestions/{current['id']}/dismiss").status_code == 200
    assert client.post(f"/v1/suggestions/{current['id']}/dismiss").status_code == 404

    again = client.post("/v1/suggestions/sync", json={"roster": ROSTER, "payments": PAID}).json()
    assert again["current"] is None or again["current"]["id"] != current["id"]

    history = client.get("/v1/suggestions/history").json()
    assert history["total"] == 1
    assert history["results"][0]["reason"] == "manual"
    assert client.get("/v1/stats").json()["by_reason"]["manual"] == 1


def test_action_and_resolve(client):
    client.post("/v1/suggestions/sync", json={"roster": ROSTER, "payments": []})
    current = client.get("/v1/suggestions/current").json()
    assert current["interrupt"] is True
    assert current["pending_count"] == 3

    resolved = client.post("/v1/suggestions/resolve", json={"entity_type": "payment", "entity_id": "s2"})
    assert resolved.json() == {"resolved": 1}
    assert client.post("/v1/suggestions/resolve", json={}).status_code == 400

    top = client.get("/v1/suggestions/current").json()["current"]
    assert client.post(f"/v1/suggestions/{top['id']}/action").json()["status"] == "actioned"
    assert client.post("/v1/suggestions/missing/action").status_code == 404

    by_subject = client.get("/v1/suggestions/history", params={"subject_id": "s2"}).json()
    assert [r["reason"] for r in by_subject["results"]] == ["condition_resolved"]


def test_cancellation_policy(client):
    student = dict(ROSTER[0], cancellation_policy={"monthly_limit": 1, "auto_notify_parent": True})
    body = client.post("/v1/cancellations/policy", json={"student": student}).json()
    assert body["month"] == "2026-03"
    assert body["count"] == 1
    assert body["limit_reached"] is True
    assert body["notify_parent"] is True
    assert body["remaining"] == 0


def test_importing_the_server_leaves_root_logging_alone():
    handlers = list(logging.getLogger().handlers)
    importlib.reload(server)
    assert logging.getLogger().handlers == handlers
    assert isinstance(server.app, FastAPI)
    assert server.app is server.app

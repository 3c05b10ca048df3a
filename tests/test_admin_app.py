from __future__ import annotations

import inspect
from datetime import date
from pathlib import Path

from fastapi.testclient import TestClient

from quest_penalty.admin_app import build_admin_app
from quest_penalty.config import Settings
from quest_penalty.db import Database
from quest_penalty.models import QuestPenaltyTracker

READ_QUEST = {"id": "read", "title": "Read", "due_date": "2026-02-16", "repeat_policy": "daily"}


def _client(tmp_path: Path, token: str | None = None) -> tuple[TestClient, Database]:
    settings = Settings(
        database_path=tmp_path / "app.db",
        tz="Europe/Oslo",
        quests_path=tmp_path / "quests.yaml",
        admin_panel_token=token,
        admin_host="127.0.0.1",
        admin_port=8080,
        log_level="INFO",
    )
    db = Database(settings.database_path)
    return TestClient(build_admin_app(db, token, settings)), db


def test_token_required_when_configured(tmp_path) -> None:
    client, _ = _client(tmp_path, token="secret")
    assert client.get("/api/trackers").status_code == 401
    assert client.get("/api/trackers", headers={"x-admin-token": "secret"}).status_code == 200
    assert client.get("/api/trackers?token=secret").status_code == 200


def test_recalculate_applies_penalties_and_records_run(tmp_path) -> None:
    client, db = _client(tmp_path)
    db.save_tracker(QuestPenaltyTracker("read", date(2026, 2, 16)))

    resp = client.post(
        "/api/recalculate",
        json={"quests": [READ_QUEST], "now": "2026-02-19T10:00:00+01:00", "actor": "ops"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["run_date"] == "2026-02-19"
    assert body["total_damage"] == 9
    assert body["per_quest_damage"][0]["missed_units"] == 3
    assert body["rejected"] is None
    assert "9 damage" in body["message"]

    again = client.post("/api/recalculate", json={"quests": [READ_QUEST], "now": "2026-02-19T20:00:00+01:00"})
    assert again.json()["total_damage"] == 0

    runs = client.get("/api/runs").json()["runs"]
    assert [r["source"] for r in runs] == ["admin:admin", "admin:ops"]


def test_recalculate_rejects_bad_policy(tmp_path) -> None:
    client, _ = _client(tmp_path)
    quest = dict(READ_QUEST, repeat_policy="monthly")
    resp = client.post("/api/recalculate", json={"quests": [quest]})
    assert resp.status_code == 422


def test_recalculate_ignores_completed_quests(tmp_path) -> None:
    client, db = _client(tmp_path)
    quest = dict(READ_QUEST, is_completed=True)
    resp = client.post("/api/recalculate", json={"quests": [quest], "now": "2026-02-19T10:00:00+01:00"})
    assert resp.status_code == 200
    assert resp.json()["total_damage"] == 0
    assert db.load_tracker("read") is None


def test_tracker_detail_and_lifecycle(tmp_path) -> None:
    client, db = _client(tmp_path)
    assert client.get("/api/trackers/read").status_code == 404
    db.save_tracker(QuestPenaltyTracker("read", date(2026, 2, 16)))
    client.post("/api/recalculate", json={"quests": [READ_QUEST], "now": "2026-02-18T10:00:00+01:00"})

    detail = client.get("/api/trackers/read").json()
    assert detail["total_damage_taken"] == 6
    assert detail["last_check_date"] == "2026-02-18"
    assert len(detail["damage_history"]) == 1
    assert detail["damage_history"][0]["amount"] == 6

    assert client.post("/api/trackers/read/deactivate").status_code == 200
    assert client.get("/api/trackers?active_only=true").json()["trackers"] == []

    resp = client.post("/api/trackers/read/reactivate", json={"now": "2026-02-25T09:00:00+01:00"})
    assert resp.status_code == 200
    assert client.get("/api/trackers/read").json()["last_check_date"] == "2026-02-25"

    assert client.delete("/api/trackers/read").status_code == 200
    assert client.delete("/api/trackers/read").status_code == 404
    assert client.post("/api/trackers/read/deactivate").status_code == 404

    actions = [row["action"] for row in client.get("/api/audit").json()["rows"]]
    assert {"tracker.deactivate", "tracker.reactivate", "tracker.clear"} <= set(actions)


def test_config_update_coerces_and_ignores_unknown_keys(tmp_path) -> None:
    client, db = _client(tmp_path)
    resp = client.post(
        "/api/config",
        json={"updates": {"penalty.daily_unit": "-2", "penalty.repeat_overdue": "no", "economy.x": 1}},
    )
    assert resp.status_code == 200
    assert resp.json()["updated_count"] == 2
    tuning = db.get_penalty_tuning()
    assert tuning.daily_unit == 0
    assert tuning.repeat_overdue is False


def test_reset_endpoint_restores_default_tuning(tmp_path) -> None:
    client, db = _client(tmp_path)
    client.post("/api/config", json={"updates": {"penalty.weekly": 20}, "actor": "ops"})
    assert db.get_penalty_tuning().weekly == 20

    resp = client.post("/api/config/reset", json={"actor": "ops"})
    assert resp.status_code == 200
    assert resp.json()["config"]["penalty.weekly"] == 8

    rows = client.get("/api/audit?action=penalty.tuning").json()["rows"]
    assert [r["payload"]["new"] for r in rows] == [8, 20]


def test_recalculate_runs_off_the_event_loop(tmp_path) -> None:
    client, _ = _client(tmp_path)
    route = next(r for r in client.app.routes if getattr(r, "path", None) == "/api/recalculate")
    # sync endpoints are dispatched to the threadpool by FastAPI
    assert not inspect.iscoroutinefunction(route.endpoint)

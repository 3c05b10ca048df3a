from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from quest_penalty.config import Settings, load_settings
from quest_penalty.db import Database
from quest_penalty.jobs_runner import run_job, run_penalty_check, run_tracker_cleanup
from quest_penalty.models import QuestPenaltyTracker

QUESTS_YAML = """
quests:
  - id: read
    title: Read
    due_date: 2026-02-16
    repeat_policy: daily
  - id: taxes
    due_date: 2026-02-10
    repeat_policy: one_time
    is_completed: true
"""


def _settings(tmp_path: Path) -> Settings:
    quests = tmp_path / "quests.yaml"
    quests.write_text(QUESTS_YAML)
    return Settings(
        database_path=tmp_path / "app.db",
        tz="Europe/Oslo",
        quests_path=quests,
        admin_panel_token=None,
        admin_host="127.0.0.1",
        admin_port=8080,
        log_level="INFO",
    )


def test_penalty_check_applies_and_records(tmp_path) -> None:
    settings = _settings(tmp_path)
    db = Database(settings.database_path)
    db.save_tracker(QuestPenaltyTracker("read", date(2026, 2, 16)))

    now = datetime(2026, 2, 19, 6, 0, tzinfo=ZoneInfo("Europe/Oslo"))
    result = run_penalty_check(db, settings, now=now)
    assert result.total_damage == 9
    assert result.delivered_damage == 9
    assert db.total_damage_for_quest("read") == 9
    # completed quests are not handed to the engine
    assert db.load_tracker("taxes") is None

    runs = db.list_penalty_runs()
    assert len(runs) == 1
    assert runs[0]["source"] == "job"
    assert runs[0]["delivered_damage"] == 9


def test_penalty_check_respects_damage_cap(tmp_path) -> None:
    settings = _settings(tmp_path)
    db = Database(settings.database_path)
    db.set_app_config({"penalty.max_damage_per_run": 4}, actor="test")
    db.save_tracker(QuestPenaltyTracker("read", date(2026, 2, 16)))

    result = run_penalty_check(db, settings, now=datetime(2026, 2, 19, 6, 0, tzinfo=ZoneInfo("Europe/Oslo")))
    assert result.total_damage == 9
    assert result.delivered_damage == 4


def test_tracker_cleanup_deactivates_finished_quests(tmp_path) -> None:
    settings = _settings(tmp_path)
    db = Database(settings.database_path)
    db.save_tracker(QuestPenaltyTracker("read", date(2026, 2, 16)))
    db.save_tracker(QuestPenaltyTracker("taxes", date(2026, 2, 16)))

    result = run_tracker_cleanup(db, settings)
    assert result.deactivated == ("taxes",)
    assert result.failures == ()
    assert db.load_tracker("taxes").is_active is False  # type: ignore[union-attr]
    assert db.load_tracker("read").is_active is True  # type: ignore[union-attr]


def test_disabled_job_does_nothing(tmp_path) -> None:
    settings = _settings(tmp_path)
    db = Database(settings.database_path)
    db.set_app_config({"job.penalty_check_enabled": False}, actor="test")
    run_job("penalty_check", db, settings)
    assert db.list_penalty_runs() == []


def test_unknown_job_exits(tmp_path) -> None:
    settings = _settings(tmp_path)
    with pytest.raises(SystemExit):
        run_job("reminders", Database(settings.database_path), settings)


def test_load_settings_reads_env_file(tmp_path, monkeypatch) -> None:
    # setenv first so monkeypatch also undoes whatever the .env loader writes
    for key in ("DATABASE_PATH", "TZ", "QUESTS_PATH", "ADMIN_PANEL_TOKEN", "ADMIN_PORT", "LOG_LEVEL"):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    env = tmp_path / ".env"
    env.write_text('# local\nDATABASE_PATH="/tmp/x.db"\nADMIN_PORT=notaport\nLOG_LEVEL=debug\nADMIN_PANEL_TOKEN=\n')
    monkeypatch.setenv("QUESTS_PATH", "/srv/quests.yaml")

    settings = load_settings(env)
    assert settings.database_path == Path("/tmp/x.db")
    assert settings.quests_path == Path("/srv/quests.yaml")
    assert settings.tz == "Europe/Oslo"
    assert settings.admin_port == 8080
    assert settings.log_level == "DEBUG"
    assert settings.admin_panel_token is None

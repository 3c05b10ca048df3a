from __future__ import annotations

import json
from datetime import date

import pytest

from quest_penalty.errors import PolicyInputError
from quest_penalty.models import RepeatPolicy
from quest_penalty.quest_source import (
    load_all_snapshots,
    load_quest_snapshots,
    parse_repeat_policy,
    snapshot_from_dict,
)

QUESTS_YAML = """
quests:
  - id: read
    title: Read 20 pages
    due_date: 2026-02-16
    repeat_policy: daily
    completions: [2026-02-17]
  - id: gym
    due_date: 2026-02-16T18:00:00+01:00
    repeat_type: scheduled
    scheduled_days: [2, 4]
  - id: taxes
    due_date: 2026-02-10
    repeat_policy: once
    is_completed: true
  - id: broken
    repeat_policy: daily
  - just a string
"""


def test_parse_repeat_policy_aliases() -> None:
    assert parse_repeat_policy("Daily") is RepeatPolicy.DAILY
    assert parse_repeat_policy("one-time") is RepeatPolicy.ONE_TIME
    assert parse_repeat_policy(" once ") is RepeatPolicy.ONE_TIME
    with pytest.raises(PolicyInputError):
        parse_repeat_policy("monthly")
    with pytest.raises(PolicyInputError):
        parse_repeat_policy(None)


def test_snapshot_from_dict_validates_required_fields() -> None:
    with pytest.raises(PolicyInputError):
        snapshot_from_dict({"due_date": "2026-02-16", "repeat_policy": "daily"})
    with pytest.raises(PolicyInputError):
        snapshot_from_dict({"id": "x", "repeat_policy": "daily"})
    with pytest.raises(PolicyInputError):
        snapshot_from_dict({"id": "x", "due_date": "2026-02-16", "repeat_policy": "daily", "completions": "2026-02-17"})


def test_snapshot_from_dict_keeps_fields() -> None:
    quest = snapshot_from_dict(
        {
            "id": " gym ",
            "title": "Gym",
            "due_date": "2026-02-16",
            "repeat_policy": "scheduled",
            "scheduled_days": [2, 4],
        }
    )
    assert quest.id == "gym"
    assert quest.display_name == "Gym"
    assert quest.scheduled_days == frozenset({2, 4})
    assert quest.is_active is True
    assert quest.is_completed is False


def test_load_yaml_skips_bad_entries(tmp_path) -> None:
    path = tmp_path / "quests.yaml"
    path.write_text(QUESTS_YAML)

    quests = load_all_snapshots(path)
    assert [q.id for q in quests] == ["read", "gym", "taxes"]
    read = quests[0]
    assert read.due_date == date(2026, 2, 16)
    assert read.completions == frozenset({date(2026, 2, 17)})
    assert quests[1].repeat_policy is RepeatPolicy.SCHEDULED


def test_load_quest_snapshots_filters_finished(tmp_path) -> None:
    path = tmp_path / "quests.yaml"
    path.write_text(QUESTS_YAML)
    assert [q.id for q in load_quest_snapshots(path)] == ["read", "gym"]


def test_load_json_list(tmp_path) -> None:
    path = tmp_path / "quests.json"
    path.write_text(json.dumps([{"id": "read", "due_date": "2026-02-16", "repeat_policy": "weekly"}]))
    quests = load_all_snapshots(path)
    assert len(quests) == 1
    assert quests[0].repeat_policy is RepeatPolicy.WEEKLY


def test_missing_file_is_empty(tmp_path) -> None:
    assert load_all_snapshots(tmp_path / "nope.yaml") == []

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from quest_penalty.errors import PolicyInputError
from quest_penalty.models import QuestSnapshot, RepeatPolicy

logger = logging.getLogger(__name__)

POLICY_ALIASES = {
    "daily": RepeatPolicy.DAILY,
    "weekly": RepeatPolicy.WEEKLY,
    "one_time": RepeatPolicy.ONE_TIME,
    "onetime": RepeatPolicy.ONE_TIME,
    "one-time": RepeatPolicy.ONE_TIME,
    "once": RepeatPolicy.ONE_TIME,
    "scheduled": RepeatPolicy.SCHEDULED,
}


def parse_repeat_policy(value: Any) -> RepeatPolicy:
    key = str(value or "").strip().lower()
    policy = POLICY_ALIASES.get(key)
    if policy is None:
        raise PolicyInputError(f"unknown repeat policy: {value!r}")
    return policy


def snapshot_from_dict(payload: dict[str, Any]) -> QuestSnapshot:
    """Build a snapshot from a storage/API record.

    Dates are kept as given (``date``, ``datetime`` or ISO text); the policies
    normalize them and treat anything unreadable as zero missed units.
    """
    quest_id = str(payload.get("id", "")).strip()
    if not quest_id:
        raise PolicyInputError("quest id is required")
    if payload.get("due_date") is None:
        raise PolicyInputError(f"quest {quest_id} has no due_date")

    completions = payload.get("completions") or []
    scheduled = payload.get("scheduled_days") or []
    if not isinstance(completions, (list, tuple, set, frozenset)):
        raise PolicyInputError(f"quest {quest_id}: completions must be a list")
    if not isinstance(scheduled, (list, tuple, set, frozenset)):
        raise PolicyInputError(f"quest {quest_id}: scheduled_days must be a list")

    title = payload.get("title")
    return QuestSnapshot(
        id=quest_id,
        title=str(title).strip() if title else None,
        due_date=payload["due_date"],
        repeat_policy=parse_repeat_policy(payload.get("repeat_policy", payload.get("repeat_type"))),
        completions=frozenset(completions),
        scheduled_days=frozenset(scheduled),
        is_completed=bool(payload.get("is_completed", False)),
        is_active=bool(payload.get("is_active", True)),
    )


def _read_payload(path: Path) -> Any:
    text = path.read_text()
    if path.suffix.lower() == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def load_all_snapshots(path: Path) -> list[QuestSnapshot]:
    if not path.exists():
        logger.warning("quest file not found: %s", path)
        return []

    raw = _read_payload(path) or {}
    items = raw.get("quests", []) if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        logger.warning("quest file %s has no quest list", path)
        return []

    snapshots: list[QuestSnapshot] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("skipping quest #%s in %s: not a mapping", index, path)
            continue
        try:
            snapshots.append(snapshot_from_dict(item))
        except PolicyInputError as exc:
            logger.warning("skipping quest #%s in %s: %s", index, path, exc)
    return snapshots


def load_quest_snapshots(path: Path) -> list[QuestSnapshot]:
    """Active, not completed quests only: the set the engine expects."""
    return [q for q in load_all_snapshots(path) if q.is_active and not q.is_completed]

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime

from quest_penalty.config import Settings
from quest_penalty.db import Database
from quest_penalty.engine import HealthSink, PenaltyEngine
from quest_penalty.errors import PersistenceError
from quest_penalty.models import DamageEvent, QuestDamage, QuestSnapshot, RunFailure, RunResult
from quest_penalty.store import TrackerStore
from quest_penalty.time_utils import to_day

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DamageSummary:
    total_damage: int
    delivered_damage: int
    damage_date: date
    quests_affected: int
    failed_quests: int
    items: tuple[QuestDamage, ...]


@dataclass(frozen=True)
class CleanupResult:
    deactivated: tuple[str, ...]
    failures: tuple[RunFailure, ...]


def build_engine(db: Database, settings: Settings, health_sink: HealthSink | None = None) -> PenaltyEngine:
    return PenaltyEngine(db, tuning=db.get_penalty_tuning(settings.tz), health_sink=health_sink)


def summarize_run(result: RunResult) -> DamageSummary:
    return DamageSummary(
        total_damage=result.total_damage,
        delivered_damage=result.delivered_damage,
        damage_date=result.run_date,
        quests_affected=result.quests_affected,
        failed_quests=len(result.failures),
        items=result.per_quest_damage,
    )


def damage_history(store: TrackerStore, quest_id: str) -> list[DamageEvent]:
    """Events for one quest, newest first. Empty when the quest was never tracked."""
    tracker = store.load_tracker(quest_id)
    if tracker is None:
        return []
    return list(reversed(tracker.damage_history))


def total_damage_for_quest(store: TrackerStore, quest_id: str) -> int:
    tracker = store.load_tracker(quest_id)
    return tracker.total_damage_taken if tracker else 0


def cleanup_finished_quests(store: TrackerStore, quests: Iterable[QuestSnapshot]) -> CleanupResult:
    deactivated: list[str] = []
    failures: list[RunFailure] = []
    for quest in quests:
        if quest.is_active and not quest.is_completed:
            continue
        try:
            if store.deactivate_tracker(quest.id):
                deactivated.append(quest.id)
        except PersistenceError as exc:
            logger.warning("tracker deactivate failed quest_id=%s: %s", quest.id, exc)
            failures.append(RunFailure(quest.id, exc.kind, str(exc)))
    if deactivated:
        logger.info("deactivated %s tracker(s) for finished quests", len(deactivated))
    return CleanupResult(deactivated=tuple(deactivated), failures=tuple(failures))


def reactivate_quest(store: TrackerStore, quest_id: str, now: datetime | date, tz: str) -> bool:
    """Resume tracking from ``now``; the dormant period is never penalized."""
    return store.reactivate_tracker(quest_id, to_day(now, tz))

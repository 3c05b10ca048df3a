from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum

from quest_penalty.errors import ErrorKind


class RepeatPolicy(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    ONE_TIME = "one_time"
    SCHEDULED = "scheduled"


@dataclass(frozen=True)
class QuestSnapshot:
    id: str
    due_date: date | datetime | str
    repeat_policy: RepeatPolicy
    completions: frozenset[date] = frozenset()
    scheduled_days: frozenset[int] = frozenset()
    is_completed: bool = False
    is_active: bool = True
    title: str | None = None

    @property
    def display_name(self) -> str:
        return self.title or self.id


@dataclass(frozen=True)
class DamageEvent:
    id: str
    date: datetime
    amount: int
    reason: str

    @classmethod
    def create(cls, amount: int, reason: str, recorded_at: datetime) -> DamageEvent:
        if amount <= 0:
            raise ValueError("damage amount must be positive")
        return cls(id=uuid.uuid4().hex, date=recorded_at, amount=amount, reason=reason)


@dataclass(frozen=True)
class PenaltyResult:
    damage_amount: int
    missed_units: int
    reason: str
    window_start: date
    window_end: date


@dataclass(frozen=True)
class QuestPenaltyTracker:
    quest_id: str
    last_check_date: date
    total_damage_taken: int = 0
    damage_history: tuple[DamageEvent, ...] = ()
    is_active: bool = True

    @classmethod
    def start(cls, quest_id: str, day: date) -> QuestPenaltyTracker:
        return cls(quest_id=quest_id, last_check_date=day)

    def apply(self, result: PenaltyResult, recorded_at: datetime) -> QuestPenaltyTracker:
        history = self.damage_history
        total = self.total_damage_taken
        if result.damage_amount > 0:
            event = DamageEvent.create(result.damage_amount, result.reason, recorded_at)
            history = history + (event,)
            total += event.amount
        return replace(
            self,
            last_check_date=max(self.last_check_date, result.window_end),
            total_damage_taken=total,
            damage_history=history,
        )

    def deactivated(self) -> QuestPenaltyTracker:
        return replace(self, is_active=False)

    def reactivated(self, day: date) -> QuestPenaltyTracker:
        return replace(self, is_active=True, last_check_date=max(self.last_check_date, day))


@dataclass(frozen=True)
class QuestDamage:
    quest_id: str
    title: str
    repeat_policy: RepeatPolicy
    amount: int
    missed_units: int
    reason: str


@dataclass(frozen=True)
class RunFailure:
    quest_id: str
    kind: ErrorKind
    detail: str


@dataclass(frozen=True)
class RunResult:
    run_date: date
    total_damage: int = 0
    delivered_damage: int = 0
    per_quest_damage: tuple[QuestDamage, ...] = ()
    failures: tuple[RunFailure, ...] = ()
    skipped: tuple[str, ...] = ()
    rejected: ErrorKind | None = None
    coalesced: bool = False
    cancelled: bool = False
    trackers: tuple[QuestPenaltyTracker, ...] = field(default=(), repr=False)

    @property
    def quests_affected(self) -> int:
        return sum(1 for item in self.per_quest_damage if item.amount > 0)

    @property
    def retryable(self) -> bool:
        return self.rejected is ErrorKind.CONCURRENT_RUN_REJECTED

    def capped_damage(self, cap: int) -> int:
        if cap <= 0:
            return self.total_damage
        return min(self.total_damage, cap)

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from quest_penalty.errors import PolicyInputError
from quest_penalty.models import PenaltyResult, QuestSnapshot, RepeatPolicy
from quest_penalty.time_utils import DEFAULT_TZ, iter_days_after, to_day, weekday_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PenaltyTuning:
    daily_unit: int = 3
    weekly: int = 8
    one_time: int = 10
    scheduled_unit: int = 5
    # False: weekly/one-time penalties fire once per overdue episode instead of every run.
    repeat_overdue: bool = True
    # 0 = no cap on what is handed to the health sink.
    max_damage_per_run: int = 0
    tz: str = DEFAULT_TZ


PolicyFn = Callable[[QuestSnapshot, date, date, PenaltyTuning], PenaltyResult]


def _completion_days(quest: QuestSnapshot, tz: str) -> set[date]:
    return {to_day(value, tz) for value in quest.completions}


def _scheduled_weekdays(quest: QuestSnapshot) -> set[int]:
    days: set[int] = set()
    for raw in quest.scheduled_days:
        try:
            value = int(raw)
        except (TypeError, ValueError) as exc:
            raise PolicyInputError(f"bad weekday {raw!r}") from exc
        if not 1 <= value <= 7:
            raise PolicyInputError(f"weekday out of range: {value}")
        days.add(value)
    return days


def daily_penalty(quest: QuestSnapshot, window_start: date, now: date, tuning: PenaltyTuning) -> PenaltyResult:
    due_day = to_day(quest.due_date, tuning.tz)
    completed = _completion_days(quest, tuning.tz)
    missed = sum(1 for day in iter_days_after(window_start, now) if day > due_day and day not in completed)
    if missed:
        reason = f"Daily quest '{quest.display_name}' missed {missed} day(s)"
    else:
        reason = f"Daily quest '{quest.display_name}' not overdue"
    return PenaltyResult(missed * tuning.daily_unit, missed, reason, window_start, now)


def _overdue_once(
    quest: QuestSnapshot,
    window_start: date,
    now: date,
    tuning: PenaltyTuning,
    amount: int,
    label: str,
) -> PenaltyResult:
    due_day = to_day(quest.due_date, tuning.tz)
    overdue = window_start < now and due_day < now and not quest.is_completed
    if overdue and not tuning.repeat_overdue:
        # Only the run whose window first sees the quest overdue pays.
        overdue = due_day >= window_start
    if overdue:
        return PenaltyResult(
            amount,
            1,
            f"{label} quest '{quest.display_name}' overdue, missed 1 time",
            window_start,
            now,
        )
    return PenaltyResult(0, 0, f"{label} quest '{quest.display_name}' not overdue", window_start, now)


def weekly_penalty(quest: QuestSnapshot, window_start: date, now: date, tuning: PenaltyTuning) -> PenaltyResult:
    return _overdue_once(quest, window_start, now, tuning, tuning.weekly, "Weekly")


def one_time_penalty(quest: QuestSnapshot, window_start: date, now: date, tuning: PenaltyTuning) -> PenaltyResult:
    return _overdue_once(quest, window_start, now, tuning, tuning.one_time, "One-time")


def scheduled_penalty(quest: QuestSnapshot, window_start: date, now: date, tuning: PenaltyTuning) -> PenaltyResult:
    due_day = to_day(quest.due_date, tuning.tz)
    weekdays = _scheduled_weekdays(quest)
    completed = _completion_days(quest, tuning.tz)
    missed = sum(
        1
        for day in iter_days_after(window_start, now)
        if day > due_day and weekday_number(day) in weekdays and day not in completed
    )
    if missed:
        reason = f"Scheduled quest '{quest.display_name}' missed {missed} scheduled day(s)"
    else:
        reason = f"Scheduled quest '{quest.display_name}' not overdue"
    return PenaltyResult(missed * tuning.scheduled_unit, missed, reason, window_start, now)


POLICIES: dict[RepeatPolicy, PolicyFn] = {
    RepeatPolicy.DAILY: daily_penalty,
    RepeatPolicy.WEEKLY: weekly_penalty,
    RepeatPolicy.ONE_TIME: one_time_penalty,
    RepeatPolicy.SCHEDULED: scheduled_penalty,
}

_missing = set(RepeatPolicy) - set(POLICIES)
if _missing:
    raise RuntimeError(f"no penalty policy for: {sorted(p.value for p in _missing)}")


def evaluate(quest: QuestSnapshot, window_start: date, now: date, tuning: PenaltyTuning | None = None) -> PenaltyResult:
    tuning = tuning or PenaltyTuning()
    try:
        policy = POLICIES[RepeatPolicy(quest.repeat_policy)]
    except ValueError:
        logger.warning("unknown repeat policy quest_id=%s policy=%r", quest.id, quest.repeat_policy)
        return PenaltyResult(0, 0, f"Quest '{quest.display_name}' has unknown repeat policy", window_start, now)

    try:
        return policy(quest, window_start, now, tuning)
    except PolicyInputError as exc:
        logger.warning("malformed quest snapshot quest_id=%s: %s", quest.id, exc)
        return PenaltyResult(0, 0, f"Quest '{quest.display_name}' skipped: {exc}", window_start, now)

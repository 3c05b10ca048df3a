from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import date, datetime
from zoneinfo import ZoneInfo

from quest_penalty.errors import ErrorKind, PersistenceError
from quest_penalty.models import (
    QuestDamage,
    QuestPenaltyTracker,
    QuestSnapshot,
    RepeatPolicy,
    RunFailure,
    RunResult,
)
from quest_penalty.penalties import PenaltyTuning, evaluate
from quest_penalty.store import TrackerStore
from quest_penalty.time_utils import to_day

logger = logging.getLogger(__name__)

HealthSink = Callable[[int, tuple[QuestDamage, ...]], None]


class PenaltyEngine:
    """Applies neglect penalties to every quest handed to :meth:`run`.

    Only one run executes at a time. Each quest is committed on its own:
    its tracker is written to the store before its damage counts towards
    the run total, so a failed write leaves the window open for the next run.
    The write only lands if the stored tracker is still the one that was
    loaded; another engine on the same store turns it into a failure.
    """

    def __init__(
        self,
        store: TrackerStore,
        tuning: PenaltyTuning | None = None,
        health_sink: HealthSink | None = None,
    ) -> None:
        self.store = store
        self.tuning = tuning or PenaltyTuning()
        self.health_sink = health_sink
        self._lock = threading.Lock()
        self._in_flight: date | None = None

    def run(
        self,
        quests: Iterable[QuestSnapshot],
        now: datetime | date,
        *,
        wait: bool = False,
        cancel: threading.Event | None = None,
        tuning: PenaltyTuning | None = None,
    ) -> RunResult:
        tuning = tuning or self.tuning
        run_day = to_day(now, tuning.tz)
        if not self._lock.acquire(blocking=wait):
            in_flight = self._in_flight
            coalesced = in_flight is not None and in_flight >= run_day
            logger.info("penalty run rejected: run in flight day=%s coalesced=%s", in_flight, coalesced)
            return RunResult(
                run_day,
                rejected=ErrorKind.CONCURRENT_RUN_REJECTED,
                coalesced=coalesced,
            )
        try:
            self._in_flight = run_day
            return self._run_locked(list(quests), now, run_day, tuning, cancel)
        finally:
            self._in_flight = None
            self._lock.release()

    def _run_locked(
        self,
        quests: list[QuestSnapshot],
        now: datetime | date,
        run_day: date,
        tuning: PenaltyTuning,
        cancel: threading.Event | None,
    ) -> RunResult:
        recorded_at = now if isinstance(now, datetime) else datetime.combine(now, datetime.min.time())
        if recorded_at.tzinfo is None:
            recorded_at = recorded_at.replace(tzinfo=ZoneInfo(tuning.tz))

        total = 0
        breakdown: list[QuestDamage] = []
        failures: list[RunFailure] = []
        skipped: list[str] = []
        committed: list[QuestPenaltyTracker] = []
        cancelled = False

        for quest in quests:
            if cancel is not None and cancel.is_set():
                cancelled = True
                logger.info("penalty run cancelled after %s quest(s)", len(committed) + len(failures) + len(skipped))
                break

            try:
                tracker = self.store.load_tracker(quest.id)
            except PersistenceError as exc:
                logger.warning("tracker load failed quest_id=%s: %s", quest.id, exc)
                failures.append(RunFailure(quest.id, exc.kind, str(exc)))
                continue

            loaded = tracker
            if tracker is None:
                tracker = QuestPenaltyTracker.start(quest.id, run_day)
            elif not tracker.is_active:
                skipped.append(quest.id)
                continue

            result = evaluate(quest, tracker.last_check_date, run_day, tuning)
            updated = tracker.apply(result, recorded_at)

            try:
                self.store.commit_tracker(loaded, updated)
            except PersistenceError as exc:
                logger.warning("tracker save failed quest_id=%s: %s", quest.id, exc)
                failures.append(RunFailure(quest.id, exc.kind, str(exc)))
                continue

            committed.append(updated)
            total += result.damage_amount
            if result.damage_amount > 0:
                logger.info(
                    "penalty applied quest_id=%s amount=%s missed=%s window=%s..%s",
                    quest.id,
                    result.damage_amount,
                    result.missed_units,
                    result.window_start,
                    result.window_end,
                )
                breakdown.append(
                    QuestDamage(
                        quest_id=quest.id,
                        title=quest.display_name,
                        repeat_policy=RepeatPolicy(quest.repeat_policy),
                        amount=result.damage_amount,
                        missed_units=result.missed_units,
                        reason=result.reason,
                    )
                )

        run = RunResult(
            run_date=run_day,
            total_damage=total,
            per_quest_damage=tuple(breakdown),
            failures=tuple(failures),
            skipped=tuple(skipped),
            cancelled=cancelled,
            trackers=tuple(committed),
        )
        delivered = self._deliver(run, tuning)
        logger.info(
            "penalty run done day=%s total=%s delivered=%s quests=%s failures=%s",
            run_day,
            total,
            delivered,
            len(committed),
            len(failures),
        )
        return replace(run, delivered_damage=delivered)

    def _deliver(self, run: RunResult, tuning: PenaltyTuning) -> int:
        amount = run.capped_damage(tuning.max_damage_per_run)
        if amount <= 0 or self.health_sink is None:
            return 0
        try:
            self.health_sink(amount, run.per_quest_damage)
        except Exception:
            # Trackers are already committed; the damage stays on record in the run result.
            logger.exception("health sink failed amount=%s", amount)
            return 0
        return amount

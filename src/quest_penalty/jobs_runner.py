from __future__ import annotations

import logging
from datetime import datetime

from quest_penalty.config import Settings
from quest_penalty.db import Database
from quest_penalty.messages import damage_summary_message
from quest_penalty.models import QuestDamage, RunResult
from quest_penalty.quest_source import load_all_snapshots, load_quest_snapshots
from quest_penalty.service import CleanupResult, build_engine, cleanup_finished_quests, summarize_run
from quest_penalty.time_utils import now_local

logger = logging.getLogger(__name__)

JOB_NAMES = ("penalty_check", "tracker_cleanup")


def log_health_damage(amount: int, items: tuple[QuestDamage, ...]) -> None:
    logger.info("health damage delivered amount=%s quests=%s", amount, len(items))


def run_penalty_check(db: Database, settings: Settings, now: datetime | None = None) -> RunResult:
    now = now or now_local(settings.tz)
    quests = load_quest_snapshots(settings.quests_path)
    engine = build_engine(db, settings, health_sink=log_health_damage)
    result = engine.run(quests, now)
    if result.rejected is not None:
        logger.info("penalty_check skipped: %s", result.rejected.value)
        return result

    db.record_penalty_run(result, result.delivered_damage, now, source="job")
    logger.info("%s", damage_summary_message(summarize_run(result)))
    return result


def run_tracker_cleanup(db: Database, settings: Settings) -> CleanupResult:
    quests = load_all_snapshots(settings.quests_path)
    result = cleanup_finished_quests(db, quests)
    logger.info(
        "tracker_cleanup done deactivated=%s failures=%s",
        len(result.deactivated),
        len(result.failures),
    )
    return result


def run_job(job_name: str, db: Database, settings: Settings) -> None:
    if job_name not in JOB_NAMES:
        raise SystemExit(f"Unknown job '{job_name}'. Expected one of: {', '.join(JOB_NAMES)}")
    if not db.is_job_enabled(job_name):
        logger.info("job disabled: %s", job_name)
        return
    if job_name == "penalty_check":
        run_penalty_check(db, settings)
    else:
        run_tracker_cleanup(db, settings)

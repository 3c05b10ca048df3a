from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from datetime import date, datetime

from quest_penalty.models import DamageEvent, QuestPenaltyTracker


def _row_to_damage_event(row: sqlite3.Row) -> DamageEvent:
    return DamageEvent(
        id=str(row["id"]),
        date=datetime.fromisoformat(row["recorded_at"]),
        amount=int(row["amount"]),
        reason=row["reason"] or "Unknown",
    )


def _row_to_tracker(row: sqlite3.Row, events: Iterable[sqlite3.Row] = ()) -> QuestPenaltyTracker:
    return QuestPenaltyTracker(
        quest_id=str(row["quest_id"]),
        last_check_date=date.fromisoformat(row["last_check_date"]),
        total_damage_taken=int(row["total_damage_taken"]),
        damage_history=tuple(_row_to_damage_event(e) for e in events),
        is_active=bool(row["is_active"]),
    )

from __future__ import annotations

from quest_penalty.db_repo import BaseDatabase, HistoryMixin, SystemMixin, TrackerMixin
from quest_penalty.models import DamageEvent, QuestPenaltyTracker

__all__ = ["Database", "DamageEvent", "QuestPenaltyTracker"]


class Database(TrackerMixin, HistoryMixin, SystemMixin, BaseDatabase):
    pass

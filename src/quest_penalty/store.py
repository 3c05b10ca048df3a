from __future__ import annotations

import threading
from datetime import date
from typing import Protocol

from quest_penalty.errors import PersistenceError
from quest_penalty.models import QuestPenaltyTracker


class TrackerStore(Protocol):
    def load_tracker(self, quest_id: str) -> QuestPenaltyTracker | None: ...
    def save_tracker(self, tracker: QuestPenaltyTracker) -> None: ...
    def commit_tracker(self, previous: QuestPenaltyTracker | None, tracker: QuestPenaltyTracker) -> None: ...
    def list_trackers(self, active_only: bool = False) -> list[QuestPenaltyTracker]: ...
    def deactivate_tracker(self, quest_id: str) -> bool: ...
    def reactivate_tracker(self, quest_id: str, day: date) -> bool: ...
    def clear_tracker(self, quest_id: str) -> bool: ...


class MemoryTrackerStore:
    """Dict-backed tracker store, one record per quest id."""

    def __init__(self) -> None:
        self._trackers: dict[str, QuestPenaltyTracker] = {}
        self._lock = threading.Lock()

    def load_tracker(self, quest_id: str) -> QuestPenaltyTracker | None:
        with self._lock:
            return self._trackers.get(quest_id)

    def save_tracker(self, tracker: QuestPenaltyTracker) -> None:
        with self._lock:
            self._trackers[tracker.quest_id] = tracker

    def commit_tracker(self, previous: QuestPenaltyTracker | None, tracker: QuestPenaltyTracker) -> None:
        """Store ``tracker`` only if the stored record is still ``previous``."""
        with self._lock:
            if self._trackers.get(tracker.quest_id) != previous:
                raise PersistenceError("tracker changed since it was loaded", tracker.quest_id)
            self._trackers[tracker.quest_id] = tracker

    def list_trackers(self, active_only: bool = False) -> list[QuestPenaltyTracker]:
        with self._lock:
            items = sorted(self._trackers.values(), key=lambda t: t.quest_id)
        if active_only:
            return [t for t in items if t.is_active]
        return items

    def deactivate_tracker(self, quest_id: str) -> bool:
        with self._lock:
            tracker = self._trackers.get(quest_id)
            if tracker is None:
                return False
            self._trackers[quest_id] = tracker.deactivated()
        return True

    def reactivate_tracker(self, quest_id: str, day: date) -> bool:
        with self._lock:
            tracker = self._trackers.get(quest_id)
            if tracker is None:
                return False
            self._trackers[quest_id] = tracker.reactivated(day)
        return True

    def clear_tracker(self, quest_id: str) -> bool:
        with self._lock:
            return self._trackers.pop(quest_id, None) is not None

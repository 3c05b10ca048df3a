from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Protocol

from quest_penalty.db_converters import _row_to_damage_event, _row_to_tracker
from quest_penalty.errors import PersistenceError
from quest_penalty.models import DamageEvent, QuestPenaltyTracker


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def load_tracker(self, quest_id: str) -> QuestPenaltyTracker | None: ...
    def _set_active(self, quest_id: str, active: bool, last_check: date | None = None) -> bool: ...


TRACKER_COLUMNS = "quest_id, last_check_date, total_damage_taken, is_active"


def _check_total(tracker: QuestPenaltyTracker) -> None:
    if tracker.total_damage_taken != sum(e.amount for e in tracker.damage_history):
        raise PersistenceError("total damage does not match history", tracker.quest_id)


def _tracker_params(tracker: QuestPenaltyTracker, now: str) -> tuple[object, ...]:
    return (
        tracker.quest_id,
        tracker.last_check_date.isoformat(),
        tracker.total_damage_taken,
        1 if tracker.is_active else 0,
        now,
        now,
    )


def _insert_new_events(conn: sqlite3.Connection, tracker: QuestPenaltyTracker) -> None:
    stored = {
        str(r["id"])
        for r in conn.execute("SELECT id FROM damage_events WHERE quest_id = ?", (tracker.quest_id,))
    }
    for seq, event in enumerate(tracker.damage_history):
        if event.id in stored:
            continue
        conn.execute(
            """
            INSERT INTO damage_events(id, quest_id, seq, recorded_at, amount, reason)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (event.id, tracker.quest_id, seq, event.date.isoformat(), event.amount, event.reason),
        )


class TrackerMixin:
    def load_tracker(self: DbProtocol, quest_id: str) -> QuestPenaltyTracker | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT {TRACKER_COLUMNS} FROM penalty_trackers WHERE quest_id = ?",
                    (quest_id,),
                ).fetchone()
                if row is None:
                    return None
                events = conn.execute(
                    "SELECT * FROM damage_events WHERE quest_id = ? ORDER BY seq ASC",
                    (quest_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"load failed: {exc}", quest_id) from exc
        return _row_to_tracker(row, events)

    def save_tracker(self: DbProtocol, tracker: QuestPenaltyTracker) -> None:
        """Write the tracker row and any events not stored yet in one transaction."""
        _check_total(tracker)
        now = datetime.now().isoformat(timespec="seconds")
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO penalty_trackers(quest_id, last_check_date, total_damage_taken, is_active, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(quest_id) DO UPDATE SET
                        last_check_date=excluded.last_check_date,
                        total_damage_taken=excluded.total_damage_taken,
                        is_active=excluded.is_active,
                        updated_at=excluded.updated_at
                    """,
                    _tracker_params(tracker, now),
                )
                _insert_new_events(conn, tracker)
        except sqlite3.Error as exc:
            raise PersistenceError(f"save failed: {exc}", tracker.quest_id) from exc

    def commit_tracker(self: DbProtocol, previous: QuestPenaltyTracker | None, tracker: QuestPenaltyTracker) -> None:
        """Write ``tracker`` only if the stored row still matches ``previous``.

        ``previous`` is what the caller loaded (None for a quest with no row
        yet). A row changed by another writer in between leaves the database
        untouched and raises ``PersistenceError``.
        """
        _check_total(tracker)
        now = datetime.now().isoformat(timespec="seconds")
        try:
            with self._connect() as conn:
                if previous is None:
                    cur = conn.execute(
                        """
                        INSERT INTO penalty_trackers(quest_id, last_check_date, total_damage_taken, is_active, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        ON CONFLICT(quest_id) DO NOTHING
                        """,
                        _tracker_params(tracker, now),
                    )
                else:
                    cur = conn.execute(
                        """
                        UPDATE penalty_trackers
                        SET last_check_date = ?, total_damage_taken = ?, is_active = ?, updated_at = ?
                        WHERE quest_id = ? AND last_check_date = ? AND total_damage_taken = ? AND is_active = ?
                        """,
                        (
                            tracker.last_check_date.isoformat(),
                            tracker.total_damage_taken,
                            1 if tracker.is_active else 0,
                            now,
                            tracker.quest_id,
                            previous.last_check_date.isoformat(),
                            previous.total_damage_taken,
                            1 if previous.is_active else 0,
                        ),
                    )
                if cur.rowcount != 1:
                    # raising inside the block rolls the transaction back
                    raise PersistenceError("tracker changed since it was loaded", tracker.quest_id)
                _insert_new_events(conn, tracker)
        except sqlite3.Error as exc:
            raise PersistenceError(f"save failed: {exc}", tracker.quest_id) from exc

    def list_trackers(self: DbProtocol, active_only: bool = False) -> list[QuestPenaltyTracker]:
        query = f"SELECT {TRACKER_COLUMNS} FROM penalty_trackers"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY quest_id ASC"
        try:
            with self._connect() as conn:
                rows = conn.execute(query).fetchall()
                events = conn.execute("SELECT * FROM damage_events ORDER BY quest_id, seq ASC").fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"list failed: {exc}") from exc

        by_quest: dict[str, list[sqlite3.Row]] = {}
        for event in events:
            by_quest.setdefault(str(event["quest_id"]), []).append(event)
        return [_row_to_tracker(row, by_quest.get(str(row["quest_id"]), [])) for row in rows]

    def _set_active(self: DbProtocol, quest_id: str, active: bool, last_check: date | None = None) -> bool:
        now = datetime.now().isoformat(timespec="seconds")
        try:
            with self._connect() as conn:
                if last_check is None:
                    cur = conn.execute(
                        "UPDATE penalty_trackers SET is_active = ?, updated_at = ? WHERE quest_id = ?",
                        (1 if active else 0, now, quest_id),
                    )
                else:
                    # max() keeps last_check_date monotonic
                    cur = conn.execute(
                        """
                        UPDATE penalty_trackers
                        SET is_active = ?, last_check_date = max(last_check_date, ?), updated_at = ?
                        WHERE quest_id = ?
                        """,
                        (1 if active else 0, last_check.isoformat(), now, quest_id),
                    )
        except sqlite3.Error as exc:
            raise PersistenceError(f"update failed: {exc}", quest_id) from exc
        return cur.rowcount > 0

    def deactivate_tracker(self: DbProtocol, quest_id: str) -> bool:
        return self._set_active(quest_id, False)

    def reactivate_tracker(self: DbProtocol, quest_id: str, day: date) -> bool:
        return self._set_active(quest_id, True, last_check=day)

    def clear_tracker(self: DbProtocol, quest_id: str) -> bool:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM damage_events WHERE quest_id = ?", (quest_id,))
                cur = conn.execute("DELETE FROM penalty_trackers WHERE quest_id = ?", (quest_id,))
        except sqlite3.Error as exc:
            raise PersistenceError(f"clear failed: {exc}", quest_id) from exc
        return cur.rowcount > 0

    def list_damage_events(self: DbProtocol, quest_id: str, limit: int = 100) -> list[DamageEvent]:
        """Newest first."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM damage_events WHERE quest_id = ? ORDER BY seq DESC LIMIT ?",
                    (quest_id, max(1, limit)),
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"history failed: {exc}", quest_id) from exc
        return [_row_to_damage_event(r) for r in rows]

    def total_damage_for_quest(self: DbProtocol, quest_id: str) -> int:
        tracker = self.load_tracker(quest_id)
        return tracker.total_damage_taken if tracker else 0

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any, Protocol

from quest_penalty.models import RunResult


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


class HistoryMixin:
    def record_penalty_run(
        self: DbProtocol,
        result: RunResult,
        delivered_damage: int,
        created_at: datetime,
        source: str = "job",
    ) -> int:
        detail = {
            "per_quest": [
                {"quest_id": d.quest_id, "amount": d.amount, "missed_units": d.missed_units, "reason": d.reason}
                for d in result.per_quest_damage
            ],
            "failures": [{"quest_id": f.quest_id, "kind": f.kind.value, "detail": f.detail} for f in result.failures],
            "skipped": list(result.skipped),
        }
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO penalty_runs(
                    run_date, total_damage, delivered_damage, quests_affected,
                    failure_count, source, detail_json, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    result.run_date.isoformat(),
                    result.total_damage,
                    delivered_damage,
                    result.quests_affected,
                    len(result.failures),
                    source,
                    json.dumps(detail),
                    created_at.isoformat(),
                ),
            )
        return int(cur.lastrowid)

    def list_penalty_runs(self: DbProtocol, limit: int = 20) -> list[dict[str, Any]]:
        """Most recent runs first, with the per-quest detail decoded."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM penalty_runs ORDER BY id DESC LIMIT ?",
                (max(1, limit),),
            ).fetchall()
        out: list[dict[str, Any]] = []
        for row in rows:
            item = dict(row)
            try:
                item["detail"] = json.loads(item.pop("detail_json") or "{}")
            except json.JSONDecodeError:
                item["detail"] = {}
            out.append(item)
        return out

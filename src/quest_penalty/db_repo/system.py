from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any, Protocol

from quest_penalty.db_constants import APP_CONFIG_DEFAULTS, JOB_CONFIG_KEYS, TUNING_KEYS
from quest_penalty.penalties import PenaltyTuning
from quest_penalty.time_utils import DEFAULT_TZ


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def get_app_config(self) -> dict[str, Any]: ...
    def set_app_config(self, updates: dict[str, Any], actor: str = "system", note: str | None = None) -> dict[str, Any]: ...


def coerce_config_value(key: str, value: Any) -> Any:
    """Cast ``value`` to the type of the key's default; penalty amounts are clamped at 0."""
    default = APP_CONFIG_DEFAULTS[key]
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default


def _audit_action(key: str) -> str:
    return "penalty.tuning" if key in TUNING_KEYS else "job.toggle"


class SystemMixin:
    def get_app_config(self: DbProtocol) -> dict[str, Any]:
        config = dict(APP_CONFIG_DEFAULTS)
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value_json FROM app_config").fetchall()
        for row in rows:
            key = str(row["key"])
            if key not in APP_CONFIG_DEFAULTS:
                continue
            try:
                config[key] = coerce_config_value(key, json.loads(str(row["value_json"])))
            except json.JSONDecodeError:
                continue
        return config

    def set_app_config(
        self: DbProtocol,
        updates: dict[str, Any],
        actor: str = "system",
        note: str | None = None,
    ) -> dict[str, Any]:
        """Store known keys (coerced) and audit each change with its old and new value.

        Unknown keys are ignored; writing the current value again is not audited.
        """
        before = self.get_app_config()
        changes = {
            key: coerce_config_value(key, value)
            for key, value in updates.items()
            if key in APP_CONFIG_DEFAULTS
        }
        changes = {key: value for key, value in changes.items() if value != before[key]}
        if not changes:
            return before

        now = datetime.now().isoformat()
        with self._connect() as conn:
            for key, value in changes.items():
                conn.execute(
                    """
                    INSERT INTO app_config(key, value_json, updated_at, updated_by)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json=excluded.value_json,
                        updated_at=excluded.updated_at,
                        updated_by=excluded.updated_by
                    """,
                    (key, json.dumps(value), now, actor),
                )
                conn.execute(
                    """
                    INSERT INTO admin_audit_log(actor, action, target, payload_json, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        actor,
                        _audit_action(key),
                        key,
                        json.dumps({"old": before[key], "new": value, "note": note}),
                        now,
                    ),
                )
        return {**before, **changes}

    def reset_penalty_tuning(self: DbProtocol, actor: str = "system", note: str | None = None) -> dict[str, Any]:
        defaults = {key: APP_CONFIG_DEFAULTS[key] for key in TUNING_KEYS}
        return self.set_app_config(defaults, actor=actor, note=note or "reset to defaults")

    def is_job_enabled(self: DbProtocol, job_name: str) -> bool:
        key = JOB_CONFIG_KEYS.get(job_name)
        if not key:
            return True
        return bool(self.get_app_config()[key])

    def get_penalty_tuning(self: DbProtocol, tz: str = DEFAULT_TZ) -> PenaltyTuning:
        config = self.get_app_config()
        return PenaltyTuning(tz=tz, **{name: config[key] for key, name in TUNING_KEYS.items()})

    def list_admin_audit(self: DbProtocol, limit: int = 100, action: str | None = None) -> list[dict[str, Any]]:
        query = "SELECT id, actor, action, target, payload_json, created_at FROM admin_audit_log"
        params: list[Any] = []
        if action:
            query += " WHERE action = ?"
            params.append(action)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(max(1, limit))
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        out: list[dict[str, Any]] = []
        for row in rows:
            item = dict(row)
            raw = item.pop("payload_json")
            item["payload"] = json.loads(raw) if raw else None
            out.append(item)
        return out

    def add_admin_audit(
        self: DbProtocol,
        *,
        actor: str,
        action: str,
        target: str,
        payload: dict[str, Any] | None,
        created_at: datetime,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO admin_audit_log(actor, action, target, payload_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    actor,
                    action,
                    target,
                    json.dumps(payload) if payload is not None else None,
                    created_at.isoformat(),
                ),
            )

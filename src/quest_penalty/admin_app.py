from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from quest_penalty.config import Settings, load_settings
from quest_penalty.db import Database
from quest_penalty.db_constants import APP_CONFIG_DEFAULTS
from quest_penalty.engine import PenaltyEngine
from quest_penalty.errors import PolicyInputError
from quest_penalty.logging_setup import setup_logging
from quest_penalty.messages import damage_summary_message
from quest_penalty.models import QuestPenaltyTracker, RunResult
from quest_penalty.quest_source import snapshot_from_dict
from quest_penalty.service import damage_history, reactivate_quest, summarize_run
from quest_penalty.time_utils import now_local


def _require_auth(request: Request, token: str | None) -> None:
    if not token:
        return
    header = request.headers.get("x-admin-token")
    query = request.query_params.get("token")
    if header == token or query == token:
        return
    raise HTTPException(status_code=401, detail="Unauthorized")


def tracker_payload(tracker: QuestPenaltyTracker) -> dict[str, Any]:
    return {
        "quest_id": tracker.quest_id,
        "last_check_date": tracker.last_check_date.isoformat(),
        "total_damage_taken": tracker.total_damage_taken,
        "event_count": len(tracker.damage_history),
        "is_active": tracker.is_active,
    }


def run_result_payload(result: RunResult) -> dict[str, Any]:
    return {
        "run_date": result.run_date.isoformat(),
        "total_damage": result.total_damage,
        "delivered_damage": result.delivered_damage,
        "per_quest_damage": [
            {
                "quest_id": d.quest_id,
                "title": d.title,
                "repeat_policy": d.repeat_policy.value,
                "amount": d.amount,
                "missed_units": d.missed_units,
                "reason": d.reason,
            }
            for d in result.per_quest_damage
        ],
        "failures": [{"quest_id": f.quest_id, "kind": f.kind.value, "detail": f.detail} for f in result.failures],
        "skipped": list(result.skipped),
        "rejected": result.rejected.value if result.rejected else None,
        "coalesced": result.coalesced,
        "retryable": result.retryable,
    }


class ConfigUpdateRequest(BaseModel):
    updates: dict[str, Any] = Field(default_factory=dict)
    actor: str = "admin"
    note: str | None = None


class TuningResetRequest(BaseModel):
    actor: str = "admin"
    note: str | None = None


class QuestPayload(BaseModel):
    id: str = Field(min_length=1)
    title: str | None = None
    due_date: str
    repeat_policy: str
    completions: list[str] = Field(default_factory=list)
    scheduled_days: list[int] = Field(default_factory=list)
    is_completed: bool = False
    is_active: bool = True


class RecalculateRequest(BaseModel):
    quests: list[QuestPayload] = Field(default_factory=list)
    now: datetime | None = None
    actor: str = "admin"


class ReactivateRequest(BaseModel):
    now: datetime | None = None


def build_admin_app(db: Database, admin_token: str | None, settings: Settings) -> FastAPI:
    app = FastAPI(title="Quest Penalty Admin", version="1.0.0")
    engine = PenaltyEngine(db)

    @app.get("/api/config")
    async def api_config(request: Request) -> dict[str, Any]:
        _require_auth(request, admin_token)
        return {"config": db.get_app_config(), "defaults": APP_CONFIG_DEFAULTS}

    @app.post("/api/config")
    async def api_update_config(request: Request, payload: ConfigUpdateRequest) -> dict[str, Any]:
        _require_auth(request, admin_token)
        known = {key: value for key, value in payload.updates.items() if key in APP_CONFIG_DEFAULTS}
        cfg = db.set_app_config(known, actor=payload.actor, note=payload.note)
        return {"ok": True, "updated_count": len(known), "config": cfg}

    @app.post("/api/config/reset")
    async def api_reset_tuning(request: Request, payload: TuningResetRequest) -> dict[str, Any]:
        _require_auth(request, admin_token)
        cfg = db.reset_penalty_tuning(actor=payload.actor, note=payload.note)
        return {"ok": True, "config": cfg}

    @app.get("/api/audit")
    async def api_audit(request: Request, limit: int = 100, action: str | None = None) -> dict[str, Any]:
        _require_auth(request, admin_token)
        return {"rows": db.list_admin_audit(limit=limit, action=action)}

    @app.get("/api/trackers")
    async def api_trackers(request: Request, active_only: bool = False) -> dict[str, Any]:
        _require_auth(request, admin_token)
        return {"trackers": [tracker_payload(t) for t in db.list_trackers(active_only=active_only)]}

    @app.get("/api/trackers/{quest_id}")
    async def api_tracker(quest_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, admin_token)
        tracker = db.load_tracker(quest_id)
        if tracker is None:
            raise HTTPException(status_code=404, detail="Tracker not found")
        payload = tracker_payload(tracker)
        payload["damage_history"] = [
            {"id": e.id, "date": e.date.isoformat(), "amount": e.amount, "reason": e.reason}
            for e in damage_history(db, quest_id)
        ]
        return payload

    @app.post("/api/trackers/{quest_id}/deactivate")
    async def api_deactivate(quest_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, admin_token)
        if not db.deactivate_tracker(quest_id):
            raise HTTPException(status_code=404, detail="Tracker not found")
        db.add_admin_audit(actor="admin", action="tracker.deactivate", target=quest_id, payload=None, created_at=datetime.now())
        return {"ok": True}

    @app.post("/api/trackers/{quest_id}/reactivate")
    async def api_reactivate(quest_id: str, request: Request, payload: ReactivateRequest | None = None) -> dict[str, Any]:
        _require_auth(request, admin_token)
        now = (payload.now if payload else None) or now_local(settings.tz)
        if not reactivate_quest(db, quest_id, now, settings.tz):
            raise HTTPException(status_code=404, detail="Tracker not found")
        db.add_admin_audit(actor="admin", action="tracker.reactivate", target=quest_id, payload=None, created_at=datetime.now())
        return {"ok": True}

    @app.delete("/api/trackers/{quest_id}")
    async def api_clear(quest_id: str, request: Request) -> dict[str, Any]:
        _require_auth(request, admin_token)
        if not db.clear_tracker(quest_id):
            raise HTTPException(status_code=404, detail="Tracker not found")
        db.add_admin_audit(actor="admin", action="tracker.clear", target=quest_id, payload=None, created_at=datetime.now())
        return {"ok": True}

    @app.post("/api/recalculate")
    def api_recalculate(request: Request, payload: RecalculateRequest) -> dict[str, Any]:
        _require_auth(request, admin_token)
        try:
            snapshots = [snapshot_from_dict(q.model_dump()) for q in payload.quests]
        except PolicyInputError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        snapshots = [q for q in snapshots if q.is_active and not q.is_completed]
        now = payload.now or now_local(settings.tz)

        tuning = db.get_penalty_tuning(settings.tz)
        result = engine.run(snapshots, now, tuning=tuning)
        if result.rejected is not None:
            return run_result_payload(result)

        # No health subsystem behind the admin API: report what would be delivered.
        result = replace(result, delivered_damage=result.capped_damage(tuning.max_damage_per_run))
        db.record_penalty_run(result, result.delivered_damage, datetime.now(), source=f"admin:{payload.actor}")
        body = run_result_payload(result)
        body["message"] = damage_summary_message(summarize_run(result))
        return body

    @app.get("/api/runs")
    async def api_runs(request: Request, limit: int = 20) -> dict[str, Any]:
        _require_auth(request, admin_token)
        return {"runs": db.list_penalty_runs(limit=limit)}

    return app


def run_admin() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    db = Database(settings.database_path)
    app = build_admin_app(db, settings.admin_panel_token, settings)
    uvicorn.run(app, host=settings.admin_host, port=settings.admin_port)

from __future__ import annotations

from dataclasses import fields
from typing import Any

from quest_penalty.penalties import PenaltyTuning

# app_config key -> PenaltyTuning field; tz comes from Settings, not the database.
TUNING_KEYS: dict[str, str] = {f"penalty.{f.name}": f.name for f in fields(PenaltyTuning) if f.name != "tz"}

JOB_CONFIG_KEYS = {
    "penalty_check": "job.penalty_check_enabled",
    "tracker_cleanup": "job.tracker_cleanup_enabled",
}

_TUNING_DEFAULTS = PenaltyTuning()

APP_CONFIG_DEFAULTS: dict[str, Any] = {
    **{key: getattr(_TUNING_DEFAULTS, name) for key, name in TUNING_KEYS.items()},
    **{key: True for key in JOB_CONFIG_KEYS.values()},
}

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from quest_penalty.time_utils import DEFAULT_TZ


@dataclass(frozen=True)
class Settings:
    database_path: Path
    tz: str
    quests_path: Path
    admin_panel_token: str | None
    admin_host: str
    admin_port: int
    log_level: str


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def load_settings(env_file: Path = Path(".env")) -> Settings:
    _load_env_file(env_file)

    admin_port_raw = os.getenv("ADMIN_PORT", "8080")
    try:
        admin_port = int(admin_port_raw)
    except ValueError:
        admin_port = 8080

    return Settings(
        database_path=Path(os.getenv("DATABASE_PATH", "./data/penalties.db")),
        tz=os.getenv("TZ", DEFAULT_TZ),
        quests_path=Path(os.getenv("QUESTS_PATH", "./quests.yaml")),
        admin_panel_token=os.getenv("ADMIN_PANEL_TOKEN") or None,
        admin_host=os.getenv("ADMIN_HOST", "127.0.0.1"),
        admin_port=admin_port,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )

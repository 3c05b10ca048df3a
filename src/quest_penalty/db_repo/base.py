from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path


class BaseDatabase:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
            current = {row["version"] for row in conn.execute("SELECT version FROM schema_migrations")}

            migrations: dict[int, str] = {
                1: """
                    CREATE TABLE penalty_trackers (
                        quest_id TEXT PRIMARY KEY,
                        last_check_date TEXT NOT NULL,
                        total_damage_taken INTEGER NOT NULL DEFAULT 0 CHECK(total_damage_taken >= 0),
                        is_active INTEGER NOT NULL DEFAULT 1,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );

                    CREATE TABLE damage_events (
                        id TEXT PRIMARY KEY,
                        quest_id TEXT NOT NULL REFERENCES penalty_trackers(quest_id) ON DELETE CASCADE,
                        seq INTEGER NOT NULL,
                        recorded_at TEXT NOT NULL,
                        amount INTEGER NOT NULL CHECK(amount > 0),
                        reason TEXT NOT NULL,
                        UNIQUE(quest_id, seq)
                    );

                    CREATE INDEX idx_damage_events_quest ON damage_events(quest_id, seq);
                """,
                2: """
                    CREATE TABLE IF NOT EXISTS app_config (
                        key TEXT PRIMARY KEY,
                        value_json TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        updated_by TEXT
                    );

                    CREATE TABLE IF NOT EXISTS admin_audit_log (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        actor TEXT NOT NULL,
                        action TEXT NOT NULL,
                        target TEXT,
                        payload_json TEXT,
                        created_at TEXT NOT NULL
                    );
                """,
                3: """
                    CREATE TABLE IF NOT EXISTS penalty_runs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        run_date TEXT NOT NULL,
                        total_damage INTEGER NOT NULL,
                        delivered_damage INTEGER NOT NULL,
                        quests_affected INTEGER NOT NULL,
                        failure_count INTEGER NOT NULL,
                        source TEXT NOT NULL DEFAULT 'job',
                        detail_json TEXT,
                        created_at TEXT NOT NULL
                    );
                    CREATE INDEX IF NOT EXISTS idx_penalty_runs_date ON penalty_runs(run_date);
                """,
            }

            now = datetime.now().isoformat(timespec="seconds")
            for version in sorted(migrations):
                if version in current:
                    continue
                conn.executescript(migrations[version])
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                    (version, now),
                )

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class KeyValueStore(Protocol):
    def get(self, keys: Iterable[str]) -> dict[str, Any]:
        ...

    def set(self, values: Mapping[str, Any]) -> None:
        ...


class RefreshStore(KeyValueStore, Protocol):
    def record_refresh_run(
        self,
        *,
        trigger: str,
        status: str,
        message: str,
        duration_ms: int,
        added: int = 0,
        updated: int = 0,
        removed: int = 0,
    ) -> int:
        ...


class StateStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        schema_sql = """
        CREATE TABLE IF NOT EXISTS refresh_runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            run_at TEXT NOT NULL,
            trigger TEXT NOT NULL,
            status TEXT NOT NULL,
            message TEXT,
            duration_ms INTEGER NOT NULL,
            added INTEGER NOT NULL,
            updated INTEGER NOT NULL,
            removed INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value_json TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
        with self._lock:
            with self._connect() as conn:
                conn.executescript(schema_sql)

    def get(self, keys: Iterable[str]) -> dict[str, Any]:
        wanted = [str(key) for key in keys]
        if not wanted:
            return {}
        placeholders = ", ".join("?" for _ in wanted)
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    f"SELECT key, value_json FROM kv_store WHERE key IN ({placeholders})",  # nosec B608
                    wanted,
                ).fetchall()
        return {str(row["key"]): json.loads(row["value_json"]) for row in rows}

    def set(self, values: Mapping[str, Any]) -> None:
        now = _utc_now()
        rows = [(str(key), json.dumps(value, ensure_ascii=False), now) for key, value in values.items()]
        with self._lock:
            with self._connect() as conn:
                conn.executemany(
                    """
                    INSERT INTO kv_store(key, value_json, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json = excluded.value_json,
                        updated_at = excluded.updated_at
                    """,
                    rows,
                )
                conn.commit()

    def record_refresh_run(
        self,
        *,
        trigger: str,
        status: str,
        message: str,
        duration_ms: int,
        added: int = 0,
        updated: int = 0,
        removed: int = 0,
    ) -> int:
        with self._lock:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO refresh_runs(run_at, trigger, status, message, duration_ms, added, updated, removed)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (_utc_now(), trigger, status, message, int(duration_ms), int(added), int(updated), int(removed)),
                )
                conn.commit()
                return int(cursor.lastrowid)

    def recent_refresh_runs(self, limit: int = 20) -> list[dict[str, Any]]:
        with self._lock:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT id, run_at, trigger, status, message, duration_ms, added, updated, removed
                    FROM refresh_runs
                    ORDER BY id DESC
                    LIMIT ?
                    """,
                    (max(1, limit),),
                ).fetchall()
        return [dict(row) for row in rows]

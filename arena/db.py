"""
arena/db.py - SQLite storage for group snapshots.

Same contract as the JSON file store: one snapshot per (group, kind),
replaced wholesale on every save. One instance per server lifetime,
backed by a single SQLite file (or :memory: for tests).
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any

from bracketbot.storage import TOURNAMENTS, SnapshotStore

logger = logging.getLogger(__name__)


class ArenaDB(SnapshotStore):
    """Thin wrapper around SQLite for tournament + player snapshots."""

    def __init__(self, path: str = "arena.db"):
        self.path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        # FastAPI runs sync endpoints in a threadpool; one connection, one writer
        self._lock = threading.Lock()
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS snapshots (
                group_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                payload TEXT NOT NULL,
                record_count INTEGER DEFAULT 0,
                updated_at TEXT,
                PRIMARY KEY (group_id, kind)
            );
            """
        )

    # ------------------------------------------------------------------
    # Snapshot I/O
    # ------------------------------------------------------------------

    def _read(self, group_id: str, kind: str) -> list[dict[str, Any]] | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT payload FROM snapshots WHERE group_id = ? AND kind = ?",
                (group_id, kind),
            ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["payload"])
        except ValueError as e:
            logger.warning(f"Corrupt {kind} snapshot for group {group_id}: {e}")
            return None

    def _write(self, group_id: str, kind: str, records: list[dict[str, Any]]) -> None:
        payload = json.dumps(records, ensure_ascii=False)
        with self._lock:
            self._conn.execute(
                "INSERT INTO snapshots (group_id, kind, payload, record_count, updated_at) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(group_id, kind) DO UPDATE SET "
                "payload = excluded.payload, record_count = excluded.record_count, "
                "updated_at = excluded.updated_at",
                (group_id, kind, payload, len(records), _now()),
            )
            self._conn.commit()

    def groups(self, kind: str = TOURNAMENTS) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT group_id FROM snapshots WHERE kind = ? ORDER BY group_id",
                (kind,),
            ).fetchall()
        return [row["group_id"] for row in rows]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def snapshot_count(self) -> int:
        """Number of stored snapshots across all groups and kinds."""
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM snapshots").fetchone()[0]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def _now() -> str:
    """ISO timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()

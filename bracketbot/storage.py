"""
bracketbot/storage.py - Group snapshot persistence

Each group (chat server) has two snapshots: its tournaments and its linked
players. Every mutation rewrites the whole group snapshot.

Writes are best-effort. A failed save is logged and reported through the
returned SaveOutcome; it never raises, so the in-memory change stands even
when the disk write does not.

Backends:
  - JsonFileStore: <data_dir>/<group>_tournaments.json, <group>_players.json
  - arena.db.ArenaDB: one SQLite row per (group, kind)
"""

import json
import logging
import os
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .models import Tournament
from .players import PlayerProfile

logger = logging.getLogger(__name__)

TOURNAMENTS = "tournaments"
PLAYERS = "players"


@dataclass
class SaveOutcome:
    """Result of a write-through save. ok=False means the data is memory-only."""

    ok: bool
    group_id: str
    kind: str
    records: int = 0
    error: str | None = None


class SnapshotStore(ABC):
    """Base class for group snapshot backends.

    Subclasses implement raw record I/O; (de)serialisation and the
    never-raise save contract live here.
    """

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _read(self, group_id: str, kind: str) -> list[dict[str, Any]] | None:
        """Raw records, or None if nothing was ever saved."""

    @abstractmethod
    def _write(self, group_id: str, kind: str, records: list[dict[str, Any]]) -> None:
        """Replace the stored records. May raise; save() catches."""

    @abstractmethod
    def groups(self, kind: str = TOURNAMENTS) -> list[str]:
        """Every group with a snapshot of ``kind``."""

    def player_groups(self) -> list[str]:
        return self.groups(PLAYERS)

    def close(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load(self, group_id: str) -> list[Tournament]:
        return [Tournament.from_dict(r) for r in self._load(group_id, TOURNAMENTS)]

    def save(self, group_id: str, tournaments: list[Tournament]) -> SaveOutcome:
        return self._save(group_id, TOURNAMENTS, [t.to_dict() for t in tournaments])

    def load_players(self, group_id: str) -> list[PlayerProfile]:
        return [PlayerProfile.from_dict(r) for r in self._load(group_id, PLAYERS)]

    def save_players(self, group_id: str, players: list[PlayerProfile]) -> SaveOutcome:
        return self._save(group_id, PLAYERS, [p.to_dict() for p in players])

    def load_all(self) -> dict[str, list[Tournament]]:
        """Tournaments of every group that has any."""
        result = {}
        for group_id in self.groups():
            tournaments = self.load(group_id)
            if tournaments:
                result[group_id] = tournaments
        return result

    def _load(self, group_id: str, kind: str) -> list[dict[str, Any]]:
        records = self._read(group_id, kind)
        if records is None:
            logger.debug(f"No {kind} snapshot for group {group_id} yet")
            return []
        return records

    def _save(self, group_id: str, kind: str, records: list[dict[str, Any]]) -> SaveOutcome:
        try:
            self._write(group_id, kind, records)
        except (OSError, ValueError, TypeError, sqlite3.Error) as e:
            logger.warning(f"Failed to save {kind} for group {group_id}: {e}")
            return SaveOutcome(ok=False, group_id=group_id, kind=kind, error=str(e))

        logger.debug(f"Saved {len(records)} {kind} for group {group_id}")
        return SaveOutcome(ok=True, group_id=group_id, kind=kind, records=len(records))


class JsonFileStore(SnapshotStore):
    """Pretty-printed JSON files in one directory, written atomically."""

    def __init__(self, data_dir: str | Path = "data"):
        self.data_dir = Path(data_dir).expanduser()

    def _path(self, group_id: str, kind: str) -> Path:
        return self.data_dir / f"{group_id}_{kind}.json"

    def _read(self, group_id: str, kind: str) -> list[dict[str, Any]] | None:
        path = self._path(group_id, kind)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read {path}: {e}")
            return None

    def _write(self, group_id: str, kind: str, records: list[dict[str, Any]]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(group_id, kind)

        # Temp file in the same directory so the rename stays atomic
        fd, tmp = tempfile.mkstemp(dir=self.data_dir, prefix=path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def groups(self, kind: str = TOURNAMENTS) -> list[str]:
        if not self.data_dir.is_dir():
            return []
        suffix = f"_{kind}.json"
        return sorted(
            p.name[: -len(suffix)]
            for p in self.data_dir.glob(f"*{suffix}")
        )


def open_store(backend: str, path: str | Path) -> SnapshotStore:
    """Build the configured backend ("json" or "sqlite")."""
    if backend == "json":
        return JsonFileStore(path)
    if backend == "sqlite":
        from arena.db import ArenaDB

        return ArenaDB(str(path))
    raise ValueError(f"Unknown storage backend: {backend!r} (expected 'json' or 'sqlite')")

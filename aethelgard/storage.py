"""JSON file storage.

All persistent state lives in flat JSON files under a configurable base
directory. There is no database or ORM — reads and writes go through plain
helper methods that load and dump JSON.

Directory layout:

    {base}/
      world_lore.json     ← list of {"id", "content"}; highest id is current
      game_logs.json      ← append-only list of ArchiveEntry objects
      user_limits.json    ← {user_id: UserLimit}

Methods raise on I/O or decode errors; callers that must fail soft
(NarrativeStore, BudgetLedger) catch StorageError.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from aethelgard.models import ArchiveEntry, UserLimit


class StorageError(RuntimeError):
    """Raised when a storage file cannot be read, decoded or written."""


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _path(self, name: str) -> Path:
        return self._base / name

    def _read_json(self, name: str, default: Any) -> Any:
        path = self._path(name)
        if not path.is_file():
            return default
        try:
            return json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read {path}: {e}") from e

    def _write_json(self, name: str, data: Any) -> None:
        path = self._path(name)
        try:
            path.write_text(json.dumps(data, indent=2, ensure_ascii=False))
        except OSError as e:
            raise StorageError(f"Cannot write {path}: {e}") from e

    # ------------------------------------------------------------------
    # World lore
    # ------------------------------------------------------------------

    def get_lore(self) -> str | None:
        entries = self._read_json("world_lore.json", [])
        if not entries:
            return None
        latest = max(entries, key=lambda e: e["id"])
        return latest.get("content") or None

    def add_lore(self, content: str) -> None:
        """Add a lore revision; it becomes the current lore."""
        with self._lock:
            entries = self._read_json("world_lore.json", [])
            next_id = max((e["id"] for e in entries), default=0) + 1
            entries.append({"id": next_id, "content": content})
            self._write_json("world_lore.json", entries)

    # ------------------------------------------------------------------
    # Game logs (append-only)
    # ------------------------------------------------------------------

    def get_logs(self) -> list[ArchiveEntry]:
        """All entries, newest first."""
        raw = self._read_json("game_logs.json", [])
        try:
            logs = [ArchiveEntry.model_validate(e) for e in raw]
        except ValidationError as e:
            raise StorageError(f"Corrupt game log: {e}") from e
        # ties keep append order reversed, so the latest write still comes first
        return sorted(reversed(logs), key=lambda e: e.created_at, reverse=True)

    def append_log(self, player_name: str, summary: str) -> ArchiveEntry:
        entry = ArchiveEntry(
            player_name=player_name,
            summary=summary,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            existing = self._read_json("game_logs.json", [])
            existing.append(entry.model_dump())
            self._write_json("game_logs.json", existing)
        return entry

    # ------------------------------------------------------------------
    # User limits
    # ------------------------------------------------------------------

    def get_limit_record(self, user_id: str) -> UserLimit | None:
        records = self._read_json("user_limits.json", {})
        raw = records.get(user_id)
        if raw is None:
            return None
        try:
            return UserLimit.model_validate(raw)
        except ValidationError as e:
            raise StorageError(f"Corrupt limit record for {user_id}: {e}") from e

    def upsert_limit_record(self, user_id: str, record: UserLimit) -> None:
        with self._lock:
            records = self._read_json("user_limits.json", {})
            records[user_id] = record.model_dump()
            self._write_json("user_limits.json", records)

"""Narrative store — lore, session archives and per-character summaries.

Every read fails soft (None / "" / []) so a broken store degrades to the
bundled lore rather than blocking the session. Failures are logged.
"""

import logging
from datetime import datetime

from aethelgard.models import ArchiveEntry
from aethelgard.storage import Storage, StorageError

logger = logging.getLogger(__name__)


def format_digest(entries: list[ArchiveEntry], limit: int = 10) -> str:
    """Most-recent-first rollup: "[YYYY-MM-DD] name: summary" per line."""
    lines = []
    for entry in entries[:limit]:
        try:
            day = datetime.fromisoformat(entry.created_at).date().isoformat()
        except ValueError:
            day = entry.created_at[:10]
        lines.append(f"[{day}] {entry.player_name}: {entry.summary}")
    return "\n".join(lines)


class NarrativeStore:
    def __init__(self, storage: Storage, digest_limit: int = 10) -> None:
        self._storage = storage
        self._digest_limit = digest_limit

    def fetch_lore(self) -> str | None:
        try:
            return self._storage.get_lore()
        except StorageError as e:
            logger.warning("lore fetch failed: %s", e)
            return None

    def save_lore(self, content: str) -> None:
        self._storage.add_lore(content)

    def _logs(self) -> list[ArchiveEntry]:
        try:
            return self._storage.get_logs()
        except StorageError as e:
            logger.warning("archive fetch failed: %s", e)
            return []

    def fetch_archive_digest(self) -> str:
        return format_digest(self._logs(), self._digest_limit)

    def fetch_last_summary(self, character_name: str) -> str | None:
        for entry in self._logs():
            if entry.player_name == character_name:
                return entry.summary
        return None

    def fetch_all_summaries(self, character_name: str) -> list[ArchiveEntry]:
        return [e for e in self._logs() if e.player_name == character_name]

    def fetch_known_character_names(self) -> list[str]:
        names: list[str] = []
        for entry in self._logs():
            if entry.player_name not in names:
                names.append(entry.player_name)
        return names

    def save_summary(self, character_name: str, summary: str) -> bool:
        """Persist a summary. Returns False (and logs) if the write failed."""
        try:
            self._storage.append_log(character_name, summary)
        except StorageError as e:
            logger.error("summary save failed for %s: %s", character_name, e)
            return False
        logger.info("archived session for %s", character_name)
        return True

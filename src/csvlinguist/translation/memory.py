"""SQLite translation memory: source text → last known good translation."""

from __future__ import annotations

import sqlite3
from pathlib import Path

DEFAULT_DATA_DIR = Path.home() / ".csvlinguist"
DEFAULT_MEMORY_DB = DEFAULT_DATA_DIR / "memory.db"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS memory (
    source TEXT NOT NULL,
    target_lang TEXT NOT NULL,
    translation TEXT NOT NULL,
    backend TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (source, target_lang)
);
"""


def normalize_source(text: str) -> str:
    return text.strip()


class TranslationMemory:
    """Persistent mapping (trimmed source, target_lang) → translation.

    Every write is committed immediately so an interrupted run never loses
    entries that were already merged.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        if db_path is None:
            db_path = DEFAULT_MEMORY_DB
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    @property
    def path(self) -> Path:
        return self._db_path

    def get(self, source: str, target_lang: str) -> str | None:
        """Look up a translation. Returns None if not found."""
        cursor = self._conn.execute(
            "SELECT translation FROM memory WHERE source = ? AND target_lang = ?",
            (normalize_source(source), target_lang),
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def get_batch(self, sources: list[str], target_lang: str) -> dict[str, str]:
        """Look up several sources at once. Returns {normalized_source: translation}."""
        keys = list(dict.fromkeys(normalize_source(s) for s in sources))
        if not keys:
            return {}
        # SQLite has a limit of ~999 variables; chunk to stay well within it
        chunk_size = 900
        result: dict[str, str] = {}
        for i in range(0, len(keys), chunk_size):
            chunk = keys[i : i + chunk_size]
            placeholders = ",".join("?" for _ in chunk)
            cursor = self._conn.execute(
                f"SELECT source, translation FROM memory "
                f"WHERE source IN ({placeholders}) AND target_lang = ?",
                [*chunk, target_lang],
            )
            result.update({row[0]: row[1] for row in cursor.fetchall()})
        return result

    def put(self, source: str, target_lang: str, translation: str, backend: str = "") -> None:
        """Store one translation, replacing any previous entry."""
        self._conn.execute(
            "INSERT OR REPLACE INTO memory (source, target_lang, translation, backend) "
            "VALUES (?, ?, ?, ?)",
            (normalize_source(source), target_lang, translation, backend),
        )
        self._conn.commit()

    def put_batch(
        self,
        entries: list[tuple[str, str]],
        target_lang: str,
        backend: str = "",
    ) -> None:
        """Store several (source, translation) pairs in one transaction."""
        if not entries:
            return
        self._conn.executemany(
            "INSERT OR REPLACE INTO memory (source, target_lang, translation, backend) "
            "VALUES (?, ?, ?, ?)",
            [(normalize_source(src), target_lang, t, backend) for src, t in entries],
        )
        self._conn.commit()

    def flush(self) -> None:
        self._conn.commit()

    def count(self) -> int:
        """Return total number of stored translations."""
        cursor = self._conn.execute("SELECT COUNT(*) FROM memory")
        return cursor.fetchone()[0]  # type: ignore[return-value]

    def clear(self) -> int:
        """Delete every entry. Returns number of entries deleted."""
        cursor = self._conn.execute("DELETE FROM memory")
        self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        self._conn.close()

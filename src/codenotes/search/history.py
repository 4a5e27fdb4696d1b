from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from ..models.search import SearchHistoryEntry, SearchQuery

logger = logging.getLogger(__name__)

HISTORY_KEY = "searchHistory"
DEFAULT_HISTORY_SIZE = 20


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryKeyValueStore:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)


class SqliteKeyValueStore:
    """JSON values in a single key/value table."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS meta(
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Any:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return json.loads(row["value"]) if row is not None else None

    def set(self, key: str, value: Any) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO meta(key, value) VALUES(?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                    (key, json.dumps(value, ensure_ascii=False, sort_keys=True)),
                )
        finally:
            conn.close()


class SearchHistory:
    """Most-recent-first list of saved searches, bounded and persisted.

    Storage failures are logged and never propagate: history is a
    convenience and must not break searching.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        *,
        max_size: int = DEFAULT_HISTORY_SIZE,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store if store is not None else MemoryKeyValueStore()
        self.max_size = max_size
        self._clock = clock
        self._entries: list[SearchHistoryEntry] = self._load()

    def _load(self) -> list[SearchHistoryEntry]:
        try:
            raw = self.store.get(HISTORY_KEY)
            if not raw:
                return []
            entries = [SearchHistoryEntry.model_validate(item) for item in raw]
        except (sqlite3.Error, OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load search history: {e}")
            return []
        return entries[: self.max_size]

    def _persist(self) -> None:
        try:
            self.store.set(HISTORY_KEY, [e.model_dump(mode="json") for e in self._entries])
        except (sqlite3.Error, OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to persist search history: {e}")

    def add(self, query: SearchQuery, result_count: int) -> SearchHistoryEntry:
        entry = SearchHistoryEntry(
            id=uuid.uuid4().hex,
            query=query,
            timestamp=self._clock(),
            result_count=result_count,
            label=query.label(),
        )
        self._entries.insert(0, entry)
        del self._entries[self.max_size :]
        self._persist()
        return entry

    def entries(self) -> list[SearchHistoryEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries = []
        self._persist()

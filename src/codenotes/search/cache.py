from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..models.search import SearchResult

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ENTRIES = 50


@dataclass(frozen=True)
class CachedResults:
    results: tuple[SearchResult, ...]
    timestamp: float
    ttl: float


class SearchCache:
    """Query-keyed result cache with a TTL and oldest-first eviction."""

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CachedResults] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[list[SearchResult]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= entry.ttl:
            del self._entries[key]
            return None
        return list(entry.results)

    def put(self, key: str, results: list[SearchResult]) -> None:
        if self.max_entries <= 0:
            return
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_entries:
            # dicts keep insertion order, so the first key is the oldest
            del self._entries[next(iter(self._entries))]
        self._entries[key] = CachedResults(
            results=tuple(results),
            timestamp=self._clock(),
            ttl=self.ttl_seconds,
        )

    def clear(self) -> None:
        self._entries.clear()

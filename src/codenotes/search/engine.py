from __future__ import annotations

import logging
import re
import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Iterable, Literal, Optional

from ..errors import InvalidQueryError
from ..lifecycle.tags import normalize_tag
from ..models.annotation import Annotation
from ..models.search import (
    DateField,
    SearchHistoryEntry,
    SearchQuery,
    SearchResult,
    SearchStats,
    TagFilterMode,
)
from .cache import SearchCache
from .excerpts import extract_context, find_matches
from .history import KeyValueStore, SearchHistory
from .index import SearchIndex
from .scoring import clamp, glob_to_regex, recency_boost, regex_relevance, text_relevance
from .tokenize import tokenize

if TYPE_CHECKING:
    from ..lifecycle.manager import AnnotationChange

logger = logging.getLogger(__name__)

IndexStatus = Literal["empty", "indexed"]

TIMING_SAMPLES = 100


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(dt: datetime) -> datetime:
    # Naive datetimes are taken to be UTC; stored annotations are always aware.
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


class SearchEngine:
    """In-memory inverted index and metadata indexes over live annotations.

    The index is derived state: ``build_index`` constructs it from a corpus
    snapshot and lifecycle changes keep it current through
    ``on_annotation_change``. A single re-entrant lock makes index swaps and
    incremental updates atomic with respect to searches.
    """

    def __init__(
        self,
        history_store: Optional[KeyValueStore] = None,
        *,
        cache_ttl_seconds: float = 300,
        cache_max_entries: int = 50,
        history_max_size: int = 20,
        default_max_results: int = 100,
        slow_search_ms: float = 500,
        clock: Callable[[], datetime] = _utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.default_max_results = default_max_results
        self.slow_search_ms = slow_search_ms
        self._clock = clock
        self._lock = threading.RLock()
        self._index = SearchIndex()
        self._status: IndexStatus = "empty"
        self._last_update: Optional[datetime] = None
        self._timings: deque[float] = deque(maxlen=TIMING_SAMPLES)
        self._cache = SearchCache(
            ttl_seconds=cache_ttl_seconds,
            max_entries=cache_max_entries,
            clock=monotonic,
        )
        self._history = SearchHistory(history_store, max_size=history_max_size, clock=clock)

    @property
    def status(self) -> IndexStatus:
        return self._status

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    def build_index(self, annotations: Iterable[Annotation]) -> None:
        started = time.perf_counter()
        fresh = SearchIndex.build(annotations)
        with self._lock:
            self._index = fresh
            self._status = "indexed"
            self._last_update = self._clock()
            self._cache.clear()
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Built search index: {len(fresh)} notes, {len(fresh.content)} terms in {elapsed_ms:.1f}ms"
        )

    def rebuild_index(self, annotations: Iterable[Annotation]) -> None:
        logger.info("Rebuilding search index")
        with self._lock:
            self._index = SearchIndex()
            self._cache.clear()
        self.build_index(annotations)

    def update_index(self, annotation: Annotation) -> None:
        """Re-index one annotation; a deleted annotation is only removed."""
        with self._lock:
            self._index.remove(annotation.id)
            if not annotation.is_deleted:
                self._index.add(annotation)
            self._last_update = self._clock()
            self._cache.clear()

    def remove_from_index(self, annotation_id: str) -> None:
        with self._lock:
            self._index.remove(annotation_id)
            self._last_update = self._clock()
            self._cache.clear()

    def on_annotation_change(self, change: AnnotationChange) -> None:
        if change.kind == "deleted":
            self.remove_from_index(change.annotation.id)
        else:
            self.update_index(change.annotation)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        query: SearchQuery,
        corpus: Optional[Iterable[Annotation]] = None,
        *,
        save_to_history: bool = False,
    ) -> list[SearchResult]:
        """Run a compound query: text or regex, then metadata filters, then ranking.

        Results for the same query are served from the cache until it expires
        or the index changes. An explicit ``corpus`` for regex matching
        bypasses the cache.
        """
        started = time.perf_counter()
        key = query.cache_key()
        use_cache = corpus is None

        with self._lock:
            cached = self._cache.get(key) if use_cache else None
            if cached is not None:
                logger.debug(f"Search cache hit: {query.label()} ({len(cached)} results)")
                results = cached
            else:
                results = self._execute(query, corpus)
                if use_cache:
                    self._cache.put(key, results)
                elapsed_ms = (time.perf_counter() - started) * 1000
                self._timings.append(elapsed_ms)
                logger.debug(f"Search completed in {elapsed_ms:.1f}ms: {query.label()} ({len(results)} results)")
                if elapsed_ms > self.slow_search_ms:
                    logger.warning(
                        f"Slow search ({elapsed_ms:.0f}ms > {self.slow_search_ms:.0f}ms): {query.label()}"
                    )

        if save_to_history:
            self.save_search(query, len(results))
        return results

    def _execute(self, query: SearchQuery, corpus: Optional[Iterable[Annotation]]) -> list[SearchResult]:
        index = self._index
        candidates: set[str] = set(index.by_id)
        pattern: Optional[re.Pattern[str]] = None

        if query.regex:
            pattern = self._compile(query.regex, query.case_sensitive)
            matched = self._regex_ids(pattern, corpus)
            candidates &= matched
        elif query.text:
            candidates &= self._full_text_ids(query.text, query.case_sensitive)

        if candidates and query.authors:
            candidates &= self._author_ids(query.authors)
        if candidates and query.date_range is not None:
            dr = query.date_range
            candidates &= self._date_ids(dr.start, dr.end, dr.field)
        if candidates and query.file_pattern:
            candidates &= self._file_ids(query.file_pattern)
        if candidates and query.tags:
            candidates &= self._tag_ids(query.tags, query.tag_mode)

        now = self._clock()
        # Iterating by_id keeps insertion order, so the stable sort below
        # breaks score ties by index order.
        results = [
            self._result(annotation, query, pattern, now)
            for note_id, annotation in index.by_id.items()
            if note_id in candidates
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results[: query.max_results or self.default_max_results]

    def _result(
        self,
        annotation: Annotation,
        query: SearchQuery,
        pattern: Optional[re.Pattern[str]],
        now: datetime,
    ) -> SearchResult:
        score = 0.0
        if query.text:
            terms = tokenize(query.text, query.case_sensitive)
            postings = self._index.postings(query.case_sensitive)
            matched = 0
            frequency = 0
            for term in terms:
                entry = postings.get(term)
                if entry is not None and annotation.id in entry.note_ids:
                    matched += 1
                    frequency += entry.frequencies.get(annotation.id, 0)
            score = text_relevance(matched_terms=matched, total_terms=len(terms), total_frequency=frequency)

        if pattern is not None:
            score = regex_relevance(score, len(pattern.findall(annotation.content)))

        score += recency_boost(updated_at=_aware(annotation.updated_at), now=_aware(now))

        matches = find_matches(
            annotation.content,
            text=query.text,
            pattern=pattern,
            case_sensitive=query.case_sensitive,
        )
        return SearchResult(
            annotation=annotation,
            score=clamp(score),
            matches=matches,
            context=extract_context(annotation.content, matches),
        )

    @staticmethod
    def _compile(expression: str, case_sensitive: bool) -> re.Pattern[str]:
        try:
            return re.compile(expression, 0 if case_sensitive else re.IGNORECASE)
        except re.error as e:
            raise InvalidQueryError(f"Invalid regular expression {expression!r}: {e}") from e

    def _regex_ids(self, pattern: re.Pattern[str], corpus: Optional[Iterable[Annotation]]) -> set[str]:
        source = self._index.by_id.values() if corpus is None else corpus
        return {a.id for a in source if not a.is_deleted and pattern.search(a.content)}

    def _full_text_ids(self, text: str, case_sensitive: bool) -> set[str]:
        terms = tokenize(text, case_sensitive)
        if not terms:
            return set()
        postings = self._index.postings(case_sensitive)
        matching: Optional[set[str]] = None
        for term in terms:
            entry = postings.get(term)
            ids = entry.note_ids if entry is not None else set()
            matching = set(ids) if matching is None else matching & ids
            if not matching:
                break
        return matching or set()

    def _author_ids(self, authors: Iterable[str]) -> set[str]:
        ids: set[str] = set()
        for author in authors:
            ids |= self._index.authors.get(author, set())
        return ids

    def _date_ids(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
        field: DateField = DateField.CREATED,
    ) -> set[str]:
        lo = _aware(start) if start is not None else None
        hi = _aware(end) if end is not None else None
        ids: set[str] = set()
        for note_id, annotation in self._index.by_id.items():
            when = _aware(annotation.updated_at if field is DateField.UPDATED else annotation.created_at)
            if lo is not None and when < lo:
                continue
            if hi is not None and when > hi:
                continue
            ids.add(note_id)
        return ids

    def _file_ids(self, pattern: str) -> set[str]:
        regex = glob_to_regex(pattern)
        ids: set[str] = set()
        for file_path, file_ids in self._index.files.items():
            if regex.match(file_path):
                ids |= file_ids
        return ids

    def _tag_ids(self, tags: Iterable[str], mode: TagFilterMode = TagFilterMode.ANY) -> set[str]:
        wanted = [normalize_tag(t) for t in tags if t.strip()]
        if not wanted:
            return set()
        if mode is TagFilterMode.ALL:
            matching: Optional[set[str]] = None
            for tag in wanted:
                ids = self._index.tags.get(tag, set())
                matching = set(ids) if matching is None else matching & ids
                if not matching:
                    return set()
            return matching or set()
        ids: set[str] = set()
        for tag in wanted:
            ids |= self._index.tags.get(tag, set())
        return ids

    def _annotations(self, ids: set[str]) -> list[Annotation]:
        return [a for note_id, a in self._index.by_id.items() if note_id in ids]

    # ------------------------------------------------------------------
    # Standalone queries
    # ------------------------------------------------------------------

    def search_full_text(self, text: str, case_sensitive: bool = False) -> list[Annotation]:
        """Annotations containing every term of ``text`` (AND)."""
        with self._lock:
            return self._annotations(self._full_text_ids(text, case_sensitive))

    def search_regex(
        self,
        pattern: str,
        corpus: Optional[Iterable[Annotation]] = None,
        case_sensitive: bool = False,
    ) -> list[Annotation]:
        compiled = self._compile(pattern, case_sensitive)
        with self._lock:
            if corpus is None:
                return self._annotations(self._regex_ids(compiled, None))
            return [a for a in corpus if not a.is_deleted and compiled.search(a.content)]

    def filter_by_author(self, authors: Iterable[str]) -> list[Annotation]:
        with self._lock:
            return self._annotations(self._author_ids(authors))

    def filter_by_date_range(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        field: DateField = DateField.CREATED,
    ) -> list[Annotation]:
        with self._lock:
            return self._annotations(self._date_ids(start, end, field))

    def filter_by_file_path(self, pattern: str) -> list[Annotation]:
        with self._lock:
            return self._annotations(self._file_ids(pattern))

    def filter_by_tags(self, tags: Iterable[str], mode: TagFilterMode = TagFilterMode.ANY) -> list[Annotation]:
        with self._lock:
            return self._annotations(self._tag_ids(tags, mode))

    def get_authors(self) -> list[str]:
        with self._lock:
            return sorted(self._index.authors)

    def get_tags(self) -> list[str]:
        with self._lock:
            return sorted(self._index.tags)

    def get_stats(self) -> SearchStats:
        with self._lock:
            timings = list(self._timings)
            return SearchStats(
                total_notes=len(self._index),
                total_terms=len(self._index.content),
                index_size=self._index.estimate_size(),
                last_update=self._last_update,
                average_search_time=sum(timings) / len(timings) if timings else 0.0,
            )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def save_search(self, query: SearchQuery, result_count: int) -> SearchHistoryEntry:
        return self._history.add(query, result_count)

    def get_search_history(self) -> list[SearchHistoryEntry]:
        return self._history.entries()

    def clear_search_history(self) -> None:
        self._history.clear()

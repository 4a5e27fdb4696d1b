"""Annotation search: inverted index, filters, ranking, cache and history."""

from .engine import SearchEngine
from .history import KeyValueStore, MemoryKeyValueStore, SearchHistory, SqliteKeyValueStore
from .index import PostingEntry, SearchIndex
from .tokenize import STOP_WORDS, tokenize

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "PostingEntry",
    "STOP_WORDS",
    "SearchEngine",
    "SearchHistory",
    "SearchIndex",
    "SqliteKeyValueStore",
    "tokenize",
]

"""Pydantic models for codenotes."""

from .annotation import (
    Annotation,
    CreateAnnotationParams,
    HistoryAction,
    HistoryEntry,
    LifecycleState,
    LineRange,
    UpdateAnnotationParams,
)
from .ledger import AnnotationEvent
from .search import (
    DateField,
    DateRange,
    SearchHistoryEntry,
    SearchMatch,
    SearchQuery,
    SearchResult,
    SearchStats,
    TagFilterMode,
)

__all__ = [
    # Annotations
    "Annotation",
    "CreateAnnotationParams",
    "HistoryAction",
    "HistoryEntry",
    "LifecycleState",
    "LineRange",
    "UpdateAnnotationParams",
    # Ledger
    "AnnotationEvent",
    # Search
    "DateField",
    "DateRange",
    "SearchHistoryEntry",
    "SearchMatch",
    "SearchQuery",
    "SearchResult",
    "SearchStats",
    "TagFilterMode",
]

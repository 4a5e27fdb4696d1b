"""Pydantic models for search queries, results and history."""

import json
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .annotation import Annotation


class DateField(str, Enum):
    """Annotation timestamp a date range applies to."""

    CREATED = "created"
    UPDATED = "updated"


class TagFilterMode(str, Enum):
    """How multiple tags combine: ANY is OR, ALL is AND."""

    ANY = "any"
    ALL = "all"


class DateRange(BaseModel):
    """Inclusive date bounds; either side may be open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    field: DateField = DateField.CREATED

    model_config = {"frozen": True}


class SearchQuery(BaseModel):
    """Compound search query. Every criterion is optional and they AND together."""

    text: Optional[str] = Field(default=None, description="Full-text terms (AND)")
    regex: Optional[str] = Field(default=None, description="Regular expression over note content")
    authors: list[str] = Field(default_factory=list, description="Authors (OR)")
    date_range: Optional[DateRange] = None
    file_pattern: Optional[str] = Field(default=None, description="Glob over file paths")
    tags: list[str] = Field(default_factory=list)
    tag_mode: TagFilterMode = TagFilterMode.ANY
    case_sensitive: bool = False
    max_results: Optional[int] = Field(default=None, ge=1)

    model_config = {"frozen": True}

    def cache_key(self) -> str:
        """Canonical serialization used as the result-cache key."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))

    def label(self) -> str:
        """Human-readable summary for search history."""
        parts: list[str] = []
        if self.text:
            parts.append(f'"{self.text}"')
        if self.regex:
            parts.append(f"regex: {self.regex}")
        if self.authors:
            parts.append(f"by {', '.join(self.authors)}")
        if self.date_range:
            field = self.date_range.field.value
            start = self.date_range.start.date().isoformat() if self.date_range.start else None
            end = self.date_range.end.date().isoformat() if self.date_range.end else None
            if start and end:
                parts.append(f"{field} between {start} and {end}")
            elif start:
                parts.append(f"{field} after {start}")
            elif end:
                parts.append(f"{field} before {end}")
        if self.file_pattern:
            parts.append(f"in {self.file_pattern}")
        if self.tags:
            joiner = " & " if self.tag_mode is TagFilterMode.ALL else " | "
            parts.append(f"tags {joiner.join(self.tags)}")
        return " • ".join(parts) or "Empty search"


class SearchMatch(BaseModel):
    """One occurrence of the query inside a note's content."""

    text: str
    start_index: int
    end_index: int
    line_number: int = Field(description="0-based line within the note content")

    model_config = {"frozen": True}


class SearchResult(BaseModel):
    """Scored search hit."""

    annotation: Annotation
    score: float = Field(ge=0.0, le=1.0)
    matches: list[SearchMatch] = Field(default_factory=list)
    context: str = ""


class SearchHistoryEntry(BaseModel):
    """A saved search."""

    id: str
    query: SearchQuery
    timestamp: datetime
    result_count: int
    label: str


class SearchStats(BaseModel):
    """Index and timing statistics."""

    total_notes: int = 0
    total_terms: int = 0
    index_size: int = Field(default=0, description="Estimated index size in bytes")
    last_update: Optional[datetime] = None
    average_search_time: float = Field(default=0.0, description="Milliseconds")

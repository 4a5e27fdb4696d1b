"""Pydantic models for annotations and their append-only history."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..errors import InvalidRangeError


class LineRange(BaseModel):
    """Inclusive, 0-based range of lines in a document.

    Construction does not validate ordering so that callers can express any
    request; use ``check`` before trusting a range that came from outside.
    """

    start: int = Field(description="First line (0-based)")
    end: int = Field(description="Last line (0-based, inclusive)")

    model_config = {"frozen": True}

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def check(self, line_count: Optional[int] = None) -> None:
        """Raise InvalidRangeError unless the range is well formed.

        Args:
            line_count: When given, the range must also fit in a document of
                this many lines.
        """
        if self.start < 0 or self.end < 0:
            raise InvalidRangeError("Line range cannot contain negative numbers")
        if self.start > self.end:
            raise InvalidRangeError("Line range start must be less than or equal to end")
        if line_count is not None and self.end >= line_count:
            raise InvalidRangeError(
                f"Line range end ({self.end}) exceeds document line count ({line_count})"
            )

    def contains(self, line: int) -> bool:
        return self.start <= line <= self.end

    def overlaps(self, other: "LineRange") -> bool:
        return not (self.end < other.start or self.start > other.end)

    def shifted(self, new_start: int) -> "LineRange":
        """Same-sized range starting at ``new_start``."""
        return LineRange(start=new_start, end=new_start + self.size - 1)

    def __str__(self) -> str:
        if self.start == self.end:
            return f"L{self.start + 1}"
        return f"L{self.start + 1}-{self.end + 1}"


class HistoryAction(str, Enum):
    """Lifecycle operation recorded by a history entry."""

    CREATED = "created"
    EDITED = "edited"
    DELETED = "deleted"


class HistoryEntry(BaseModel):
    """Immutable snapshot of an annotation after a lifecycle operation."""

    content: str
    author: str
    timestamp: datetime
    action: HistoryAction

    model_config = {"frozen": True}


class LifecycleState(str, Enum):
    """Whether an annotation may still be mutated."""

    ACTIVE = "active"
    DELETED = "deleted"


class Annotation(BaseModel):
    """A note attached to a line range of a file.

    Instances are frozen. Lifecycle operations produce new instances via
    ``model_copy``; ``history`` only ever grows.
    """

    id: str = Field(description="Opaque unique identifier (uuid4)")
    content: str = Field(description="Note body (markdown)")
    author: str = Field(description="Author of the latest revision")
    file_path: str = Field(description="Path of the annotated file")
    line_range: LineRange
    content_hash: str = Field(description="SHA-256 of the normalized anchored lines")
    anchor_text: str = Field(
        default="",
        description="Normalized anchored lines at the last validate-or-relocate cycle",
    )
    created_at: datetime
    updated_at: datetime
    history: tuple[HistoryEntry, ...] = Field(default=())
    state: LifecycleState = Field(default=LifecycleState.ACTIVE)
    tags: frozenset[str] = Field(default_factory=frozenset)

    model_config = {"frozen": True}

    @property
    def is_deleted(self) -> bool:
        return self.state is LifecycleState.DELETED

    @property
    def last_action(self) -> Optional[HistoryAction]:
        return self.history[-1].action if self.history else None

    def with_history(self, entry: HistoryEntry, **changes) -> "Annotation":
        """Return a copy with ``entry`` appended to the history."""
        return self.model_copy(update={**changes, "history": self.history + (entry,)})


class CreateAnnotationParams(BaseModel):
    """Parameters for creating a new annotation."""

    file_path: str
    line_range: LineRange
    content: str
    author: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class UpdateAnnotationParams(BaseModel):
    """Parameters for editing an existing annotation.

    ``tags`` left as None keeps the current tags.
    """

    id: str
    content: str
    author: Optional[str] = None
    tags: Optional[list[str]] = None

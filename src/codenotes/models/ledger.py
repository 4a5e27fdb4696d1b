"""Pydantic models for lifecycle ledger events."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

EventType = Literal[
    "ANNOTATION_CREATED",
    "ANNOTATION_EDITED",
    "ANNOTATION_DELETED",
    "ANNOTATION_RELOCATED",
]


class AnnotationEvent(BaseModel):
    """Append-only ledger event record.

    Written as JSONL to <storage>/ledger.jsonl.
    Never mutate or delete; only append.
    """

    event_id: str = Field(description="Unique event identifier (uuid4)")
    run_id: str = Field(description="Run/session identifier (uuid4)")
    ts: datetime = Field(description="Event timestamp (ISO8601 UTC)")
    event_type: EventType = Field(description="Event type")
    annotation_id: str = Field(description="Annotation the event refers to")
    file_path: str = Field(description="Annotated file")
    payload: dict = Field(default_factory=dict, description="Event-specific data")

    model_config = {"frozen": True}

"""Append-only lifecycle ledger for codenotes."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console

from .models.ledger import AnnotationEvent, EventType

console = Console()


class LedgerWriter:
    """Append-only ledger writer.

    Writes events to <storage>/ledger.jsonl.
    Never truncates or rewrites; only appends.
    """

    def __init__(self, ledger_path: Path, run_id: str | None = None):
        """Initialize ledger writer.

        Args:
            ledger_path: Path to ledger.jsonl file
            run_id: Optional run ID; if None, generates a new uuid4
        """
        self.ledger_path = ledger_path
        self.run_id = run_id or str(uuid.uuid4())

    def append_event(
        self,
        event_type: EventType,
        annotation_id: str,
        file_path: str,
        payload: dict | None = None,
    ) -> AnnotationEvent:
        """Append an event to the ledger.

        Args:
            event_type: Type of event
            annotation_id: Annotation the event refers to
            file_path: Annotated file
            payload: Event-specific data

        Returns:
            The created AnnotationEvent
        """
        self.ledger_path.parent.mkdir(parents=True, exist_ok=True)

        event = AnnotationEvent(
            event_id=str(uuid.uuid4()),
            run_id=self.run_id,
            ts=datetime.now(timezone.utc),
            event_type=event_type,
            annotation_id=annotation_id,
            file_path=file_path,
            payload=payload or {},
        )

        # JSONL: one JSON object per line
        with open(self.ledger_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event.model_dump(mode="json")) + "\n")

        return event


def read_ledger_tail(
    ledger_path: Path,
    n: int = 20,
    annotation_id: str | None = None,
) -> list[AnnotationEvent]:
    """Read the last N events from the ledger.

    Robust parsing: skips malformed lines with a warning.

    Args:
        ledger_path: Path to ledger.jsonl file
        n: Number of events to read from the end
        annotation_id: Only events whose annotation id starts with this

    Returns:
        List of AnnotationEvent objects (last N events, oldest first)
    """
    if not ledger_path.exists() or n <= 0:
        return []

    with open(ledger_path, "r", encoding="utf-8") as f:
        lines = [line.strip() for line in f if line.strip()]

    # Without a filter only the tail needs parsing.
    if annotation_id is None:
        lines = lines[-n:]

    events: list[AnnotationEvent] = []
    malformed_count = 0
    for line in lines:
        try:
            event = AnnotationEvent(**json.loads(line))
        except (json.JSONDecodeError, ValueError) as e:
            malformed_count += 1
            console.print(f"[yellow]Warning: Skipping malformed line: {e}[/yellow]")
            continue
        if annotation_id is None or event.annotation_id.startswith(annotation_id):
            events.append(event)

    if malformed_count > 0:
        console.print(f"[yellow]Skipped {malformed_count} malformed line(s)[/yellow]")

    return events[-n:]

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator, Literal, Optional

from ..anchor.document import Document
from ..anchor.tracker import AnchorTracker
from ..errors import AlreadyDeletedError, FileMismatchError, NotFoundError
from ..ledger import LedgerWriter
from ..models.annotation import (
    Annotation,
    CreateAnnotationParams,
    HistoryAction,
    HistoryEntry,
    LifecycleState,
    LineRange,
    UpdateAnnotationParams,
)
from ..models.ledger import EventType
from .author import AuthorResolver, SystemAuthorResolver
from .store import AnnotationStore
from .tags import normalize_tags

logger = logging.getLogger(__name__)

ChangeKind = Literal["created", "updated", "deleted", "relocated"]

_LEDGER_EVENTS: dict[str, EventType] = {
    "created": "ANNOTATION_CREATED",
    "updated": "ANNOTATION_EDITED",
    "deleted": "ANNOTATION_DELETED",
    "relocated": "ANNOTATION_RELOCATED",
}


@dataclass(frozen=True)
class AnnotationChange:
    kind: ChangeKind
    annotation: Annotation


ChangeListener = Callable[[AnnotationChange], None]


@dataclass
class _FileLock:
    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleManager:
    """Owns annotation creation, editing, soft-deletion and repositioning.

    Every write goes to the store first and then to the per-file cache.
    Validation happens before either is touched. Operations on the same file
    are serialized by a per-file re-entrant lock.
    """

    def __init__(
        self,
        store: AnnotationStore,
        tracker: Optional[AnchorTracker] = None,
        author_resolver: Optional[AuthorResolver] = None,
        ledger: Optional[LedgerWriter] = None,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.tracker = tracker or AnchorTracker()
        self.author_resolver = author_resolver or SystemAuthorResolver()
        self.ledger = ledger
        self._clock = clock
        self._cache: dict[str, dict[str, Annotation]] = {}
        self._locks: dict[str, _FileLock] = {}
        self._locks_guard = threading.Lock()
        self._listeners: list[ChangeListener] = []

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, params: CreateAnnotationParams, document: Document) -> Annotation:
        file_path = document.file_path
        if params.file_path != file_path:
            raise FileMismatchError(params.file_path, file_path)
        with self._file_lock(file_path):
            params.line_range.check(document.line_count())
            tags = normalize_tags(params.tags)
            author = self._author(params.author)
            content = params.content.strip()
            now = self._clock()
            anchor_text = self.tracker.anchor_text(document, params.line_range)

            annotation = Annotation(
                id=str(uuid.uuid4()),
                content=content,
                author=author,
                file_path=file_path,
                line_range=params.line_range,
                content_hash=self.tracker.digest(anchor_text),
                anchor_text=anchor_text,
                created_at=now,
                updated_at=now,
                history=(
                    HistoryEntry(
                        content=content,
                        author=author,
                        timestamp=now,
                        action=HistoryAction.CREATED,
                    ),
                ),
                tags=tags,
            )
            self._commit(annotation)

        logger.debug(f"Created annotation {annotation.id} at {file_path}:{annotation.line_range}")
        self._publish(
            "created",
            annotation,
            {"line_range": str(annotation.line_range), "author": author, "tags": sorted(tags)},
        )
        return annotation

    def update(self, params: UpdateAnnotationParams, document: Document) -> Annotation:
        file_path = document.file_path
        with self._file_lock(file_path):
            current = self._require_live(params.id, file_path)
            tags = normalize_tags(params.tags) if params.tags is not None else current.tags
            author = self._author(params.author)
            content = params.content.strip()
            now = self._clock()
            anchor_text = self.tracker.anchor_text(document, current.line_range)

            annotation = current.with_history(
                HistoryEntry(
                    content=content,
                    author=author,
                    timestamp=now,
                    action=HistoryAction.EDITED,
                ),
                content=content,
                author=author,
                tags=tags,
                updated_at=now,
                content_hash=self.tracker.digest(anchor_text),
                anchor_text=anchor_text,
            )
            self._commit(annotation)

        self._publish("updated", annotation, {"author": author, "tags": sorted(tags)})
        return annotation

    def delete(self, annotation_id: str, file_path: str, author: Optional[str] = None) -> Annotation:
        """Soft-delete an annotation. The record and its history are kept."""
        with self._file_lock(file_path):
            current = self._require_live(annotation_id, file_path)
            author = self._author(author)
            now = self._clock()

            annotation = current.with_history(
                HistoryEntry(
                    content=current.content,
                    author=author,
                    timestamp=now,
                    action=HistoryAction.DELETED,
                ),
                state=LifecycleState.DELETED,
                updated_at=now,
            )
            self._commit(annotation)

        self._publish("deleted", annotation, {"author": author})
        return annotation

    def reconcile_positions(
        self,
        document: Document,
        cancel: Optional[threading.Event] = None,
    ) -> list[Annotation]:
        """Re-anchor every live annotation of the document's file.

        Annotations whose content cannot be found are left untouched.
        Returns the annotations that moved.
        """
        file_path = document.file_path
        moved: list[Annotation] = []
        with self._file_lock(file_path):
            for annotation in self.get_for_file(file_path):
                if cancel is not None and cancel.is_set():
                    logger.info(f"Reconcile of {file_path} cancelled after {len(moved)} relocation(s)")
                    break
                if self.tracker.validate(document, annotation.line_range, annotation.content_hash):
                    continue

                result = self.tracker.relocate(
                    document,
                    annotation.content_hash,
                    annotation.line_range,
                    anchor_text=annotation.anchor_text or None,
                    cancel=cancel,
                )
                if result.cancelled:
                    logger.info(f"Reconcile of {file_path} cancelled after {len(moved)} relocation(s)")
                    break
                if not result.found or result.new_range is None:
                    logger.warning(f"Could not relocate annotation {annotation.id} in {file_path}")
                    continue

                relocated = self._relocated(annotation, document, result.new_range)
                self._commit(relocated)
                moved.append(relocated)
                self._publish(
                    "relocated",
                    relocated,
                    {
                        "from": str(annotation.line_range),
                        "to": str(result.new_range),
                        "similarity": result.similarity,
                    },
                )
        return moved

    def _relocated(self, annotation: Annotation, document: Document, new_range: LineRange) -> Annotation:
        anchor_text = self.tracker.anchor_text(document, new_range)
        return annotation.model_copy(
            update={
                "line_range": new_range,
                "content_hash": self.tracker.digest(anchor_text),
                "anchor_text": anchor_text,
                "updated_at": self._clock(),
            }
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_for_file(self, file_path: str, include_deleted: bool = False) -> list[Annotation]:
        annotations = self._load(file_path).values()
        if include_deleted:
            return list(annotations)
        return [a for a in annotations if not a.is_deleted]

    def get_by_id(self, annotation_id: str, file_path: str) -> Optional[Annotation]:
        """Look up an annotation in a file, deleted ones included."""
        return self._load(file_path).get(annotation_id)

    def get_history(self, annotation_id: str, file_path: str) -> tuple[HistoryEntry, ...]:
        annotation = self.get_by_id(annotation_id, file_path)
        if annotation is None:
            raise NotFoundError(annotation_id, file_path)
        return annotation.history

    def get_at_line(self, file_path: str, line: int) -> list[Annotation]:
        return [a for a in self.get_for_file(file_path) if a.line_range.contains(line)]

    def get_in_range(self, file_path: str, line_range: LineRange) -> list[Annotation]:
        return [a for a in self.get_for_file(file_path) if a.line_range.overlaps(line_range)]

    def refresh(self, file_path: str) -> list[Annotation]:
        """Drop the cached view of a file and reload it from the store."""
        self.clear_cache(file_path)
        return self.get_for_file(file_path)

    def clear_cache(self, file_path: Optional[str] = None) -> None:
        if file_path is None:
            self._cache.clear()
        else:
            self._cache.pop(file_path, None)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _file_lock(self, file_path: str) -> Iterator[None]:
        """Hold the re-entrant lock for ``file_path``.

        Entries are reference counted and dropped once no caller holds or
        waits on them, so the map only covers files currently in use.
        """
        with self._locks_guard:
            entry = self._locks.get(file_path)
            if entry is None:
                entry = self._locks[file_path] = _FileLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[file_path]

    def _load(self, file_path: str) -> dict[str, Annotation]:
        with self._file_lock(file_path):
            cached = self._cache.get(file_path)
            if cached is None:
                cached = {a.id: a for a in self.store.load_all(file_path)}
                self._cache[file_path] = cached
            return cached

    def _require_live(self, annotation_id: str, file_path: str) -> Annotation:
        annotation = self.get_by_id(annotation_id, file_path)
        if annotation is None:
            raise NotFoundError(annotation_id, file_path)
        if annotation.is_deleted:
            raise AlreadyDeletedError(annotation_id)
        return annotation

    def _author(self, explicit: Optional[str]) -> str:
        if explicit and explicit.strip():
            return explicit.strip()
        return self.author_resolver.resolve_author()

    def _commit(self, annotation: Annotation) -> None:
        self.store.save(annotation)
        self._load(annotation.file_path)[annotation.id] = annotation

    def _publish(self, kind: ChangeKind, annotation: Annotation, payload: dict) -> None:
        if self.ledger is not None:
            try:
                self.ledger.append_event(_LEDGER_EVENTS[kind], annotation.id, annotation.file_path, payload)
            except OSError as e:
                logger.warning(f"Failed to append {kind} event for {annotation.id} to ledger: {e}")

        change = AnnotationChange(kind=kind, annotation=annotation)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(f"Annotation change listener failed for {kind} {annotation.id}")

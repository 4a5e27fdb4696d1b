"""Wiring of store, lifecycle manager and search engine for one workspace."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .anchor.document import TextDocument, load_document
from .anchor.tracker import AnchorTracker
from .config import NotesConfig
from .ledger import LedgerWriter
from .lifecycle.author import SystemAuthorResolver
from .lifecycle.manager import LifecycleManager
from .lifecycle.store import SqliteAnnotationStore
from .paths import WorkspacePaths
from .search.engine import SearchEngine
from .search.history import SqliteKeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class NotesWorkspace:
    config: NotesConfig
    paths: WorkspacePaths
    store: SqliteAnnotationStore
    ledger: LedgerWriter
    manager: LifecycleManager
    engine: SearchEngine

    def document(self, path: Path) -> TextDocument:
        """Read ``path`` keyed the way annotations on it are stored."""
        return load_document(path, file_path=self.paths.file_key(path))

    def close(self) -> None:
        self.manager.remove_listener(self.engine.on_annotation_change)


def open_workspace(config: NotesConfig, *, run_id: Optional[str] = None) -> NotesWorkspace:
    """Open (creating storage if needed) the workspace described by ``config``.

    The search index is rebuilt from the annotation store and then kept
    current by subscribing the engine to lifecycle changes.
    """
    paths = WorkspacePaths.from_config(config)
    for directory in paths.get_all_directories():
        directory.mkdir(parents=True, exist_ok=True)

    store = SqliteAnnotationStore(paths.notes_db)
    ledger = LedgerWriter(paths.ledger_file, run_id=run_id)
    manager = LifecycleManager(
        store,
        tracker=AnchorTracker(
            similarity_threshold=config.anchor.similarity_threshold,
            search_margin=config.anchor.search_margin,
        ),
        author_resolver=SystemAuthorResolver(config.author_name),
        ledger=ledger,
    )
    engine = SearchEngine(
        SqliteKeyValueStore(paths.state_db),
        cache_ttl_seconds=config.search.cache_ttl_seconds,
        cache_max_entries=config.search.cache_max_entries,
        history_max_size=config.search.history_max_size,
        default_max_results=config.search.default_max_results,
        slow_search_ms=config.search.slow_search_ms,
    )
    engine.build_index(store.load_corpus())
    manager.add_listener(engine.on_annotation_change)
    logger.debug(f"Opened workspace at {paths.root} (storage {paths.storage})")

    return NotesWorkspace(
        config=config,
        paths=paths,
        store=store,
        ledger=ledger,
        manager=manager,
        engine=engine,
    )

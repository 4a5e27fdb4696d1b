"""Pytest fixtures for codenotes tests."""

from datetime import datetime, timedelta, timezone

import pytest

from codenotes.anchor.document import TextDocument
from codenotes.config import NotesConfig
from codenotes.lifecycle.author import StaticAuthorResolver
from codenotes.lifecycle.manager import LifecycleManager
from codenotes.lifecycle.store import SqliteAnnotationStore
from codenotes.paths import WorkspacePaths


class FakeClock:
    """Deterministic UTC clock; ``advance`` moves it forward."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def temp_workspace(tmp_path):
    """Create a temporary workspace root for testing.

    Returns:
        Path to temporary workspace root
    """
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def workspace_config(temp_workspace):
    return NotesConfig(workspace_root=temp_workspace)


@pytest.fixture
def workspace_paths(workspace_config):
    """Create WorkspacePaths with storage directory and empty ledger."""
    paths = WorkspacePaths.from_config(workspace_config)

    for directory in paths.get_all_directories():
        directory.mkdir(parents=True, exist_ok=True)

    paths.ledger_file.touch()

    return paths


@pytest.fixture
def store(tmp_path):
    return SqliteAnnotationStore(tmp_path / "notes.sqlite")


@pytest.fixture
def manager(store, clock):
    return LifecycleManager(store, author_resolver=StaticAuthorResolver("Ada"), clock=clock)


@pytest.fixture
def sample_document():
    lines = [f"line {i}" for i in range(10)]
    lines[3] = "def compute_total(items):"
    lines[4] = "    return sum(item.price for item in items)"
    return TextDocument.from_lines("src/app.py", lines)

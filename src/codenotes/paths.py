"""Path management and on-disk layout for a codenotes workspace."""

from pathlib import Path

from .config import CONFIG_FILE_NAME, NotesConfig


class WorkspacePaths:
    """Manages paths within a workspace's storage directory."""

    def __init__(self, workspace_root: Path, storage_dir: Path | None = None):
        """Initialize workspace paths.

        Args:
            workspace_root: Root directory whose files are annotated
            storage_dir: Where codenotes keeps its data; defaults to
                <workspace_root>/.codenotes
        """
        self.root = workspace_root
        self.storage = storage_dir or workspace_root / ".codenotes"

        self.config_file = self.storage / CONFIG_FILE_NAME
        self.notes_db = self.storage / "notes.sqlite"
        self.state_db = self.storage / "state.sqlite"
        self.ledger_file = self.storage / "ledger.jsonl"

    @classmethod
    def from_config(cls, config: NotesConfig) -> "WorkspacePaths":
        """Create WorkspacePaths from a NotesConfig."""
        return cls(config.workspace_root, config.storage_path)

    def get_all_directories(self) -> list[Path]:
        """Get list of all directories that should exist in the workspace."""
        return [self.storage]

    def is_initialized(self) -> bool:
        return self.storage.is_dir()

    def file_key(self, path: Path) -> str:
        """Identity recorded on annotations for ``path``.

        Files inside the workspace are keyed by their POSIX path relative to
        the root so the store survives moving the checkout; anything else
        keeps its absolute path.
        """
        resolved = path.expanduser().resolve()
        try:
            return resolved.relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return str(resolved)

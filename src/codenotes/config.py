"""Configuration management for codenotes."""

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11

CONFIG_DIR_NAME = ".codenotes"
CONFIG_FILE_NAME = "config.toml"


def _find_repo_root(start_dir: Path) -> Path:
    """Find repository root by walking upward looking for .git or pyproject.toml."""
    current_dir = start_dir

    while True:
        if (current_dir / ".git").exists() or (current_dir / "pyproject.toml").exists():
            return current_dir

        parent_dir = current_dir.parent

        # Stop if we reach filesystem root
        if parent_dir == current_dir:
            # No repo found, return original directory
            return start_dir

        current_dir = parent_dir


def _load_repo_config_data(repo_root: Path) -> Optional[dict]:
    """Load repo config data from .codenotes/config.toml if it exists."""
    config_file = repo_root / CONFIG_DIR_NAME / CONFIG_FILE_NAME

    if not config_file.exists():
        return None

    try:
        with open(config_file, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        # If config file is malformed, ignore it
        return None


def _section(data: Optional[dict], name: str) -> dict:
    if not data:
        return {}
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def _as_int(value: Any, *, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid config: {name} must be an int")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValueError(f"Invalid config: {name} must be an int")


def _as_float(value: Any, *, name: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Invalid config: {name} must be a float")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ValueError(f"Invalid config: {name} must be a float")


def _pick(env_name: str, section: dict, key: str, default: Any) -> Any:
    """Environment variable, then repo config value, then default."""
    env_value = os.environ.get(env_name)
    if env_value is not None and env_value.strip():
        return env_value
    if key in section:
        return section[key]
    return default


class AnchorConfig(BaseModel):
    """Relocation tuning."""

    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    search_margin: int = Field(default=50, ge=0, description="Lines either side of the original range")


class SearchConfig(BaseModel):
    """Search engine limits."""

    cache_ttl_seconds: float = Field(default=300, ge=0)
    cache_max_entries: int = Field(default=50, ge=0)
    history_max_size: int = Field(default=20, ge=0)
    default_max_results: int = Field(default=100, ge=1)
    slow_search_ms: float = Field(default=500, ge=0)


class NotesConfig(BaseModel):
    """Configuration for a codenotes workspace."""

    workspace_root: Path = Field(default_factory=Path.cwd)
    storage_dir: str = Field(default=CONFIG_DIR_NAME, description="Relative to workspace_root")
    author_name: Optional[str] = Field(default=None, description="Overrides the resolved author")
    anchor: AnchorConfig = Field(default_factory=AnchorConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)

    @property
    def storage_path(self) -> Path:
        path = Path(self.storage_dir).expanduser()
        return path if path.is_absolute() else self.workspace_root / path

    @classmethod
    def from_env(
        cls,
        cli_workspace: Optional[str] = None,
        cli_author: Optional[str] = None,
        start_dir: Optional[Path] = None,
    ) -> "NotesConfig":
        """Load configuration with the following precedence:

        1. CLI options (--workspace, --author)
        2. CODENOTES_* environment variables
        3. repo-local .codenotes/config.toml (walk upward from start_dir)
        4. Defaults

        Raises:
            ValueError: If a numeric setting cannot be parsed
        """
        start = (start_dir or Path.cwd()).resolve()
        if cli_workspace:
            workspace_root = Path(cli_workspace).expanduser().resolve()
        elif os.environ.get("CODENOTES_WORKSPACE"):
            workspace_root = Path(os.environ["CODENOTES_WORKSPACE"]).expanduser().resolve()
        else:
            workspace_root = _find_repo_root(start)

        data = _load_repo_config_data(workspace_root)
        top = data or {}
        anchor = _section(data, "anchor")
        search = _section(data, "search")

        author = cli_author or _pick("CODENOTES_AUTHOR", top, "author", None)

        return cls(
            workspace_root=workspace_root,
            storage_dir=str(_pick("CODENOTES_STORAGE_DIR", top, "storage_dir", CONFIG_DIR_NAME)),
            author_name=str(author) if author else None,
            anchor=AnchorConfig(
                similarity_threshold=_as_float(
                    _pick("CODENOTES_SIMILARITY_THRESHOLD", anchor, "similarity_threshold", 0.7),
                    name="[anchor].similarity_threshold",
                ),
                search_margin=_as_int(
                    _pick("CODENOTES_SEARCH_MARGIN", anchor, "search_margin", 50),
                    name="[anchor].search_margin",
                ),
            ),
            search=SearchConfig(
                cache_ttl_seconds=_as_float(
                    _pick("CODENOTES_CACHE_TTL_SECONDS", search, "cache_ttl_seconds", 300),
                    name="[search].cache_ttl_seconds",
                ),
                cache_max_entries=_as_int(
                    _pick("CODENOTES_CACHE_MAX_ENTRIES", search, "cache_max_entries", 50),
                    name="[search].cache_max_entries",
                ),
                history_max_size=_as_int(
                    _pick("CODENOTES_HISTORY_MAX_SIZE", search, "history_max_size", 20),
                    name="[search].history_max_size",
                ),
                default_max_results=_as_int(
                    _pick("CODENOTES_MAX_RESULTS", search, "default_max_results", 100),
                    name="[search].default_max_results",
                ),
                slow_search_ms=_as_float(
                    _pick("CODENOTES_SLOW_SEARCH_MS", search, "slow_search_ms", 500),
                    name="[search].slow_search_ms",
                ),
            ),
        )

    def to_toml_str(self) -> str:
        """Generate TOML configuration string."""
        author_line = f'author = "{self.author_name}"' if self.author_name else '# author = "Your Name"'
        return f"""# codenotes configuration

{author_line}
storage_dir = "{self.storage_dir}"

# Relocation of annotations after edits
[anchor]
similarity_threshold = {self.anchor.similarity_threshold}
search_margin = {self.anchor.search_margin}

[search]
cache_ttl_seconds = {self.search.cache_ttl_seconds}
cache_max_entries = {self.search.cache_max_entries}
history_max_size = {self.search.history_max_size}
default_max_results = {self.search.default_max_results}
slow_search_ms = {self.search.slow_search_ms}
"""

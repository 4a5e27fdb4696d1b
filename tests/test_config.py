"""Tests for configuration loading and workspace paths."""

import os
from pathlib import Path

import pytest

from codenotes.config import NotesConfig
from codenotes.paths import WorkspacePaths

try:
    import tomllib
except ImportError:
    import tomli as tomllib


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("CODENOTES_"):
            monkeypatch.delenv(name)


def _repo(tmp_path: Path, config_text: str | None = None) -> Path:
    root = tmp_path / "repo"
    (root / ".git").mkdir(parents=True)
    (root / "pkg" / "sub").mkdir(parents=True)
    if config_text is not None:
        (root / ".codenotes").mkdir()
        (root / ".codenotes" / "config.toml").write_text(config_text, encoding="utf-8")
    return root


def test_defaults_resolve_repo_root(tmp_path):
    root = _repo(tmp_path)

    config = NotesConfig.from_env(start_dir=root / "pkg" / "sub")

    assert config.workspace_root == root.resolve()
    assert config.storage_path == root.resolve() / ".codenotes"
    assert config.author_name is None
    assert config.anchor.similarity_threshold == 0.7
    assert config.anchor.search_margin == 50
    assert config.search.cache_ttl_seconds == 300
    assert config.search.cache_max_entries == 50
    assert config.search.history_max_size == 20
    assert config.search.default_max_results == 100
    assert config.search.slow_search_ms == 500


def test_repo_config_file_is_read(tmp_path):
    root = _repo(
        tmp_path,
        """
author = "Ada"
storage_dir = "notes-data"

[anchor]
similarity_threshold = 0.8
search_margin = 10

[search]
history_max_size = 5
""",
    )

    config = NotesConfig.from_env(start_dir=root / "pkg")

    assert config.author_name == "Ada"
    assert config.storage_path == root.resolve() / "notes-data"
    assert config.anchor.similarity_threshold == 0.8
    assert config.anchor.search_margin == 10
    assert config.search.history_max_size == 5
    assert config.search.cache_max_entries == 50


def test_env_overrides_repo_config_and_cli_overrides_env(tmp_path, monkeypatch):
    root = _repo(tmp_path, 'author = "Ada"\n[anchor]\nsearch_margin = 10\n')
    monkeypatch.setenv("CODENOTES_AUTHOR", "Grace")
    monkeypatch.setenv("CODENOTES_SEARCH_MARGIN", "25")

    config = NotesConfig.from_env(start_dir=root)
    assert config.author_name == "Grace"
    assert config.anchor.search_margin == 25

    config = NotesConfig.from_env(start_dir=root, cli_author="Linus")
    assert config.author_name == "Linus"


def test_workspace_from_cli_and_env(tmp_path, monkeypatch):
    root = _repo(tmp_path)
    other = tmp_path / "other"
    other.mkdir()

    monkeypatch.setenv("CODENOTES_WORKSPACE", str(other))
    assert NotesConfig.from_env(start_dir=root).workspace_root == other.resolve()
    assert NotesConfig.from_env(cli_workspace=str(root), start_dir=root).workspace_root == root.resolve()


def test_malformed_repo_config_is_ignored(tmp_path):
    root = _repo(tmp_path, "this is = = not toml [")

    config = NotesConfig.from_env(start_dir=root)

    assert config.anchor.search_margin == 50


def test_invalid_numeric_setting_raises(tmp_path, monkeypatch):
    root = _repo(tmp_path)
    monkeypatch.setenv("CODENOTES_CACHE_MAX_ENTRIES", "lots")

    with pytest.raises(ValueError):
        NotesConfig.from_env(start_dir=root)


def test_to_toml_str_round_trips(tmp_path):
    config = NotesConfig(workspace_root=tmp_path, author_name="Ada")

    data = tomllib.loads(config.to_toml_str())

    assert data["author"] == "Ada"
    assert data["storage_dir"] == ".codenotes"
    assert data["anchor"]["search_margin"] == 50
    assert data["search"]["history_max_size"] == 20


def test_workspace_paths_layout(tmp_path):
    paths = WorkspacePaths.from_config(NotesConfig(workspace_root=tmp_path))

    assert paths.storage == tmp_path / ".codenotes"
    assert paths.notes_db.name == "notes.sqlite"
    assert paths.state_db.name == "state.sqlite"
    assert paths.ledger_file.name == "ledger.jsonl"
    assert paths.config_file == tmp_path / ".codenotes" / "config.toml"
    assert not paths.is_initialized()


def test_file_key_is_relative_inside_workspace(tmp_path):
    paths = WorkspacePaths(tmp_path)
    inside = tmp_path / "src" / "app.py"
    outside = tmp_path.parent / "elsewhere.py"

    assert paths.file_key(inside) == "src/app.py"
    assert paths.file_key(outside) == str(outside.resolve())

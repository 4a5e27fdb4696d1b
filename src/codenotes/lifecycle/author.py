from __future__ import annotations

import getpass
import logging
import os
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

UNKNOWN_AUTHOR = "Unknown User"


class AuthorResolver(Protocol):
    def resolve_author(self) -> str: ...


class StaticAuthorResolver:
    """Always returns the same name."""

    def __init__(self, name: str):
        if not name.strip():
            raise ValueError("author name cannot be empty")
        self.name = name.strip()

    def resolve_author(self) -> str:
        return self.name


class SystemAuthorResolver:
    """Resolve the author from an override, CODENOTES_AUTHOR, or the OS user.

    The first non-empty answer is cached for the lifetime of the resolver.
    """

    def __init__(self, override: Optional[str] = None):
        self.override = override
        self._cached: Optional[str] = None

    def resolve_author(self) -> str:
        if self._cached is None:
            self._cached = self._lookup()
        return self._cached

    def clear_cache(self) -> None:
        self._cached = None

    def _lookup(self) -> str:
        if self.override and self.override.strip():
            return self.override.strip()
        env = os.environ.get("CODENOTES_AUTHOR", "").strip()
        if env:
            return env
        try:
            user = getpass.getuser().strip()
        except (KeyError, OSError) as e:
            logger.debug(f"Could not determine OS user: {e}")
            user = ""
        return user or UNKNOWN_AUTHOR

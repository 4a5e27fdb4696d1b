from __future__ import annotations

import hashlib
import logging
import re
import threading
from dataclasses import dataclass
from typing import Optional

from ..models.annotation import LineRange
from .document import Document
from .similarity import similarity

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.7
DEFAULT_SEARCH_MARGIN = 50

_WHITESPACE_RUN = re.compile(r"\s+")


@dataclass(frozen=True)
class RelocationResult:
    found: bool
    new_range: Optional[LineRange] = None
    similarity: Optional[float] = None
    cancelled: bool = False


_NOT_FOUND = RelocationResult(found=False)
_CANCELLED = RelocationResult(found=False, cancelled=True)


class AnchorTracker:
    """Fingerprints line ranges and finds them again after the file changes."""

    def __init__(
        self,
        *,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        search_margin: int = DEFAULT_SEARCH_MARGIN,
    ):
        if not 0.0 <= similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be within [0, 1]")
        if search_margin < 0:
            raise ValueError("search_margin must be >= 0")
        self.similarity_threshold = similarity_threshold
        self.search_margin = search_margin

    # ------------------------------------------------------------------
    # Fingerprinting
    # ------------------------------------------------------------------

    @staticmethod
    def content_for_range(document: Document, line_range: LineRange) -> str:
        """Raw text of the range, clamped to the document bounds."""
        line_count = document.line_count()
        if line_count == 0:
            return ""
        start = max(0, min(line_range.start, line_count - 1))
        end = max(0, min(line_range.end, line_count - 1))
        return "\n".join(document.line_text(i) for i in range(start, end + 1))

    @staticmethod
    def normalize(text: str) -> str:
        """Trim lines, collapse whitespace runs, drop blank lines."""
        lines = (_WHITESPACE_RUN.sub(" ", line.strip()) for line in text.split("\n"))
        return "\n".join(line for line in lines if line)

    @staticmethod
    def digest(normalized: str) -> str:
        return hashlib.sha256(normalized.encode("utf-8")).hexdigest()

    def hash_text(self, text: str) -> str:
        return self.digest(self.normalize(text))

    def anchor_text(self, document: Document, line_range: LineRange) -> str:
        """Normalized content of the range (the reference for fuzzy matching)."""
        return self.normalize(self.content_for_range(document, line_range))

    def hash(self, document: Document, line_range: LineRange) -> str:
        return self.digest(self.anchor_text(document, line_range))

    def validate(self, document: Document, line_range: LineRange, expected_digest: str) -> bool:
        return self.hash(document, line_range) == expected_digest

    # ------------------------------------------------------------------
    # Relocation
    # ------------------------------------------------------------------

    def relocate(
        self,
        document: Document,
        target_digest: str,
        original_range: LineRange,
        *,
        anchor_text: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> RelocationResult:
        """Find where the content identified by ``target_digest`` lives now.

        Checks the original position first, then scans the whole document for
        an exact match, then (when ``anchor_text`` is known) scores windows
        near the original position by edit-distance similarity.
        """
        line_count = document.line_count()
        size = original_range.size

        if self.validate(document, original_range, target_digest):
            return RelocationResult(found=True, new_range=original_range, similarity=1.0)

        if size > line_count:
            return _NOT_FOUND

        exact = self._exact_scan(document, target_digest, size, cancel)
        if exact is not None:
            return exact

        if anchor_text is None:
            return _NOT_FOUND

        return self._fuzzy_scan(document, original_range, anchor_text, cancel)

    def _exact_scan(
        self,
        document: Document,
        target_digest: str,
        size: int,
        cancel: Optional[threading.Event],
    ) -> Optional[RelocationResult]:
        # Normalized text per line is reused across overlapping windows.
        normalized_lines = [self.normalize(document.line_text(i)) for i in range(document.line_count())]
        for start in range(0, len(normalized_lines) - size + 1):
            if cancel is not None and cancel.is_set():
                return _CANCELLED
            window = "\n".join(line for line in normalized_lines[start : start + size] if line)
            if self.digest(window) == target_digest:
                return RelocationResult(
                    found=True,
                    new_range=LineRange(start=start, end=start + size - 1),
                    similarity=1.0,
                )
        return None

    def _fuzzy_scan(
        self,
        document: Document,
        original_range: LineRange,
        anchor_text: str,
        cancel: Optional[threading.Event],
    ) -> RelocationResult:
        line_count = document.line_count()
        size = original_range.size
        first = max(0, original_range.start - self.search_margin)
        last = min(line_count - size, original_range.end + self.search_margin)

        best: Optional[RelocationResult] = None
        for start in range(first, last + 1):
            if cancel is not None and cancel.is_set():
                return _CANCELLED
            candidate = LineRange(start=start, end=start + size - 1)
            score = similarity(anchor_text, self.anchor_text(document, candidate))
            if score < self.similarity_threshold:
                continue
            if best is None or score > best.similarity:
                best = RelocationResult(found=True, new_range=candidate, similarity=score)

        if best is None:
            logger.debug(
                f"No window within ±{self.search_margin} lines of {original_range} "
                f"reached similarity {self.similarity_threshold}"
            )
            return _NOT_FOUND
        return best

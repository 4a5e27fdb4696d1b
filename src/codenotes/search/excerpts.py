from __future__ import annotations

import re
from typing import Optional

from ..models.search import SearchMatch

CONTEXT_CHARS = 100


def _line_number(content: str, index: int) -> int:
    return content.count("\n", 0, index)


def find_matches(
    content: str,
    *,
    text: Optional[str] = None,
    pattern: Optional[re.Pattern[str]] = None,
    case_sensitive: bool = False,
) -> list[SearchMatch]:
    """Locate regex matches, or occurrences of the whole query text."""
    matches: list[SearchMatch] = []
    if pattern is not None:
        for m in pattern.finditer(content):
            if m.end() == m.start():
                continue
            matches.append(
                SearchMatch(
                    text=m.group(0),
                    start_index=m.start(),
                    end_index=m.end(),
                    line_number=_line_number(content, m.start()),
                )
            )
        return matches

    if not text:
        return matches

    needle = text if case_sensitive else text.lower()
    haystack = content if case_sensitive else content.lower()
    idx = haystack.find(needle)
    while idx != -1:
        end = idx + len(needle)
        matches.append(
            SearchMatch(
                text=content[idx:end],
                start_index=idx,
                end_index=end,
                line_number=_line_number(content, idx),
            )
        )
        idx = haystack.find(needle, idx + 1)
    return matches


def extract_context(content: str, matches: list[SearchMatch], context_chars: int = CONTEXT_CHARS) -> str:
    """Window of text around the first match, with ellipses where truncated."""
    if not matches:
        return content[:context_chars]

    first = matches[0]
    half = context_chars // 2
    start = max(0, first.start_index - half)
    end = min(len(content), first.end_index + half)

    excerpt = content[start:end]
    if start > 0:
        excerpt = "..." + excerpt
    if end < len(content):
        excerpt = excerpt + "..."
    return excerpt.strip()

"""Tag validation and normalization."""

from typing import Iterable

from ..errors import InvalidTagError

MAX_TAG_LENGTH = 50

# Well-known categories are stored upper-case regardless of how they were typed.
PREDEFINED_CATEGORIES = frozenset(
    {"TODO", "FIXME", "QUESTION", "NOTE", "BUG", "IMPROVEMENT", "REVIEW"}
)


def validate_tag(tag: str) -> None:
    """Raise InvalidTagError if ``tag`` cannot be stored."""
    stripped = tag.strip()
    if not stripped:
        raise InvalidTagError(tag, "tag cannot be empty")
    if "," in stripped:
        raise InvalidTagError(tag, "tag cannot contain commas")
    if "\n" in stripped or "\r" in stripped:
        raise InvalidTagError(tag, "tag cannot contain newlines")
    if len(stripped) > MAX_TAG_LENGTH:
        raise InvalidTagError(tag, f"tag cannot be longer than {MAX_TAG_LENGTH} characters")


def normalize_tag(tag: str) -> str:
    stripped = tag.strip()
    upper = stripped.upper()
    if upper in PREDEFINED_CATEGORIES:
        return upper
    return stripped


def normalize_tags(tags: Iterable[str]) -> frozenset[str]:
    """Validate and normalize every tag; duplicates collapse."""
    out: set[str] = set()
    for tag in tags:
        validate_tag(tag)
        out.add(normalize_tag(tag))
    return frozenset(out)

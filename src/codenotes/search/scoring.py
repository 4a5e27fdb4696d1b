from __future__ import annotations

import re
from datetime import datetime

RECENCY_WEIGHT = 0.1
RECENCY_HORIZON_DAYS = 365
SECONDS_PER_DAY = 86400


def text_relevance(*, matched_terms: int, total_terms: int, total_frequency: int) -> float:
    """0.6 for term coverage plus 0.4 for (capped) term frequency."""
    if total_terms <= 0:
        return 0.0
    coverage = matched_terms / total_terms
    frequency = min(total_frequency / total_terms / 10.0, 1.0)
    return coverage * 0.6 + frequency * 0.4


def regex_relevance(score: float, match_count: int) -> float:
    return max(score, 0.8 + match_count * 0.02)


def recency_boost(
    *,
    updated_at: datetime,
    now: datetime,
    weight: float = RECENCY_WEIGHT,
    horizon_days: int = RECENCY_HORIZON_DAYS,
) -> float:
    """Linear boost that decays to zero over ``horizon_days`` (fractional days)."""
    if weight <= 0 or horizon_days <= 0:
        return 0.0
    age_days = max(0.0, (now - updated_at).total_seconds() / SECONDS_PER_DAY)
    return max(0.0, 1.0 - age_days / horizon_days) * weight


def clamp(score: float) -> float:
    return min(1.0, max(0.0, score))


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a ``*``/``?`` glob into an anchored, case-insensitive regex.

    Everything other than the two wildcards matches literally.
    """
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE)

from datetime import datetime, timedelta, timezone

import pytest

from codenotes.models.annotation import Annotation, LineRange
from codenotes.models.search import DateField, DateRange, SearchQuery, TagFilterMode
from codenotes.search.cache import SearchCache
from codenotes.search.index import SearchIndex
from codenotes.search.scoring import clamp, glob_to_regex, recency_boost, regex_relevance, text_relevance
from codenotes.search.tokenize import tokenize

T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)


def make_note(note_id: str, content: str) -> Annotation:
    return Annotation(
        id=note_id,
        content=content,
        author="Ada",
        file_path="a.py",
        line_range=LineRange(start=0, end=0),
        content_hash="0" * 64,
        created_at=T0,
        updated_at=T0,
    )


def test_tokenize_splits_on_punctuation_and_drops_noise():
    text = "The parser's fallback (see docs/README.md) isn't used; x = y!"
    assert tokenize(text) == ["parser", "fallback", "see", "docs", "readme", "md", "isn", "used"]


def test_tokenize_case_sensitive_keeps_case_but_still_drops_stop_words():
    assert tokenize("The Parser AND Lexer", case_sensitive=True) == ["Parser", "Lexer"]


def test_index_counts_frequencies_and_positions():
    index = SearchIndex.build([make_note("n", "cache miss then cache hit")])

    entry = index.content["cache"]
    assert entry.note_ids == {"n"}
    assert entry.frequencies == {"n": 2}
    assert entry.positions == {"n": [0, 3]}
    assert index.terms_by_id["n"] == {"cache", "miss", "then", "hit"}


def test_index_remove_prunes_empty_postings():
    index = SearchIndex.build([make_note("a", "shared only_a"), make_note("b", "shared")])

    assert index.remove("a")
    assert not index.remove("a")
    assert "only_a" not in index.content
    assert index.content["shared"].note_ids == {"b"}
    assert "a" not in index


def test_text_relevance():
    assert text_relevance(matched_terms=0, total_terms=0, total_frequency=0) == 0.0
    assert text_relevance(matched_terms=1, total_terms=2, total_frequency=1) == pytest.approx(0.3 + 0.4 * 0.05)
    assert text_relevance(matched_terms=2, total_terms=2, total_frequency=100) == 1.0


def test_regex_relevance_and_clamp():
    assert regex_relevance(0.0, 3) == pytest.approx(0.86)
    assert regex_relevance(0.95, 1) == 0.95
    assert clamp(1.2) == 1.0
    assert clamp(-0.1) == 0.0


def test_recency_boost_decays_by_fractional_days():
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert recency_boost(updated_at=now, now=now) == 0.1
    assert recency_boost(updated_at=now - timedelta(hours=23), now=now) == pytest.approx(0.1 * (1 - 23 / 24 / 365))
    assert recency_boost(updated_at=now - timedelta(hours=23), now=now) < 0.1
    assert recency_boost(updated_at=now - timedelta(days=182, hours=12), now=now) == pytest.approx(0.05)
    assert recency_boost(updated_at=now - timedelta(days=365), now=now) == 0.0
    assert recency_boost(updated_at=now - timedelta(days=1000), now=now) == 0.0
    assert recency_boost(updated_at=now + timedelta(days=3), now=now) == 0.1


def test_glob_to_regex():
    pattern = glob_to_regex("src/*.py")
    assert pattern.match("src/app.py")
    assert pattern.match("SRC/deep/mod.PY")
    assert not pattern.match("lib/src/app.py")
    assert glob_to_regex("a+b?.txt").match("a+bc.txt")
    assert not glob_to_regex("a+b?.txt").match("aab.txt")


def test_cache_evicts_oldest_first():
    cache = SearchCache(max_entries=2, clock=lambda: 0.0)
    cache.put("one", [])
    cache.put("two", [])
    cache.put("three", [])

    assert len(cache) == 2
    assert cache.get("one") is None
    assert cache.get("two") == []
    assert cache.get("three") == []


def test_cache_disabled_with_zero_entries():
    cache = SearchCache(max_entries=0)
    cache.put("one", [])
    assert cache.get("one") is None


def test_query_cache_key_is_canonical():
    a = SearchQuery(text="x", tags=["TODO"], case_sensitive=True)
    b = SearchQuery(case_sensitive=True, tags=["TODO"], text="x")
    assert a.cache_key() == b.cache_key()
    assert a.cache_key() != SearchQuery(text="x").cache_key()


def test_query_label():
    assert SearchQuery().label() == "Empty search"
    q = SearchQuery(
        text="parser",
        authors=["Ada", "Grace"],
        date_range=DateRange(start=datetime(2026, 1, 1), end=datetime(2026, 2, 1), field=DateField.UPDATED),
        file_pattern="src/*",
        tags=["TODO", "BUG"],
        tag_mode=TagFilterMode.ALL,
    )
    assert q.label() == (
        '"parser" • by Ada, Grace • updated between 2026-01-01 and 2026-02-01 • in src/* • tags TODO & BUG'
    )

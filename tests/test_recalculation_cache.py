"""Tests for the recalculation delta cache."""

from __future__ import annotations

import time

import pytest

from draftsync.editor.models import ContentDiff, DiffType, Suggestion, SuggestionDelta
from draftsync.services.recalculation_cache import (
    RecalculationCache,
    RecalculationCacheEntry,
    compute_cache_key,
    hash_text,
)
from draftsync.services.settings import RecalculationCacheConfig


def _suggestion(suggestion_id: str) -> Suggestion:
    return Suggestion(id=suggestion_id, content_id="p", start_offset=0, end_offset=1, text_to_replace="x", created_at=0)


def _delta(suggestion_id: str, shift: int = 0) -> SuggestionDelta:
    return SuggestionDelta(
        suggestion_id=suggestion_id,
        old_start_offset=0,
        old_end_offset=1,
        new_start_offset=shift,
        new_end_offset=1 + shift,
        is_valid=True,
        requires_update=shift != 0,
    )


DIFFS = [ContentDiff(DiffType.INSERT, 0, 0, "", "hi ", timestamp=1.0)]


class TestCacheKey:
    def test_hash_text_is_64_bit_hex(self) -> None:
        digest = hash_text("draft")
        assert len(digest) == 16
        int(digest, 16)

    def test_key_ignores_suggestion_order(self) -> None:
        first = compute_cache_key("text", [_suggestion("a"), _suggestion("b")], DIFFS)
        second = compute_cache_key("text", [_suggestion("b"), _suggestion("a")], DIFFS)
        assert first == second

    def test_key_ignores_diff_timestamps(self) -> None:
        later = [ContentDiff(DiffType.INSERT, 0, 0, "", "hi ", timestamp=99.0)]
        assert compute_cache_key("text", [], DIFFS) == compute_cache_key("text", [], later)

    def test_key_changes_with_content_and_diffs(self) -> None:
        base = compute_cache_key("text", [_suggestion("a")], DIFFS)
        assert compute_cache_key("other", [_suggestion("a")], DIFFS) != base
        other_diff = [ContentDiff(DiffType.INSERT, 1, 1, "", "hi ")]
        assert compute_cache_key("text", [_suggestion("a")], other_diff) != base


class TestRecalculationCache:
    @pytest.fixture
    def cache(self) -> RecalculationCache:
        return RecalculationCache(RecalculationCacheConfig(max_entries=2, ttl_seconds=0))

    def test_miss_then_hit(self, cache: RecalculationCache) -> None:
        suggestions = [_suggestion("a")]
        assert cache.get("text", suggestions, DIFFS) is None

        cache.set("text", suggestions, DIFFS, [_delta("a", 3)])

        assert cache.get("text", suggestions, DIFFS) == [_delta("a", 3)]
        stats = cache.stats
        assert stats is not None
        assert (stats.hits, stats.misses) == (1, 1)
        assert stats.hit_rate == 0.5

    def test_returned_lists_are_copies(self, cache: RecalculationCache) -> None:
        cache.set("text", [], DIFFS, [_delta("a")])
        first = cache.get("text", [], DIFFS)
        assert first is not None
        first.clear()
        assert cache.get("text", [], DIFFS) == [_delta("a")]

    def test_lru_eviction(self, cache: RecalculationCache) -> None:
        cache.set("one", [], DIFFS, [])
        cache.set("two", [], DIFFS, [])
        cache.get("one", [], DIFFS)  # "two" is now least recently used
        cache.set("three", [], DIFFS, [])

        assert cache.contains("one", [], DIFFS)
        assert not cache.contains("two", [], DIFFS)
        assert cache.contains("three", [], DIFFS)
        assert cache.size() == 2
        assert cache.stats is not None and cache.stats.evictions == 1

    def test_overwriting_a_key_does_not_evict(self, cache: RecalculationCache) -> None:
        cache.set("one", [], DIFFS, [])
        cache.set("two", [], DIFFS, [])
        cache.set("two", [], DIFFS, [_delta("a")])
        assert cache.size() == 2
        assert cache.get("two", [], DIFFS) == [_delta("a")]

    def test_expired_entries_are_misses(self, monkeypatch: pytest.MonkeyPatch) -> None:
        cache = RecalculationCache(RecalculationCacheConfig(ttl_seconds=10))
        cache.set("text", [], DIFFS, [])
        real_monotonic = time.monotonic
        monkeypatch.setattr(time, "monotonic", lambda: real_monotonic() + 60)

        assert cache.get("text", [], DIFFS) is None
        assert cache.size() == 0
        assert cache.stats is not None and cache.stats.expirations == 1

    def test_cleanup_expired(self, monkeypatch: pytest.MonkeyPatch) -> None:
        cache = RecalculationCache(RecalculationCacheConfig(ttl_seconds=10))
        cache.set("one", [], DIFFS, [])
        cache.set("two", [], DIFFS, [])
        real_monotonic = time.monotonic
        monkeypatch.setattr(time, "monotonic", lambda: real_monotonic() + 60)

        assert cache.cleanup_expired() == 2
        assert cache.size() == 0

    def test_cleanup_is_noop_without_ttl(self, cache: RecalculationCache) -> None:
        cache.set("one", [], DIFFS, [])
        assert cache.cleanup_expired() == 0

    def test_invalidate_all(self, cache: RecalculationCache) -> None:
        cache.set("one", [], DIFFS, [])
        cache.set("two", [], DIFFS, [])
        assert cache.invalidate_all() == 2
        assert cache.size() == 0
        stats = cache.stats
        assert stats is not None
        assert stats.invalidations == 2
        assert stats.to_dict()["size"] == 0

    def test_stats_can_be_disabled(self) -> None:
        cache = RecalculationCache(RecalculationCacheConfig(track_stats=False))
        cache.get("text", [], DIFFS)
        assert cache.stats is None


def test_entry_expiry_and_touch() -> None:
    entry = RecalculationCacheEntry(deltas=())
    assert not entry.is_expired(0)
    entry.touch()
    assert entry.access_count == 1

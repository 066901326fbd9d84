"""Delta cache for the suggestion recalculation service.

Repeated recalculations over the same content, suggestion set and diff (for
example when the writer toggles modes without typing) reuse the deltas that
were computed the first time instead of walking the suggestions again.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from ..editor.models import ContentDiff, Suggestion, SuggestionDelta
from .settings import RecalculationCacheConfig

__all__ = [
    "RecalculationCache",
    "RecalculationCacheEntry",
    "RecalculationCacheStats",
    "compute_cache_key",
    "hash_text",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Helper Functions
# -----------------------------------------------------------------------------


def hash_text(text: str) -> str:
    """Return a 64-bit BLAKE2b hex digest of ``text``."""

    return hashlib.blake2b(text.encode("utf-8"), digest_size=8).hexdigest()


def compute_cache_key(
    content: str,
    suggestions: Iterable[Suggestion],
    diffs: Sequence[ContentDiff],
) -> str:
    """Compute the cache key for a recalculation input.

    The key combines the content hash, the sorted suggestion ids and the
    serialized diff list. A 64-bit collision would return deltas computed for
    a different input.

    Args:
        content: The document content the deltas apply to.
        suggestions: The suggestions the deltas were computed for.
        diffs: The diffs that produced the deltas.

    Returns:
        A ``content:suggestions:diffs`` string of hex digests.
    """
    suggestion_ids = ",".join(sorted(suggestion.id for suggestion in suggestions))
    diff_payload = json.dumps(
        [
            [diff.type.value, diff.start_offset, diff.end_offset, diff.old_text, diff.new_text]
            for diff in diffs
        ],
        separators=(",", ":"),
    )
    return ":".join((hash_text(content), hash_text(suggestion_ids), hash_text(diff_payload)))


# -----------------------------------------------------------------------------
# Cache Entry
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class RecalculationCacheEntry:
    """A cached delta list with metadata.

    Attributes:
        deltas: The cached deltas, stored as a tuple.
        created_at: When the entry was created.
        accessed_at: When the entry was last accessed.
        access_count: Number of times the entry has been accessed.
    """

    deltas: tuple[SuggestionDelta, ...]
    created_at: float = field(default_factory=time.monotonic)
    accessed_at: float = field(default_factory=time.monotonic)
    access_count: int = 0

    def touch(self) -> None:
        self.accessed_at = time.monotonic()
        self.access_count += 1

    def is_expired(self, ttl_seconds: float) -> bool:
        if ttl_seconds <= 0:
            return False
        return time.monotonic() - self.created_at > ttl_seconds


# -----------------------------------------------------------------------------
# Cache Statistics
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class RecalculationCacheStats:
    """Statistics for cache operations."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    invalidations: int = 0
    size: int = 0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Cache hit rate (0.0 to 1.0)."""
        total = self.total_requests
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for logging."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "invalidations": self.invalidations,
            "size": self.size,
            "total_requests": self.total_requests,
            "hit_rate": self.hit_rate,
        }

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0
        self.invalidations = 0


# -----------------------------------------------------------------------------
# Recalculation Cache
# -----------------------------------------------------------------------------


class RecalculationCache:
    """LRU cache of suggestion deltas with TTL expiry.

    Values are stored as tuples and handed out as fresh lists, so callers
    can never mutate cached state. Each editor session owns its own
    instance.

    Example:
        >>> cache = RecalculationCache()
        >>> cache.set(content, suggestions, diffs, deltas)
        >>> cached = cache.get(content, suggestions, diffs)
    """

    def __init__(self, config: RecalculationCacheConfig | None = None) -> None:
        self._config = config or RecalculationCacheConfig()
        self._cache: OrderedDict[str, RecalculationCacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._stats = RecalculationCacheStats() if self._config.track_stats else None

    @property
    def config(self) -> RecalculationCacheConfig:
        return self._config

    @property
    def stats(self) -> RecalculationCacheStats | None:
        """Cache statistics (None if tracking disabled)."""
        if self._stats is not None:
            self._stats.size = len(self._cache)
        return self._stats

    def get(
        self,
        content: str,
        suggestions: Iterable[Suggestion],
        diffs: Sequence[ContentDiff],
    ) -> list[SuggestionDelta] | None:
        """Return the cached deltas for this input, or ``None``.

        Expired entries count as misses and are removed on sight.
        """
        key = compute_cache_key(content, suggestions, diffs)
        with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                if self._stats:
                    self._stats.misses += 1
                return None

            if entry.is_expired(self._config.ttl_seconds):
                del self._cache[key]
                if self._stats:
                    self._stats.expirations += 1
                    self._stats.misses += 1
                LOGGER.debug("Cache entry expired for key %s", key[:16])
                return None

            entry.touch()
            self._cache.move_to_end(key)

            if self._stats:
                self._stats.hits += 1

            return list(entry.deltas)

    def set(
        self,
        content: str,
        suggestions: Iterable[Suggestion],
        diffs: Sequence[ContentDiff],
        deltas: Iterable[SuggestionDelta],
    ) -> None:
        """Store ``deltas``, evicting the least recently used entry when full."""
        key = compute_cache_key(content, suggestions, diffs)
        entry = RecalculationCacheEntry(deltas=tuple(deltas))
        with self._lock:
            if key in self._cache:
                self._cache[key] = entry
                self._cache.move_to_end(key)
                return

            while self._cache and len(self._cache) >= max(1, self._config.max_entries):
                evicted_key, _ = self._cache.popitem(last=False)
                if self._stats:
                    self._stats.evictions += 1
                LOGGER.debug("Evicted cache entry for key %s", evicted_key[:16])

            self._cache[key] = entry

    def contains(
        self,
        content: str,
        suggestions: Iterable[Suggestion],
        diffs: Sequence[ContentDiff],
    ) -> bool:
        """Check membership without touching access order or expiry."""
        key = compute_cache_key(content, suggestions, diffs)
        with self._lock:
            return key in self._cache

    def invalidate_all(self) -> int:
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            if self._stats:
                self._stats.invalidations += count
            LOGGER.debug("Invalidated all %d cache entries", count)
            return count

    def size(self) -> int:
        with self._lock:
            return len(self._cache)

    def cleanup_expired(self) -> int:
        """Remove all expired entries from the cache.

        Returns:
            The number of entries that were removed.
        """
        if self._config.ttl_seconds <= 0:
            return 0

        with self._lock:
            expired_keys = [
                key
                for key, entry in self._cache.items()
                if entry.is_expired(self._config.ttl_seconds)
            ]

            for key in expired_keys:
                del self._cache[key]
                if self._stats:
                    self._stats.expirations += 1

            if expired_keys:
                LOGGER.debug("Cleaned up %d expired cache entries", len(expired_keys))

            return len(expired_keys)

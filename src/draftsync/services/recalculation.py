"""Keep suggestion anchors aligned with the content as the writer edits."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, replace
from typing import Any, Iterable, Protocol, Sequence

from ..core.ranges import ContentRange, merge_ranges
from ..editor.content_diff import DiffCalculator
from ..editor.models import ContentDiff, RecalculationResult, Suggestion, SuggestionDelta
from ..editor.offset_deltas import OffsetDeltaCalculator
from .errors import RecalculationCancelledError
from .recalculation_cache import RecalculationCache
from .settings import RecalculationConfig

__all__ = [
    "NewSuggestionRequester",
    "SuggestionRecalculationService",
]

LOGGER = logging.getLogger(__name__)


class NewSuggestionRequester(Protocol):
    """Asks the analysis service for suggestions covering freshly written text."""

    async def request_suggestions(
        self,
        post_id: str,
        changed_text: str,
        changed_ranges: Sequence[ContentRange],
    ) -> Sequence[Suggestion]:
        ...


class SuggestionRecalculationService:
    """Diffs, shifts, invalidates and refreshes a suggestion set after an edit.

    The pipeline always runs in the same order: diff, delta (through the
    cache), position update, invalidation, optional new-suggestion request.
    Each stage can be switched off through :class:`RecalculationConfig`.
    Suggestions whose anchor text no longer matches the new content are
    dropped; they are never shown at a guessed position.
    """

    def __init__(
        self,
        config: RecalculationConfig | None = None,
        *,
        cache: RecalculationCache | None = None,
        requester: NewSuggestionRequester | None = None,
    ) -> None:
        self._config = replace(config) if config is not None else RecalculationConfig()
        self._cache = cache if cache is not None else RecalculationCache()
        self._requester = requester
        self._diff_calculator = DiffCalculator(
            large_document_threshold=self._config.large_document_threshold
        )
        self._delta_calculator = OffsetDeltaCalculator()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    @property
    def config(self) -> RecalculationConfig:
        """Return a copy of the active configuration."""

        return replace(self._config)

    @property
    def cache(self) -> RecalculationCache:
        return self._cache

    def update_config(self, **changes: Any) -> RecalculationConfig:
        """Apply ``changes`` to the configuration and return the result."""

        unknown = set(changes) - set(asdict(self._config))
        if unknown:
            raise ValueError(f"Unknown recalculation settings: {sorted(unknown)}")
        self._config = replace(self._config, **changes)
        self._diff_calculator = DiffCalculator(
            large_document_threshold=self._config.large_document_threshold
        )
        LOGGER.debug("Recalculation config updated: %s", sorted(changes))
        return self.config

    def set_requester(self, requester: NewSuggestionRequester | None) -> None:
        self._requester = requester

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------
    def track_content_change(self, old_content: str, new_content: str) -> list[ContentDiff]:
        return self._diff_calculator.diff(old_content, new_content)

    def calculate_position_deltas(
        self,
        content: str,
        diffs: Sequence[ContentDiff],
        suggestions: Sequence[Suggestion],
    ) -> list[SuggestionDelta]:
        """Return one delta per suggestion, consulting the cache first.

        The cache is only populated after a computation, so a hit and a miss
        produce the same deltas.
        """

        if not self._config.enable_position_updates:
            return []
        cached = self._cache.get(content, suggestions, diffs)
        if cached is not None:
            return cached
        deltas = self._delta_calculator.calculate_deltas(diffs, suggestions)
        self._cache.set(content, suggestions, diffs, deltas)
        return deltas

    def recalculate_suggestion_positions(
        self,
        suggestions: Sequence[Suggestion],
        deltas: Sequence[SuggestionDelta],
    ) -> list[Suggestion]:
        """Shift survivors by their delta and drop invalid or unmatched ones."""

        if not self._config.enable_position_updates:
            return list(suggestions)

        by_id = {delta.suggestion_id: delta for delta in deltas}
        updated: list[Suggestion] = []
        for suggestion in suggestions:
            delta = by_id.get(suggestion.id)
            if delta is None or not delta.is_valid:
                continue
            if delta.requires_update:
                suggestion = suggestion.with_offsets(delta.new_start_offset, delta.new_end_offset)
            updated.append(suggestion)
        return updated

    def invalidate_overlapping_suggestions(
        self,
        suggestions: Sequence[Suggestion],
        changed_ranges: Sequence[ContentRange],
    ) -> list[Suggestion]:
        if not self._config.enable_invalidation:
            return list(suggestions)
        return [
            suggestion
            for suggestion in suggestions
            if not any(
                change.overlaps(suggestion.start_offset, suggestion.end_offset)
                for change in changed_ranges
            )
        ]

    def extract_changed_ranges(self, diffs: Iterable[ContentDiff]) -> list[ContentRange]:
        """Return the merged new-content ranges covered by each diff's new text.

        Ranges shorter than ``min_changed_range_length`` are ignored so that
        trivial edits do not trigger re-analysis.
        """

        minimum = self._config.min_changed_range_length
        ranges = [
            ContentRange(diff.start_offset, diff.new_end_offset)
            for diff in diffs
            if len(diff.new_text) >= minimum
        ]
        return merge_ranges(ranges)

    @staticmethod
    def merge_suggestion_sets(
        existing: Sequence[Suggestion],
        incoming: Iterable[Suggestion],
    ) -> list[Suggestion]:
        """Append ``incoming`` suggestions whose ids are not already present."""

        seen = {suggestion.id for suggestion in existing}
        merged = list(existing)
        for suggestion in incoming:
            if suggestion.id in seen:
                continue
            seen.add(suggestion.id)
            merged.append(suggestion)
        return merged

    # ------------------------------------------------------------------
    # Full pass
    # ------------------------------------------------------------------
    async def perform_recalculation(
        self,
        old_content: str,
        new_content: str,
        current_suggestions: Sequence[Suggestion],
        post_id: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> RecalculationResult:
        """Run the full pipeline for one edit.

        Raises:
            RecalculationCancelledError: ``cancel_event`` was set before the
                result was assembled. No partial result is returned.
        """

        suggestions = list(current_suggestions)
        _raise_if_cancelled(cancel_event)

        diffs = self.track_content_change(old_content, new_content)
        if not diffs:
            return RecalculationResult(updated_suggestions=suggestions)

        deltas = self.calculate_position_deltas(old_content, diffs, suggestions)
        updated = self.recalculate_suggestion_positions(suggestions, deltas)

        changed_ranges = self.extract_changed_ranges(diffs)
        updated = self.invalidate_overlapping_suggestions(updated, changed_ranges)
        if self._config.enable_invalidation:
            updated = [suggestion for suggestion in updated if suggestion.is_valid_for(new_content)]

        surviving_ids = {suggestion.id for suggestion in updated}
        invalidated = [suggestion.id for suggestion in suggestions if suggestion.id not in surviving_ids]

        new_suggestions: list[Suggestion] = []
        changed_text = "".join(diff.new_text for diff in diffs)
        if changed_ranges and self._should_request_new_suggestions(changed_text):
            _raise_if_cancelled(cancel_event)
            fetched = await self._request_new_suggestions(post_id, changed_text, changed_ranges)
            merged = self.merge_suggestion_sets(updated, fetched)
            new_suggestions = [
                suggestion
                for suggestion in merged[len(updated) :]
                if suggestion.is_valid_for(new_content)
            ]

        _raise_if_cancelled(cancel_event)
        LOGGER.debug(
            "Recalculated %d suggestions for post %s: %d kept, %d invalidated, %d new",
            len(suggestions),
            post_id,
            len(updated),
            len(invalidated),
            len(new_suggestions),
        )
        return RecalculationResult(
            updated_suggestions=updated,
            invalidated_suggestions=invalidated,
            new_suggestions=new_suggestions,
            changed_ranges=changed_ranges,
        )

    def _should_request_new_suggestions(self, changed_text: str) -> bool:
        if not self._config.enable_new_suggestion_requests or self._requester is None:
            return False
        if not changed_text.strip():
            return False
        length = len(changed_text)
        return self._config.min_changed_range_length <= length <= self._config.max_changed_range_length

    async def _request_new_suggestions(
        self,
        post_id: str,
        changed_text: str,
        changed_ranges: Sequence[ContentRange],
    ) -> list[Suggestion]:
        if self._requester is None:
            return []
        try:
            return list(await self._requester.request_suggestions(post_id, changed_text, changed_ranges))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Failed to request new suggestions for post %s: %s", post_id, exc)
            return []


def _raise_if_cancelled(cancel_event: asyncio.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RecalculationCancelledError()

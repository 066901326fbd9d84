"""Translate content diffs into per-suggestion offset deltas."""

from __future__ import annotations

from typing import Iterable, Sequence

from .models import ContentDiff, Suggestion, SuggestionDelta


class OffsetDeltaCalculator:
    """Decides, per suggestion, whether it is unaffected, shifted or invalidated.

    A suggestion whose ``[start, end)`` range intersects any diff's old range
    is invalidated; its anchor text may be gone and is never repaired here.
    Every other suggestion is shifted by the summed length change of the
    diffs that end at or before its start.

    The cumulative sum assumes diffs are position-sorted and do not overlap,
    which holds for the single-region diffs the diff calculator produces.
    """

    def calculate_deltas(
        self,
        diffs: Sequence[ContentDiff],
        suggestions: Iterable[Suggestion],
    ) -> list[SuggestionDelta]:
        ordered = sort_diffs(diffs)
        return [self.delta_for(suggestion, ordered) for suggestion in suggestions]

    def delta_for(self, suggestion: Suggestion, ordered_diffs: Sequence[ContentDiff]) -> SuggestionDelta:
        start = suggestion.start_offset
        end = suggestion.end_offset

        if any(_overlaps(start, end, diff) for diff in ordered_diffs):
            return SuggestionDelta(
                suggestion_id=suggestion.id,
                old_start_offset=start,
                old_end_offset=end,
                new_start_offset=start,
                new_end_offset=end,
                is_valid=False,
                requires_update=False,
            )

        shift = 0
        for diff in ordered_diffs:
            if diff.end_offset <= start:
                shift += diff.length_delta

        return SuggestionDelta(
            suggestion_id=suggestion.id,
            old_start_offset=start,
            old_end_offset=end,
            new_start_offset=start + shift,
            new_end_offset=end + shift,
            is_valid=True,
            requires_update=shift != 0,
        )


def sort_diffs(diffs: Iterable[ContentDiff]) -> list[ContentDiff]:
    """Order diffs deterministically by timestamp, then position."""

    return sorted(diffs, key=lambda item: (item.timestamp, item.start_offset, item.end_offset))


def calculate_deltas(diffs: Sequence[ContentDiff], suggestions: Iterable[Suggestion]) -> list[SuggestionDelta]:
    return OffsetDeltaCalculator().calculate_deltas(diffs, suggestions)


def _overlaps(start: int, end: int, diff: ContentDiff) -> bool:
    # A zero-width insert overlaps only when it lands strictly inside the anchor.
    return not (end <= diff.start_offset or start >= diff.end_offset)


__all__ = ["OffsetDeltaCalculator", "calculate_deltas", "sort_diffs"]

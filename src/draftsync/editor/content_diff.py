"""Prefix/suffix trimming diff between two versions of a document.

The diff only has to bound the changed region safely so that offsets outside
it can be shifted; it is intentionally not a minimal edit script. Multiple
edits made between two recalculation points collapse into one region.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from .models import ContentDiff, DiffType

LOGGER = logging.getLogger(__name__)

LARGE_DOCUMENT_THRESHOLD = 10_000


class DiffCalculator:
    """Computes the changed region between two document versions.

    Documents below ``large_document_threshold`` characters are compared
    character by character; larger ones are compared by line to bound the
    comparison cost.
    """

    def __init__(self, *, large_document_threshold: int = LARGE_DOCUMENT_THRESHOLD) -> None:
        self.large_document_threshold = max(1, int(large_document_threshold))

    def diff(self, old_content: str, new_content: str) -> list[ContentDiff]:
        return calculate_content_diff(
            old_content,
            new_content,
            large_document_threshold=self.large_document_threshold,
        )

    def is_large_document(self, old_content: str, new_content: str) -> bool:
        return max(len(old_content), len(new_content)) >= self.large_document_threshold


def calculate_content_diff(
    old_content: str,
    new_content: str,
    *,
    large_document_threshold: int = LARGE_DOCUMENT_THRESHOLD,
) -> list[ContentDiff]:
    """Return ``[]`` when the strings are equal, otherwise a single diff."""

    if old_content == new_content:
        return []
    if max(len(old_content), len(new_content)) >= large_document_threshold:
        bounds = _line_bounds(old_content, new_content)
    else:
        bounds = _char_bounds(old_content, new_content)
    diff = _build_diff(old_content, new_content, *bounds)
    if diff is None:
        return []
    LOGGER.debug(
        "Computed %s diff at [%d, %d) (%+d chars)",
        diff.type.value,
        diff.start_offset,
        diff.end_offset,
        diff.length_delta,
    )
    return [diff]


def apply_content_diffs(original_content: str, diffs: Sequence[ContentDiff]) -> str:
    """Apply ``diffs`` (old-content coordinates) to ``original_content``."""

    result = original_content
    for diff in sorted(diffs, key=lambda item: item.start_offset, reverse=True):
        result = result[: diff.start_offset] + diff.new_text + result[diff.end_offset :]
    return result


def merge_content_diffs(diffs: Iterable[ContentDiff]) -> list[ContentDiff]:
    """Collapse overlapping or adjacent diffs into replace diffs.

    The merged ``old_text`` covers the merged old range exactly; characters
    shared by two overlapping diffs appear once.
    """

    ordered = sorted(diffs, key=lambda item: item.start_offset)
    if len(ordered) <= 1:
        return ordered
    merged: list[ContentDiff] = []
    current = ordered[0]
    for candidate in ordered[1:]:
        if current.end_offset >= candidate.start_offset:
            old_tail = candidate.old_text[current.end_offset - candidate.start_offset :]
            current = ContentDiff(
                type=DiffType.REPLACE,
                start_offset=current.start_offset,
                end_offset=max(current.end_offset, candidate.end_offset),
                old_text=current.old_text + old_tail,
                new_text=current.new_text + candidate.new_text,
                timestamp=max(current.timestamp, candidate.timestamp),
            )
        else:
            merged.append(current)
            current = candidate
    merged.append(current)
    return merged


def has_significant_changes(diffs: Iterable[ContentDiff]) -> bool:
    """Return ``True`` when any diff changes more than whitespace."""

    return any(diff.old_text.strip() != diff.new_text.strip() for diff in diffs)


def total_changed_characters(diffs: Iterable[ContentDiff]) -> int:
    return sum(max(len(diff.old_text), len(diff.new_text)) for diff in diffs)


def summarize_changes(diffs: Sequence[ContentDiff]) -> str:
    """Return a short label such as ``"1 insertion, 2 changes"``."""

    if not diffs:
        return "No changes"
    counts = {kind: sum(1 for diff in diffs if diff.type is kind) for kind in DiffType}
    labels = (
        (DiffType.INSERT, "insertion"),
        (DiffType.DELETE, "deletion"),
        (DiffType.REPLACE, "change"),
    )
    parts = []
    for kind, label in labels:
        count = counts[kind]
        if count:
            parts.append(f"{count} {label}{'s' if count > 1 else ''}")
    return ", ".join(parts)


def _char_bounds(old_content: str, new_content: str) -> tuple[int, int, int]:
    limit = min(len(old_content), len(new_content))
    start = 0
    while start < limit and old_content[start] == new_content[start]:
        start += 1

    old_end = len(old_content)
    new_end = len(new_content)
    while old_end > start and new_end > start and old_content[old_end - 1] == new_content[new_end - 1]:
        old_end -= 1
        new_end -= 1
    return start, old_end, new_end


def _line_bounds(old_content: str, new_content: str) -> tuple[int, int, int]:
    # keepends=True so that summed line lengths are exact character offsets
    old_lines = old_content.splitlines(keepends=True)
    new_lines = new_content.splitlines(keepends=True)

    limit = min(len(old_lines), len(new_lines))
    prefix = 0
    start = 0
    while prefix < limit and old_lines[prefix] == new_lines[prefix]:
        start += len(old_lines[prefix])
        prefix += 1

    old_index = len(old_lines)
    new_index = len(new_lines)
    suffix_chars = 0
    while old_index > prefix and new_index > prefix and old_lines[old_index - 1] == new_lines[new_index - 1]:
        old_index -= 1
        new_index -= 1
        suffix_chars += len(old_lines[old_index])
    return start, len(old_content) - suffix_chars, len(new_content) - suffix_chars


def _build_diff(old_content: str, new_content: str, start: int, old_end: int, new_end: int) -> ContentDiff | None:
    old_text = old_content[start:old_end]
    new_text = new_content[start:new_end]
    if not old_text and not new_text:
        return None
    if not old_text:
        diff_type = DiffType.INSERT
    elif not new_text:
        diff_type = DiffType.DELETE
    else:
        diff_type = DiffType.REPLACE
    return ContentDiff(
        type=diff_type,
        start_offset=start,
        end_offset=old_end,
        old_text=old_text,
        new_text=new_text,
    )


__all__ = [
    "DiffCalculator",
    "LARGE_DOCUMENT_THRESHOLD",
    "apply_content_diffs",
    "calculate_content_diff",
    "has_significant_changes",
    "merge_content_diffs",
    "summarize_changes",
    "total_changed_characters",
]

"""Structured helpers for representing half-open content spans."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Iterator


@dataclass(slots=True, frozen=True)
class ContentRange(Sequence[int]):
    """Half-open ``[start, end)`` span of character offsets into a content string."""

    start: int
    end: int

    def __post_init__(self) -> None:
        start = self._coerce_index(self.start, "start")
        end = self._coerce_index(self.end, "end")
        if end < start:
            start, end = end, start
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @staticmethod
    def _coerce_index(value: Any, label: str) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"ContentRange {label} must be an integer") from exc
        if number < 0:
            return 0
        return number

    def __len__(self) -> int:
        return 2

    def __getitem__(self, index: int | slice) -> int | tuple[int, ...]:
        if isinstance(index, slice):
            return self.to_tuple()[index]
        if index == 0:
            return self.start
        if index == 1:
            return self.end
        raise IndexError("ContentRange index out of range")

    def __iter__(self) -> Iterator[int]:
        yield self.start
        yield self.end

    @property
    def length(self) -> int:
        """Return the width of the range."""

        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def overlaps(self, start: int, end: int) -> bool:
        """Return ``True`` when ``[start, end)`` intersects this range.

        Uses the same test as suggestion invalidation: two spans are disjoint
        only when one ends at or before the other begins.
        """

        return not (end <= self.start or start >= self.end)

    def contains_range(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end

    def shift(self, delta: int) -> ContentRange:
        return ContentRange(self.start + delta, self.end + delta)

    def slice(self, content: str) -> str:
        """Return the text of ``content`` covered by the range."""

        return content[self.start : self.end]

    def to_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)

    def to_dict(self) -> dict[str, int]:
        """Return the range using the backend's camelCase keys."""

        return {"startOffset": self.start, "endOffset": self.end}

    @classmethod
    def from_value(cls, value: Any) -> ContentRange:
        """Coerce ``value`` into a :class:`ContentRange`."""

        if isinstance(value, ContentRange):
            return value
        if isinstance(value, Mapping):
            start = value.get("startOffset", value.get("start"))
            end = value.get("endOffset", value.get("end"))
            if start is None or end is None:
                raise ValueError("ContentRange mappings require start and end keys")
            return cls(start, end)
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            seq = list(value)
            if len(seq) != 2:
                raise ValueError("ContentRange sequences must have exactly two entries")
            return cls(seq[0], seq[1])
        raise TypeError("Unsupported ContentRange input")


def merge_ranges(ranges: Iterable[ContentRange]) -> list[ContentRange]:
    """Sort ``ranges`` and merge the ones that overlap or touch."""

    ordered = sorted(ranges, key=lambda item: (item.start, item.end))
    if len(ordered) <= 1:
        return ordered
    merged: list[ContentRange] = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end:
            merged[-1] = ContentRange(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


__all__ = ["ContentRange", "merge_ranges"]

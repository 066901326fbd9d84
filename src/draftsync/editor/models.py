"""Dataclasses describing suggestions, content diffs and recalculation output.

Offsets are zero-based character indices into a content string and ranges
are half-open. A suggestion is only meaningful against the exact content it
was computed for; :meth:`Suggestion.is_valid_for` is the staleness check the
rest of the package relies on.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

from ..core.ranges import ContentRange


def _now_ms() -> int:
    return int(time.time() * 1000)


class SuggestionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SuggestionType(str, Enum):
    LLM = "llm"
    BRAND = "brand"
    FACT = "fact"
    GRAMMAR = "grammar"
    SPELLING = "spelling"


class DiffType(str, Enum):
    INSERT = "insert"
    DELETE = "delete"
    REPLACE = "replace"


@dataclass(slots=True, frozen=True)
class Suggestion:
    """A positional suggestion attached to a post's content.

    Attributes:
        id: Stable, server-assigned identifier.
        content_id: The post the suggestion belongs to.
        start_offset: Inclusive start offset into the current content.
        end_offset: Exclusive end offset into the current content.
        text_to_replace: The anchor text expected at ``[start, end)``.
        replace_with: Proposed replacement text.
        reason: Human-readable explanation from the analysis service.
        priority: Relative importance.
        type: Which analyser produced the suggestion.
        context_before: Text preceding the anchor when it was produced.
        context_after: Text following the anchor when it was produced.
        anchor_text: Anchor snapshot stored by the backend.
        created_at: Creation time in epoch milliseconds.
    """

    id: str
    content_id: str
    start_offset: int
    end_offset: int
    text_to_replace: str
    replace_with: str = ""
    reason: str = ""
    priority: SuggestionPriority = SuggestionPriority.MEDIUM
    type: SuggestionType = SuggestionType.LLM
    context_before: str = ""
    context_after: str = ""
    anchor_text: str = ""
    created_at: int = field(default_factory=_now_ms)

    @property
    def range(self) -> ContentRange:
        return ContentRange(self.start_offset, self.end_offset)

    def is_valid_for(self, content: str) -> bool:
        """Return ``True`` when the anchor still matches ``content``."""

        if not (0 <= self.start_offset < self.end_offset <= len(content)):
            return False
        return content[self.start_offset : self.end_offset] == self.text_to_replace

    def with_offsets(self, start_offset: int, end_offset: int) -> Suggestion:
        return replace(self, start_offset=start_offset, end_offset=end_offset)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Suggestion:
        """Build a suggestion from the backend's camelCase JSON record."""

        suggestion_id = payload.get("id") or payload.get("suggestionId")
        if not suggestion_id:
            raise ValueError("Suggestion payload requires an id")
        try:
            start = int(payload["startOffset"])
            end = int(payload["endOffset"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Suggestion {suggestion_id} has invalid offsets") from exc
        created_at = payload.get("createdAt")
        return cls(
            id=str(suggestion_id),
            content_id=str(payload.get("contentId") or payload.get("postId") or ""),
            start_offset=start,
            end_offset=end,
            text_to_replace=str(payload.get("textToReplace") or ""),
            replace_with=str(payload.get("replaceWith") or ""),
            reason=str(payload.get("reason") or ""),
            priority=SuggestionPriority(payload.get("priority") or SuggestionPriority.MEDIUM.value),
            type=SuggestionType(payload.get("type") or SuggestionType.LLM.value),
            context_before=str(payload.get("contextBefore") or ""),
            context_after=str(payload.get("contextAfter") or ""),
            anchor_text=str(payload.get("anchorText") or ""),
            created_at=int(created_at) if created_at is not None else _now_ms(),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "contentId": self.content_id,
            "startOffset": self.start_offset,
            "endOffset": self.end_offset,
            "textToReplace": self.text_to_replace,
            "replaceWith": self.replace_with,
            "reason": self.reason,
            "priority": self.priority.value,
            "type": self.type.value,
            "contextBefore": self.context_before,
            "contextAfter": self.context_after,
            "anchorText": self.anchor_text,
            "createdAt": self.created_at,
        }


@dataclass(slots=True, frozen=True)
class ContentDiff:
    """A single contiguous change between two versions of a document.

    ``start_offset``/``end_offset`` index into the *old* content.
    """

    type: DiffType
    start_offset: int
    end_offset: int
    old_text: str
    new_text: str
    timestamp: float = field(default_factory=time.time)

    @property
    def length_delta(self) -> int:
        return len(self.new_text) - len(self.old_text)

    @property
    def new_end_offset(self) -> int:
        """End of the replaced region expressed in *new* content coordinates."""

        return self.start_offset + len(self.new_text)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "startOffset": self.start_offset,
            "endOffset": self.end_offset,
            "oldText": self.old_text,
            "newText": self.new_text,
            "timestamp": self.timestamp,
        }


@dataclass(slots=True, frozen=True)
class SuggestionDelta:
    """Per-suggestion outcome of applying a set of diffs."""

    suggestion_id: str
    old_start_offset: int
    old_end_offset: int
    new_start_offset: int
    new_end_offset: int
    is_valid: bool
    requires_update: bool


@dataclass(slots=True)
class RecalculationResult:
    """Output of one recalculation pass."""

    updated_suggestions: list[Suggestion] = field(default_factory=list)
    invalidated_suggestions: list[str] = field(default_factory=list)
    new_suggestions: list[Suggestion] = field(default_factory=list)
    changed_ranges: list[ContentRange] = field(default_factory=list)

    def all_suggestions(self) -> list[Suggestion]:
        """Survivors followed by freshly fetched suggestions."""

        return [*self.updated_suggestions, *self.new_suggestions]


@dataclass(slots=True, frozen=True)
class ActiveSuggestionState:
    """Read-only snapshot of the active suggestion cursor."""

    active_suggestion_id: str | None = None
    current_index: int = -1
    available_suggestions: tuple[str, ...] = ()
    resolved_suggestions: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class NavigationContext:
    current_index: int
    total_count: int
    has_next: bool
    has_previous: bool


__all__ = [
    "ActiveSuggestionState",
    "ContentDiff",
    "DiffType",
    "NavigationContext",
    "RecalculationResult",
    "Suggestion",
    "SuggestionDelta",
    "SuggestionPriority",
    "SuggestionType",
]

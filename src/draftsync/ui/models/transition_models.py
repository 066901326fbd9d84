"""Mode transition models.

These dataclasses and enums describe a request to switch between Edit and
Review mode and the outcome of that switch. They are used by the domain
layer (ModeTransitionManager) and by the editor session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Sequence

from ...editor.models import RecalculationResult, Suggestion

SuggestionPostProcessor = Callable[[str, list[Suggestion]], Awaitable[list[Suggestion]]]


class EditorMode(str, Enum):
    EDIT = "edit"
    REVIEW = "review"

    @property
    def other(self) -> EditorMode:
        return EditorMode.REVIEW if self is EditorMode.EDIT else EditorMode.EDIT


class TransitionPhase(str, Enum):
    """Progress phases of a transition.

    Values:
        STARTING: The switch was accepted.
        RECALCULATING: Suggestions are being realigned with the content.
        UPDATING: Recalculated suggestions are being applied.
        COMPLETING: The switch finished (possibly degraded).
        ERROR: The switch failed or was cancelled.
    """

    STARTING = "starting"
    RECALCULATING = "recalculating"
    UPDATING = "updating"
    COMPLETING = "completing"
    ERROR = "error"


@dataclass(slots=True)
class TransitionContext:
    """Inputs for a mode switch.

    Attributes:
        content: The current document content.
        content_at_last_review: Content the current suggestions were computed for.
        current_suggestions: Suggestions as last shown to the writer.
        post_id: The post being edited; recalculation is skipped without one.
        on_suggestions_recalculated: Optional coroutine that post-processes
            recalculated suggestions before they are returned.
    """

    content: str = ""
    content_at_last_review: str = ""
    current_suggestions: Sequence[Suggestion] = ()
    post_id: str | None = None
    on_suggestions_recalculated: SuggestionPostProcessor | None = None

    @property
    def needs_recalculation(self) -> bool:
        return bool(
            self.post_id
            and self.content_at_last_review
            and self.content != self.content_at_last_review
        )


@dataclass(slots=True)
class TransitionResult:
    """Outcome of a mode switch.

    ``updated_suggestions`` is ``None`` when the existing suggestions remain
    current (no recalculation ran, or it failed and the switch degraded).

    Attributes:
        success: Whether the mode switch happened.
        updated_suggestions: Replacement suggestion list, if any.
        error: Message to show the writer.
        requires_user_action: The UI should ask the writer before retrying.
        retryable: A retry may succeed.
        degraded: The switch happened but suggestions could not be refreshed.
        superseded: A newer request arrived within the debounce window.
        from_cache: The result was served from the transition cache.
        recalculation: The raw recalculation result, when one ran.
    """

    success: bool
    updated_suggestions: list[Suggestion] | None = None
    error: str | None = None
    requires_user_action: bool = False
    retryable: bool = False
    degraded: bool = False
    superseded: bool = False
    from_cache: bool = False
    recalculation: RecalculationResult | None = field(default=None, repr=False)


__all__ = [
    "EditorMode",
    "SuggestionPostProcessor",
    "TransitionContext",
    "TransitionPhase",
    "TransitionResult",
]

"""Per-document editor session wiring the suggestion managers together."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from ..editor.models import Suggestion
from ..services.backend import ReviewSuggestionRequester, SuggestionBackend, delete_suggestion_quietly
from ..services.errors import DraftSyncError, ErrorCode, user_message
from ..services.recalculation import SuggestionRecalculationService
from ..services.recalculation_cache import RecalculationCache
from ..services.settings import Settings
from .domain.active_suggestions import ActiveSuggestionManager
from .domain.mode_transition import ModeTransitionManager
from .events import EventBus, ModeChanged, NoticePosted, SuggestionsRecalculated
from .models.transition_models import EditorMode, TransitionContext, TransitionResult

LOGGER = logging.getLogger(__name__)


class EditorSession:
    """Owns the suggestion state of one open document.

    Every collaborator (cache, recalculation service, active suggestion
    manager, transition manager, event bus) belongs to exactly one session,
    so two open documents never share mutable state.
    """

    def __init__(
        self,
        *,
        event_bus: EventBus,
        cache: RecalculationCache,
        recalculation: SuggestionRecalculationService,
        active_suggestions: ActiveSuggestionManager,
        transitions: ModeTransitionManager,
        backend: SuggestionBackend | None = None,
        post_id: str | None = None,
    ) -> None:
        self.event_bus = event_bus
        self.cache = cache
        self.recalculation = recalculation
        self.active_suggestions = active_suggestions
        self.transitions = transitions
        self._backend = backend
        self._post_id = post_id
        self._mode = EditorMode.EDIT
        self._content = ""
        self._content_at_last_review = ""
        self._suggestions: list[Suggestion] = []
        self._last_request: tuple[EditorMode, EditorMode] | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def mode(self) -> EditorMode:
        return self._mode

    @property
    def post_id(self) -> str | None:
        return self._post_id

    @property
    def content(self) -> str:
        return self._content

    @property
    def content_at_last_review(self) -> str:
        return self._content_at_last_review

    @property
    def suggestions(self) -> list[Suggestion]:
        return list(self._suggestions)

    # ------------------------------------------------------------------
    # Content & suggestions
    # ------------------------------------------------------------------
    def set_content(self, content: str) -> None:
        self._content = content

    def set_suggestions(
        self,
        suggestions: Iterable[Suggestion],
        *,
        reviewed_content: str | None = None,
    ) -> None:
        """Replace the suggestion set and the content it was computed for.

        Resolutions are forgotten; this starts a new review round.
        """
        self._suggestions = list(suggestions)
        self._content_at_last_review = self._content if reviewed_content is None else reviewed_content
        self.active_suggestions.reset(self._suggestions)

    async def load_suggestions(self) -> list[Suggestion]:
        """Fetch the post's suggestions from the backend, replacing local ones."""
        if self._backend is None or not self._post_id:
            return self.suggestions
        page = await self._backend.fetch_suggestions(self._post_id)
        self.set_suggestions(page.suggestions)
        LOGGER.debug("Loaded %d suggestions for post %s", len(self._suggestions), self._post_id)
        return self.suggestions

    async def resolve_suggestion(self, suggestion_id: str, *, delete: bool = True) -> bool:
        """Resolve a suggestion and delete it remotely on a best-effort basis.

        Returns:
            True when every suggestion of the round has been resolved.
        """
        all_resolved = self.active_suggestions.resolve_suggestion(suggestion_id)
        self._suggestions = [item for item in self._suggestions if item.id != suggestion_id]
        if delete and self._backend is not None:
            await delete_suggestion_quietly(self._backend, suggestion_id)
        return all_resolved

    # ------------------------------------------------------------------
    # Mode switching
    # ------------------------------------------------------------------
    async def toggle_mode(self) -> TransitionResult:
        """Switch between Edit and Review mode.

        Raises:
            TransitionInProgressError: Another switch is still executing.
        """
        source, target = self._mode, self._mode.other
        self._last_request = (source, target)
        result = await self.transitions.begin_transition(source, target, self._build_context())
        self._apply_result(source, target, result)
        return result

    async def retry_last_transition(self) -> TransitionResult:
        """Retry the most recent switch, e.g. after an offline degradation.

        Raises:
            RetryLimitExceededError: Every attempt failed.
        """
        if self._last_request is None:
            raise DraftSyncError(code=ErrorCode.INVALID_INPUT, message="No transition to retry")
        source, target = self._last_request
        context = self._build_context()
        result = await self.transitions.retry_transition(source, target, context)
        self._apply_result(source, target, result)
        return result

    async def close(self) -> None:
        self.transitions.reset()
        self.active_suggestions.dispose()
        self.cache.invalidate_all()

    def _build_context(self) -> TransitionContext:
        return TransitionContext(
            content=self._content,
            content_at_last_review=self._content_at_last_review,
            current_suggestions=tuple(self._suggestions),
            post_id=self._post_id,
        )

    def _apply_result(self, source: EditorMode, target: EditorMode, result: TransitionResult) -> None:
        if result.superseded:
            return
        if not result.success:
            self.event_bus.publish(
                NoticePosted(message=result.error or user_message(None), level="error", retryable=result.retryable)
            )
            return

        if result.updated_suggestions is not None:
            self._replace_suggestions(result.updated_suggestions, result)
        if target is EditorMode.REVIEW and not result.degraded:
            self._content_at_last_review = self._content
        if result.degraded:
            self.event_bus.publish(
                NoticePosted(message=result.error or "", level="warning", retryable=result.retryable)
            )

        self._mode = target
        LOGGER.debug("Editor session for post %s switched %s -> %s", self._post_id, source.value, target.value)
        self.event_bus.publish(ModeChanged(post_id=self._post_id, mode=target.value))

    def _replace_suggestions(self, suggestions: Sequence[Suggestion], result: TransitionResult) -> None:
        self._suggestions = list(suggestions)
        self.active_suggestions.sync_suggestions(self._suggestions)
        recalculation = result.recalculation
        self.event_bus.publish(
            SuggestionsRecalculated(
                post_id=self._post_id,
                updated_count=len(self._suggestions),
                invalidated_ids=tuple(recalculation.invalidated_suggestions) if recalculation else (),
                new_count=len(recalculation.new_suggestions) if recalculation else 0,
            )
        )


def create_session(
    settings: Settings | None = None,
    backend: SuggestionBackend | None = None,
    *,
    post_id: str | None = None,
    event_bus: EventBus | None = None,
) -> EditorSession:
    """Build an :class:`EditorSession` with fresh, unshared collaborators."""

    settings = settings or Settings()
    bus = event_bus or EventBus()
    cache = RecalculationCache(settings.cache)
    requester = (
        ReviewSuggestionRequester(backend, timeout=settings.backend.review_timeout)
        if backend is not None
        else None
    )
    recalculation = SuggestionRecalculationService(settings.recalculation, cache=cache, requester=requester)
    return EditorSession(
        event_bus=bus,
        cache=cache,
        recalculation=recalculation,
        active_suggestions=ActiveSuggestionManager(bus, settings.active_suggestions),
        transitions=ModeTransitionManager(recalculation, bus, settings.transition),
        backend=backend,
        post_id=post_id,
    )


__all__ = ["EditorSession", "create_session"]

"""Mode transition domain manager.

Sequences Edit/Review mode switches: recalculates suggestions when the
content changed since the last review, reports progress through the event
bus, and makes sure a failed recalculation never blocks the switch itself.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any

from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_result, stop_after_attempt, wait_exponential

from ...editor.models import Suggestion
from ...services.errors import (
    DraftSyncError,
    ErrorCode,
    RecalculationCancelledError,
    RetryLimitExceededError,
    TransitionCancelledError,
    TransitionInProgressError,
    is_network_error,
    is_retryable_error,
    user_message,
)
from ...services.recalculation import SuggestionRecalculationService
from ...services.recalculation_cache import hash_text
from ...services.settings import TransitionConfig
from ..events import EventBus, TransitionCompleted, TransitionFailed, TransitionProgress
from ..models.transition_models import (
    EditorMode,
    TransitionContext,
    TransitionPhase,
    TransitionResult,
)

LOGGER = logging.getLogger(__name__)

_START_DELAY = 0.05
_OFFLINE_MESSAGE = "Network unavailable - working in offline mode with existing suggestions"
_DEGRADED_MESSAGE = "Suggestion update failed - you can continue reviewing existing suggestions"
_SUPERSEDED_MESSAGE = "Superseded by a newer transition request"
_CANCELLED_MESSAGE = "Transition was cancelled"


def transition_key(from_mode: EditorMode, to_mode: EditorMode, context: TransitionContext) -> str:
    """Return the cache key for a transition request."""

    suggestion_ids = json.dumps([suggestion.id for suggestion in context.current_suggestions])
    return "-".join(
        (
            from_mode.value,
            to_mode.value,
            context.post_id or "no-post",
            hash_text(context.content),
            hash_text(context.content_at_last_review),
            hash_text(suggestion_ids),
        )
    )


@dataclass(slots=True)
class _CachedTransition:
    result: TransitionResult
    created_at: float = field(default_factory=time.monotonic)


class ModeTransitionManager:
    """Domain manager for Edit/Review mode switches.

    At most one transition executes at a time; a request that reaches
    execution while another is running raises
    :class:`TransitionInProgressError`. Requests are debounced so that only
    the last one within ``debounce_delay`` executes. Successful,
    non-degraded results are cached per (modes, post, content, baseline,
    suggestion ids).

    Events Emitted:
        - TransitionProgress: For each phase of a transition
        - TransitionCompleted: When a transition succeeds (including degraded and cached)
        - TransitionFailed: When a transition fails or is cancelled
    """

    def __init__(
        self,
        recalculation_service: SuggestionRecalculationService,
        event_bus: EventBus,
        config: TransitionConfig | None = None,
    ) -> None:
        self._service = recalculation_service
        self._bus = event_bus
        self._config = replace(config) if config is not None else TransitionConfig()
        self._task: asyncio.Task[TransitionResult] | None = None
        self._cancel_event: asyncio.Event | None = None
        self._cancel_requested = False
        self._debounce_generation = 0
        self._retry_count = 0
        self._last_progress: TransitionProgress | None = None
        self._cache: OrderedDict[str, _CachedTransition] = OrderedDict()
        self._cache_hits = 0
        self._cache_misses = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> TransitionConfig:
        return replace(self._config)

    def update_config(self, **changes: Any) -> TransitionConfig:
        self._config = replace(self._config, **changes)
        return self.config

    def is_transitioning(self) -> bool:
        return self._task is not None

    @property
    def current_progress(self) -> TransitionProgress | None:
        """Most recent progress report of the running transition."""
        if self._task is None:
            return None
        return self._last_progress

    @property
    def retry_count(self) -> int:
        return self._retry_count

    # ------------------------------------------------------------------
    # Transition lifecycle
    # ------------------------------------------------------------------

    async def begin_transition(
        self,
        from_mode: EditorMode | str,
        to_mode: EditorMode | str,
        context: TransitionContext,
    ) -> TransitionResult:
        """Switch modes, consulting the cache and debouncing rapid requests.

        Returns:
            The transition result. Callers superseded by a newer request
            within the debounce window get ``superseded=True``.

        Raises:
            TransitionInProgressError: Another transition is executing.
        """
        source = EditorMode(from_mode)
        target = EditorMode(to_mode)
        key = transition_key(source, target, context)
        if self._task is not None:
            raise TransitionInProgressError()

        if self._config.enable_caching:
            cached = self._get_cached(key)
            if cached is not None:
                LOGGER.debug("ModeTransitionManager: cache hit for %s -> %s", source.value, target.value)
                self._bus.publish(
                    TransitionCompleted(from_mode=source.value, to_mode=target.value, from_cache=True)
                )
                return cached

        if self._config.debounce_delay > 0:
            self._debounce_generation += 1
            generation = self._debounce_generation
            await asyncio.sleep(self._config.debounce_delay)
            if generation != self._debounce_generation:
                LOGGER.debug("ModeTransitionManager: request superseded within debounce window")
                return TransitionResult(success=False, error=_SUPERSEDED_MESSAGE, superseded=True)

        self._retry_count = 0
        result = await self._execute(source, target, context)
        if self._config.enable_caching:
            self._store(key, result)
        return result

    async def retry_transition(
        self,
        from_mode: EditorMode | str,
        to_mode: EditorMode | str,
        context: TransitionContext,
    ) -> TransitionResult:
        """Re-run a failed transition with exponential backoff.

        Failed or degraded results flagged ``retryable`` are retried, up to
        ``max_retry_attempts`` executions.

        Raises:
            DraftSyncError: Retry is disabled in the configuration.
            RetryLimitExceededError: Every attempt failed with a retryable error.
            TransitionInProgressError: Another transition is executing.
        """
        if not self._config.enable_retry:
            raise DraftSyncError(code=ErrorCode.RETRY_DISABLED, message="Retry is not enabled")

        source = EditorMode(from_mode)
        target = EditorMode(to_mode)
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._config.max_retry_attempts)),
            wait=wait_exponential(
                multiplier=self._config.retry_delay,
                max=self._config.retry_max_delay,
            ),
            retry=retry_if_result(_should_retry),
            before_sleep=lambda state: self._report_retry(source, target, state),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    self._retry_count = attempt.retry_state.attempt_number
                    result = await self._execute(source, target, context)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(result)
        except RetryError as exc:
            last = exc.last_attempt.result()
            raise RetryLimitExceededError(
                details={"attempts": self._retry_count, "last_error": last.error},
            ) from exc

        if self._config.enable_caching:
            self._store(transition_key(source, target, context), result)
        return result

    def cancel_transition(self) -> bool:
        """Cancel the executing transition when cancellation is enabled.

        The caller awaiting the transition receives a failed result with
        ``requires_user_action=True`` and no suggestion list.
        """
        if not self._config.enable_cancellation or self._task is None:
            return False
        self._request_cancel()
        return True

    def reset(self) -> None:
        """Cancel any running or debounced transition and drop cached results."""
        if self._task is not None:
            self._request_cancel()
        self._debounce_generation += 1
        self._retry_count = 0
        self.clear_cache()

    def clear_cache(self) -> None:
        self._cache.clear()
        self._cache_hits = 0
        self._cache_misses = 0

    def cache_stats(self) -> dict[str, Any]:
        total = self._cache_hits + self._cache_misses
        return {
            "size": len(self._cache),
            "max_size": self._config.cache_size,
            "hits": self._cache_hits,
            "misses": self._cache_misses,
            "hit_rate": self._cache_hits / total if total else 0.0,
        }

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(
        self,
        source: EditorMode,
        target: EditorMode,
        context: TransitionContext,
    ) -> TransitionResult:
        if self._task is not None:
            raise TransitionInProgressError()

        self._cancel_requested = False
        self._cancel_event = asyncio.Event()
        task = asyncio.ensure_future(self._run(source, target, context))
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if not (self._cancel_requested and task.cancelled()):
                raise
            return self._cancelled_result(source, target)
        finally:
            self._task = None
            self._cancel_event = None
            self._cancel_requested = False

    async def _run(
        self,
        source: EditorMode,
        target: EditorMode,
        context: TransitionContext,
    ) -> TransitionResult:
        try:
            self._report(
                source,
                target,
                TransitionPhase.STARTING,
                f"Switching from {source.value} to {target.value} mode...",
                0,
                can_cancel=self._config.enable_cancellation,
            )
            if self._config.enable_animations:
                await asyncio.sleep(_START_DELAY)

            if source is EditorMode.EDIT and target is EditorMode.REVIEW:
                result = await self._edit_to_review(context)
            elif source is EditorMode.REVIEW and target is EditorMode.EDIT:
                result = await self._review_to_edit()
            else:
                self._report(source, target, TransitionPhase.COMPLETING, "Transition completed", 100)
                result = TransitionResult(success=True)
        except (RecalculationCancelledError, TransitionCancelledError):
            return self._cancelled_result(source, target)
        except Exception as exc:
            return self._failed_result(source, target, exc)

        self._bus.publish(
            TransitionCompleted(from_mode=source.value, to_mode=target.value, degraded=result.degraded)
        )
        return result

    async def _edit_to_review(self, context: TransitionContext) -> TransitionResult:
        source, target = EditorMode.EDIT, EditorMode.REVIEW
        if not context.needs_recalculation:
            self._report(source, target, TransitionPhase.COMPLETING, "Switched to Review mode", 100)
            return TransitionResult(success=True)

        self._report(
            source,
            target,
            TransitionPhase.RECALCULATING,
            "Recalculating suggestions based on content changes...",
            25,
            can_cancel=self._config.enable_cancellation,
        )
        try:
            self._check_cancelled()
            recalculation = await self._service.perform_recalculation(
                context.content_at_last_review,
                context.content,
                list(context.current_suggestions),
                context.post_id or "",
                cancel_event=self._cancel_event,
            )
            self._report(source, target, TransitionPhase.UPDATING, "Updating suggestions...", 75)
            self._check_cancelled()

            suggestions: list[Suggestion] = recalculation.all_suggestions()
            if context.on_suggestions_recalculated is not None:
                suggestions = list(await context.on_suggestions_recalculated(context.content, suggestions))
        except (RecalculationCancelledError, TransitionCancelledError):
            raise
        except Exception as exc:
            LOGGER.warning("Suggestion recalculation failed during transition: %s", exc)
            offline = is_network_error(exc)
            self._report(
                source,
                target,
                TransitionPhase.COMPLETING,
                "Switched to Review mode (working offline)"
                if offline
                else "Switched to Review mode (limited functionality)",
                100,
            )
            return TransitionResult(
                success=True,
                error=_OFFLINE_MESSAGE if offline else _DEGRADED_MESSAGE,
                retryable=True,
                degraded=True,
            )

        self._report(source, target, TransitionPhase.COMPLETING, "Transition to Review mode completed", 100)
        return TransitionResult(success=True, updated_suggestions=suggestions, recalculation=recalculation)

    async def _review_to_edit(self) -> TransitionResult:
        self._report(EditorMode.REVIEW, EditorMode.EDIT, TransitionPhase.COMPLETING, "Switched to Edit mode", 100)
        if self._config.enable_animations:
            await asyncio.sleep(self._config.animation_duration / 2)
        return TransitionResult(success=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _request_cancel(self) -> None:
        self._cancel_requested = True
        if self._cancel_event is not None:
            self._cancel_event.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        LOGGER.debug("ModeTransitionManager: cancellation requested")

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise TransitionCancelledError()

    def _cancelled_result(self, source: EditorMode, target: EditorMode) -> TransitionResult:
        self._report(source, target, TransitionPhase.ERROR, "Transition cancelled by user", 0)
        self._bus.publish(
            TransitionFailed(
                from_mode=source.value,
                to_mode=target.value,
                error_code=ErrorCode.TRANSITION_CANCELLED,
                message=_CANCELLED_MESSAGE,
            )
        )
        return TransitionResult(success=False, error=_CANCELLED_MESSAGE, requires_user_action=True)

    def _failed_result(self, source: EditorMode, target: EditorMode, exc: Exception) -> TransitionResult:
        LOGGER.error("Transition %s -> %s failed: %s", source.value, target.value, exc)
        message = user_message(exc)
        self._report(source, target, TransitionPhase.ERROR, f"Transition failed: {message}", 0)
        retryable = is_retryable_error(exc) and self._config.enable_retry
        can_retry_silently = retryable and self._retry_count < self._config.max_retry_attempts
        code = exc.code if isinstance(exc, DraftSyncError) else type(exc).__name__
        self._bus.publish(
            TransitionFailed(
                from_mode=source.value,
                to_mode=target.value,
                error_code=code,
                message=message,
                retryable=retryable,
            )
        )
        return TransitionResult(
            success=False,
            error=message,
            requires_user_action=not can_retry_silently,
            retryable=retryable,
        )

    def _report(
        self,
        source: EditorMode,
        target: EditorMode,
        phase: TransitionPhase,
        message: str,
        progress: int,
        *,
        can_cancel: bool = False,
    ) -> None:
        event = TransitionProgress(
            phase=phase.value,
            message=message,
            progress=progress,
            can_cancel=can_cancel,
            from_mode=source.value,
            to_mode=target.value,
        )
        self._last_progress = event
        if self._config.enable_progress_reporting:
            self._bus.publish(event)

    def _report_retry(self, source: EditorMode, target: EditorMode, retry_state: RetryCallState) -> None:
        self._report(
            source,
            target,
            TransitionPhase.STARTING,
            f"Retrying transition (attempt {retry_state.attempt_number + 1}/{self._config.max_retry_attempts})...",
            0,
        )

    def _get_cached(self, key: str) -> TransitionResult | None:
        entry = self._cache.get(key)
        if entry is None:
            self._cache_misses += 1
            return None
        if self._config.cache_ttl > 0 and time.monotonic() - entry.created_at > self._config.cache_ttl:
            del self._cache[key]
            self._cache_misses += 1
            return None
        self._cache.move_to_end(key)
        self._cache_hits += 1
        return _copy_result(entry.result, from_cache=True)

    def _store(self, key: str, result: TransitionResult) -> None:
        if not result.success or result.degraded or result.superseded:
            return
        while self._cache and len(self._cache) >= max(1, self._config.cache_size):
            self._cache.popitem(last=False)
        self._cache[key] = _CachedTransition(result=_copy_result(result))


def _should_retry(result: TransitionResult) -> bool:
    return result.retryable and (not result.success or result.degraded)


def _copy_result(result: TransitionResult, *, from_cache: bool | None = None) -> TransitionResult:
    suggestions = list(result.updated_suggestions) if result.updated_suggestions is not None else None
    copied = replace(result, updated_suggestions=suggestions)
    if from_cache is not None:
        copied.from_cache = from_cache
    return copied


__all__ = ["ModeTransitionManager", "transition_key"]

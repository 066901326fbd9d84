"""Active suggestion domain manager.

Tracks which suggestion the writer is looking at, which ones they already
resolved, and moves the cursor forward after a resolution. This is the
single source of truth for the active-suggestion state of one session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Iterable

from ...editor.models import ActiveSuggestionState, NavigationContext, Suggestion
from ...services.settings import ActiveSuggestionConfig
from ..events import (
    ActiveSuggestionChanged,
    AllSuggestionsResolved,
    EventBus,
    SuggestionResolved,
)

LOGGER = logging.getLogger(__name__)


class ActiveSuggestionManager:
    """State machine over :class:`ActiveSuggestionState`.

    Navigation and resolution are synchronous. The only deferred work is
    the auto-advance after resolving the active suggestion, scheduled with
    ``loop.call_later`` so the UI can show resolution feedback first. Any
    explicit navigation, reset, or newer advance cancels a pending one.
    Navigation during that window moves relative to the resolved
    suggestion, and a rejected move lands on the pending replacement.

    Resolved ids stay resolved across :meth:`sync_suggestions` calls until
    :meth:`reset` is called.

    Events Emitted:
        - ActiveSuggestionChanged: When the active suggestion changes
        - SuggestionResolved: When a suggestion is resolved
        - AllSuggestionsResolved: When the last unresolved suggestion is resolved
    """

    def __init__(
        self,
        event_bus: EventBus,
        config: ActiveSuggestionConfig | None = None,
    ) -> None:
        self._bus = event_bus
        self._config = replace(config) if config is not None else ActiveSuggestionConfig()
        self._suggestions: dict[str, Suggestion] = {}
        self._available: list[str] = []
        self._resolved: list[str] = []
        self._active_id: str | None = None
        self._current_index = -1
        self._pending_advance: asyncio.TimerHandle | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> ActiveSuggestionConfig:
        return self._config

    @property
    def state(self) -> ActiveSuggestionState:
        """Return an immutable snapshot of the current state."""
        return ActiveSuggestionState(
            active_suggestion_id=self._active_id,
            current_index=self._current_index,
            available_suggestions=tuple(self._available),
            resolved_suggestions=tuple(self._resolved),
        )

    @property
    def active_suggestion(self) -> Suggestion | None:
        if self._active_id is None:
            return None
        return self._suggestions.get(self._active_id)

    @property
    def navigation_context(self) -> NavigationContext:
        total = len(self._available)
        index = self._current_index
        looping = self._config.loop_navigation and total > 1
        return NavigationContext(
            current_index=index,
            total_count=total,
            has_next=total > 0 and (looping or index < total - 1),
            has_previous=total > 0 and (looping or index > 0),
        )

    @property
    def available_suggestions(self) -> list[Suggestion]:
        """Unresolved suggestions in display order."""
        return [self._suggestions[suggestion_id] for suggestion_id in self._available]

    @property
    def resolved_ids(self) -> tuple[str, ...]:
        return tuple(self._resolved)

    def is_resolved(self, suggestion_id: str) -> bool:
        return suggestion_id in self._resolved

    def has_pending_advance(self) -> bool:
        return self._pending_advance is not None

    # ------------------------------------------------------------------
    # Synchronisation
    # ------------------------------------------------------------------

    def sync_suggestions(self, suggestions: Iterable[Suggestion]) -> ActiveSuggestionState:
        """Resync with a new external suggestion list.

        The active suggestion is kept when it is still available, otherwise
        the first available suggestion becomes active.
        """
        self._load(suggestions)
        resolved = set(self._resolved)
        self._available = [sid for sid in self._suggestions if sid not in resolved]

        if self._active_id in self._available:
            self._current_index = self._available.index(self._active_id)
        elif self._pending_advance is not None and self._active_id in resolved:
            # Still showing resolution feedback; the pending advance will move on.
            self._current_index = min(self._current_index, max(0, len(self._available) - 1))
        elif self._available:
            self._activate(0)
        else:
            self._clear_active()

        LOGGER.debug(
            "ActiveSuggestionManager.sync: %d available, %d resolved, active=%s",
            len(self._available),
            len(self._resolved),
            self._active_id,
        )
        return self.state

    def reset(self, suggestions: Iterable[Suggestion] | None = None) -> ActiveSuggestionState:
        """Forget resolutions and rebuild the available list.

        Used when a post session restarts. Without ``suggestions`` the last
        synced list is reused.
        """
        self._cancel_pending_advance()
        if suggestions is not None:
            self._load(suggestions)
        self._resolved = []
        self._available = list(self._suggestions)
        self._active_id = None
        self._current_index = -1
        if self._available:
            self._activate(0)
        else:
            self._clear_active()
        LOGGER.debug("ActiveSuggestionManager.reset: %d available", len(self._available))
        return self.state

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def navigate_next(self) -> bool:
        slot = self._settle_pending_advance()
        total = len(self._available)
        if total == 0:
            return self._reject_navigation(slot)
        target = self._current_index + 1 if slot is None else slot
        if target >= total:
            if not self._config.loop_navigation:
                return self._reject_navigation(slot)
            target = 0
        return self._activate(target)

    def navigate_previous(self) -> bool:
        slot = self._settle_pending_advance()
        total = len(self._available)
        if total == 0:
            return self._reject_navigation(slot)
        target = (self._current_index if slot is None else slot) - 1
        if target < 0:
            if not self._config.loop_navigation:
                return self._reject_navigation(slot)
            target = total - 1
        return self._activate(target)

    def navigate_to_index(self, index: int) -> bool:
        """Activate the suggestion at ``index``; out-of-range requests are rejected."""
        slot = self._settle_pending_advance()
        if not 0 <= index < len(self._available):
            return self._reject_navigation(slot)
        return self._activate(index)

    def navigate_to_first(self) -> bool:
        return self.navigate_to_index(0)

    def navigate_to_last(self) -> bool:
        return self.navigate_to_index(len(self._available) - 1)

    def set_active_suggestion(self, suggestion_id: str | None) -> bool:
        """Activate ``suggestion_id`` directly, or clear the cursor with ``None``."""
        slot = self._settle_pending_advance()
        if suggestion_id is None:
            self._clear_active()
            return True
        if suggestion_id not in self._available:
            return self._reject_navigation(slot)
        return self._activate(self._available.index(suggestion_id))

    def advance_to_next(self) -> bool:
        """Move forward, wrapping to the first suggestion at the end."""
        slot = self._settle_pending_advance()
        if not self._available:
            return self._reject_navigation(slot)
        if slot is not None:
            return self._activate(slot if slot < len(self._available) else 0)
        if self.navigation_context.has_next:
            return self.navigate_next()
        return self.navigate_to_first()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_suggestion(self, suggestion_id: str, auto_advance: bool | None = None) -> bool:
        """Mark ``suggestion_id`` as resolved.

        Args:
            suggestion_id: The suggestion that was accepted, rejected or deleted.
            auto_advance: Whether to move to the next suggestion when the
                resolved one was active. Defaults to the configured value.

        Returns:
            True when no unresolved suggestions remain.

        Emits:
            SuggestionResolved, then AllSuggestionsResolved when the set is empty.
        """
        if suggestion_id not in self._available:
            LOGGER.debug("ActiveSuggestionManager.resolve: %s is not available", suggestion_id)
            return not self._available

        if auto_advance is None:
            auto_advance = self._config.enable_auto_advance
        was_active = suggestion_id == self._active_id
        previous_index = self._current_index

        self._available.remove(suggestion_id)
        self._resolved.append(suggestion_id)
        remaining = len(self._available)
        self._bus.publish(SuggestionResolved(suggestion_id=suggestion_id, remaining=remaining))

        if remaining == 0:
            self._cancel_pending_advance()
            self._clear_active()
            self._bus.publish(AllSuggestionsResolved(resolved_count=len(self._resolved)))
            LOGGER.debug("ActiveSuggestionManager: all suggestions resolved")
            return True

        if not was_active:
            if self._active_id in self._available:
                self._current_index = self._available.index(self._active_id)
            return False

        if not auto_advance:
            self._cancel_pending_advance()
            self._clear_active()
            return False

        next_index = min(max(previous_index, 0), remaining - 1)
        self._schedule_advance(self._available[next_index])
        return False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self, suggestions: Iterable[Suggestion]) -> None:
        ordered: dict[str, Suggestion] = {}
        for suggestion in suggestions:
            ordered.setdefault(suggestion.id, suggestion)
        self._suggestions = ordered

    def _activate(self, index: int) -> bool:
        suggestion_id = self._available[index]
        previous = self._active_id
        self._active_id = suggestion_id
        self._current_index = index
        if previous != suggestion_id:
            self._emit_changed(previous)
        return True

    def _clear_active(self) -> None:
        previous = self._active_id
        self._active_id = None
        self._current_index = -1
        if previous is not None:
            self._emit_changed(previous)

    def _emit_changed(self, previous: str | None) -> None:
        self._bus.publish(
            ActiveSuggestionChanged(
                suggestion_id=self._active_id,
                previous_id=previous,
                index=self._current_index,
                total=len(self._available),
            )
        )

    def _schedule_advance(self, target_id: str) -> None:
        self._cancel_pending_advance()
        delay = self._config.auto_advance_delay
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if delay <= 0 or loop is None:
            self._apply_advance(target_id)
            return
        self._pending_advance = loop.call_later(delay, self._apply_advance, target_id)

    def _apply_advance(self, target_id: str) -> None:
        self._pending_advance = None
        if target_id in self._available:
            self._activate(self._available.index(target_id))
        elif self._available:
            self._activate(min(max(self._current_index, 0), len(self._available) - 1))
        else:
            self._clear_active()

    def _settle_pending_advance(self) -> int | None:
        """Cancel a pending auto-advance before an explicit navigation.

        Returns:
            The slot the resolved active suggestion occupied when the cursor
            is still parked on it, otherwise ``None``. The suggestion now in
            that slot is the one the advance would have shown.
        """
        pending = self._pending_advance is not None
        self._cancel_pending_advance()
        if not pending or self._active_id is None or self._active_id in self._available:
            return None
        return max(self._current_index, 0)

    def _reject_navigation(self, slot: int | None) -> bool:
        # Never leave a resolved suggestion active after a rejected move.
        if slot is not None:
            if self._available:
                self._activate(min(slot, len(self._available) - 1))
            else:
                self._clear_active()
        return False

    def _cancel_pending_advance(self) -> None:
        if self._pending_advance is not None:
            self._pending_advance.cancel()
            self._pending_advance = None
            LOGGER.debug("ActiveSuggestionManager: pending auto-advance cancelled")

    def dispose(self) -> None:
        self._cancel_pending_advance()


__all__ = ["ActiveSuggestionManager"]

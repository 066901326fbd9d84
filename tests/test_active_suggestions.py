"""Tests for the ActiveSuggestionManager domain manager."""

from __future__ import annotations

import asyncio

import pytest

from draftsync.services.settings import ActiveSuggestionConfig
from draftsync.ui.domain.active_suggestions import ActiveSuggestionManager
from draftsync.ui.events import ActiveSuggestionChanged, AllSuggestionsResolved, SuggestionResolved


def _manager(event_bus, **config) -> ActiveSuggestionManager:
    return ActiveSuggestionManager(event_bus, ActiveSuggestionConfig(**config))


class TestSync:
    def test_first_sync_activates_first_suggestion(self, event_bus, recorder, suggestions_abc) -> None:
        recorder.watch(ActiveSuggestionChanged)
        manager = _manager(event_bus)

        state = manager.sync_suggestions(suggestions_abc)

        assert state.active_suggestion_id == "a"
        assert state.current_index == 0
        assert state.available_suggestions == ("a", "b", "c")
        (event,) = recorder.of_type(ActiveSuggestionChanged)
        assert (event.suggestion_id, event.previous_id, event.index, event.total) == ("a", None, 0, 3)

    def test_sync_keeps_active_suggestion_and_recomputes_index(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus)
        manager.sync_suggestions(suggestions_abc)
        manager.navigate_to_index(2)

        state = manager.sync_suggestions(suggestions_abc[1:])

        assert state.active_suggestion_id == "c"
        assert state.current_index == 1

    def test_sync_falls_back_to_first_when_active_disappears(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus)
        manager.sync_suggestions(suggestions_abc)
        manager.navigate_to_index(1)

        state = manager.sync_suggestions([suggestions_abc[0], suggestions_abc[2]])

        assert state.active_suggestion_id == "a"

    def test_sync_with_empty_list_clears(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus)
        manager.sync_suggestions(suggestions_abc)

        state = manager.sync_suggestions([])

        assert state.active_suggestion_id is None
        assert state.current_index == -1
        assert manager.active_suggestion is None

    def test_resolved_ids_survive_sync(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, enable_auto_advance=False)
        manager.sync_suggestions(suggestions_abc)
        manager.resolve_suggestion("b")

        state = manager.sync_suggestions(suggestions_abc)

        assert state.available_suggestions == ("a", "c")
        assert manager.is_resolved("b")

    def test_reset_forgets_resolutions(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, enable_auto_advance=False)
        manager.sync_suggestions(suggestions_abc)
        manager.resolve_suggestion("a")

        state = manager.reset()

        assert state.resolved_suggestions == ()
        assert state.available_suggestions == ("a", "b", "c")
        assert state.active_suggestion_id == "a"


class TestNavigation:
    def test_next_and_previous_are_bounded(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus)
        manager.sync_suggestions(suggestions_abc)

        assert manager.navigate_previous() is False
        assert manager.navigate_next() is True
        assert manager.navigate_next() is True
        assert manager.navigate_next() is False
        assert manager.state.active_suggestion_id == "c"

        context = manager.navigation_context
        assert (context.current_index, context.total_count) == (2, 3)
        assert context.has_previous and not context.has_next

    def test_loop_navigation_wraps(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, loop_navigation=True)
        manager.sync_suggestions(suggestions_abc)

        assert manager.navigate_previous() is True
        assert manager.state.active_suggestion_id == "c"
        assert manager.navigate_next() is True
        assert manager.state.active_suggestion_id == "a"

    def test_out_of_range_index_is_rejected(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus)
        manager.sync_suggestions(suggestions_abc)

        assert manager.navigate_to_index(7) is False
        assert manager.navigate_to_index(-1) is False
        assert manager.state.active_suggestion_id == "a"

    def test_first_last_and_direct_selection(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus)
        manager.sync_suggestions(suggestions_abc)

        assert manager.navigate_to_last() is True
        assert manager.state.active_suggestion_id == "c"
        assert manager.navigate_to_first() is True
        assert manager.set_active_suggestion("b") is True
        assert manager.active_suggestion == suggestions_abc[1]
        assert manager.set_active_suggestion("missing") is False
        assert manager.set_active_suggestion(None) is True
        assert manager.state.active_suggestion_id is None

    def test_navigation_on_empty_set(self, event_bus) -> None:
        manager = _manager(event_bus)
        manager.sync_suggestions([])

        assert manager.navigate_next() is False
        assert manager.navigate_to_last() is False
        assert manager.advance_to_next() is False
        context = manager.navigation_context
        assert not context.has_next and not context.has_previous

    def test_advance_to_next_wraps_at_end(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus)
        manager.sync_suggestions(suggestions_abc)
        manager.navigate_to_last()

        assert manager.advance_to_next() is True
        assert manager.state.active_suggestion_id == "a"


class TestResolution:
    def test_resolving_inactive_suggestion_keeps_cursor(self, event_bus, recorder, suggestions_abc) -> None:
        recorder.watch(SuggestionResolved)
        manager = _manager(event_bus)
        manager.sync_suggestions(suggestions_abc)
        manager.navigate_to_index(2)

        assert manager.resolve_suggestion("a") is False

        assert manager.state.active_suggestion_id == "c"
        assert manager.state.current_index == 1
        (event,) = recorder.of_type(SuggestionResolved)
        assert (event.suggestion_id, event.remaining) == ("a", 2)

    def test_auto_advance_without_running_loop_is_immediate(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus)
        manager.sync_suggestions(suggestions_abc)

        manager.resolve_suggestion("a")

        assert manager.state.active_suggestion_id == "b"
        assert not manager.has_pending_advance()

    def test_resolving_last_item_advances_to_previous_index(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0)
        manager.sync_suggestions(suggestions_abc)
        manager.navigate_to_last()

        manager.resolve_suggestion("c")

        assert manager.state.active_suggestion_id == "b"

    def test_without_auto_advance_cursor_is_cleared(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus)
        manager.sync_suggestions(suggestions_abc)

        manager.resolve_suggestion("a", auto_advance=False)

        assert manager.state.active_suggestion_id is None

    def test_resolving_everything_publishes_all_resolved(self, event_bus, recorder, suggestions_abc) -> None:
        recorder.watch(AllSuggestionsResolved)
        manager = _manager(event_bus, enable_auto_advance=False)
        manager.sync_suggestions(suggestions_abc)

        assert manager.resolve_suggestion("a") is False
        assert manager.resolve_suggestion("b") is False
        assert manager.resolve_suggestion("c") is True

        (event,) = recorder.of_type(AllSuggestionsResolved)
        assert event.resolved_count == 3
        assert manager.state.active_suggestion_id is None
        assert manager.resolved_ids == ("a", "b", "c")

    def test_resolving_unknown_id_is_ignored(self, event_bus, recorder, suggestions_abc) -> None:
        recorder.watch(SuggestionResolved)
        manager = _manager(event_bus)
        manager.sync_suggestions(suggestions_abc)

        assert manager.resolve_suggestion("zzz") is False
        assert recorder.of_type(SuggestionResolved) == []


class TestDeferredAdvance:
    @pytest.mark.asyncio
    async def test_advance_waits_for_delay(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0.05)
        manager.sync_suggestions(suggestions_abc)

        manager.resolve_suggestion("a")

        assert manager.has_pending_advance()
        assert manager.state.active_suggestion_id == "a"
        await asyncio.sleep(0.1)
        assert manager.state.active_suggestion_id == "b"
        assert not manager.has_pending_advance()

    @pytest.mark.asyncio
    async def test_explicit_navigation_cancels_pending_advance(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0.05)
        manager.sync_suggestions(suggestions_abc)

        manager.resolve_suggestion("a")
        manager.navigate_to_last()
        await asyncio.sleep(0.1)

        assert manager.state.active_suggestion_id == "c"
        assert not manager.has_pending_advance()

    @pytest.mark.asyncio
    async def test_resolving_the_pending_target_moves_past_it(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0.05)
        manager.sync_suggestions(suggestions_abc)

        manager.resolve_suggestion("a")
        manager.resolve_suggestion("b")
        await asyncio.sleep(0.1)

        assert manager.state.active_suggestion_id == "c"

    @pytest.mark.asyncio
    async def test_dispose_cancels_pending_advance(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0.05)
        manager.sync_suggestions(suggestions_abc)
        manager.resolve_suggestion("a")

        manager.dispose()
        await asyncio.sleep(0.1)

        assert manager.state.active_suggestion_id == "a"


class TestNavigationDuringPendingAdvance:
    @pytest.mark.asyncio
    async def test_previous_at_first_slot_lands_on_replacement(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0.05)
        manager.sync_suggestions(suggestions_abc)
        manager.resolve_suggestion("a")

        assert manager.navigate_previous() is False
        await asyncio.sleep(0.1)

        state = manager.state
        assert state.active_suggestion_id == "b"
        assert state.active_suggestion_id in state.available_suggestions
        assert state.current_index == 0

    @pytest.mark.asyncio
    async def test_next_moves_to_the_neighbour_of_the_resolved_suggestion(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0.05)
        manager.sync_suggestions(suggestions_abc)
        manager.resolve_suggestion("a")

        assert manager.navigate_next() is True
        await asyncio.sleep(0.1)

        state = manager.state
        assert state.active_suggestion_id == "b"
        assert state.active_suggestion_id in state.available_suggestions

    @pytest.mark.asyncio
    async def test_previous_moves_before_the_resolved_suggestion(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0.05)
        manager.sync_suggestions(suggestions_abc)
        manager.navigate_to_index(1)
        manager.resolve_suggestion("b")

        assert manager.navigate_previous() is True
        await asyncio.sleep(0.1)

        assert manager.state.active_suggestion_id == "a"

    @pytest.mark.asyncio
    async def test_next_after_resolving_last_lands_on_replacement(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0.05)
        manager.sync_suggestions(suggestions_abc)
        manager.navigate_to_last()
        manager.resolve_suggestion("c")

        assert manager.navigate_next() is False
        await asyncio.sleep(0.1)

        state = manager.state
        assert state.active_suggestion_id == "b"
        assert state.current_index == 1

    @pytest.mark.asyncio
    async def test_rejected_index_or_id_lands_on_replacement(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0.05)
        manager.sync_suggestions(suggestions_abc)
        manager.resolve_suggestion("a")
        assert manager.navigate_to_index(7) is False
        assert manager.state.active_suggestion_id == "b"

        manager.resolve_suggestion("b")
        assert manager.set_active_suggestion("a") is False
        await asyncio.sleep(0.1)

        state = manager.state
        assert state.active_suggestion_id == "c"
        assert state.active_suggestion_id in state.available_suggestions

    @pytest.mark.asyncio
    async def test_loop_navigation_wraps_from_the_resolved_slot(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0.05, loop_navigation=True)
        manager.sync_suggestions(suggestions_abc)
        manager.resolve_suggestion("a")

        assert manager.navigate_previous() is True
        await asyncio.sleep(0.1)

        assert manager.state.active_suggestion_id == "c"

    @pytest.mark.asyncio
    async def test_advance_to_next_shows_the_replacement(self, event_bus, suggestions_abc) -> None:
        manager = _manager(event_bus, auto_advance_delay=0.05)
        manager.sync_suggestions(suggestions_abc)
        manager.resolve_suggestion("a")

        assert manager.advance_to_next() is True

        assert manager.state.active_suggestion_id == "b"
        assert not manager.has_pending_advance()

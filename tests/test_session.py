"""Tests for the per-document editor session."""

from __future__ import annotations

import pytest

from draftsync.editor.models import Suggestion
from draftsync.services.backend import SuggestionsPage
from draftsync.services.errors import BackendError, DraftSyncError, ErrorCode, RetryLimitExceededError
from draftsync.services.recalculation import SuggestionRecalculationService
from draftsync.services.recalculation_cache import RecalculationCache
from draftsync.services.settings import (
    ActiveSuggestionConfig,
    RecalculationCacheConfig,
    RecalculationConfig,
    Settings,
    TransitionConfig,
)
from draftsync.ui.domain.active_suggestions import ActiveSuggestionManager
from draftsync.ui.domain.mode_transition import ModeTransitionManager
from draftsync.ui.events import ModeChanged, NoticePosted, SuggestionsRecalculated
from draftsync.ui.models.transition_models import EditorMode
from draftsync.ui.session import EditorSession, create_session

BASELINE = "I like cats. I like dogs."
EDITED = "I like tiny cats. I like dogs."


def _settings() -> Settings:
    return Settings(
        recalculation=RecalculationConfig(enable_new_suggestion_requests=False),
        active_suggestions=ActiveSuggestionConfig(enable_auto_advance=False),
        transition=TransitionConfig(enable_animations=False, debounce_delay=0, retry_delay=0.001, retry_max_delay=0.001),
    )


class RecordingBackend:
    def __init__(self, suggestions: tuple[Suggestion, ...] = ()) -> None:
        self.suggestions = suggestions
        self.deleted: list[str] = []

    async def fetch_suggestions(self, post_id: str) -> SuggestionsPage:
        return SuggestionsPage(suggestions=self.suggestions)

    async def delete_suggestion(self, suggestion_id: str) -> None:
        if suggestion_id == "locked":
            raise BackendError.from_status(403)
        self.deleted.append(suggestion_id)

    async def start_review(self, post_id: str):  # pragma: no cover - unused
        raise NotImplementedError

    def subscribe_to_updates(self, token, endpoint, on_message, on_error):  # pragma: no cover - unused
        raise NotImplementedError


class OfflineService:
    """Recalculation stand-in that fails like an unreachable server."""

    def __init__(self) -> None:
        self.calls = 0

    async def perform_recalculation(self, old, new, suggestions, post_id, *, cancel_event=None):
        self.calls += 1
        raise BackendError(code=ErrorCode.NETWORK_ERROR, message="connection refused", retryable=True)


@pytest.fixture
def dogs(make_suggestion) -> Suggestion:
    return make_suggestion("dogs", BASELINE, "dogs")


@pytest.fixture
def session(event_bus, dogs) -> EditorSession:
    session = create_session(_settings(), post_id="post-1", event_bus=event_bus)
    session.set_content(BASELINE)
    session.set_suggestions([dogs])
    return session


class TestModeSwitching:
    @pytest.mark.asyncio
    async def test_toggle_without_edits_keeps_suggestions(self, session, recorder, dogs) -> None:
        recorder.watch(ModeChanged, SuggestionsRecalculated)

        result = await session.toggle_mode()

        assert result.success
        assert session.mode is EditorMode.REVIEW
        assert session.suggestions == [dogs]
        assert recorder.of_type(SuggestionsRecalculated) == []
        (changed,) = recorder.of_type(ModeChanged)
        assert (changed.post_id, changed.mode) == ("post-1", "review")

    @pytest.mark.asyncio
    async def test_review_after_edit_recalculates_and_moves_baseline(self, session, recorder) -> None:
        recorder.watch(ModeChanged, SuggestionsRecalculated)

        session.set_content(EDITED)
        result = await session.toggle_mode()

        assert result.success and not result.degraded
        (dogs,) = session.suggestions
        assert (dogs.start_offset, dogs.end_offset) == (EDITED.index("dogs"), EDITED.index("dogs") + 4)
        assert session.content_at_last_review == EDITED
        assert session.active_suggestions.active_suggestion == dogs
        (recalculated,) = recorder.of_type(SuggestionsRecalculated)
        assert recalculated.updated_count == 1
        assert recalculated.invalidated_ids == ()

        await session.toggle_mode()
        assert session.mode is EditorMode.EDIT
        assert [event.mode for event in recorder.of_type(ModeChanged)] == ["review", "edit"]

    @pytest.mark.asyncio
    async def test_edit_over_anchor_invalidates_suggestion(self, session) -> None:
        session.set_content("I like cats. I like wolves.")

        await session.toggle_mode()

        assert session.suggestions == []
        assert session.active_suggestions.state.active_suggestion_id is None

    @pytest.mark.asyncio
    async def test_offline_switch_is_degraded_and_keeps_baseline(self, event_bus, recorder, dogs) -> None:
        recorder.watch(NoticePosted, ModeChanged)
        settings = _settings()
        cache = RecalculationCache(RecalculationCacheConfig())
        offline = OfflineService()
        session = EditorSession(
            event_bus=event_bus,
            cache=cache,
            recalculation=SuggestionRecalculationService(settings.recalculation, cache=cache),
            active_suggestions=ActiveSuggestionManager(event_bus, settings.active_suggestions),
            transitions=ModeTransitionManager(offline, event_bus, settings.transition),
            post_id="post-1",
        )
        session.set_content(BASELINE)
        session.set_suggestions([dogs])
        session.set_content(EDITED)

        result = await session.toggle_mode()

        assert result.degraded
        assert session.mode is EditorMode.REVIEW
        assert session.content_at_last_review == BASELINE
        assert session.suggestions == [dogs]
        (notice,) = recorder.of_type(NoticePosted)
        assert notice.level == "warning"
        assert notice.retryable
        assert len(recorder.of_type(ModeChanged)) == 1

        with pytest.raises(RetryLimitExceededError):
            await session.retry_last_transition()
        assert session.mode is EditorMode.REVIEW
        assert offline.calls == 1 + settings.transition.max_retry_attempts

    @pytest.mark.asyncio
    async def test_retry_without_previous_switch(self, session) -> None:
        with pytest.raises(DraftSyncError) as excinfo:
            await session.retry_last_transition()

        assert excinfo.value.code == ErrorCode.INVALID_INPUT


class TestSuggestionsLifecycle:
    @pytest.mark.asyncio
    async def test_load_suggestions_from_backend(self, event_bus, dogs) -> None:
        backend = RecordingBackend((dogs,))
        session = create_session(_settings(), backend, post_id="post-1", event_bus=event_bus)

        loaded = await session.load_suggestions()

        assert loaded == [dogs]
        assert session.active_suggestions.state.active_suggestion_id == "dogs"

    @pytest.mark.asyncio
    async def test_load_without_backend_returns_local(self, session, dogs) -> None:
        assert await session.load_suggestions() == [dogs]

    @pytest.mark.asyncio
    async def test_resolve_deletes_remotely(self, event_bus, make_suggestion) -> None:
        cats = make_suggestion("locked", BASELINE, "cats")
        dogs = make_suggestion("dogs", BASELINE, "dogs")
        backend = RecordingBackend()
        session = create_session(_settings(), backend, post_id="post-1", event_bus=event_bus)
        session.set_content(BASELINE)
        session.set_suggestions([cats, dogs])

        assert await session.resolve_suggestion("dogs") is False
        assert await session.resolve_suggestion("locked") is True

        assert backend.deleted == ["dogs"]
        assert session.suggestions == []
        assert session.active_suggestions.resolved_ids == ("dogs", "locked")

    @pytest.mark.asyncio
    async def test_resolve_without_delete(self, event_bus, dogs) -> None:
        backend = RecordingBackend()
        session = create_session(_settings(), backend, post_id="post-1", event_bus=event_bus)
        session.set_suggestions([dogs], reviewed_content=BASELINE)

        await session.resolve_suggestion("dogs", delete=False)

        assert backend.deleted == []
        assert session.content_at_last_review == BASELINE

    @pytest.mark.asyncio
    async def test_close_clears_state(self, session) -> None:
        session.set_content(EDITED)
        await session.toggle_mode()
        assert session.transitions.cache_stats()["size"] == 1

        await session.close()

        assert session.transitions.cache_stats()["size"] == 0
        assert session.cache.size() == 0


def test_sessions_do_not_share_state() -> None:
    first = create_session(_settings(), post_id="a")
    second = create_session(_settings(), post_id="b")

    assert first.event_bus is not second.event_bus
    assert first.cache is not second.cache
    assert first.recalculation is not second.recalculation
    assert first.transitions is not second.transitions
    assert first.mode is EditorMode.EDIT

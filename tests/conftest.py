"""Shared pytest fixtures."""

from __future__ import annotations

import logging
from typing import Any, Callable

import pytest

from draftsync.editor.models import Suggestion
from draftsync.ui.events import Event, EventBus

MakeSuggestion = Callable[..., Suggestion]


class EventRecorder:
    """Collects every event of the subscribed types, in publish order."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self.events: list[Event] = []

    def watch(self, *event_types: type[Event]) -> EventRecorder:
        for event_type in event_types:
            self._bus.subscribe(event_type, self.record)
        return self

    def record(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type[Event]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(event_bus: EventBus) -> EventRecorder:
    return EventRecorder(event_bus)


@pytest.fixture
def make_suggestion() -> MakeSuggestion:
    """Build a suggestion anchored on ``anchor`` inside ``content``."""

    def factory(
        suggestion_id: str,
        content: str,
        anchor: str,
        *,
        occurrence: int = 0,
        replace_with: str = "",
        post_id: str = "post-1",
    ) -> Suggestion:
        start = -1
        for _ in range(occurrence + 1):
            start = content.index(anchor, start + 1)
        return Suggestion(
            id=suggestion_id,
            content_id=post_id,
            start_offset=start,
            end_offset=start + len(anchor),
            text_to_replace=anchor,
            replace_with=replace_with,
            created_at=0,
        )

    return factory


@pytest.fixture
def suggestions_abc() -> list[Suggestion]:
    return [
        Suggestion(id=suggestion_id, content_id="post-1", start_offset=index * 4, end_offset=index * 4 + 3, text_to_replace="xxx", created_at=0)
        for index, suggestion_id in enumerate(("a", "b", "c"))
    ]


@pytest.fixture
def restore_root_logger():
    """Undo root logger changes made by the logging setup helpers."""

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.captureWarnings(False)

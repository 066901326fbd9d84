"""Event bus infrastructure for decoupled editor component communication.

Domain managers publish what happened; the rendering layer and the session
container subscribe. Subscribing returns an explicit handle so that
listeners can detach without keeping a reference to the original callable.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import (
    Callable,
    Generic,
    TypeVar,
    TYPE_CHECKING,
)
from weakref import WeakMethod, ref

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

# Type variable for event types
E = TypeVar("E", bound="Event")

# Handler type: a callable that takes an event and returns None
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events in the system.

    All event classes should inherit from this base class and use
    the @dataclass decorator with slots=True for memory efficiency.

    Example::

        @dataclass(slots=True)
        class SuggestionResolved(Event):
            suggestion_id: str
            remaining: int
    """

    pass


# =============================================================================
# Active Suggestion Events
# =============================================================================


@dataclass(slots=True)
class ActiveSuggestionChanged(Event):
    """Emitted when the active suggestion cursor moves.

    Attributes:
        suggestion_id: The newly active suggestion, or None when cleared.
        previous_id: The suggestion that was active before.
        index: Position of the active suggestion among unresolved ones (-1 when none).
        total: Number of unresolved suggestions.
    """

    suggestion_id: str | None
    previous_id: str | None
    index: int
    total: int


@dataclass(slots=True)
class SuggestionResolved(Event):
    """Emitted when a suggestion is accepted, rejected or deleted.

    Attributes:
        suggestion_id: The resolved suggestion.
        remaining: Number of suggestions still unresolved.
    """

    suggestion_id: str
    remaining: int


@dataclass(slots=True)
class AllSuggestionsResolved(Event):
    resolved_count: int


# =============================================================================
# Mode Transition Events
# =============================================================================


@dataclass(slots=True)
class TransitionProgress(Event):
    """Progress report for an Edit/Review mode switch.

    Attributes:
        phase: One of ``starting``, ``recalculating``, ``updating``,
            ``completing`` or ``error``.
        message: Short human-readable status.
        progress: Completion percentage from 0 to 100.
        can_cancel: Whether :meth:`ModeTransitionManager.cancel_transition`
            would currently take effect.
        from_mode: Mode being left.
        to_mode: Mode being entered.
    """

    phase: str
    message: str
    progress: int
    can_cancel: bool
    from_mode: str
    to_mode: str


@dataclass(slots=True)
class TransitionCompleted(Event):
    """Emitted after a transition produced a successful result.

    Attributes:
        from_mode: Mode that was left.
        to_mode: Mode that was entered.
        degraded: True when suggestions could not be refreshed.
        from_cache: True when the result was served from the transition cache.
    """

    from_mode: str
    to_mode: str
    degraded: bool = False
    from_cache: bool = False


@dataclass(slots=True)
class TransitionFailed(Event):
    from_mode: str
    to_mode: str
    error_code: str
    message: str
    retryable: bool = False


@dataclass(slots=True)
class ModeChanged(Event):
    """Emitted by the editor session once the visible mode has switched."""

    post_id: str | None
    mode: str


@dataclass(slots=True)
class SuggestionsRecalculated(Event):
    """Emitted when a recalculation pass replaced the suggestion list.

    Attributes:
        post_id: The post whose suggestions were recalculated.
        updated_count: Surviving suggestions after the pass.
        invalidated_ids: Suggestions dropped because their anchor changed.
        new_count: Suggestions fetched for freshly written text.
    """

    post_id: str | None
    updated_count: int
    invalidated_ids: tuple[str, ...] = ()
    new_count: int = 0


@dataclass(slots=True)
class NoticePosted(Event):
    """Emitted when a user-facing notice should be displayed.

    Attributes:
        message: The notice text.
        level: ``info``, ``warning`` or ``error``.
        retryable: Whether the UI should offer a retry action.
    """

    message: str
    level: str = "info"
    retryable: bool = False


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = {TransitionProgress}


class Subscription:
    """Handle returned by :meth:`EventBus.subscribe`.

    Calling the handle (or :meth:`close`) removes the handler. Closing twice
    is a no-op.
    """

    __slots__ = ("_bus", "_event_type", "_handler_ref")

    def __init__(self, bus: EventBus, event_type: type[Event], handler_ref: _HandlerRef) -> None:
        self._bus: EventBus | None = bus
        self._event_type = event_type
        self._handler_ref = handler_ref

    @property
    def active(self) -> bool:
        return self._bus is not None

    def close(self) -> None:
        bus, self._bus = self._bus, None
        if bus is not None:
            bus._remove_ref(self._event_type, self._handler_ref)

    def __call__(self) -> None:
        self.close()


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus for decoupled communication.

    The EventBus allows components to subscribe to specific event types
    and receive notifications when those events are published. Handlers
    are stored as weak references where possible to prevent memory leaks.

    Example::

        bus = EventBus()

        def on_resolved(event: SuggestionResolved) -> None:
            print(f"Resolved: {event.suggestion_id}")

        subscription = bus.subscribe(SuggestionResolved, on_resolved)
        bus.publish(SuggestionResolved(suggestion_id="s1", remaining=2))
        subscription.close()

    Thread Safety:
        This implementation is NOT thread-safe. All operations should be
        performed from the thread running the editor's event loop.

    Attributes:
        _handlers: Mapping from event type to list of handler references.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        """Initialize an empty event bus."""
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> Subscription:
        """Register a handler to receive events of the specified type.

        Handlers are stored as weak references where possible (for bound
        methods), allowing automatic cleanup when the handler's owner is
        garbage collected.

        Args:
            event_type: The class of events to subscribe to.
            handler: A callable that will be invoked with the event.

        Returns:
            A :class:`Subscription` handle that detaches the handler.
        """
        handler_ref = _HandlerRef.create(handler)
        self._handlers[event_type].append(handler_ref)
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )
        return Subscription(self, event_type, handler_ref)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove a previously registered handler.

        If the handler was registered multiple times, only the first
        occurrence is removed. Safe to call for handlers that were never
        subscribed.
        """
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return

        for i, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(i)
                logger.debug(
                    "Unsubscribed handler %s from event type %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
                return

    def publish(self, event: E) -> None:
        """Broadcast an event to all registered handlers.

        Handlers are invoked synchronously in the order they were
        registered. If a handler raises an exception, it is logged
        and remaining handlers continue to be invoked.

        Args:
            event: The event instance to publish.
        """
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        is_quiet = event_type in _QUIET_EVENT_TYPES

        if not handlers:
            if not is_quiet:
                logger.debug("No handlers for event type %s", event_type.__name__)
            return

        if not is_quiet:
            logger.debug(
                "Publishing %s to %d handler(s)",
                event_type.__name__,
                len(handlers),
            )

        dead: list[_HandlerRef] = []

        # Iterate over a copy so handlers may unsubscribe while being notified
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(handler_ref)
                continue

            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )

        for handler_ref in dead:
            self._remove_ref(event_type, handler_ref)

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()
        logger.debug("Cleared all event handlers")

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Return the number of registered handlers.

        Args:
            event_type: If provided, return count for that event type only.
                       If None, return total count across all event types.
        """
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())

    def _remove_ref(self, event_type: type[Event], handler_ref: _HandlerRef) -> None:
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for i, candidate in enumerate(handlers):
            if candidate is handler_ref:
                handlers.pop(i)
                return


class _HandlerRef:
    """Wrapper for handler references supporting both weak and strong refs.

    For bound methods, we use WeakMethod to allow automatic cleanup when
    the object is garbage collected. For regular functions and lambdas,
    we use a strong reference since they typically have module-level
    lifetime or are explicitly managed.
    """

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                # Some callables can't be weakly referenced
                pass

        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        """Return the handler, or None if it was garbage collected."""
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Handler) -> str:
    """Get a human-readable name for a handler for logging purposes."""
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        cls_name = type(handler.__self__).__name__
        return f"{cls_name}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    # Core infrastructure
    "Event",
    "EventBus",
    "Handler",
    "Subscription",
    # Active suggestion events
    "ActiveSuggestionChanged",
    "SuggestionResolved",
    "AllSuggestionsResolved",
    # Mode transition events
    "TransitionProgress",
    "TransitionCompleted",
    "TransitionFailed",
    "ModeChanged",
    # Session events
    "SuggestionsRecalculated",
    "NoticePosted",
]

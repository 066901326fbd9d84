"""Editor-facing layer: event bus, domain managers and the per-document session."""

from .events import EventBus
from .session import EditorSession, create_session

__all__ = ["EditorSession", "EventBus", "create_session"]

"""Domain layer for the editor.

This package contains domain managers that encapsulate suggestion state
and mode switching, independent of any rendering concerns.

Domain Managers:
    - ActiveSuggestionManager: Active suggestion cursor and resolution state
    - ModeTransitionManager: Edit/Review mode switch sequencing

All domain managers:
    - Receive dependencies via constructor injection
    - Emit events to notify other layers of state changes
    - Are owned by exactly one editor session
"""

from __future__ import annotations

from .active_suggestions import ActiveSuggestionManager
from .mode_transition import ModeTransitionManager

__all__: list[str] = [
    "ActiveSuggestionManager",
    "ModeTransitionManager",
]

"""Suggestion anchoring engine for prose editors.

Keeps positional suggestions attached to the right text while a writer edits,
and sequences re-analysis around Edit/Review mode switches.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

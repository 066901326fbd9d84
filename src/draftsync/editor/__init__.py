"""Editor package containing content models, diffing and offset tracking."""

from . import content_diff, models, offset_deltas

__all__ = ["content_diff", "models", "offset_deltas"]

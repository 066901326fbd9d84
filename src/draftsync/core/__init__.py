"""Core domain types and utilities."""

from .ranges import ContentRange, merge_ranges

__all__ = ["ContentRange", "merge_ranges"]

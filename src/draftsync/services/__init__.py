"""Service layer helpers (recalculation, backend, settings, etc.)."""

from .errors import BackendError, DraftSyncError, ErrorCode
from .recalculation import NewSuggestionRequester, SuggestionRecalculationService
from .recalculation_cache import RecalculationCache, RecalculationCacheStats
from .settings import Settings, SettingsStore

__all__ = [
    "BackendError",
    "DraftSyncError",
    "ErrorCode",
    "NewSuggestionRequester",
    "RecalculationCache",
    "RecalculationCacheStats",
    "Settings",
    "SettingsStore",
    "SuggestionRecalculationService",
]

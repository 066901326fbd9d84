"""Settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "ActiveSuggestionConfig",
    "BackendSettings",
    "RecalculationCacheConfig",
    "RecalculationConfig",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "TransitionConfig",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".draftsync"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_API_TOKEN_FIELD = "api_token_ciphertext"

# Environment overrides map onto "<section>.<field>" paths of :class:`Settings`.
_ENV_OVERRIDES: Mapping[str, str] = {
    "DRAFTSYNC_BASE_URL": "backend.base_url",
    "DRAFTSYNC_API_TOKEN": "backend.api_token",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "DRAFTSYNC_DEBUG_LOGGING": "debug_logging",
    "DRAFTSYNC_POSITION_UPDATES": "recalculation.enable_position_updates",
    "DRAFTSYNC_INVALIDATION": "recalculation.enable_invalidation",
    "DRAFTSYNC_NEW_SUGGESTIONS": "recalculation.enable_new_suggestion_requests",
    "DRAFTSYNC_AUTO_ADVANCE": "active_suggestions.enable_auto_advance",
    "DRAFTSYNC_LOOP_NAVIGATION": "active_suggestions.loop_navigation",
    "DRAFTSYNC_TRANSITION_RETRY": "transition.enable_retry",
    "DRAFTSYNC_TRANSITION_CACHE": "transition.enable_caching",
    "DRAFTSYNC_TRANSITION_CANCELLATION": "transition.enable_cancellation",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "DRAFTSYNC_REQUEST_TIMEOUT": "backend.request_timeout",
    "DRAFTSYNC_POLLING_INTERVAL": "backend.polling_interval",
    "DRAFTSYNC_REVIEW_TIMEOUT": "backend.review_timeout",
    "DRAFTSYNC_CACHE_TTL": "cache.ttl_seconds",
    "DRAFTSYNC_AUTO_ADVANCE_DELAY": "active_suggestions.auto_advance_delay",
    "DRAFTSYNC_DEBOUNCE_DELAY": "transition.debounce_delay",
    "DRAFTSYNC_RETRY_DELAY": "transition.retry_delay",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "DRAFTSYNC_MAX_RETRIES": "backend.max_retries",
    "DRAFTSYNC_CACHE_MAX_ENTRIES": "cache.max_entries",
    "DRAFTSYNC_LARGE_DOCUMENT_THRESHOLD": "recalculation.large_document_threshold",
    "DRAFTSYNC_MIN_CHANGED_RANGE": "recalculation.min_changed_range_length",
    "DRAFTSYNC_MAX_CHANGED_RANGE": "recalculation.max_changed_range_length",
    "DRAFTSYNC_MAX_RETRY_ATTEMPTS": "transition.max_retry_attempts",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class RecalculationConfig:
    """Feature flags and thresholds for suggestion recalculation."""

    enable_position_updates: bool = True
    enable_invalidation: bool = True
    enable_new_suggestion_requests: bool = True
    min_changed_range_length: int = 5
    max_changed_range_length: int = 1_000
    large_document_threshold: int = 10_000


@dataclass(slots=True)
class RecalculationCacheConfig:
    """Configuration for the per-session delta cache.

    Attributes:
        max_entries: Maximum number of delta lists to keep.
        ttl_seconds: Time-to-live for cache entries in seconds (0 = no expiry).
        track_stats: Whether to track cache statistics.
    """

    max_entries: int = 50
    ttl_seconds: float = 180.0
    track_stats: bool = True


@dataclass(slots=True)
class ActiveSuggestionConfig:
    auto_advance_delay: float = 0.3
    enable_auto_advance: bool = True
    loop_navigation: bool = False


@dataclass(slots=True)
class TransitionConfig:
    """Timing, retry and caching knobs for Edit/Review mode switches."""

    enable_animations: bool = True
    animation_duration: float = 0.3
    enable_retry: bool = True
    max_retry_attempts: int = 3
    retry_delay: float = 1.0
    retry_max_delay: float = 10.0
    enable_progress_reporting: bool = True
    enable_cancellation: bool = False
    debounce_delay: float = 0.25
    enable_caching: bool = True
    cache_size: int = 10
    cache_ttl: float = 300.0


@dataclass(slots=True)
class BackendSettings:
    """Connection settings for the remote suggestion service."""

    base_url: str = "http://localhost:3001/api"
    api_token: str = ""
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    polling_interval: float = 2.0
    review_timeout: float = 120.0
    default_headers: dict[str, str] = field(default_factory=dict)


_SECTION_TYPES: Mapping[str, type] = {
    "backend": BackendSettings,
    "recalculation": RecalculationConfig,
    "cache": RecalculationCacheConfig,
    "active_suggestions": ActiveSuggestionConfig,
    "transition": TransitionConfig,
}


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    backend: BackendSettings = field(default_factory=BackendSettings)
    recalculation: RecalculationConfig = field(default_factory=RecalculationConfig)
    cache: RecalculationCacheConfig = field(default_factory=RecalculationCacheConfig)
    active_suggestions: ActiveSuggestionConfig = field(default_factory=ActiveSuggestionConfig)
    transition: TransitionConfig = field(default_factory=TransitionConfig)
    debug_logging: bool = False
    log_dir: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Return default settings with ``DRAFTSYNC_*`` overrides applied."""

        return _apply_env_overrides(cls(), os.environ if environ is None else environ)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Settings:
        """Build settings from a JSON payload, ignoring unknown keys."""

        data = _filter_fields(payload, cls)
        for section, section_type in _SECTION_TYPES.items():
            section_payload = data.get(section)
            if isinstance(section_payload, Mapping):
                data[section] = section_type(**_filter_fields(section_payload, section_type))
            else:
                data.pop(section, None)
        return cls(**data)


class SecretVault:
    """Encrypts and decrypts the backend token with a Fernet key stored on disk."""

    def __init__(self, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._get_fernet().encrypt(secret.encode("utf-8"))
        return token.decode("ascii")

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        try:
            raw = self._get_fernet().decrypt(token.encode("ascii"))
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc
        return raw.decode("utf-8")

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path.read_bytes().strip()
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        return key


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH
        self._vault = vault or SecretVault(self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    def load(
        self,
        *,
        overrides: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Settings:
        """Load settings from disk, applying runtime and environment overrides."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            token = self._decrypt_token(payload.pop(_API_TOKEN_FIELD, None))
            try:
                settings = Settings.from_dict(payload)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if token:
                settings.backend = replace(settings.backend, api_token=token)
            LOGGER.debug("Settings loaded from %s", self._path)

        if overrides:
            settings = _apply_overrides(settings, overrides, source="runtime")
        return _apply_env_overrides(settings, os.environ if environ is None else environ)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = self._serialize(settings)
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        token = data["backend"].pop("api_token", "") or ""
        ciphertext = self._vault.encrypt(token)
        if ciphertext:
            data[_API_TOKEN_FIELD] = ciphertext
        data["version"] = _SETTINGS_VERSION
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _decrypt_token(self, ciphertext: str | None) -> str:
        try:
            return self._vault.decrypt(ciphertext)
        except ValueError as exc:
            LOGGER.warning("Unable to decrypt API token: %s", exc)
            return ""


def _apply_overrides(
    settings: Settings,
    overrides: Mapping[str, Any],
    *,
    source: str,
) -> Settings:
    settings = replace(settings)
    applied: list[str] = []
    for path, value in overrides.items():
        if value is None:
            continue
        section_name, _, field_name = path.rpartition(".")
        if section_name:
            section = getattr(settings, section_name, None)
            if section is None or field_name not in {item.name for item in fields(section)}:
                continue
            setattr(settings, section_name, replace(section, **{field_name: value}))
        else:
            if field_name not in {item.name for item in fields(Settings)}:
                continue
            settings = replace(settings, **{field_name: value})
        applied.append(path)
    if applied:
        LOGGER.debug("Applied %s settings overrides: %s", source, sorted(applied))
    return settings


def _apply_env_overrides(settings: Settings, environ: Mapping[str, str]) -> Settings:
    overrides: Dict[str, Any] = {}
    for env_name, path in _ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is not None:
            overrides[path] = value
    for env_name, path in _BOOL_ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is not None:
            overrides[path] = value.strip().lower() in _TRUE_VALUES
    for env_name, path in _INT_ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None:
            continue
        try:
            overrides[path] = int(value, 10)
        except ValueError:
            LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
    for env_name, path in _FLOAT_ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None:
            continue
        try:
            overrides[path] = float(value)
        except ValueError:
            LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
    if overrides:
        settings = _apply_overrides(settings, overrides, source="environment")
    return settings


def _filter_fields(payload: Mapping[str, Any], target: type) -> Dict[str, Any]:
    allowed = {item.name for item in fields(target)}
    return {key: value for key, value in payload.items() if key in allowed}


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"

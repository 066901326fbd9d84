"""Logging setup for draftsync hosts and the command line tools.

Library modules only create ``logging.getLogger(__name__)`` loggers. Hosts
call :func:`setup_logging_from_settings` once at start-up; the CLI tools go
through :func:`configure_cli_logging`, which leaves logging untouched unless
the user asked for a log file or debug output.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..services.settings import Settings

__all__ = [
    "LOG_DIR_ENV",
    "configure_cli_logging",
    "get_log_path",
    "setup_logging",
    "setup_logging_from_settings",
]

LOG_DIR_ENV = "DRAFTSYNC_LOG_DIR"
_DEFAULT_LOG_DIR = Path.home() / ".draftsync" / "logs"
_LOG_FILE_NAME = "draftsync.log"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
# Third-party loggers that flood DEBUG output with connection details.
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore")
_CONFIGURED = False
_LOG_PATH: Path | None = None


def setup_logging(
    level: int | str = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    stream: IO[str] | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Send root logging to ``draftsync.log`` under ``log_dir``.

    Args:
        level: A logging level number or name such as ``"debug"``.
        log_dir: Directory for the rotating log file. Falls back to
            ``$DRAFTSYNC_LOG_DIR`` and then ``~/.draftsync/logs``.
        console: Also log to ``stream`` (stderr by default).
        force: Replace an earlier configuration instead of keeping it.

    Returns:
        The path of the active log file.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    numeric_level = _coerce_level(level)
    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILE_NAME
    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handlers: list[logging.Handler] = [file_handler]
    if console:
        handlers.append(logging.StreamHandler(stream))
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet_noisy_loggers(numeric_level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    logging.getLogger(__name__).debug("Logging to %s at %s", log_path, logging.getLevelName(numeric_level))
    return log_path


def setup_logging_from_settings(settings: Settings, *, console: bool = True, force: bool = False) -> Path:
    """Configure logging from the ``debug_logging`` and ``log_dir`` settings."""

    level = logging.DEBUG if settings.debug_logging else logging.INFO
    return setup_logging(level, log_dir=settings.log_dir, console=console, force=force)


def configure_cli_logging(
    *,
    debug: bool = False,
    log_dir: Path | str | None = None,
    stream: IO[str] | None = None,
) -> Path | None:
    """Configure logging for a command line run.

    Without ``debug`` or ``log_dir`` nothing is configured and ``None`` is
    returned, so a plain run writes nothing but its report. ``debug`` logs
    at DEBUG level and echoes records to ``stream``; ``log_dir`` alone logs
    INFO records to the file only.
    """

    if not debug and log_dir is None:
        return None
    return setup_logging(
        logging.DEBUG if debug else logging.INFO,
        log_dir=log_dir,
        console=debug,
        stream=stream,
        force=True,
    )


def get_log_path() -> Path | None:
    return _LOG_PATH


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    env_override = os.environ.get(LOG_DIR_ENV)
    return Path(log_dir or env_override or _DEFAULT_LOG_DIR).expanduser()


def _quiet_noisy_loggers(root_level: int) -> None:
    quiet_level = max(root_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)

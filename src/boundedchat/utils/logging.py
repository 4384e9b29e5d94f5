"""Logging configuration for boundedchat sessions."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from ..services.settings import Settings

__all__ = ["configure_from_settings", "get_log_path", "get_logger", "reset_logging", "setup_logging"]

LOG_FILE_NAME = "boundedchat.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_DEFAULT_LOG_DIR = Path.home() / ".boundedchat" / "logs"
_LOG_DIR_ENV = "BOUNDEDCHAT_LOG_DIR"
_LOG_LEVEL_ENV = "BOUNDEDCHAT_LOG_LEVEL"
# Transport and SDK loggers echo every request; keep them at WARNING unless asked.
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")

_installed: list[logging.Handler] = []
_log_path: Path | None = None


def setup_logging(
    level: int | str | None = None,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route root logging to a rotating ``boundedchat.log`` and, optionally, stderr.

    ``level`` accepts a number or a level name; when omitted the
    ``BOUNDEDCHAT_LOG_LEVEL`` environment variable is consulted before
    falling back to INFO. Repeated calls are no-ops unless ``force`` is set.
    """

    global _log_path
    if _log_path is not None and not force:
        return _log_path

    resolved_level = _resolve_level(level)
    directory = _resolve_log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / LOG_FILE_NAME

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=_DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(resolved_level)
        handler.setFormatter(formatter)

    reset_logging()
    root = logging.getLogger()
    root.setLevel(resolved_level)
    for handler in handlers:
        root.addHandler(handler)
    _installed.extend(handlers)
    logging.captureWarnings(True)

    quiet_level = max(resolved_level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    _log_path = path
    logging.getLogger(__name__).debug("Logging to %s at %s", path, logging.getLevelName(resolved_level))
    return path


def configure_from_settings(settings: Settings, **kwargs: object) -> Path:
    """Configure logging at DEBUG when ``settings.debug_logging`` is enabled."""

    level = logging.DEBUG if settings.debug_logging else None
    return setup_logging(level, force=True, **kwargs)  # type: ignore[arg-type]


def reset_logging() -> None:
    """Detach and close the handlers installed by :func:`setup_logging`."""

    global _log_path
    root = logging.getLogger()
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()
    _log_path = None


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_path() -> Path | None:
    """Return the active log file, or ``None`` before :func:`setup_logging` ran."""

    return _log_path


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()


def _resolve_level(level: int | str | None) -> int:
    candidate = level if level is not None else os.environ.get(_LOG_LEVEL_ENV, logging.INFO)
    if isinstance(candidate, int):
        return candidate
    resolved = logging.getLevelName(str(candidate).strip().upper())
    if isinstance(resolved, int):
        return resolved
    logging.getLogger(__name__).warning("Unknown log level %r; using INFO", candidate)
    return logging.INFO

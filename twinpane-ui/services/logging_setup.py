"""Logging for the twinpane file manager.

Two loggers:
- ``twinpane``: operational events (``core.log``), written via ``core_log``.
- ``twinpane.access``: one line per HTTP request (``access.log``), off by default.

Nothing in the request path depends on logging succeeding.

Environment variables
- TWINPANE_LOG_DIR: write core.log / access.log here (unset: both go to stderr)
- TWINPANE_LOG_CORE_ENABLE: 0/1 (default: 1)
- TWINPANE_LOG_CORE_LEVEL: ERROR|WARNING|INFO|DEBUG (default: INFO)
- TWINPANE_LOG_ACCESS_ENABLE: 0/1 (default: 0)
- TWINPANE_LOG_ROTATE_MAX_MB: rotate a log file once it reaches this size (default: 2)
- TWINPANE_LOG_ROTATE_BACKUPS: rotated files kept per log (default: 3)

``setup_logging`` may be called any number of times (every ``create_app``
does); only the first call installs handlers, later ones re-read the env.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Dict, Optional, Tuple


CORE_LOGGER_NAME = "twinpane"
ACCESS_LOGGER_NAME = "twinpane.access"

_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "FATAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_TRUE = {"1", "true", "yes", "on", "y"}
_FALSE = {"0", "false", "no", "off", "n"}

# Installed handlers by role ("core" / "access"); empty until setup_logging runs.
_handlers: Dict[str, logging.Handler] = {}
_log_dir: Optional[str] = None


def _env_flag(name: str, default: bool) -> bool:
    raw = str(os.environ.get(name, "")).strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    return default


def _rotation() -> Tuple[int, int]:
    """(max_bytes, backup_count) from env, each at least 1 MB / 1 file."""

    def num(name: str, default: int) -> int:
        try:
            return max(1, int(str(os.environ.get(name, default)).strip()))
        except ValueError:
            return default

    return num("TWINPANE_LOG_ROTATE_MAX_MB", 2) * 1024 * 1024, num("TWINPANE_LOG_ROTATE_BACKUPS", 3)


def _file_handler(path: str) -> RotatingFileHandler:
    max_bytes, backups = _rotation()
    h = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8", delay=True)
    h.setFormatter(logging.Formatter(_FORMAT))
    return h


def get_paths(log_dir: Optional[str] = None) -> Tuple[str, str]:
    """Return (core_path, access_path)."""
    d = str(log_dir or _log_dir or ".")
    return os.path.join(d, "core.log"), os.path.join(d, "access.log")


def setup_logging(log_dir: Optional[str] = None) -> None:
    global _log_dir

    if _handlers:
        refresh_runtime_from_env()
        return

    log_dir = log_dir or (os.environ.get("TWINPANE_LOG_DIR") or "").strip() or None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        core_path, access_path = get_paths(log_dir)
        _handlers["core"] = _file_handler(core_path)
        _handlers["access"] = _file_handler(access_path)
    else:
        stderr = logging.StreamHandler(sys.stderr)
        stderr.setFormatter(logging.Formatter(_FORMAT))
        _handlers["core"] = _handlers["access"] = stderr
    _log_dir = log_dir

    for name, role in ((CORE_LOGGER_NAME, "core"), (ACCESS_LOGGER_NAME, "access")):
        lg = logging.getLogger(name)
        lg.propagate = False
        lg.addHandler(_handlers[role])

    refresh_runtime_from_env()


def core_enabled() -> bool:
    return _env_flag("TWINPANE_LOG_CORE_ENABLE", True)


def access_enabled() -> bool:
    return _env_flag("TWINPANE_LOG_ACCESS_ENABLE", False)


def refresh_runtime_from_env() -> None:
    """Re-apply level, enable flag and rotation limits from env."""
    if not _handlers:
        return

    max_bytes, backups = _rotation()
    for h in set(_handlers.values()):
        if isinstance(h, RotatingFileHandler):
            h.maxBytes, h.backupCount = max_bytes, backups

    core = core_logger()
    handler = _handlers["core"]
    if core_enabled():
        core.disabled = False
        if handler not in core.handlers:
            core.addHandler(handler)
        level = str(os.environ.get("TWINPANE_LOG_CORE_LEVEL", "INFO")).strip().upper()
        core.setLevel(_LEVELS.get(level, logging.INFO))
    else:
        core.disabled = True
        core.removeHandler(handler)

    # access_enabled() gates each line in the after_request hook.
    access_logger().setLevel(logging.INFO)


def core_logger() -> logging.Logger:
    return logging.getLogger(CORE_LOGGER_NAME)


def access_logger() -> logging.Logger:
    return logging.getLogger(ACCESS_LOGGER_NAME)


def core_log(level: str, msg: str, **extra) -> None:
    """Log ``msg | k=v, k=v`` on the core logger. Never raises."""
    try:
        line = msg
        if extra:
            line = msg + " | " + ", ".join(f"{k}={v}" for k, v in extra.items())
        log = getattr(core_logger(), str(level or "info").lower(), None)
        if not callable(log):
            log = core_logger().info
        log(line)
    except Exception:
        pass

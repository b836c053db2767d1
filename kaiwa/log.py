"""Kaiwa logging configuration.

Every module logs through one logger:
    from kaiwa.log import logger

Records go to $KAIWA_HOME/kaiwa.log (default ~/.kaiwa), rotated at 5 MB
with 3 backups. KAIWA_LOG_LEVEL (DEBUG, INFO, WARNING, ERROR) sets the file
threshold. Nothing reaches the console unless enable_console() is called,
so `kaiwa ask` output stays valid JSON.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s.%(funcName)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR")

_logger_lock = threading.Lock()
_console_handler: logging.Handler | None = None


def get_home_dir() -> Path:
    """Kaiwa's data directory: $KAIWA_HOME or ~/.kaiwa, created on first use."""
    override = os.environ.get("KAIWA_HOME")
    home = Path(override) if override else Path.home() / ".kaiwa"
    home.mkdir(parents=True, exist_ok=True)
    return home


def _file_level() -> int:
    name = os.environ.get("KAIWA_LOG_LEVEL", "").strip().upper()
    return getattr(logging, name) if name in _LEVEL_NAMES else logging.DEBUG


def _formatter() -> logging.Formatter:
    return logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)


def _setup_logger() -> logging.Logger:
    log = logging.getLogger("kaiwa")

    with _logger_lock:
        if log.handlers:
            return log

        log.setLevel(logging.DEBUG)
        log.propagate = False

        try:
            handler = RotatingFileHandler(
                str(get_home_dir() / "kaiwa.log"),
                maxBytes=5 * 1024 * 1024,  # 5 MB
                backupCount=3,
                encoding="utf-8",
            )
        except OSError:
            log.addHandler(logging.NullHandler())
            sys.stderr.write("kaiwa: WARNING: could not create log file, file logging disabled\n")
            return log

        handler.setLevel(_file_level())
        handler.setFormatter(_formatter())
        log.addHandler(handler)

    return log


def enable_console(level: int = logging.INFO) -> None:
    """Mirror log records at `level` and above to stderr. Safe to call repeatedly."""
    global _console_handler
    with _logger_lock:
        if _console_handler is None:
            _console_handler = logging.StreamHandler(sys.stderr)
            _console_handler.setFormatter(_formatter())
            logger.addHandler(_console_handler)
        _console_handler.setLevel(level)


logger = _setup_logger()

#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Logging for Trailhead Ingest.

Log lines are JSON objects by default so one import run can be followed by
its run_id, video_id or job_id in whatever collects the output. Context is
passed as keyword arguments to StructuredLogger calls and merged into the
JSON object.
"""

import json
import logging
import logging.handlers
import os
import sys
from typing import Any, Dict, List, Optional

DEFAULT_LOG_FILE = "trailhead_ingest.log"
PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s"

# Third-party loggers that are too chatty below WARNING/ERROR
_QUIET_LOGGERS = {
    "googleapiclient.discovery_cache": logging.ERROR,
    "urllib3.connectionpool": logging.WARNING,
}


class JSONFormatter(logging.Formatter):
    """Render a record as one JSON line, with the structured context as top-level keys."""

    def format(self, record):
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "file": record.filename,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        context = getattr(record, "data", None)
        if isinstance(context, dict):
            entry.update(context)

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


class StructuredLogger:
    """Thin wrapper over logging.Logger taking context as keyword arguments.

    `logger.warning("Caption fetch failed", video_id=vid, attempt=2)` puts
    video_id and attempt into the JSON line. error() and critical() attach
    the active exception by default.
    """

    def __init__(self, name: str, extra: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(name)
        self.extra = extra or {}

    def bind(self, **context: Any) -> "StructuredLogger":
        """Child logger whose lines all carry `context` (run_id, video_id, ...)."""
        return StructuredLogger(self.logger.name, {**self.extra, **context})

    def _log(self, level: int, message: str, exc_info=None, **context):
        if not self.logger.isEnabledFor(level):
            return
        self.logger.log(level, message, exc_info=exc_info, extra={"data": {**self.extra, **context}})

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, exc_info=None, **context):
        self._log(logging.WARNING, message, exc_info=exc_info, **context)

    def error(self, message: str, exc_info=True, **context):
        self._log(logging.ERROR, message, exc_info=exc_info, **context)

    def critical(self, message: str, exc_info=True, **context):
        self._log(logging.CRITICAL, message, exc_info=exc_info, **context)


def _build_handlers(formatter: logging.Formatter, log_level_console: int, log_level_file: int,
                    log_file: Optional[str]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(log_level_console)
    handlers.append(console)

    if log_file:
        try:
            rotating = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
            )
        except OSError as e:
            print(f"Warning: log file '{log_file}' unavailable ({e}), logging to console only.",
                  file=sys.stderr)
        else:
            rotating.setLevel(log_level_file)
            handlers.append(rotating)

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(log_level_console=logging.INFO, log_level_file=logging.DEBUG,
                  structured=True, log_file: Optional[str] = DEFAULT_LOG_FILE):
    """Replace the root handlers with a console handler and, optionally, a rotating file.

    Args:
        log_level_console: Threshold of the stdout handler.
        log_level_file: Threshold of the file handler.
        structured: JSON lines when True, plain text otherwise.
        log_file: Rotating log file path; None disables file logging (CLI runs).
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = JSONFormatter() if structured else logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers = _build_handlers(formatter, log_level_console, log_level_file, log_file)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min(handler.level for handler in handlers))

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={"data": {"structured": structured, "log_file": log_file}},
    )


def setup_logging_from_env(log_file: Optional[str] = DEFAULT_LOG_FILE):
    """setup_logging() driven by LOG_LEVEL_CONSOLE, LOG_LEVEL_FILE and LOG_STRUCTURED."""

    def level(name: str, default: int) -> int:
        value = os.environ.get(name, "").upper()
        return getattr(logging, value, default) if value else default

    setup_logging(
        log_level_console=level("LOG_LEVEL_CONSOLE", logging.INFO),
        log_level_file=level("LOG_LEVEL_FILE", logging.DEBUG),
        structured=os.environ.get("LOG_STRUCTURED", "true").lower() in ("true", "1", "yes"),
        log_file=log_file,
    )

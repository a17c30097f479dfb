"""Logging setup for the Sensay CLI.

Records go to stderr so they never interleave with command output on stdout.
The level comes from an explicit argument, then ``--verbose``, then
``SENSAY_LOG_LEVEL``, and defaults to WARNING so the progress spinner stays
readable.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, TextIO

import orjson

LEVEL_ENV = "SENSAY_LOG_LEVEL"
DEFAULT_LEVEL = "WARNING"
PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# transport chatter only shown with --verbose
_QUIET_LOGGERS = ("urllib3",)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, carrying any ``ctx_*`` extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key.startswith("ctx_"):
                payload[key] = value
        return orjson.dumps(payload, default=str).decode("utf-8")


def resolve_level(level: str | int | None = None, verbose: bool = False) -> int:
    """Turn the CLI inputs and environment into a numeric level."""
    if level is None:
        level = "DEBUG" if verbose else os.environ.get(LEVEL_ENV, DEFAULT_LEVEL)
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(
    level: str | int | None = None,
    use_json: bool = False,
    verbose: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Install a single stderr handler on the root logger."""
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(resolve_level(level, verbose))
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if use_json else logging.Formatter(PLAIN_FORMAT))
    root.handlers = [handler]
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if verbose else logging.WARNING)


def get_logger(name: str = "sensay_cli") -> logging.Logger:
    """Return a named logger, configuring the root logger on first use."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["DEFAULT_LEVEL", "JsonFormatter", "configure_logging", "get_logger", "resolve_level"]

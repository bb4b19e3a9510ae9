"""
Structured Logging

JSON lines in production, one readable line per record in development.
Context is passed through ``extra=`` and lands as top-level keys:

    from aita.logging import get_logger
    logger = get_logger("judge")
    logger.info("Judged", extra={"verdict": "YTA", "score": 8, "provenance": "rules"})

AITA_LOG_LEVEL picks the level, AITA_LOG_FORMAT picks "json" or "text".
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

LOG_LEVEL = os.getenv("AITA_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("AITA_LOG_FORMAT", "json")

NAMESPACE = "aita"

# Attributes every LogRecord carries; anything else came in via extra=
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message", "asctime", "taskName",
}

_NOISY_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "google_genai")


def record_context(record: logging.LogRecord) -> dict:
    """The extra= fields attached to a record, None values dropped."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED and not key.startswith("_") and value is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Readable development format, context appended as key=value."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if context:
            line += "  " + " ".join(f"{k}={v}" for k, v in context.items())
        return line


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> logging.Logger:
    """Point the aita logger at stdout. Safe to call more than once."""
    logger = logging.getLogger(NAMESPACE)
    logger.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JSONFormatter() if (fmt or LOG_FORMAT) == "json" else TextFormatter()
    )
    logger.handlers[:] = [handler]

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{NAMESPACE}.{name}")

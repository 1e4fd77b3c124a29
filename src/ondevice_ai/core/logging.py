"""
Logging setup — terminal colour in development, JSON lines in production.

    ONDEVICE_LOG_LEVEL   DEBUG / INFO / WARNING / ERROR (default INFO)
    ONDEVICE_LOG_COLOR   true / false / auto (auto follows isatty)
    ONDEVICE_LOG_FORMAT  text / json (default text)

Records may carry context through ``extra``: capability, epoch, session_id,
operation, duration_ms, status. The text formatter appends the ones present
as ``key=value`` pairs; the JSON formatter lifts them to top-level keys.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("capability", "epoch", "session_id", "operation", "duration_ms", "status")

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[1;31m",
}
_DIM = "\033[2m"
_RESET = "\033[0m"

# These log every request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "uvicorn.access")


def _context(record: logging.LogRecord) -> dict:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


class ColorFormatter(logging.Formatter):
    """``HH:MM:SS [logger] LEVEL: message key=value ...``"""

    def __init__(self, use_color: bool = True) -> None:
        super().__init__(datefmt="%H:%M:%S")
        self.use_color = use_color

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{_RESET}" if self.use_color else text

    def format(self, record: logging.LogRecord) -> str:
        line = "{} [{}] {}: {}".format(
            self.formatTime(record, self.datefmt),
            self._paint(record.name, _DIM),
            self._paint(record.levelname, _LEVEL_COLORS.get(record.levelname, "")),
            record.getMessage(),
        )
        context = _context(record)
        if context:
            line += " " + self._paint(" ".join(f"{k}={v}" for k, v in context.items()), _DIM)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **_context(record),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _use_color(setting: str) -> bool:
    if setting in ("true", "false"):
        return setting == "true"
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Install a single stdout handler on the root logger.

    Call once at startup; library users who configure logging themselves
    never need it. Arguments override ONDEVICE_LOG_LEVEL / ONDEVICE_LOG_FORMAT.
    """
    level_name = (level or os.getenv("ONDEVICE_LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)
    fmt = (fmt or os.getenv("ONDEVICE_LOG_FORMAT", "text")).lower()

    if fmt == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = ColorFormatter(
            use_color=_use_color(os.getenv("ONDEVICE_LOG_COLOR", "auto").lower())
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(numeric_level)

    logging.getLogger("ondevice_ai").debug(
        "Logging configured (level=%s, format=%s)", level_name, fmt
    )

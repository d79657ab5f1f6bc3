"""Tagged console logging for the beatsteps engine.

Every record carries a component tag (Beat, Tempo, Calibration, ...) and a
dict of key=value fields. The console formatter appends the fields after a pipe:

    [INFO][Step] Level changed | previous=1 level=2 bpm=96.0 source=tempo
"""
from __future__ import annotations

import logging
from typing import Any

LOGGER_NAME = "beatsteps"
DEFAULT_TAG = "Engine"
_SEVERITY_ALIASES = {"WARN": "WARNING"}


class TagFormatter(logging.Formatter):
    """Formats ``[LEVEL][Tag] message`` and appends the record's fields."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "tag"):
            record.tag = DEFAULT_TAG
        line = super().format(record)
        fields = getattr(record, "fields", None)
        if fields:
            line = f"{line} | " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


_logger = logging.getLogger(LOGGER_NAME)
if not _logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(TagFormatter("[%(levelname)s][%(tag)s] %(message)s"))
    _logger.addHandler(handler)
    _logger.setLevel(logging.INFO)


def _severity_value(name: str | None) -> int:
    name = (name or "INFO").upper()
    value = logging.getLevelName(_SEVERITY_ALIASES.get(name, name))
    return value if isinstance(value, int) else logging.INFO


def log_event(severity: str, tag: str, message: str, /, **fields: Any) -> None:
    """Log ``message`` under ``tag``. Keyword arguments become the record's fields,
    so any name (including ``level``) is a valid field."""
    _logger.log(_severity_value(severity), message, extra={"tag": tag, "fields": fields})


def set_log_level(level: str) -> None:
    """Set global log level (DEBUG/INFO/WARN/WARNING/ERROR)."""
    _logger.setLevel(_severity_value(level))


def get_log_level() -> str:
    """Return current global log level name."""
    return logging.getLevelName(_logger.level)

"""Logging setup for the badge-credentials command line and host services.

Two output formats:

  _ConsoleFormatter: single human-readable line per record, for terminals.
  _JsonFormatter: one JSON object per line, for log aggregation.

Library modules only ever call logging.getLogger(__name__); nothing is
configured until setup_logging() runs.
"""

from __future__ import annotations

import json
import logging
import sys


class _ConsoleFormatter(logging.Formatter):
    """Single-line formatter.

    WARNING and above get a [filename:lineno] suffix.
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(fmt=self._BASE_FMT, datefmt="%Y-%m-%dT%H:%M:%S%z")
        self._location_style = logging.PercentStyle(self._BASE_FMT + self._LOC_SUFFIX)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def formatMessage(self, record: logging.LogRecord) -> str:
        # Formatter state is never mutated per record
        style = self._location_style if record.levelno >= logging.WARNING else self._style
        return style.format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter.

    Credential fields passed through ``extra=`` become top-level keys.
    """

    _CONTEXT_FIELDS = (
        "credential_id",
        "verification_method",
        "badge_format",
        "error_count",
        "warning_count",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger to write to stderr.

    stdout is left to command output (credentials, reports).

    Args:
        level_name: debug/info/warning/error (LOG_LEVEL)
        json_format: emit JSON lines instead of console lines (LOG_JSON)
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter() if json_format else _ConsoleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # httpx logs every request at INFO
    for name in ("httpcore", "httpx"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

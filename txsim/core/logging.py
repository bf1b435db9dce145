"""Logging setup for the CLI and the HTTP API.

Two renderings of the same records:
  - JSON lines (staging/production), one object per record
  - coloured single lines for development, with the replay context
    (operation index, fault offset, entry count) appended as ``key=value``

Context travels on the record through ``extra=``; only the fields listed in
:data:`CONTEXT_FIELDS` are rendered. Output goes to stderr because stdout
carries simulation responses.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status_code",
    "endpoint",
    "duration_ms",
    "operation_index",
    "fault_offset",
    "entry_count",
    "error_code",
)


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """The ``extra=`` fields present on ``record``, in display order."""
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """Coloured human-readable formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now(timezone.utc).strftime("%H:%M:%S")
        context = record_context(record)
        msg = record.getMessage()
        req_id = context.pop("request_id", None)
        if req_id:
            msg = f"[{str(req_id)[:8]}] {msg}"

        line = f"{color}{ts} [{record.levelname:>8s}]{self.RESET} {record.name}: {msg}"
        if "fault_offset" in context:
            context["fault_offset"] = f"{context['fault_offset']:#x}"
        if context:
            pairs = " ".join(f"{key}={value}" for key, value in context.items())
            line += f" {self.DIM}{pairs}{self.RESET}"

        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    env: str = "development",
    log_level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Replace the root handlers with one stream handler.

    Args:
        env: ``staging`` and ``production`` log JSON; anything else logs
            coloured lines.
        log_level: Minimum level name; unknown names fall back to INFO.
        stream: Destination, stderr by default.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if env in ("staging", "production") else DevFormatter())
    root.addHandler(handler)

    for noisy in ("uvicorn.access", "httpcore", "httpx", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

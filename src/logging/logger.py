# src/logging/logger.py - v1
"""Logger factory with JSON and text formatters."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from pagesflow.logging.context import get_context


# Fields a caller may attach with `extra=`; copied into JSON records as-is.
EXTRA_FIELDS: tuple[str, ...] = ("command", "returncode", "duration_ms", "artifact", "digest")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, flat, for CI log search.

    Run context (run_id, concurrency_key, phase) and any EXTRA_FIELDS on the
    record become top-level keys, so a grep for a run id or a phase name
    finds every line of that run or phase.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(get_context().as_dict())
        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Terminal/CI format: `time LEVEL run/phase logger: message`."""

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_context()
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")
        where = ""
        if ctx.run_id:
            where = ctx.run_id[:8]
            if ctx.phase:
                where += f"/{ctx.phase}"
            where = f" [{where}]"
        text = f"{stamp} {record.levelname:<7}{where} {record.name}: {record.getMessage()}"
        if record.exc_info and record.exc_info[1] is not None:
            text += "\n" + self.formatException(record.exc_info)
        return text


def get_logger(name: str) -> logging.Logger:
    """Get a named logger. Configuration is applied by setup_logging()."""
    return logging.getLogger(f"pagesflow.{name}")


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 5,
) -> None:
    """Configure the pagesflow logger tree (stderr plus optional rotating file).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format ("json" or "text").
        log_file: Path to log file (None = stderr only).
        rotation: Max file size before rotation (e.g. "10MB").
        retention: Number of rotated files to keep.
    """
    root_logger = logging.getLogger("pagesflow")
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # re-init replaces handlers; closing releases any open log file
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.propagate = False

    formatter: logging.Formatter = JsonFormatter() if log_format == "json" else TextFormatter()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        from pagesflow.logging.handlers import create_rotating_handler

        file_handler = create_rotating_handler(
            log_file, rotation=rotation, retention=retention
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

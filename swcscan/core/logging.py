"""Structured logging configuration.

Provides:
  - JSON-formatted log output for CI and batch scanning
  - Human-readable colored output for local development
  - Scan ID correlation across worker threads
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

# Scan context fields copied from ``extra=`` into JSON log entries
CONTEXT_FIELDS = ("scan_id", "file_path", "contract", "function", "detector_id", "duration_ms")

current_scan_id: ContextVar[str] = ContextVar("swcscan_scan_id", default="")


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.pathname:
            log_entry["module"] = record.module
            log_entry["function_name"] = record.funcName
            log_entry["line"] = record.lineno

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else "Unknown",
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


class DevFormatter(logging.Formatter):
    """Colored human-readable formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now(timezone.utc).strftime("%H:%M:%S")
        prefix = f"{color}{ts} [{record.levelname:>8s}]{self.RESET}"
        msg = record.getMessage()

        scan_id = getattr(record, "scan_id", None)
        if scan_id:
            msg = f"[{scan_id[:8]}] {msg}"

        contract = getattr(record, "contract", None)
        if contract:
            msg = f"{msg} (contract={contract})"

        base = f"{prefix} {record.name}: {msg}"
        if record.exc_info and record.exc_info[1]:
            base += "\n" + self.formatException(record.exc_info)
        return base


def setup_logging(env: str = "development", log_level: str = "INFO") -> None:
    """Configure logging for the engine.

    Args:
        env: Environment (development/ci/production)
        log_level: Minimum log level
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    handler.addFilter(ScanLogFilter())

    if env in ("ci", "production"):
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(DevFormatter())

    root.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)


class ScanLogFilter(logging.Filter):
    """Filter that stamps every record with the scan it belongs to.

    Records logged without an explicit ``scan_id`` take the fixed ID given
    here, or else the one bound by ``bind_scan_id`` in the current context.
    Worker threads started with ``asyncio.to_thread`` inherit that context.
    """

    def __init__(self, scan_id: str = "") -> None:
        super().__init__()
        self.scan_id = scan_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "scan_id", None):
            record.scan_id = self.scan_id or current_scan_id.get()  # type: ignore[attr-defined]
        return True


@contextmanager
def bind_scan_id(scan_id: str) -> Iterator[None]:
    """Make ``scan_id`` the current scan for log records in this context."""
    token = current_scan_id.set(scan_id)
    try:
        yield
    finally:
        current_scan_id.reset(token)

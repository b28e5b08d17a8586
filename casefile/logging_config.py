"""Logging setup for index builds: text or JSON lines on stderr."""

import json
import logging
import sys
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Tuple

# Fields bound by log_context, per thread
_context = threading.local()

# Set by LogRecord.__init__; anything else arrived through ``extra``
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

REDACTED = "[REDACTED]"


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with contact details masked."""

    # Contact-list payload fields, plus the usual credential names
    SENSITIVE_FIELDS = ("phones", "emails", "addresses", "notes", "password", "token", "secret")

    def format(self, record: logging.LogRecord) -> str:
        data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        data.update(current_context())
        for key, value in _extra_fields(record):
            data[key] = REDACTED if self._is_sensitive_field(key) else value

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)

    def _is_sensitive_field(self, name: str) -> bool:
        name = name.lower()
        return any(field in name for field in self.SENSITIVE_FIELDS)


def _extra_fields(record: logging.LogRecord) -> Iterator[Tuple[str, Any]]:
    for key, value in vars(record).items():
        if key not in _RECORD_ATTRIBUTES:
            yield key, value


def setup_logging(format: str = "text", level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Point the root logger at stderr (and optionally a file).

    Args:
        format: "json" for StructuredFormatter lines, anything else for text
        level: Level name; unknown names fall back to INFO
        log_file: Extra file to append the same lines to
    """
    formatter = StructuredFormatter() if format == "json" else logging.Formatter(TEXT_FORMAT)

    # stdout is reserved for command output
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)


def log_event(logger_name: str, event: str, **fields) -> None:
    """Log a build event with its fields attached as ``extra``.

    The text formatter shows the message only; the JSON formatter also
    carries every field.
    """
    logging.getLogger(logger_name).info(event, extra=fields)


def log_performance(logger_name: str, operation: str, duration_ms: float, **fields) -> None:
    """Log how long ``operation`` took, with ``duration_ms`` as a field."""
    fields["duration_ms"] = duration_ms
    logging.getLogger(logger_name).info(
        f"{operation} completed in {duration_ms:.1f}ms", extra=fields
    )


@contextmanager
def log_context(**fields):
    """Bind fields to every JSON line logged on this thread inside the block.

    Example:
        with log_context(build_id="20240101T000000"):
            logger.info("Merging contact list")  # carries build_id
    """
    previous = current_context()
    _context.data = {**previous, **fields}
    try:
        yield
    finally:
        _context.data = previous


def current_context() -> Dict[str, Any]:
    """Fields currently bound by ``log_context`` on this thread."""
    return dict(getattr(_context, "data", {}))


class Timer:
    """Wall-clock timer for a ``with`` block, in milliseconds.

    Example:
        with Timer() as timer:
            engine.merge(mentions)
        log_performance(__name__, "merge", timer.duration_ms)
    """

    def __init__(self):
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.perf_counter()
        self.duration_ms = (self.end_time - self.start_time) * 1000

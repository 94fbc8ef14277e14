"""Logging setup with run-scoped context.

Every record emitted during a pipeline run carries that run's id, so the
interleaved logs of the map phase's concurrent extractions can still be
grouped by run. Two output formats are supported:

    text:  12:00:01 [INFO] [3fa2c1d0] mapper: Map batch complete | batch=1/3 ...
    json:  {"timestamp": "...", "level": "INFO", "run_id": "3fa2c1d0", ...}

Usage:
    >>> from observability.logging import setup_logging, set_run_context
    >>> setup_logging(config)
    >>> set_run_context(run_id="3fa2c1d0")
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any

LOG_FILENAME = "briefing.log"

run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("run_id", default="-")
trace_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("trace_id", default="-")

# Attributes every LogRecord has; anything else was passed via extra=
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "run_id", "trace_id"}

_NOISY_LIBRARIES = ("aiohttp", "httpx", "httpcore", "openai", "google_genai", "asyncio")


def set_run_context(run_id: str) -> None:
    """Tag all subsequent log records in this context with run_id."""
    run_id_var.set(run_id)


def set_trace_context(trace_id: str) -> None:
    """Tag all subsequent log records with a Logfire trace id."""
    trace_id_var.set(trace_id)


def clear_context() -> None:
    """Reset run and trace ids."""
    run_id_var.set("-")
    trace_id_var.set("-")


class ContextFilter(logging.Filter):
    """Injects run_id and trace_id into every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = run_id_var.get()
        record.trace_id = trace_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """Single-line JSON records for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": getattr(record, "run_id", "-"),
        }

        trace_id = getattr(record, "trace_id", "-")
        if trace_id != "-":
            entry["trace_id"] = trace_id

        if record.levelno >= logging.WARNING:
            entry["source"] = f"{record.filename}:{record.lineno}"

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)

        return json.dumps(entry, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """TIMESTAMP [LEVEL] [run_id] logger: message"""

    def __init__(self, include_date: bool = False):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] [%(run_id)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S" if include_date else "%H:%M:%S",
        )


def _file_handler(config: Any) -> logging.Handler:
    log_file = config.log_dir / LOG_FILENAME
    if config.log_max_bytes > 0:
        return RotatingFileHandler(
            log_file,
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
    return TimedRotatingFileHandler(
        log_file,
        when="midnight",
        interval=1,
        backupCount=config.log_backup_count,
        encoding="utf-8",
    )


def setup_logging(config: Any, verbose: bool = False) -> bool:
    """Configure console and rotating file logging.

    Falls back to console-only logging when the log directory is not
    writable.

    Args:
        config: Config with log_dir, log_level, log_format,
            log_max_bytes and log_backup_count
        verbose: Force DEBUG on the console

    Returns:
        True if file logging is enabled
    """
    console_level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    context_filter = ContextFilter()

    if config.log_format == "json":
        console_fmt: logging.Formatter = JsonFormatter()
        file_fmt: logging.Formatter = JsonFormatter()
    else:
        console_fmt = TextFormatter(include_date=False)
        file_fmt = TextFormatter(include_date=True)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(console_fmt)
    console.addFilter(context_filter)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.addHandler(console)

    file_logging_enabled = False
    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        marker = config.log_dir / ".write_test"
        marker.touch()
        marker.unlink()

        file_handler = _file_handler(config)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_fmt)
        file_handler.addFilter(context_filter)
        root.addHandler(file_handler)
        file_logging_enabled = True
    except OSError as e:
        print(
            f"Warning: Cannot write to log directory '{config.log_dir}': {e}. "
            "Falling back to console-only logging.",
            file=sys.stderr,
        )

    for lib in _NOISY_LIBRARIES:
        logging.getLogger(lib).setLevel(logging.WARNING)

    return file_logging_enabled

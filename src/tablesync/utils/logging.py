"""Structured logging for sync runs.

Every event logged while a run is active carries its ``run_id``, and while a
table is loading also that ``table``. Connection URLs and credentials are
redacted before rendering. ``TimingLogger`` wraps a structlog logger and
doubles as the sink that load actions report stage durations to.
"""

from __future__ import annotations

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

import structlog

run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
table_var: ContextVar[str | None] = ContextVar("table", default=None)

T = TypeVar("T")

REDACTED = "[REDACTED]"

# Substrings of keys whose values never reach the output
SENSITIVE_KEYS = frozenset({"password", "secret", "token", "credential", "url", "dsn"})


def add_context_info(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Stamp events with the active run and table."""
    run_id = run_id_var.get()
    if run_id:
        event_dict["run_id"] = run_id
    table = table_var.get()
    if table:
        event_dict.setdefault("table", table)
    return event_dict


def _redact(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    return {
        key: REDACTED if any(s in key.lower() for s in SENSITIVE_KEYS) else _redact(item)
        for key, item in value.items()
    }


def sanitize_event(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Redact credentials, including inside nested dicts."""
    return _redact(event_dict)


def _renderer(format: str) -> Any:
    if format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stdout.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def setup_logging(
    level: str = "INFO",
    format: str = "json",
    log_file: str | None = None,
    sanitize_logs: bool = True,
) -> None:
    """
    Route structlog through the stdlib root logger.

    Args:
        level: Minimum level name
        format: ``json`` for machine-readable lines, anything else for console
        log_file: Also append rendered lines to this file
        sanitize_logs: Redact credentials from events
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_context_info,
    ]
    if sanitize_logs:
        processors.append(sanitize_event)
    processors += [structlog.processors.format_exc_info, _renderer(format)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(format="%(message)s", level=log_level, handlers=handlers, force=True)

    structlog.get_logger("tablesync").debug("Logging configured", level=level, format=format)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Get a structlog logger, optionally with context already bound."""
    logger = structlog.get_logger(name)
    return logger.bind(**initial_context) if initial_context else logger


def set_sync_context(run_id: str | None = None, table: str | None = None) -> None:
    """Mark the current run and/or table for subsequent log events."""
    if run_id is not None:
        run_id_var.set(run_id)
    if table is not None:
        table_var.set(table)


def clear_sync_context() -> None:
    run_id_var.set(None)
    table_var.set(None)


@contextmanager
def table_context(table: str) -> Iterator[None]:
    """Tag log events with ``table`` for the duration of the block."""
    token = table_var.set(table)
    try:
        yield
    finally:
        table_var.reset(token)


class TimingLogger:
    """
    Logger that also acts as the timing sink for load stages.

    Attribute access falls through to the wrapped structlog logger, so an
    instance can be used anywhere a bound logger is expected. Loggers made
    with ``bind`` share one ``timings`` dict with their parent, so a
    coordinator can read every stage duration from the logger it handed out.
    """

    def __init__(self, logger: Any | None = None, level: str = "info") -> None:
        self._logger = logger or get_logger("tablesync.timing")
        self.level = level
        self.timings: dict[str, float] = {}

    def measure(self, label: str, work: Callable[[], T]) -> T:
        """Run ``work`` and report how long it took under ``label``."""
        start = time.perf_counter()
        try:
            result = work()
        except Exception as e:
            self._record(label, start, "error", error=str(e))
            raise
        self._record(label, start, "success")
        return result

    def _record(self, label: str, start: float, status: str, **extra: Any) -> None:
        duration = time.perf_counter() - start
        self.timings[label] = duration
        emit = self._logger.error if status == "error" else getattr(self._logger, self.level)
        emit(label, duration_seconds=round(duration, 4), status=status, **extra)

    def bind(self, **context: Any) -> TimingLogger:
        bound = TimingLogger(self._logger.bind(**context), level=self.level)
        bound.timings = self.timings
        return bound

    def __getattr__(self, name: str) -> Any:
        return getattr(self._logger, name)


__all__ = [
    "setup_logging",
    "get_logger",
    "set_sync_context",
    "clear_sync_context",
    "table_context",
    "TimingLogger",
    "run_id_var",
    "table_var",
]

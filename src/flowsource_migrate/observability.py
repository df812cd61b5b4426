"""Structured logging helpers shared by every migration component.

Purpose
    Keep every emission of diagnostic data predictable and contextual so a
    migration run can be reconstructed from its log afterwards, without
    forcing a specific logging backend on embedding applications.

Contents
    - ``TRACE_ID``: context variable storing the active run identifier.
    - ``get_logger``: returns the shared package logger (quiet by default).
    - ``bind_trace_id``: binds or clears the active run identifier.
    - ``StructuredLogger``: the object components receive at construction.
    - ``log_debug`` / ``log_info`` / ``log_warning`` / ``log_error``: module
      level shortcuts bound to the package logger.
    - ``make_event``: convenience builder for structured event payloads.
    - ``configure_logging``: console handler used by the CLI.

System Integration
    The merger, extractor, patcher and orchestrator each take a
    :class:`StructuredLogger` in their constructor. The composition root
    builds one per run; tests pass their own and inspect ``caplog``.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any, Final, Mapping

TRACE_ID: ContextVar[str | None] = ContextVar("flowsource_migrate_trace_id", default=None)
"""Identifier of the migration run currently in progress.

Why
    Every event of one run carries the same identifier so interleaved runs in
    a shared log (CI matrix jobs) stay separable.
"""

_LOGGER: Final[logging.Logger] = logging.getLogger("flowsource_migrate")
_LOGGER.addHandler(logging.NullHandler())

_CONSOLE_FORMAT: Final[str] = "%(levelname)-7s %(message)s%(context_suffix)s"


def get_logger() -> logging.Logger:
    """Expose the package logger so applications may attach handlers.

    Why
        Leaves the library silent by default while giving host applications full
        control over handler and formatter configuration.
    """

    return _LOGGER


def bind_trace_id(trace_id: str | None) -> None:
    """Bind or clear the active run identifier.

    Examples
    --------
    >>> bind_trace_id('run-1')
    >>> TRACE_ID.get()
    'run-1'
    >>> bind_trace_id(None)
    >>> TRACE_ID.get() is None
    True
    """

    TRACE_ID.set(trace_id)


class StructuredLogger:
    """Emit ``event`` names with keyword context through a :mod:`logging` logger.

    Why
        Components receive their logger instead of importing a global, which
        keeps them testable in isolation and lets a caller scope a component
        to a child logger (``flowsource_migrate.merger``).

    Examples
    --------
    >>> log = StructuredLogger().child("demo")
    >>> log.name
    'flowsource_migrate.demo'
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _LOGGER

    @property
    def name(self) -> str:
        return self._logger.name

    def child(self, suffix: str) -> "StructuredLogger":
        """Return a logger scoped below this one."""

        return StructuredLogger(self._logger.getChild(suffix))

    def debug(self, event: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, event, fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit(logging.WARNING, event, fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit(logging.ERROR, event, fields)

    def _emit(self, level: int, event: str, fields: Mapping[str, Any]) -> None:
        self._logger.log(level, event, extra={"context": _with_trace(fields)})


_DEFAULT: Final[StructuredLogger] = StructuredLogger()


def log_debug(message: str, **fields: Any) -> None:
    """Emit a structured debug log entry that includes the trace context."""

    _DEFAULT.debug(message, **fields)


def log_info(message: str, **fields: Any) -> None:
    """Emit a structured info log entry that includes the trace context."""

    _DEFAULT.info(message, **fields)


def log_warning(message: str, **fields: Any) -> None:
    """Emit a structured warning log entry that includes the trace context."""

    _DEFAULT.warning(message, **fields)


def log_error(message: str, **fields: Any) -> None:
    """Emit a structured error log entry that includes the trace context."""

    _DEFAULT.error(message, **fields)


def make_event(
    phase: str,
    path: str | None,
    payload: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a structured logging payload for migration lifecycle events.

    Why
        Keeps event construction consistent so downstream log processors can rely
        on stable keys.
    What
        Returns a dictionary with ``phase`` and ``path`` keys and any optional
        payload fields.

    Examples
    --------
    >>> make_event('auth', None, {'fragments': 3})
    {'phase': 'auth', 'path': None, 'fragments': 3}
    """

    event: dict[str, Any] = {"phase": phase, "path": path}
    if payload:
        event |= dict(payload)
    return event


class _ContextFormatter(logging.Formatter):
    """Render the structured ``context`` as ``key=value`` pairs after the message."""

    def format(self, record: logging.LogRecord) -> str:
        context = getattr(record, "context", None) or {}
        pairs = [f"{key}={value}" for key, value in context.items() if key != "trace_id" and value is not None]
        record.context_suffix = f" [{' '.join(pairs)}]" if pairs else ""
        return super().format(record)


def configure_logging(*, verbose: bool = False, stream: Any = None) -> logging.Handler:
    """Attach a console handler to the package logger and return it.

    Repeated calls replace the previously attached console handler instead of
    stacking a second one.
    """

    for handler in list(_LOGGER.handlers):
        if getattr(handler, "_flowsource_console", False):
            _LOGGER.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(_ContextFormatter(_CONSOLE_FORMAT))
    handler._flowsource_console = True  # type: ignore[attr-defined]
    _LOGGER.addHandler(handler)
    _LOGGER.setLevel(logging.DEBUG if verbose else logging.INFO)
    return handler


def _with_trace(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Attach the current trace identifier to the provided structured fields."""

    context = {"trace_id": TRACE_ID.get()}
    context.update(fields)
    return context

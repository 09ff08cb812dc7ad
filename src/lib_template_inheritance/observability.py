"""Structured logging helpers shared by every resolution pass.

Purpose
    Make the diagnostics of one template resolution traceable from the merge
    to the validator while leaving handler and formatter choices to the host
    backup/restore application.

Contents
    - ``TRACE_ID``: context variable holding the identifier of the running
      resolution.
    - ``get_logger``: the package logger (silent until a host adds handlers).
    - ``bind_trace_id`` / ``trace_scope``: set the identifier, permanently or
      for a ``with`` block.
    - ``log_debug`` / ``log_info`` / ``log_warning`` / ``log_error``: emit
      entries whose ``context`` extra carries the trace identifier.
    - ``make_event``: payload builder keyed by pass and section.

System Integration
    Used by the selector and condition evaluators, the merge engine, the rule
    processor, the validator, and the context collector. Non-fatal problems
    (unmatchable selectors, failing predicates, type conflicts) surface here
    instead of as exceptions.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Final, Iterator, Mapping

TRACE_ID: ContextVar[str | None] = ContextVar("lib_template_inheritance_trace_id", default=None)
"""Identifier of the resolution currently emitting events.

Why
    An orchestrator resolves one template per component in a single backup
    run; the identifier tells their interleaved events apart. Context
    variables keep concurrent resolutions on separate threads independent.
"""

_LOGGER: Final[logging.Logger] = logging.getLogger("lib_template_inheritance")
_LOGGER.addHandler(logging.NullHandler())


def get_logger() -> logging.Logger:
    """Return the ``lib_template_inheritance`` logger.

    Why
        The library never configures output itself; a host attaches handlers
        here (or on the root logger) to see resolution events.
    """

    return _LOGGER


def bind_trace_id(trace_id: str | None) -> None:
    """Set the trace identifier for the current context (``None`` clears it).

    Examples
    --------
    >>> bind_trace_id('resolve-42')
    >>> TRACE_ID.get()
    'resolve-42'
    >>> bind_trace_id(None)
    >>> TRACE_ID.get() is None
    True
    """

    TRACE_ID.set(trace_id)


@contextmanager
def trace_scope(trace_id: str | None) -> Iterator[None]:
    """Bind *trace_id* for the duration of a ``with`` block.

    The previous identifier is restored on exit, so a resolution started from
    inside another traced operation does not leak its identifier.

    Examples
    --------
    >>> with trace_scope('backup-1'):
    ...     TRACE_ID.get()
    'backup-1'
    >>> TRACE_ID.get() is None
    True
    """

    token = TRACE_ID.set(trace_id)
    try:
        yield
    finally:
        TRACE_ID.reset(token)


def log_debug(message: str, **fields: Any) -> None:
    """Log *message* at DEBUG with *fields* as structured context."""

    _emit(logging.DEBUG, message, fields)


def log_info(message: str, **fields: Any) -> None:
    """Log *message* at INFO with *fields* as structured context."""

    _emit(logging.INFO, message, fields)


def log_warning(message: str, **fields: Any) -> None:
    """Log *message* at WARNING with *fields* as structured context."""

    _emit(logging.WARNING, message, fields)


def log_error(message: str, **fields: Any) -> None:
    """Log *message* at ERROR with *fields* as structured context."""

    _emit(logging.ERROR, message, fields)


def make_event(
    stage: str,
    section: str | None,
    payload: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Return the ``stage``/``section`` payload extended by *payload*.

    Inputs
        stage: Pass emitting the event (``"select"``, ``"merge"``,
            ``"rules"``, ``"conditional"``, ``"validate"``, ``"resolve"``).
        section: Template section concerned by the event, if any.
        payload: Extra diagnostic fields; they may not rename ``stage``.

    Examples
    --------
    >>> make_event('merge', 'files', {'entries': 3})
    {'stage': 'merge', 'section': 'files', 'entries': 3}
    >>> make_event('validate', None)
    {'stage': 'validate', 'section': None}
    """

    event: dict[str, Any] = {"stage": stage, "section": section}
    for key, value in (payload or {}).items():
        if key != "stage":
            event[key] = value
    return event


def _emit(level: int, message: str, fields: Mapping[str, Any]) -> None:
    if not _LOGGER.isEnabledFor(level):
        return
    context = {"trace_id": TRACE_ID.get(), **fields}
    _LOGGER.log(level, message, extra={"context": context})

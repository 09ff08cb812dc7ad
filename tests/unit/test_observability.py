"""Unit tests for structured logging utilities in ``observability``.

Validates the null handler, trace binding, and event construction behaviour
relied on by every resolution pass.
"""

from __future__ import annotations

import logging

import pytest

from lib_template_inheritance import bind_trace_id, get_logger, resolve, trace_scope
from lib_template_inheritance.observability import TRACE_ID, log_info, make_event
from lib_template_inheritance.testing import make_context


def test_null_handler_present() -> None:
    """Package logger should always include a NullHandler to avoid surprises."""

    logger = get_logger()
    assert any(isinstance(handler, logging.NullHandler) for handler in logger.handlers)


def test_trace_id_in_log(caplog: pytest.LogCaptureFixture) -> None:
    """Structured logs should include the bound trace identifier and contextual fields."""

    caplog.set_level(logging.INFO, logger="lib_template_inheritance")
    bind_trace_id("trace-123")
    log_info("merge_complete", stage="merge", section=None)
    assert caplog.records
    record = caplog.records[-1]
    assert getattr(record, "context") == {"trace_id": "trace-123", "stage": "merge", "section": None}
    bind_trace_id(None)


def test_bind_trace_id_clears_context() -> None:
    """Clearing the trace ID should reset the context variable to None."""

    bind_trace_id("trace-temp")
    bind_trace_id(None)
    assert TRACE_ID.get() is None


def test_make_event_merges_optional_payload() -> None:
    """make_event should merge optional metadata without mutating base keys."""

    event = make_event("rules", "registry", {"rule": "Theme Merge Rule"})
    assert event == {"stage": "rules", "section": "registry", "rule": "Theme Merge Rule"}


def test_resolution_events_carry_the_trace_id(caplog: pytest.LogCaptureFixture) -> None:
    """Every event of one resolution should be correlated by its trace identifier."""

    caplog.set_level(logging.DEBUG, logger="lib_template_inheritance")
    resolve({"metadata": {"name": "Demo"}}, make_context(), trace_id="backup-7")
    contexts = [getattr(record, "context") for record in caplog.records if hasattr(record, "context")]
    assert contexts
    assert {context["trace_id"] for context in contexts} == {"backup-7"}
    assert any(record.getMessage() == "template_resolved" for record in caplog.records)
    bind_trace_id(None)


def test_resolution_restores_the_previous_trace_id() -> None:
    """A traced resolution nested in another traced operation must not leak its identifier."""

    bind_trace_id("nightly-backup")
    resolve({"metadata": {"name": "Demo"}}, make_context(), trace_id="component-3")
    assert TRACE_ID.get() == "nightly-backup"
    bind_trace_id(None)


def test_trace_scope_restores_on_error() -> None:
    with pytest.raises(RuntimeError):
        with trace_scope("doomed"):
            raise RuntimeError("boom")
    assert TRACE_ID.get() is None

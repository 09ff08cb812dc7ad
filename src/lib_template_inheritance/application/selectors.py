"""Selector evaluation for machine-specific overlays.

Purpose
-------
Decide whether a ``machine_specific`` block applies to the current machine by
matching its ``machine_selectors`` against a :class:`MachineContext`.

Contents
    - ``compare_values``: the ``equals`` / ``contains`` / ``matches`` comparison
      shared with the condition evaluator.
    - ``evaluate_selector``: resolve one selector's actual value and compare.
    - ``matches``: AND over a block's selectors with fail-open degradation.

System Role
-----------
Called by :func:`lib_template_inheritance.application.merge.merge_template`
once per overlay block. A selector that cannot be evaluated never aborts the
resolution: it counts as a non-match, the overlay is skipped, and a warning is
logged.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Final, Iterable, Mapping

from ..domain.context import MachineContext
from ..domain.errors import SelectorEvaluationError
from ..domain.template import Selector
from ..observability import log_debug, log_warning, make_event

OPERATORS: Final[tuple[str, ...]] = ("equals", "contains", "matches")

_FACT_SELECTORS: Final[Mapping[str, Callable[[MachineContext], str]]] = {
    "machine_name": lambda ctx: ctx.machine_name,
    "hostname_pattern": lambda ctx: ctx.machine_name,
    "user_name": lambda ctx: ctx.user_name,
    "domain": lambda ctx: ctx.domain,
    "os_version": lambda ctx: ctx.os_version,
    "architecture": lambda ctx: ctx.architecture,
}
_LOOKUP_SELECTORS: Final[Mapping[str, Callable[[MachineContext, str], Any]]] = {
    "environment_variable": lambda ctx, name: ctx.env(name),
    "hardware_info": lambda ctx, name: ctx.hardware_info.get(name),
    "software_info": lambda ctx, name: ctx.software_info.get(name),
}
_DEFAULT_OPERATORS: Final[Mapping[str, str]] = {"hostname_pattern": "matches"}


def stringify(value: Any) -> str:
    """Render a fact or expectation as comparable text.

    Examples
    --------
    >>> stringify(True), stringify(None), stringify(42)
    ('true', '', '42')
    """

    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def compare_values(actual: Any, expected: Any, operator: str, *, case_sensitive: bool = False) -> bool:
    """Compare *actual* against *expected* with one of :data:`OPERATORS`.

    ``matches`` performs a regular-expression search (anchor the pattern to
    require a full match).

    Raises
    ------
    ValueError
        For an unknown operator.
    re.error
        For an invalid regular expression.

    Examples
    --------
    >>> compare_values("TEST-MACHINE", "test-machine", "equals")
    True
    >>> compare_values("TEST-MACHINE", "test-machine", "equals", case_sensitive=True)
    False
    >>> compare_values("GAMING-RIG", "GAMING-.*", "matches"), compare_values("GAMING-RIG", "RIG", "contains")
    (True, True)
    """

    left = stringify(actual)
    right = stringify(expected)
    if operator == "matches":
        flags = 0 if case_sensitive else re.IGNORECASE
        return re.search(right, left, flags) is not None
    if not case_sensitive:
        left = left.casefold()
        right = right.casefold()
    if operator == "equals":
        return left == right
    if operator == "contains":
        return right in left
    raise ValueError(f"Unknown operator {operator!r}; expected one of {OPERATORS}")


def evaluate_selector(selector: Selector, context: MachineContext) -> bool:
    """Return whether *selector* holds for *context*.

    Raises
    ------
    SelectorEvaluationError
        For an unknown selector type or operator, or an invalid regular
        expression.

    Examples
    --------
    >>> from lib_template_inheritance.domain.template import Selector
    >>> ctx = MachineContext(machine_name="TEST-01", environment_variables={"ROLE": "build"})
    >>> evaluate_selector(Selector("hostname_pattern", "TEST-.*"), ctx)
    True
    >>> evaluate_selector(Selector("environment_variable", "ROLE", expected_value="deploy"), ctx)
    False
    """

    kind = selector.type
    operator = (selector.operator or _DEFAULT_OPERATORS.get(kind, "equals")).lower()
    if kind in _FACT_SELECTORS:
        actual = _FACT_SELECTORS[kind](context)
        expected = selector.expected_value if selector.expected_value is not None else selector.value
    elif kind in _LOOKUP_SELECTORS:
        if not selector.value:
            raise SelectorEvaluationError(f"Selector type {kind!r} needs 'value' naming the fact to read")
        actual = _LOOKUP_SELECTORS[kind](context, str(selector.value))
        if actual is None:
            return False
        if selector.expected_value is None:
            return True
        expected = selector.expected_value
    elif kind == "registry_value":
        raise SelectorEvaluationError("Selector type 'registry_value' needs a registry reader and is not supported")
    else:
        raise SelectorEvaluationError(f"Unknown selector type {kind!r}")
    try:
        return compare_values(actual, expected, operator, case_sensitive=selector.case_sensitive)
    except ValueError as exc:
        raise SelectorEvaluationError(str(exc)) from exc
    except re.error as exc:
        raise SelectorEvaluationError(f"Invalid regular expression {expected!r}: {exc}") from exc


def matches(
    selectors: Iterable[Selector],
    context: MachineContext,
    *,
    block: str = "",
    on_warning: Callable[[str], None] | None = None,
) -> bool:
    """Return ``True`` when every selector holds (logical AND).

    An empty selector list never matches, and a selector that raises
    :class:`SelectorEvaluationError` counts as ``False``; both cases are
    reported through the warning log and *on_warning*.

    Examples
    --------
    >>> from lib_template_inheritance.domain.template import Selector
    >>> ctx = MachineContext(machine_name="TEST-01", environment_variables={"ROLE": "build"})
    >>> matches([Selector("hostname_pattern", "TEST-.*"), Selector("environment_variable", "ROLE", expected_value="deploy")], ctx)
    False
    >>> matches([Selector("hostname_pattern", "TEST-(")], ctx)
    False
    """

    selector_list = list(selectors)
    if not selector_list:
        _warn(f"Machine-specific block '{block}' has no selectors and is ignored", block, on_warning)
        return False
    for selector in selector_list:
        try:
            matched = evaluate_selector(selector, context)
        except SelectorEvaluationError as exc:
            _warn(f"Selector in block '{block}' could not be evaluated: {exc}", block, on_warning)
            return False
        if not matched:
            log_debug("selector_mismatch", **make_event("select", None, {"block": block, "type": selector.type}))
            return False
    return True


def _warn(message: str, block: str, on_warning: Callable[[str], None] | None) -> None:
    log_warning("selector_unusable", **make_event("select", None, {"block": block, "reason": message}))
    if on_warning is not None:
        on_warning(message)

"""Testing helpers that keep resolution scenarios deterministic.

Purpose
    Let consumers and the test-suite build machine contexts and predicate
    registries without probing the real host.

Contents
    - ``make_context``: :class:`MachineContext` with stable defaults.
    - ``static_predicates``: registry whose predicates return fixed results.

System Integration
    Used by the CLI (``--predicate NAME=RESULT`` dry runs) and by the unit,
    application, and end-to-end suites.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from .application.conditions import PredicateRegistry
from .domain.context import MachineContext

_DEFAULTS: dict[str, Any] = {
    "machine_name": "TEST-MACHINE",
    "user_name": "tester",
    "user_profile": "C:/Users/tester",
    "os_version": "Windows 11 Pro",
    "architecture": "AMD64",
    "domain": "WORKGROUP",
    "timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc),
}


def make_context(**overrides: Any) -> MachineContext:
    """Return a context for ``TEST-MACHINE`` with *overrides* applied.

    Examples
    --------
    >>> ctx = make_context(machine_name="GAMING-RIG", environment_variables={"GAMING_MODE": "1"})
    >>> ctx.machine_name, ctx.user_name, ctx.env("gaming_mode")
    ('GAMING-RIG', 'tester', '1')
    """

    values = dict(_DEFAULTS)
    values.update(overrides)
    return MachineContext(**values)


def static_predicates(results: Mapping[str, object]) -> PredicateRegistry:
    """Return a registry whose predicate *name* always returns ``results[name]``.

    Examples
    --------
    >>> registry = static_predicates({"monitor_count": "2"})
    >>> registry.get("monitor_count")(make_context())
    '2'
    """

    registry = PredicateRegistry()
    for name, result in results.items():
        registry.register(name, _constant(result))
    return registry


def _constant(result: object):
    def predicate(context: MachineContext) -> object:
        return result

    return predicate

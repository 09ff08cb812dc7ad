"""Inheritance rule processor.

Purpose
-------
Apply the template's declarative ``inheritance_rules`` to the merged
configuration: re-merge entries from their contribution history with a
different granularity or conflict policy, force field values, or expand
``%NAME%`` tokens from the machine context.

Contents
    - ``apply_rules``: rule pass entry point.
    - ``rule_matches``: the ``{field: {contains|contains_any|equals|matches}}``
      condition grammar.
    - ``expand_tokens``: ``%NAME%`` expansion used by the ``transform`` action.

System Role
-----------
Runs between the overlay passes and the conditional-section pass. Every
action recomputes from recorded contributions or is a no-op on its own
output, so applying the rules twice yields the same document.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Callable, Final, Iterable

from ..domain.context import MachineContext
from ..domain.resolved import Contribution, ResolvedConfig, thaw_value
from ..domain.template import InheritanceRule
from ..observability import log_debug, log_warning, make_event
from .merge import CONFLICT_POLICIES, MERGE_LEVELS, combine
from .workbench import EntrySlot, Workbench

ACTIONS: Final[tuple[str, ...]] = ("merge", "override", "transform")
RULE_OPERATORS: Final[tuple[str, ...]] = ("contains", "contains_any", "equals", "matches")

_TOKEN = re.compile(r"%([^%\s]+)%")


def apply_rules(resolved: ResolvedConfig, rules: Iterable[InheritanceRule], context: MachineContext) -> ResolvedConfig:
    """Apply *rules* in declaration order and return a new configuration.

    Why
    ----
    Authors sometimes need a section to combine differently from the default
    "highest priority wins per field" (for example, union every contributor's
    tags) or need values fixed after all overlays were applied.

    What
    ----
    For each rule, for each section named in ``applies_to``, for each entry
    whose ``condition`` holds:

    * ``merge`` recombines the entry from its contributions using
      ``parameters.merge_level`` (``key``/``value``/``entry``) and
      ``parameters.conflict_resolution`` (``machine_wins``/``shared_wins``);
    * ``override`` replaces the fields listed in ``parameters.fields``;
    * ``transform`` expands ``%NAME%`` tokens in the fields named by
      ``parameters.fields`` (default ``["path"]``).

    Unknown actions, unknown condition operators, and malformed parameters are
    logged and skipped. Entries are never removed.

    Examples
    --------
    >>> from lib_template_inheritance.domain.template import InheritanceRule
    >>> resolved = ResolvedConfig(
    ...     {"files": [{"name": "Profile", "path": "%USERPROFILE%/.bashrc"}]}, {"files": ((),)}
    ... )
    >>> rule = InheritanceRule("paths", ("files",), "transform")
    >>> once = apply_rules(resolved, [rule], MachineContext(user_profile="/home/ada"))
    >>> once.find("files", "Profile")["path"]
    '/home/ada/.bashrc'
    >>> apply_rules(once, [rule], MachineContext(user_profile="/home/ada")) == once
    True
    """

    bench = Workbench.from_resolved(resolved)
    for rule in rules:
        handler = _HANDLERS.get(rule.action)
        if handler is None:
            _warn(bench, rule, f"Inheritance rule '{rule.name}' has unknown action {rule.action!r}; skipped")
            continue
        applied = 0
        for section in rule.applies_to:
            for slot in bench.sections.get(section, []):
                try:
                    if not rule_matches(rule.condition, slot.render()):
                        continue
                except (ValueError, re.error) as exc:
                    _warn(bench, rule, f"Inheritance rule '{rule.name}' has an unusable condition: {exc}")
                    break
                handler(bench, rule, slot, context)
                applied += 1
        log_debug("rule_applied", **make_event("rules", None, {"rule": rule.name, "entries": applied}))
    return bench.freeze()


def _merge(bench: Workbench, rule: InheritanceRule, slot: EntrySlot, context: MachineContext) -> None:
    level = str(rule.parameters.get("merge_level") or "key").lower()
    policy = str(rule.parameters.get("conflict_resolution") or "machine_wins").lower()
    if level not in MERGE_LEVELS:
        _warn(bench, rule, f"Inheritance rule '{rule.name}' has unknown merge_level {level!r}; using 'key'")
        level = "key"
    if policy not in CONFLICT_POLICIES:
        _warn(bench, rule, f"Inheritance rule '{rule.name}' has unknown conflict_resolution {policy!r}; using 'machine_wins'")
        policy = "machine_wins"
    slot.value = combine(slot.contributions, merge_level=level, conflict_resolution=policy)


def _override(bench: Workbench, rule: InheritanceRule, slot: EntrySlot, context: MachineContext) -> None:
    fields = rule.parameters.get("fields")
    if not isinstance(fields, Mapping):
        _warn(bench, rule, f"Inheritance rule '{rule.name}' needs a 'fields' mapping to override")
        return
    _assign(slot, rule, thaw_value(fields))


def _transform(bench: Workbench, rule: InheritanceRule, slot: EntrySlot, context: MachineContext) -> None:
    names = rule.parameters.get("fields") or ["path"]
    if isinstance(names, str):
        names = [names]
    changed = {}
    for name in names:
        value = slot.value.get(name)
        if isinstance(value, str):
            expanded = expand_tokens(value, context)
            if expanded != value:
                changed[name] = expanded
    if changed:
        _assign(slot, rule, changed)


def _assign(slot: EntrySlot, rule: InheritanceRule, fields: dict[str, Any]) -> None:
    contribution = Contribution("rule", rule.name, slot.priority, fields, "assign")
    if contribution not in slot.contributions:
        slot.contributions.append(contribution)
    slot.value = {**slot.value, **fields}


_HANDLERS: Final[dict[str, Callable[[Workbench, InheritanceRule, EntrySlot, MachineContext], None]]] = {
    "merge": _merge,
    "override": _override,
    "transform": _transform,
}


def rule_matches(condition: Mapping[str, Any] | None, entry: Mapping[str, Any]) -> bool:
    """Return whether *entry* satisfies a rule *condition*.

    A bare value is shorthand for ``{equals: value}``. ``contains`` requires
    every listed item, ``contains_any`` at least one; both work on lists and
    on strings (substring).

    Raises
    ------
    ValueError
        For an unknown operator.

    Examples
    --------
    >>> entry = {"name": "Theme", "inheritance_tags": ["display", "theme"]}
    >>> rule_matches({"inheritance_tags": {"contains": ["theme"]}}, entry)
    True
    >>> rule_matches({"inheritance_tags": {"contains": ["theme", "gaming"]}}, entry)
    False
    >>> rule_matches({"name": {"matches": "^The"}, "inheritance_tags": {"contains_any": ["gaming", "display"]}}, entry)
    True
    >>> rule_matches(None, entry)
    True
    """

    if not condition:
        return True
    for field, test in condition.items():
        actual = entry.get(field)
        checks = test if isinstance(test, Mapping) else {"equals": test}
        for operator, expected in checks.items():
            if not _check(operator, actual, expected):
                return False
    return True


def _check(operator: str, actual: Any, expected: Any) -> bool:
    if operator == "equals":
        return actual == expected
    if operator == "matches":
        return isinstance(actual, str) and re.search(str(expected), actual) is not None
    if operator in ("contains", "contains_any"):
        wanted = expected if isinstance(expected, (list, tuple)) else [expected]
        if isinstance(actual, str):
            present = [str(item) in actual for item in wanted]
        elif isinstance(actual, (list, tuple)):
            present = [item in actual for item in wanted]
        else:
            return False
        return all(present) if operator == "contains" else any(present)
    raise ValueError(f"Unknown rule condition operator {operator!r}; expected one of {RULE_OPERATORS}")


def expand_tokens(text: str, context: MachineContext) -> str:
    """Replace ``%NAME%`` tokens with machine facts or environment variables.

    ``USERPROFILE``, ``USERNAME`` and ``COMPUTERNAME`` come from the context
    facts; everything else is an environment lookup (case-insensitive).
    Unknown tokens stay as written.

    Examples
    --------
    >>> ctx = MachineContext(user_name="ada", environment_variables={"AppData": "C:/Users/ada/AppData"})
    >>> expand_tokens("%APPDATA%/Code/%USERNAME%/%UNSET%", ctx)
    'C:/Users/ada/AppData/Code/ada/%UNSET%'
    """

    facts = {
        "USERPROFILE": context.user_profile,
        "USERNAME": context.user_name,
        "COMPUTERNAME": context.machine_name,
    }

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        fact = facts.get(name.upper())
        if fact:
            return fact
        value = context.env(name)
        return match.group(0) if value is None else value

    return _TOKEN.sub(_replace, text)


def _warn(bench: Workbench, rule: InheritanceRule, message: str) -> None:
    log_warning("rule_skipped", **make_event("rules", None, {"rule": rule.name, "reason": message}))
    bench.warn(message)

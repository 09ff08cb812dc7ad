"""Conditional sections: runtime conditions and late injection.

Purpose
-------
Evaluate the condition sets of ``conditional_sections`` against the machine
context and a registry of named predicates, then inject the entries of the
sections that hold into the resolved configuration.

Contents
    - ``PredicateRegistry``: explicit name → callable mapping.
    - ``ConditionEvaluator``: AND/OR evaluation with bounded predicate calls.
    - ``inject_conditional_sections``: the last merge pass.

System Role
-----------
Runs after the inheritance rules. Failing conditions never abort the
resolution: they evaluate to ``False`` and are logged, which keeps a
backup/restore run going on machines where a check cannot be performed.
"""

from __future__ import annotations

import queue
import re
import threading
from typing import Callable, Final, Iterable, Iterator, Mapping

from ..domain.context import MachineContext
from ..domain.errors import ConditionEvaluationError
from ..domain.resolved import Contribution, ResolvedConfig, entry_key
from ..domain.template import Condition, ConditionalSection
from ..observability import log_debug, log_info, log_warning, make_event
from .merge import merge_fields
from .ports import Predicate
from .selectors import compare_values
from .workbench import Workbench, own_fields

DEFAULT_TIMEOUT: Final[float] = 5.0

_PREDICATE_TYPES: Final[Mapping[str, str]] = {
    "named_predicate": "equals",
    "hardware_check": "matches",
    "software_check": "matches",
}

Warn = Callable[[str], None]


class PredicateRegistry:
    """Named predicates available to ``named_predicate`` conditions.

    Why
    ----
    Templates must not carry executable code; they reference checks by name
    and the host application decides which checks exist.

    Examples
    --------
    >>> registry = PredicateRegistry()
    >>> @registry.register("has_gpu")
    ... def has_gpu(context):
    ...     return True
    >>> registry.register("is_laptop", lambda context: False)
    >>> sorted(registry)
    ['has_gpu', 'is_laptop']
    >>> registry.get("has_gpu")(None)
    True
    """

    def __init__(self, predicates: Mapping[str, Predicate] | None = None) -> None:
        self._predicates: dict[str, Predicate] = dict(predicates or {})

    def register(self, name: str, fn: Predicate | None = None):
        """Register *fn* under *name*; without *fn* return a decorator."""

        if fn is not None:
            self._predicates[name] = fn
            return None

        def decorator(func: Predicate) -> Predicate:
            self._predicates[name] = func
            return func

        return decorator

    def get(self, name: str) -> Predicate | None:
        return self._predicates.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._predicates

    def __iter__(self) -> Iterator[str]:
        return iter(self._predicates)

    def __len__(self) -> int:
        return len(self._predicates)


class ConditionEvaluator:
    """Evaluate condition sets with ``and``/``or`` logic.

    Parameters
    ----------
    predicates:
        Registry (or plain mapping) consulted by ``named_predicate``,
        ``hardware_check`` and ``software_check`` conditions.
    timeout:
        Seconds a single predicate may run before it counts as ``False``.

    Examples
    --------
    >>> from lib_template_inheritance.domain.template import Condition
    >>> evaluator = ConditionEvaluator({"gpu_vendor": lambda ctx: "NVIDIA GeForce"})
    >>> ctx = MachineContext(environment_variables={"GAMING_MODE": "1"})
    >>> evaluator.evaluate([Condition("environment_variable", "GAMING_MODE", "1"),
    ...                     Condition("hardware_check", "gpu_vendor", "nvidia")], "and", ctx)
    True
    >>> evaluator.evaluate([Condition("named_predicate", "missing", "true")], "or", ctx)
    False
    """

    def __init__(
        self,
        predicates: PredicateRegistry | Mapping[str, Predicate] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if isinstance(predicates, PredicateRegistry):
            self.predicates = predicates
        else:
            self.predicates = PredicateRegistry(predicates)
        self.timeout = timeout

    def evaluate(
        self,
        conditions: Iterable[Condition],
        logic: str,
        context: MachineContext,
        *,
        section: str = "",
        on_warning: Warn | None = None,
    ) -> bool:
        """Return whether the condition set holds; an empty set never holds."""

        condition_list = list(conditions)
        if not condition_list:
            _warn(f"Conditional section '{section}' has no conditions and is ignored", section, on_warning)
            return False
        outcomes = (self._safe_check(condition, context, section, on_warning) for condition in condition_list)
        return any(outcomes) if logic == "or" else all(outcomes)

    def _safe_check(self, condition: Condition, context: MachineContext, section: str, on_warning: Warn | None) -> bool:
        if condition.on_failure != "skip":
            _warn(
                f"Condition in section '{section}' uses unsupported on_failure "
                f"{condition.on_failure!r}; treated as 'skip'",
                section,
                on_warning,
            )
        try:
            return self.check(condition, context)
        except ConditionEvaluationError as exc:
            _warn(f"Condition in section '{section}' could not be evaluated: {exc}", section, on_warning)
            return False

    def check(self, condition: Condition, context: MachineContext) -> bool:
        """Evaluate one condition.

        Raises
        ------
        ConditionEvaluationError
            For unknown types or operators, missing or failing predicates,
            timeouts, and invalid regular expressions.
        """

        kind = condition.type
        if kind == "environment_variable":
            actual = context.env(str(condition.subject or ""))
            if actual is None:
                return False
            if condition.expected is None:
                return True
            return self._compare(actual, condition.expected, condition, "equals")
        if kind == "machine_name":
            expected = condition.expected if condition.expected is not None else condition.subject
            return self._compare(context.machine_name, expected, condition, "equals")
        if kind in _PREDICATE_TYPES:
            result = self.call_predicate(str(condition.subject or ""), context)
            if condition.expected is None:
                return bool(result)
            return self._compare(result, condition.expected, condition, _PREDICATE_TYPES[kind])
        raise ConditionEvaluationError(f"Unknown condition type {kind!r}")

    def call_predicate(self, name: str, context: MachineContext) -> object:
        """Run predicate *name* on a daemon thread bounded by :attr:`timeout`.

        A predicate still running after the timeout is abandoned; its thread
        is never joined and, being a daemon, does not hold up interpreter exit.
        """

        predicate = self.predicates.get(name)
        if predicate is None:
            raise ConditionEvaluationError(f"Unknown predicate {name!r}")
        outcome: queue.Queue[tuple[bool, object]] = queue.Queue(maxsize=1)

        def _run() -> None:
            try:
                outcome.put((True, predicate(context)))
            except Exception as exc:
                outcome.put((False, exc))

        threading.Thread(target=_run, name=f"predicate-{name}", daemon=True).start()
        try:
            succeeded, value = outcome.get(timeout=self.timeout)
        except queue.Empty as exc:
            raise ConditionEvaluationError(f"Predicate {name!r} timed out after {self.timeout}s") from exc
        if not succeeded:
            raise ConditionEvaluationError(f"Predicate {name!r} failed: {value}") from value
        return value

    @staticmethod
    def _compare(actual: object, expected: object, condition: Condition, default_operator: str) -> bool:
        operator = (condition.operator or default_operator).lower()
        try:
            return compare_values(actual, expected, operator, case_sensitive=condition.case_sensitive)
        except ValueError as exc:
            raise ConditionEvaluationError(str(exc)) from exc
        except re.error as exc:
            raise ConditionEvaluationError(f"Invalid regular expression {expected!r}: {exc}") from exc


def inject_conditional_sections(
    resolved: ResolvedConfig,
    sections: Iterable[ConditionalSection],
    context: MachineContext,
    evaluator: ConditionEvaluator,
) -> ResolvedConfig:
    """Inject the entries of every conditional section whose conditions hold.

    Why
    ----
    Some settings only make sense when a runtime fact holds (a GPU vendor, an
    environment flag); they are layered on top of everything else.

    What
    ----
    Sections are evaluated in declaration order. New keys are appended and
    existing keys are merged with the conditional fields winning; either way
    the entry ends up with ``inheritance_source="conditional"``, the
    ``inheritance_priority`` authored on the conditional entry (``0`` when
    absent) and ``conditional_section``. Collisions are also marked
    ``conditional_wins``. Nothing is ever removed.

    Examples
    --------
    >>> from lib_template_inheritance.domain.template import parse_template
    >>> template = parse_template({
    ...     "conditional_sections": [{
    ...         "name": "GPU",
    ...         "conditions": [{"type": "named_predicate", "check": "gpu", "expected_result": "success"}],
    ...         "files": [{"name": "Driver", "path": "/gpu"}],
    ...     }],
    ... })
    >>> evaluator = ConditionEvaluator({"gpu": lambda ctx: "success"})
    >>> result = inject_conditional_sections(ResolvedConfig({}), template.conditional_sections, MachineContext(), evaluator)
    >>> entry = result.find("files", "Driver")
    >>> entry["inheritance_source"], entry["conditional_section"]
    ('conditional', 'GPU')
    """

    bench = Workbench.from_resolved(resolved)
    for conditional in sections:
        if not evaluator.evaluate(
            conditional.conditions, conditional.logic, context, section=conditional.name, on_warning=bench.warn
        ):
            log_debug("conditional_skipped", **make_event("conditional", None, {"name": conditional.name}))
            continue
        _inject(bench, conditional)
        log_info("conditional_injected", **make_event("conditional", None, {"name": conditional.name}))
    return bench.freeze()


def _inject(bench: Workbench, conditional: ConditionalSection) -> None:
    marks = bench.marks(conditional.sections)
    for section, entries in conditional.sections.items():
        for entry in entries:
            fields = own_fields(entry)
            priority = _authored_priority(entry, bench, f"{conditional.name}.{section}")
            contribution = Contribution("conditional", conditional.name, priority, fields)
            earlier = bench.lookup(section, entry_key(fields), marks[section])
            if not earlier:
                bench.append(section, fields, contribution).conditional_section = conditional.name
                continue
            for slot in earlier:
                slot.contributions.append(contribution)
                slot.value = merge_fields(slot.value, fields, path=f"{section}.{slot.key}")
                slot.source = "conditional"
                slot.priority = priority
                slot.conditional_section = conditional.name
                slot.outcome = "conditional_wins"


def _authored_priority(entry: Mapping[str, object], bench: Workbench, where: str) -> int:
    value = entry.get("inheritance_priority")
    if value is None:
        return 0
    if not isinstance(value, bool):
        try:
            return int(value)  # type: ignore[call-overload]
        except (TypeError, ValueError):
            pass
    bench.warn(f"Conditional entry in '{where}' has invalid inheritance_priority {value!r}; using 0")
    return 0


def _warn(message: str, section: str, on_warning: Warn | None) -> None:
    log_warning("condition_unusable", **make_event("conditional", None, {"name": section, "reason": message}))
    if on_warning is not None:
        on_warning(message)

"""Composition root for ``lib_template_inheritance``.

Purpose
-------
Provide the entry points that wire the resolution passes together: template
parsing, the shared and overlay merge, inheritance rules, conditional
sections, validation, and duplicate collapsing. Adapters (file loaders,
context collector) are plugged in here and nowhere else.

Contents
--------
* :class:`TemplateLoadError` – raised when a template file cannot be parsed.
* :func:`load_template` – read a YAML/JSON/TOML template into a mapping.
* :func:`resolve` – resolve an in-memory template for a machine context.
* :func:`resolve_file` – load, collect the context when needed, and resolve.

System Role
-----------
Backup/restore orchestrators call :func:`resolve` once per template and hand
the returned :class:`ResolvedConfig` to the file, registry, and application
executors.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from .adapters.context.default import DefaultContextCollector
from .adapters.file_loaders.structured import loader_for
from .application.conditions import DEFAULT_TIMEOUT, ConditionEvaluator, PredicateRegistry, inject_conditional_sections
from .application.merge import collapse_duplicates, merge_template
from .application.ports import ContextCollector, Predicate
from .application.rules import apply_rules
from .application.validation import SchemaRule, ValidationSchema, validate
from .domain.context import MachineContext
from .domain.errors import InvalidFormat, TemplateError
from .domain.resolved import ResolvedConfig
from .domain.template import VALIDATION_LEVELS, Template, parse_template
from .observability import log_debug, log_info, make_event, trace_scope


class TemplateLoadError(TemplateError):
    """Raised when a template file exists but cannot be turned into a template.

    Why
    ----
    Callers resolving a directory of templates want one exception family that
    names the offending file so they can skip it and continue.

    What
    -----
    Wraps :class:`InvalidFormat` from the loaders or the template model with
    the file path.
    """


def load_template(path: str | Path) -> Mapping[str, object]:
    """Read the template at *path* with the loader matching its suffix.

    Raises
    ------
    NotFound
        When the file does not exist.
    TemplateLoadError
        When the file is not valid YAML/JSON/TOML or its root is not a mapping.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> target = Path(tmp.name) / "display.json"
    >>> _ = target.write_text('{"metadata": {"name": "Display"}}', encoding="utf-8")
    >>> load_template(target)["metadata"]
    {'name': 'Display'}
    >>> tmp.cleanup()
    """

    location = str(path)
    try:
        return loader_for(location).load(location)
    except InvalidFormat as exc:
        log_debug("template_load_failed", path=location, error=str(exc))
        raise TemplateLoadError(f"Failed to load template {location}: {exc}") from exc


def resolve(
    template: Mapping[str, object] | Template,
    context: MachineContext,
    schema: ValidationSchema | Mapping[str, SchemaRule] | None = None,
    *,
    predicates: PredicateRegistry | Mapping[str, Predicate] | None = None,
    predicate_timeout: float = DEFAULT_TIMEOUT,
    validation_level: str | None = None,
    trace_id: str | None = None,
) -> ResolvedConfig:
    """Resolve *template* for the machine described by *context*.

    Why
    ----
    Executors need one flat, provenance-tagged plan per template and machine,
    computed the same way every time.

    What
    ----
    Parses the template, runs the shared and overlay merge, applies the
    inheritance rules, injects the conditional sections whose conditions hold,
    validates the result, and (unless validation is ``off``) collapses
    remaining duplicate keys.

    Parameters
    ----------
    template:
        Raw template mapping (as produced by a loader) or a parsed
        :class:`Template`.
    context:
        Machine facts shared by every resolution of the current run.
    schema:
        Optional field requirements checked by the validator.
    predicates:
        Named predicates available to ``named_predicate`` conditions.
    predicate_timeout:
        Seconds each predicate may run before it counts as ``False``.
    validation_level:
        Overrides ``configuration.validation_level`` when given.
    trace_id:
        Identifier bound to every log event emitted by this resolution.

    Returns
    -------
    ResolvedConfig
        Immutable resolved document with provenance, warnings, and validity.

    Raises
    ------
    InvalidFormat
        When the template has the wrong shape.
    ValidationError
        When validation is ``strict`` and a check fails.

    Examples
    --------
    >>> resolved = resolve(
    ...     {
    ...         "metadata": {"name": "Display"},
    ...         "shared": {"registry": [{"name": "Theme", "value": "Light"}]},
    ...         "machine_specific": [{
    ...             "machine_selectors": [{"type": "machine_name", "value": "GAMING-RIG"}],
    ...             "priority": 90,
    ...             "registry": [{"name": "Theme", "value": "Dark"}],
    ...         }],
    ...     },
    ...     MachineContext(machine_name="GAMING-RIG"),
    ... )
    >>> theme = resolved.find("registry", "Theme")
    >>> theme["value"], theme["inheritance_source"], theme["conflict_resolution"]
    ('Dark', 'machine_specific', 'machine_wins')
    >>> resolved.valid
    True
    """

    parsed = template if isinstance(template, Template) else parse_template(template)
    level = (validation_level or parsed.settings.validation_level).lower()
    if level not in VALIDATION_LEVELS:
        raise ValueError(f"validation_level must be one of {VALIDATION_LEVELS}, got {level!r}")
    with trace_scope(trace_id):
        return _run_passes(parsed, context, schema, ConditionEvaluator(predicates, predicate_timeout), level)


def _run_passes(
    parsed: Template,
    context: MachineContext,
    schema: ValidationSchema | Mapping[str, SchemaRule] | None,
    evaluator: ConditionEvaluator,
    level: str,
) -> ResolvedConfig:
    """Merge, apply rules, inject conditionals, validate, collapse duplicates."""

    name = parsed.metadata.get("name")
    log_debug("resolution_started", **make_event("resolve", None, {"template": name, "machine": context.machine_name}))

    resolved = merge_template(parsed, context)
    resolved = apply_rules(resolved, parsed.inheritance_rules, context)
    resolved = inject_conditional_sections(resolved, parsed.conditional_sections, context, evaluator)
    report = validate(resolved, level, schema)
    if level != "off":
        resolved = collapse_duplicates(resolved)
    resolved = resolved.with_report(report.warnings, valid=report.ok)

    log_info(
        "template_resolved",
        **make_event(
            "resolve",
            None,
            {
                "template": name,
                "machine": context.machine_name,
                "sections": list(resolved.sections),
                "warnings": len(resolved.warnings),
                "valid": resolved.valid,
            },
        ),
    )
    return resolved


def resolve_file(
    path: str | Path,
    context: MachineContext | None = None,
    schema: ValidationSchema | Mapping[str, SchemaRule] | None = None,
    *,
    collector: ContextCollector | None = None,
    predicates: PredicateRegistry | Mapping[str, Predicate] | None = None,
    predicate_timeout: float = DEFAULT_TIMEOUT,
    validation_level: str | None = None,
    trace_id: str | None = None,
) -> ResolvedConfig:
    """Load the template at *path* and resolve it.

    When *context* is omitted it is collected with *collector* (default
    :class:`DefaultContextCollector`).

    Raises
    ------
    NotFound
        When the file does not exist.
    TemplateLoadError
        When the file cannot be parsed or has the wrong shape.
    ValidationError
        When validation is ``strict`` and a check fails.
    """

    raw = load_template(path)
    try:
        template = parse_template(raw)
    except InvalidFormat as exc:
        raise TemplateLoadError(f"Failed to load template {path}: {exc}") from exc
    if context is None:
        context = (collector or DefaultContextCollector()).collect()
    return resolve(
        template,
        context,
        schema,
        predicates=predicates,
        predicate_timeout=predicate_timeout,
        validation_level=validation_level,
        trace_id=trace_id,
    )


__all__ = [
    "TemplateLoadError",
    "load_template",
    "resolve",
    "resolve_file",
]

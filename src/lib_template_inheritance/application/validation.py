"""Configuration validator.

Purpose
-------
Check a resolved configuration at the strictness the template (or caller)
asks for and report what is wrong without altering the configuration.

Contents
    - ``SchemaRule`` / ``ValidationSchema``: optional caller-supplied field
      requirements.
    - ``ValidationReport``: verdict plus warnings.
    - ``validate``: run the checks for ``off`` / ``moderate`` / ``strict``.

System Role
-----------
Last pass of :func:`lib_template_inheritance.core.resolve`. Strict failures
raise :class:`ValidationError` and abort that template's resolution; the
caller decides whether to skip the template or stop the whole run.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Final, Iterator, NamedTuple

from ..domain.errors import ValidationError
from ..domain.resolved import ResolvedConfig, entry_key
from ..domain.template import VALIDATION_LEVELS
from ..observability import log_error, log_info, log_warning, make_event

RECOMMENDED_METADATA: Final[tuple[str, ...]] = ("version", "description")

_TYPE_NAMES: Final[Mapping[str, type | tuple[type, ...]]] = {
    "string": str,
    "str": str,
    "integer": int,
    "int": int,
    "number": (int, float),
    "float": (int, float),
    "boolean": bool,
    "bool": bool,
    "list": (list, tuple),
    "array": (list, tuple),
    "mapping": Mapping,
    "dict": Mapping,
    "object": Mapping,
}
_MISSING = object()


@dataclass(frozen=True, slots=True)
class SchemaRule:
    """Requirement on one field of the resolved document.

    ``type`` is a Python type (or tuple of types) or one of the names
    ``string``, ``integer``, ``number``, ``boolean``, ``list``, ``mapping``.
    ``validator`` receives the value and returns ``True`` when it is acceptable.
    """

    required: bool = True
    type: type | tuple[type, ...] | str | None = None
    validator: Callable[[Any], bool] | None = None


@dataclass(frozen=True, slots=True)
class ValidationSchema:
    """Schema rules keyed by dotted path (``metadata.version``) or entry path (``files[].path``).

    Examples
    --------
    >>> schema = ValidationSchema.from_mapping({"metadata.version": {"type": "string"}, "files[].path": {}})
    >>> schema.rules["files[].path"].required
    True
    """

    rules: Mapping[str, SchemaRule] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ValidationSchema:
        """Build a schema from plain data (as loaded from YAML/JSON)."""

        rules: dict[str, SchemaRule] = {}
        for key, spec in data.items():
            if isinstance(spec, SchemaRule):
                rules[key] = spec
            else:
                spec = dict(spec or {})
                rules[key] = SchemaRule(required=bool(spec.get("required", True)), type=spec.get("type"))
        return cls(rules)


class ValidationReport(NamedTuple):
    """Outcome of :func:`validate`."""

    ok: bool
    warnings: tuple[str, ...] = ()


class _Finding(NamedTuple):
    message: str
    strict: bool
    moderate: bool = False


def validate(
    resolved: ResolvedConfig,
    level: str,
    schema: ValidationSchema | Mapping[str, SchemaRule] | None = None,
) -> ValidationReport:
    """Validate *resolved* at strictness *level*.

    Why
    ----
    Templates are hand-written; duplicate entries or missing identities would
    make the executors back up the same thing twice or not at all.

    What
    ----
    ``off`` checks nothing. ``moderate`` requires ``metadata.name`` (the
    report is not ``ok`` without it) and reports everything else as warnings.
    ``strict`` raises on the first of: missing ``metadata.name``, duplicate
    entry keys within a section, entries without a non-empty ``name``, unmet
    schema rules.

    Raises
    ------
    ValidationError
        Only when *level* is ``strict``.

    Examples
    --------
    >>> resolved = ResolvedConfig(
    ...     {"metadata": {"name": "Demo"}, "files": [{"name": "A"}, {"name": "A"}]}, {"files": ((), ())}
    ... )
    >>> validate(resolved, "moderate").warnings[-1]
    "Duplicate names found in section 'files': A"
    >>> validate(resolved, "strict")
    Traceback (most recent call last):
    ...
    lib_template_inheritance.domain.errors.ValidationError: Duplicate names found in section 'files': A
    """

    if level not in VALIDATION_LEVELS:
        raise ValueError(f"validation level must be one of {VALIDATION_LEVELS}, got {level!r}")
    if level == "off":
        return ValidationReport(True)

    rules = schema.rules if isinstance(schema, ValidationSchema) else dict(schema or {})
    ok = True
    warnings: list[str] = []
    for finding in _findings(resolved, rules):
        if level == "strict" and finding.strict:
            log_error("validation_failed", **make_event("validate", None, {"reason": finding.message}))
            raise ValidationError(finding.message)
        if finding.moderate:
            ok = False
        warnings.append(finding.message)
        log_warning("validation_warning", **make_event("validate", None, {"reason": finding.message}))
    log_info("validation_complete", **make_event("validate", None, {"level": level, "ok": ok, "warnings": len(warnings)}))
    return ValidationReport(ok, tuple(warnings))


def _findings(resolved: ResolvedConfig, rules: Mapping[str, SchemaRule]) -> Iterator[_Finding]:
    """Yield problems in the order strict mode reports them."""

    if not _present(resolved.get("metadata.name", default=None)):
        yield _Finding("Template metadata.name is missing", strict=True, moderate=True)
    for name in RECOMMENDED_METADATA:
        if not _present(resolved.get(f"metadata.{name}", default=None)):
            yield _Finding(f"Template metadata.{name} is missing", strict=False)
    for section in resolved.sections:
        counts = Counter(key for key in map(entry_key, resolved.entries(section)) if key is not None)
        for key, count in counts.items():
            if count > 1:
                yield _Finding(f"Duplicate names found in section '{section}': {key}", strict=True)
    for section in resolved.sections:
        for index, entry in enumerate(resolved.entries(section)):
            if not _present(entry.get("name")):
                yield _Finding(f"Entry {index} in section '{section}' has no name", strict=True)
    for path, rule in rules.items():
        yield from _schema_findings(resolved, path, rule)


def _schema_findings(resolved: ResolvedConfig, path: str, rule: SchemaRule) -> Iterator[_Finding]:
    if "[]." in path:
        section, field_path = path.split("[].", 1)
        for index, entry in enumerate(resolved.entries(section)):
            label = f"{section}[{entry_key(entry) or index}].{field_path}"
            message = _check_rule(_lookup(entry, field_path), label, rule)
            if message:
                yield _Finding(message, strict=True)
        return
    message = _check_rule(resolved.get(path, default=_MISSING), path, rule)
    if message:
        yield _Finding(message, strict=True)


def _check_rule(value: Any, label: str, rule: SchemaRule) -> str | None:
    if value is _MISSING or value is None:
        return f"Required field '{label}' is missing" if rule.required else None
    if rule.type is not None and not _is_type(value, rule.type):
        return f"Field '{label}' must be of type {_type_label(rule.type)}"
    if rule.validator is not None and not rule.validator(value):
        return f"Field '{label}' failed validation"
    return None


def _is_type(value: Any, expected: type | tuple[type, ...] | str) -> bool:
    if isinstance(expected, str):
        name = expected.lower()
        if name not in _TYPE_NAMES:
            raise ValueError(f"Unknown schema type {expected!r}")
        if name in ("integer", "int", "number", "float") and isinstance(value, bool):
            return False
        expected = _TYPE_NAMES[name]
    return isinstance(value, expected)


def _type_label(expected: type | tuple[type, ...] | str) -> str:
    if isinstance(expected, str):
        return expected
    if isinstance(expected, tuple):
        return " or ".join(item.__name__ for item in expected)
    return expected.__name__


def _lookup(entry: Mapping[str, Any], dotted: str) -> Any:
    current: Any = entry
    for part in dotted.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _present(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())

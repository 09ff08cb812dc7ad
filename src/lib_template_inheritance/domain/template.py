"""Typed view over a raw backup/restore template.

Purpose
-------
Give the resolution passes statically known fields (``priority``,
``machine_selectors``, ``applies_to``, ...) while preserving every unknown key.
Section entries stay plain mappings so executor-specific fields
(``dynamic_state_path``, ``key_name``, ``install_script``, ...) pass through
untouched.

Contents
--------
* :class:`Selector`, :class:`Condition` – predicates over machine facts.
* :class:`SharedBlock`, :class:`MachineBlock`, :class:`ConditionalSection` –
  the three configuration tiers.
* :class:`InheritanceRule` – declarative post-merge transformation.
* :class:`TemplateSettings` – the template's ``configuration`` block.
* :class:`Template` – the whole template; build it with :func:`parse_template`.

System Role
-----------
:func:`lib_template_inheritance.core.resolve` parses the raw tree handed over
by the external loader exactly once; every pass afterwards reads the typed
model. Shape errors raise :class:`InvalidFormat`; selector and condition
contents are *not* checked here because a malformed predicate must degrade to
``False`` at evaluation time rather than abort the resolution.
"""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Final

from .errors import InvalidFormat

Entries = tuple[Mapping[str, Any], ...]
Sections = Mapping[str, Entries]

VALIDATION_LEVELS: Final[tuple[str, ...]] = ("off", "moderate", "strict")
LOGIC_OPERATORS: Final[tuple[str, ...]] = ("and", "or")
MERGE_STRATEGIES: Final[tuple[str, ...]] = ("deep_merge", "replace")

_TOP_LEVEL_KEYS: Final[frozenset[str]] = frozenset(
    {"metadata", "configuration", "shared", "machine_specific", "inheritance_rules", "conditional_sections"}
)
_SHARED_KEYS: Final[frozenset[str]] = frozenset({"name", "description", "priority", "override_policy"})
_MACHINE_KEYS: Final[frozenset[str]] = frozenset(
    {"machine_selectors", "name", "description", "priority", "merge_strategy"}
)
_CONDITIONAL_KEYS: Final[frozenset[str]] = frozenset({"name", "description", "conditions", "logic"})


@dataclass(frozen=True, slots=True)
class Selector:
    """One machine-fact predicate guarding a machine-specific block."""

    type: str
    value: Any = None
    operator: str | None = None
    case_sensitive: bool = False
    expected_value: Any = None
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Selector:
        return cls(
            type=str(data.get("type") or ""),
            value=data.get("value"),
            operator=_optional_str(data.get("operator")),
            case_sensitive=_flag(data.get("case_sensitive"), "selector.case_sensitive"),
            expected_value=data.get("expected_value"),
            raw=MappingProxyType(dict(data)),
        )


@dataclass(frozen=True, slots=True)
class Condition:
    """One runtime condition of a conditional section.

    ``subject`` is the variable, predicate, or value the condition inspects
    (taken from ``variable``, ``check``, ``predicate`` or ``value`` in that
    order); ``expected`` comes from ``expected_result`` or ``expected_value``.
    """

    type: str
    subject: Any = None
    expected: Any = None
    operator: str | None = None
    case_sensitive: bool = False
    on_failure: str = "skip"
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Condition:
        subject = next(
            (data[key] for key in ("variable", "check", "predicate", "value") if data.get(key) is not None),
            None,
        )
        expected = data.get("expected_result", data.get("expected_value"))
        return cls(
            type=str(data.get("type") or ""),
            subject=subject,
            expected=expected,
            operator=_optional_str(data.get("operator")),
            case_sensitive=_flag(data.get("case_sensitive"), "condition.case_sensitive"),
            on_failure=str(data.get("on_failure") or "skip").lower(),
            raw=MappingProxyType(dict(data)),
        )


@dataclass(frozen=True, slots=True)
class SharedBlock:
    """Baseline configuration applied to every machine."""

    priority: int = 0
    override_policy: str | None = None
    sections: Sections = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MachineBlock:
    """Overlay applied when all of its selectors match the machine context."""

    name: str
    selectors: tuple[Selector, ...]
    priority: int = 0
    merge_strategy: str | None = None
    sections: Sections = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ConditionalSection:
    """Block injected last when its condition set evaluates true."""

    name: str
    conditions: tuple[Condition, ...]
    logic: str = "and"
    sections: Sections = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class InheritanceRule:
    """Post-merge transformation applied to entries matching ``condition``."""

    name: str
    applies_to: tuple[str, ...]
    action: str
    condition: Mapping[str, Any] | None = None
    parameters: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TemplateSettings:
    """The template's ``configuration`` block."""

    inheritance_mode: str = "merge"
    machine_precedence: bool = True
    validation_level: str = "moderate"
    fallback_strategy: str | None = None


@dataclass(frozen=True, slots=True)
class Template:
    """Parsed template ready for resolution.

    ``baseline`` holds sections declared at the template top level (templates
    that predate the ``shared`` block); they are part of the shared tier.
    ``passthrough`` keeps every other unknown top-level key (``stages``, ...).
    """

    metadata: Mapping[str, Any]
    configuration: Mapping[str, Any]
    settings: TemplateSettings
    baseline: Sections
    shared: SharedBlock
    machine_specific: tuple[MachineBlock, ...]
    inheritance_rules: tuple[InheritanceRule, ...]
    conditional_sections: tuple[ConditionalSection, ...]
    passthrough: Mapping[str, Any]


def parse_template(raw: Mapping[str, Any]) -> Template:
    """Build a :class:`Template` from an already-parsed mapping.

    Raises
    ------
    InvalidFormat
        When the tree does not have the documented shape (for example a
        ``machine_specific`` value that is not a list, or an unknown
        ``validation_level``).

    Examples
    --------
    >>> template = parse_template({
    ...     "metadata": {"name": "Display"},
    ...     "shared": {"files": [{"name": "A", "path": "/shared/config.txt"}]},
    ...     "machine_specific": [{
    ...         "machine_selectors": [{"type": "machine_name", "value": "TEST-MACHINE"}],
    ...         "priority": 90,
    ...         "files": [{"name": "A", "path": "/machine/config.txt"}],
    ...     }],
    ... })
    >>> template.machine_specific[0].priority, list(template.shared.sections)
    (90, ['files'])
    """

    if not isinstance(raw, Mapping):
        raise InvalidFormat(f"Template root must be a mapping, got {type(raw).__name__}")

    metadata = _mapping(raw.get("metadata"), "metadata")
    configuration = _mapping(raw.get("configuration"), "configuration")
    baseline, passthrough = _split_top_level(raw)
    return Template(
        metadata=MappingProxyType(deepcopy(dict(metadata))),
        configuration=MappingProxyType(deepcopy(dict(configuration))),
        settings=_parse_settings(configuration),
        baseline=baseline,
        shared=_parse_shared(_mapping(raw.get("shared"), "shared")),
        machine_specific=tuple(
            _parse_machine_block(block, index)
            for index, block in enumerate(_list_of_mappings(raw.get("machine_specific"), "machine_specific"))
        ),
        inheritance_rules=tuple(
            _parse_rule(rule, index)
            for index, rule in enumerate(_list_of_mappings(raw.get("inheritance_rules"), "inheritance_rules"))
        ),
        conditional_sections=tuple(
            _parse_conditional(section, index)
            for index, section in enumerate(
                _list_of_mappings(raw.get("conditional_sections"), "conditional_sections")
            )
        ),
        passthrough=MappingProxyType(passthrough),
    )


def _parse_settings(configuration: Mapping[str, Any]) -> TemplateSettings:
    level = str(configuration.get("validation_level") or "moderate").lower()
    if level not in VALIDATION_LEVELS:
        raise InvalidFormat(f"configuration.validation_level must be one of {VALIDATION_LEVELS}, got {level!r}")
    precedence = configuration.get("machine_precedence", True)
    if not isinstance(precedence, bool):
        raise InvalidFormat("configuration.machine_precedence must be a boolean")
    return TemplateSettings(
        inheritance_mode=str(configuration.get("inheritance_mode") or "merge").lower(),
        machine_precedence=precedence,
        validation_level=level,
        fallback_strategy=_optional_str(configuration.get("fallback_strategy")),
    )


def _parse_shared(data: Mapping[str, Any]) -> SharedBlock:
    return SharedBlock(
        priority=_priority(data.get("priority"), "shared.priority"),
        override_policy=_optional_str(data.get("override_policy")),
        sections=_collect_sections(data, _SHARED_KEYS, "shared"),
    )


def _parse_machine_block(data: Mapping[str, Any], index: int) -> MachineBlock:
    where = f"machine_specific[{index}]"
    raw_selectors = data.get("machine_selectors") or []
    if isinstance(raw_selectors, Mapping):
        raw_selectors = [raw_selectors]
    selectors = tuple(Selector.from_mapping(item) for item in _list_of_mappings(raw_selectors, f"{where}.machine_selectors"))
    strategy = _optional_str(data.get("merge_strategy"))
    if strategy is not None and strategy.lower() not in MERGE_STRATEGIES:
        raise InvalidFormat(f"{where}.merge_strategy must be one of {MERGE_STRATEGIES}, got {strategy!r}")
    return MachineBlock(
        name=str(data.get("name") or where),
        selectors=selectors,
        priority=_priority(data.get("priority"), f"{where}.priority"),
        merge_strategy=strategy.lower() if strategy else None,
        sections=_collect_sections(data, _MACHINE_KEYS, where),
    )


def _parse_rule(data: Mapping[str, Any], index: int) -> InheritanceRule:
    where = f"inheritance_rules[{index}]"
    applies_to = data.get("applies_to") or []
    if isinstance(applies_to, str):
        applies_to = [applies_to]
    if not isinstance(applies_to, list):
        raise InvalidFormat(f"{where}.applies_to must be a list of section names")
    condition = data.get("condition")
    if condition is not None and not isinstance(condition, Mapping):
        raise InvalidFormat(f"{where}.condition must be a mapping")
    return InheritanceRule(
        name=str(data.get("name") or where),
        applies_to=tuple(str(section) for section in applies_to),
        action=str(data.get("action") or "").lower(),
        condition=MappingProxyType(deepcopy(dict(condition))) if condition is not None else None,
        parameters=MappingProxyType(deepcopy(dict(_mapping(data.get("parameters"), f"{where}.parameters")))),
    )


def _parse_conditional(data: Mapping[str, Any], index: int) -> ConditionalSection:
    where = f"conditional_sections[{index}]"
    logic = str(data.get("logic") or "and").lower()
    if logic not in LOGIC_OPERATORS:
        raise InvalidFormat(f"{where}.logic must be 'and' or 'or', got {logic!r}")
    conditions = tuple(
        Condition.from_mapping(item) for item in _list_of_mappings(data.get("conditions"), f"{where}.conditions")
    )
    return ConditionalSection(
        name=str(data.get("name") or where),
        conditions=conditions,
        logic=logic,
        sections=_collect_sections(data, _CONDITIONAL_KEYS, where),
    )


def _split_top_level(raw: Mapping[str, Any]) -> tuple[Sections, dict[str, Any]]:
    """Separate top-level sections (lists of mappings) from pass-through keys."""

    sections: dict[str, Entries] = {}
    passthrough: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _TOP_LEVEL_KEYS:
            continue
        if _is_section(value):
            sections[str(key)] = tuple(deepcopy(dict(entry)) for entry in value)
        else:
            passthrough[str(key)] = deepcopy(value)
    return MappingProxyType(sections), passthrough


def _collect_sections(block: Mapping[str, Any], reserved: frozenset[str], where: str) -> Sections:
    """Return the entries-by-section of *block*, rejecting malformed sections."""

    sections: dict[str, Entries] = {}
    for key, value in block.items():
        if key in reserved or not isinstance(value, list):
            continue
        if not _is_section(value):
            raise InvalidFormat(f"Section '{key}' in {where} must be a list of mappings")
        sections[str(key)] = tuple(deepcopy(dict(entry)) for entry in value)
    return MappingProxyType(sections)


def _is_section(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, Mapping) for item in value)


def _mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InvalidFormat(f"{where} must be a mapping, got {type(value).__name__}")
    return value


def _list_of_mappings(value: Any, where: str) -> list[Mapping[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, Mapping) for item in value):
        raise InvalidFormat(f"{where} must be a list of mappings")
    return value


def _priority(value: Any, where: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise InvalidFormat(f"{where} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidFormat(f"{where} must be an integer, got {value!r}") from exc


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _flag(value: Any, where: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidFormat(f"{where} must be a boolean, got {value!r}")
    return value

"""Resolved configuration value object.

Purpose
-------
Anchor the immutable :class:`ResolvedConfig` that carries the flat,
provenance-tagged execution plan from the resolution passes to the external
file, registry, and application executors. Contains no I/O.

Contents
--------
* :class:`Contribution` – one block's input to a resolved entry.
* :class:`Provenance` – typed summary returned by :meth:`ResolvedConfig.origin`.
* :class:`ResolvedConfig` – ``Mapping`` implementation with section helpers,
  provenance lookups, JSON export, and validation results.
* :func:`entry_key` – the ``name``/``path`` identity of a section entry.
* :data:`PROVENANCE_FIELDS` – entry fields written by the engine.

System Role
-----------
Every pass (:mod:`~lib_template_inheritance.application.merge`,
:mod:`~lib_template_inheritance.application.rules`,
:mod:`~lib_template_inheritance.application.conditions`) consumes one instance
and returns a fresh one, so intermediate states are never shared or mutated.
The hidden contribution history lets the ``merge`` inheritance rule recombine
an entry from all of its sources after the default merge has run.
"""

from __future__ import annotations

import json
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Final, Iterator, Mapping, TypedDict, TypeVar, overload

PROVENANCE_FIELDS: Final[tuple[str, ...]] = (
    "inheritance_source",
    "inheritance_priority",
    "inheritance_tags",
    "conditional_section",
    "conflict_resolution",
)
"""Entry fields owned by the engine (``inheritance_tags`` is also authorable)."""

DOCUMENT_KEYS: Final[tuple[str, ...]] = ("metadata", "configuration")


class Provenance(TypedDict):
    """Describe where a resolved entry came from.

    Attributes
    ----------
    source:
        ``"shared"``, ``"machine_specific"`` or ``"conditional"``.
    priority:
        Priority of the winning block.
    tags:
        Sorted ``inheritance_tags`` of the entry.
    conditional_section:
        Name of the injecting conditional section, if any.
    conflict_resolution:
        How a key collision was settled, if one happened.
    contributors:
        ``"<source>:<block>"`` labels in precedence order (lowest first).
    """

    source: str
    priority: int
    tags: list[str]
    conditional_section: str | None
    conflict_resolution: str | None
    contributors: list[str]


@dataclass(frozen=True, slots=True)
class Contribution:
    """Fields one block supplied to a resolved entry.

    ``source`` is ``"shared"``, ``"machine_specific"``, ``"conditional"`` or
    ``"rule"`` (fields written by an ``override``/``transform`` rule).
    ``strategy`` is ``"deep_merge"`` or ``"replace"``.
    """

    source: str
    origin: str
    priority: int
    fields: Mapping[str, Any]
    strategy: str = "deep_merge"

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", _freeze_value(self.fields))

    def label(self) -> str:
        return f"{self.source}:{self.origin}"

    def as_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "origin": self.origin,
            "priority": self.priority,
            "strategy": self.strategy,
            "fields": thaw_value(self.fields),
        }


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ResolvedConfig(MappingABC[str, Any]):
    """Immutable mapping handed to the backup/restore executors.

    Why
    ----
    Executors must treat the plan as read-only, and operators need to explain
    why an entry looks the way it does on a given machine.

    What
    ----
    Stores the resolved document (``metadata``, ``configuration``, one tuple of
    entries per section, pass-through keys) as nested read-only structures,
    plus the contribution history of each entry, the warnings collected by the
    passes, and the validation verdict.

    Parameters
    ----------
    _data:
        Resolved document. Section values are sequences of entry mappings.
    _history:
        Per section, one tuple of :class:`Contribution` per entry, aligned with
        the entry order.
    warnings:
        Non-fatal diagnostics collected during resolution and validation.
    valid:
        ``False`` when a moderate-level requirement (``metadata.name``) failed.

    Examples
    --------
    >>> resolved = ResolvedConfig(
    ...     {"metadata": {"name": "Demo"}, "files": [{"name": "A", "path": "/a", "inheritance_source": "shared",
    ...                                               "inheritance_priority": 0, "inheritance_tags": []}]},
    ...     {"files": ((Contribution("shared", "shared", 0, {"name": "A", "path": "/a"}),),)},
    ... )
    >>> resolved.find("files", "A")["path"]
    '/a'
    >>> resolved.origin("files", "A")["source"]
    'shared'
    >>> resolved.get("metadata.name")
    'Demo'
    """

    _data: Mapping[str, Any]
    _history: Mapping[str, tuple[tuple[Contribution, ...], ...]] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()
    valid: bool = True

    def __post_init__(self) -> None:
        """Freeze the document and history so all later access is read-only."""

        object.__setattr__(self, "_data", _freeze_value(self._data))
        object.__setattr__(
            self,
            "_history",
            MappingProxyType({section: tuple(tuple(items) for items in entries) for section, entries in self._history.items()}),
        )
        object.__setattr__(self, "warnings", tuple(self.warnings))

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    @property
    def metadata(self) -> Mapping[str, Any]:
        """Return the template ``metadata`` block (empty when absent)."""

        return self._data.get("metadata", MappingProxyType({}))

    @property
    def sections(self) -> tuple[str, ...]:
        """Names of the entry sections in document order."""

        return tuple(key for key in self._data if key in self._history)

    def entries(self, section: str) -> tuple[Mapping[str, Any], ...]:
        """Return the entries of *section* (empty tuple for unknown sections)."""

        if section not in self._history:
            return ()
        return tuple(self._data.get(section, ()))

    def contributions(self, section: str) -> tuple[tuple[Contribution, ...], ...]:
        """Return the contribution history of *section*, aligned with :meth:`entries`."""

        return self._history.get(section, ())

    def find(self, section: str, key: str) -> Mapping[str, Any] | None:
        """Return the first entry of *section* whose ``name``/``path`` is *key*."""

        index = self._index_of(section, key)
        return None if index is None else self.entries(section)[index]

    def origin(self, section: str, key: str) -> Provenance | None:
        """Return provenance for entry *key* of *section* or ``None`` when absent.

        Examples
        --------
        >>> ResolvedConfig({"files": []}, {"files": ()}).origin("files", "missing") is None
        True
        """

        index = self._index_of(section, key)
        if index is None:
            return None
        entry = self.entries(section)[index]
        history = self.contributions(section)
        contributors = [item.label() for item in history[index]] if index < len(history) else []
        return Provenance(
            source=entry.get("inheritance_source", ""),
            priority=entry.get("inheritance_priority", 0),
            tags=list(entry.get("inheritance_tags", ())),
            conditional_section=entry.get("conditional_section"),
            conflict_resolution=entry.get("conflict_resolution"),
            contributors=contributors,
        )

    @overload
    def get(self, key: str, *, default: T) -> Any | T:  # type: ignore[override]
        ...

    @overload
    def get(self, key: str, *, default: None = ...) -> Any | None:  # type: ignore[override]
        ...

    def get(self, key: str, *, default: Any = None) -> Any:
        """Resolve *key* as a dotted path (``"metadata.name"``) returning ``default`` when missing."""

        return _resolve_dotted_path(self._data, key, default)

    def as_dict(self) -> dict[str, Any]:
        """Construct a deep, mutable, JSON-friendly copy of the resolved document.

        Examples
        --------
        >>> resolved = ResolvedConfig({"files": [{"name": "A"}]}, {"files": ((),)})
        >>> clone = resolved.as_dict()
        >>> clone["files"][0]["name"] = "B"
        >>> resolved.entries("files")[0]["name"]
        'A'
        """

        return thaw_value(self._data)

    def history_as_dict(self) -> dict[str, list[list[dict[str, Any]]]]:
        """Return the contribution history as plain data (used by ``--provenance``)."""

        return {
            section: [[item.as_dict() for item in items] for items in entries]
            for section, entries in self._history.items()
        }

    def to_json(self, *, indent: int | None = None) -> str:
        """Serialise the resolved document to JSON using :meth:`as_dict`.

        Examples
        --------
        >>> ResolvedConfig({"metadata": {"name": "Demo"}}).to_json()
        '{"metadata":{"name":"Demo"}}'
        """

        return json.dumps(self.as_dict(), indent=indent, separators=(",", ":"), ensure_ascii=False, default=str)

    def with_report(self, warnings: tuple[str, ...], *, valid: bool) -> ResolvedConfig:
        """Return a copy carrying additional *warnings* and the validation verdict."""

        return ResolvedConfig(self._data, self._history, self.warnings + tuple(warnings), valid)

    def _index_of(self, section: str, key: str) -> int | None:
        for index, entry in enumerate(self.entries(section)):
            if entry_key(entry) == key:
                return index
        return None


def entry_key(entry: Mapping[str, Any]) -> str | None:
    """Return the identity of a section entry: ``name``, falling back to ``path``.

    Examples
    --------
    >>> entry_key({"name": "Theme", "path": "HKCU:/Theme"}), entry_key({"path": "/etc/hosts"}), entry_key({})
    ('Theme', '/etc/hosts', None)
    """

    for candidate in ("name", "path"):
        value = entry.get(candidate)
        if isinstance(value, str) and value:
            return value
    return None


def _resolve_dotted_path(source: Mapping[str, Any], dotted: str, default: Any) -> Any:
    """Resolve *dotted* within *source*, returning *default* when missing."""

    current: Any = source
    for part in dotted.split("."):
        if not isinstance(current, MappingABC) or part not in current:
            return default
        current = current[part]
    return current


def _freeze_value(value: Any) -> Any:
    """Recursively convert mappings to ``mappingproxy`` and lists to tuples."""

    if isinstance(value, MappingABC):
        return MappingProxyType({key: _freeze_value(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze_value(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(_freeze_value(item) for item in value)
    return value


def thaw_value(value: Any) -> Any:
    """Inverse of :func:`_freeze_value`: rebuild plain ``dict``/``list`` trees.

    Examples
    --------
    >>> thaw_value(_freeze_value({"tags": ["a", "b"], "nested": {"x": 1}}))
    {'tags': ['a', 'b'], 'nested': {'x': 1}}
    """

    if isinstance(value, MappingABC):
        return {key: thaw_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted(thaw_value(item) for item in value)
    return value

"""Mutable working copy used inside a single resolution pass.

Purpose
-------
Passes read an immutable :class:`ResolvedConfig`, thaw it into a
:class:`Workbench`, edit slots, and freeze the result into a new instance.
Keeping the mutable state local to one pass call avoids aliasing between
passes and between concurrent resolutions.

Contents
    - ``EntrySlot``: one section entry with its contribution history and
      provenance fields.
    - ``Workbench``: sections of slots plus the non-section document keys.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any

from ..domain.resolved import DOCUMENT_KEYS, Contribution, ResolvedConfig, entry_key, thaw_value

_ENGINE_FIELDS = ("inheritance_source", "inheritance_priority", "conditional_section", "conflict_resolution")


@dataclass(slots=True)
class EntrySlot:
    """One entry under construction.

    ``value`` holds the entry's own fields (without engine-owned provenance
    fields); ``contributions`` is ordered by precedence, lowest first.
    """

    key: str | None
    value: dict[str, Any]
    contributions: list[Contribution]
    source: str
    priority: int
    conditional_section: str | None = None
    outcome: str | None = None

    def render(self) -> dict[str, Any]:
        """Return the entry as written to the resolved document."""

        rendered = dict(self.value)
        rendered["inheritance_source"] = self.source
        rendered["inheritance_priority"] = self.priority
        rendered["inheritance_tags"] = normalise_tags(self.value.get("inheritance_tags"))
        if self.conditional_section is not None:
            rendered["conditional_section"] = self.conditional_section
        if self.outcome is not None:
            rendered["conflict_resolution"] = self.outcome
        return rendered


@dataclass(slots=True)
class Workbench:
    """Sections of :class:`EntrySlot` plus the rest of the resolved document."""

    document: dict[str, Any] = field(default_factory=dict)
    sections: dict[str, list[EntrySlot]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def from_resolved(cls, resolved: ResolvedConfig) -> Workbench:
        """Thaw *resolved*; entries without history become single contributions."""

        bench = cls(warnings=list(resolved.warnings))
        for key, value in resolved.items():
            if key in resolved.sections:
                continue
            bench.document[key] = thaw_value(value)
        for section in resolved.sections:
            history = resolved.contributions(section)
            slots: list[EntrySlot] = []
            for index, entry in enumerate(resolved.entries(section)):
                plain = thaw_value(entry)
                contributions = list(history[index]) if index < len(history) and history[index] else []
                value = {key: item for key, item in plain.items() if key not in _ENGINE_FIELDS}
                source = str(plain.get("inheritance_source") or "shared")
                priority = int(plain.get("inheritance_priority") or 0)
                if not contributions:
                    contributions = [Contribution(source, "resolved", priority, value)]
                slots.append(
                    EntrySlot(
                        key=entry_key(plain),
                        value=value,
                        contributions=contributions,
                        source=source,
                        priority=priority,
                        conditional_section=plain.get("conditional_section"),
                        outcome=plain.get("conflict_resolution"),
                    )
                )
            bench.sections[section] = slots
        return bench

    def section(self, name: str) -> list[EntrySlot]:
        """Return (creating when missing) the slot list of section *name*."""

        return self.sections.setdefault(name, [])

    def marks(self, sections: Iterable[str]) -> dict[str, int]:
        """Record how many slots each of *sections* holds before a block is applied."""

        return {section: len(self.sections.get(section, ())) for section in sections}

    def lookup(self, section: str, key: str | None, limit: int | None = None) -> list[EntrySlot]:
        """Return the slots of *section* keyed *key* among the first *limit* ones.

        Passing the mark taken before a block keeps duplicates declared inside
        that block apart. Unkeyed entries never match.
        """

        if key is None:
            return []
        return [slot for slot in self.sections.get(section, [])[:limit] if slot.key == key]

    def append(self, section: str, fields: dict[str, Any], contribution: Contribution) -> EntrySlot:
        """Add a new slot for *fields* whose provenance is *contribution*."""

        slot = EntrySlot(
            key=entry_key(fields),
            value=deepcopy(fields),
            contributions=[contribution],
            source=contribution.source,
            priority=contribution.priority,
        )
        self.section(section).append(slot)
        return slot

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def freeze(self) -> ResolvedConfig:
        """Render every slot and return a new immutable :class:`ResolvedConfig`."""

        data: dict[str, Any] = {}
        for key in DOCUMENT_KEYS:
            if key in self.document:
                data[key] = self.document[key]
        for section, slots in self.sections.items():
            data[section] = [slot.render() for slot in slots]
        for key, value in self.document.items():
            data.setdefault(key, value)
        history = {section: tuple(tuple(slot.contributions) for slot in slots) for section, slots in self.sections.items()}
        return ResolvedConfig(data, history, tuple(self.warnings))


def own_fields(entry: Mapping[str, Any]) -> dict[str, Any]:
    """Copy *entry* without the provenance fields the engine writes itself.

    Examples
    --------
    >>> own_fields({"name": "A", "inheritance_source": "shared", "inheritance_tags": ["x"]})
    {'name': 'A', 'inheritance_tags': ['x']}
    """

    return {key: deepcopy(value) for key, value in entry.items() if key not in _ENGINE_FIELDS}


def normalise_tags(value: Any) -> list[str]:
    """Return ``inheritance_tags`` as a sorted list of unique strings.

    Examples
    --------
    >>> normalise_tags(["theme", "shared", "theme"]), normalise_tags("gaming"), normalise_tags(None)
    (['shared', 'theme'], ['gaming'], [])
    """

    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Mapping):
        return sorted(str(item) for item in value)
    return sorted({str(item) for item in value})

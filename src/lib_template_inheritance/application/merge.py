"""Application-layer merge policy.

Purpose
-------
Turn the shared baseline and the matching machine-specific overlays of a
template into one resolved configuration while recording, per entry, which
blocks contributed which fields. Mirrors the precedence rules
``shared → overlays (highest priority wins)`` and remains free of I/O so it
can be reused by alternative composition roots.

Contents
    - ``merge_fields``: recursive field-by-field merge (mappings merged,
      lists replaced, type conflicts resolved in favour of the incoming side).
    - ``combine``: fold an entry's contribution history into its value; also
      used by the ``merge`` inheritance rule.
    - ``merge_template``: shared pass, overlay selection, overlay application.
    - ``collapse_duplicates``: fold repeated keys into their first entry.

System Role
-----------
First pass of :func:`lib_template_inheritance.core.resolve`. Its output feeds
the inheritance rule processor and the conditional-section pass.
"""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from typing import Any, Iterable, Sequence

from ..domain.context import MachineContext
from ..domain.errors import MergeTypeConflict
from ..domain.resolved import Contribution, ResolvedConfig, entry_key, thaw_value
from ..domain.template import MachineBlock, Sections, Template
from ..observability import log_debug, log_info, make_event
from .selectors import matches
from .workbench import EntrySlot, Workbench, own_fields

MERGE_LEVELS = ("key", "value", "entry")
CONFLICT_POLICIES = ("machine_wins", "shared_wins")


def merge_fields(
    base: Mapping[str, Any],
    incoming: Mapping[str, Any],
    *,
    combine_lists: bool = False,
    path: str = "",
) -> dict[str, Any]:
    """Return a new mapping with *incoming* merged over *base*.

    Why
    ----
    Overlays usually restate only the fields they change; everything else must
    survive from the lower-precedence contributors.

    What
    ----
    Fields present in *incoming* win; fields only in *base* are preserved;
    nested mappings are merged recursively; lists are replaced wholesale
    unless *combine_lists* is set, in which case they are unioned in order.
    A list or mapping meeting a scalar is a :class:`MergeTypeConflict`, which
    is logged and settled by taking the incoming value as a whole.

    Examples
    --------
    >>> merge_fields({"path": "/a", "opts": {"x": 1, "y": 2}, "tags": ["a"]},
    ...              {"opts": {"y": 3}, "tags": ["b"]})
    {'path': '/a', 'opts': {'x': 1, 'y': 3}, 'tags': ['b']}
    >>> merge_fields({"tags": ["a", "b"]}, {"tags": ["b", "c"]}, combine_lists=True)
    {'tags': ['a', 'b', 'c']}
    >>> merge_fields({"size": {"w": 1}}, {"size": 5})
    {'size': 5}
    """

    merged: dict[str, Any] = deepcopy(dict(base))
    for key, value in incoming.items():
        dotted = f"{path}.{key}" if path else str(key)
        if key not in merged:
            merged[key] = deepcopy(value)
            continue
        try:
            merged[key] = _merge_value(merged[key], value, combine_lists=combine_lists, path=dotted)
        except MergeTypeConflict as exc:
            log_info("merge_type_conflict", **make_event("merge", None, {"field": exc.field, "reason": str(exc)}))
            merged[key] = deepcopy(value)
    return merged


def _merge_value(existing: Any, incoming: Any, *, combine_lists: bool, path: str) -> Any:
    """Merge a single field, raising :class:`MergeTypeConflict` on shape mismatches."""

    existing_composite = isinstance(existing, (Mapping, list))
    incoming_composite = isinstance(incoming, (Mapping, list))
    if existing is not None and incoming is not None and existing_composite != incoming_composite:
        raise MergeTypeConflict(path, existing, incoming)
    if isinstance(existing, Mapping) and isinstance(incoming, Mapping):
        return merge_fields(existing, incoming, combine_lists=combine_lists, path=path)
    if combine_lists and isinstance(existing, list) and isinstance(incoming, list):
        combined = deepcopy(existing)
        for item in incoming:
            if item not in combined:
                combined.append(deepcopy(item))
        return combined
    return deepcopy(incoming)


def combine(
    contributions: Sequence[Contribution],
    *,
    merge_level: str = "key",
    conflict_resolution: str = "machine_wins",
) -> dict[str, Any]:
    """Fold *contributions* (lowest precedence first) into one entry value.

    ``merge_level`` picks the granularity: ``key`` merges field by field,
    ``value`` additionally unions lists, ``entry`` keeps the winning
    contribution only. ``shared_wins`` reverses the precedence of the block
    contributions. Rule-written contributions always apply last.

    Examples
    --------
    >>> history = [
    ...     Contribution("shared", "shared", 0, {"name": "Theme", "value": "Light", "tags": ["base"]}),
    ...     Contribution("machine_specific", "gaming", 90, {"name": "Theme", "value": "Dark", "tags": ["rgb"]}),
    ... ]
    >>> combine(history)["value"], combine(history, conflict_resolution="shared_wins")["value"]
    ('Dark', 'Light')
    >>> combine(history, merge_level="value")["tags"]
    ['base', 'rgb']
    >>> combine(history, merge_level="entry") == {"name": "Theme", "value": "Dark", "tags": ["rgb"]}
    True
    """

    blocks = [item for item in contributions if item.source != "rule"]
    rules = [item for item in contributions if item.source == "rule"]
    if conflict_resolution == "shared_wins":
        blocks.reverse()
    if merge_level == "entry":
        value: dict[str, Any] = thaw_value(blocks[-1].fields) if blocks else {}
        return _fold(value, rules, combine_lists=False)
    return _fold({}, blocks + rules, combine_lists=merge_level == "value")


def _fold(value: dict[str, Any], contributions: Iterable[Contribution], *, combine_lists: bool) -> dict[str, Any]:
    for item in contributions:
        fields = thaw_value(item.fields)
        if item.strategy == "replace":
            value = fields
        elif item.strategy == "assign":
            value = {**value, **fields}
        else:
            value = merge_fields(value, fields, combine_lists=combine_lists)
    return value


def merge_template(template: Template, context: MachineContext) -> ResolvedConfig:
    """Run the shared pass and the overlay passes of *template* for *context*.

    Why
    ----
    The shared baseline and every applicable overlay must collapse into one
    plan whose entries say where they came from.

    What
    ----
    1. Legacy top-level sections, then ``shared`` sections, become entries
       tagged ``shared``.
    2. Overlays whose selectors all match are sorted by priority, highest
       first (declaration order breaks ties).
    3. Each overlay entry is appended when its key is new or merged into the
       existing entry when ``machine_precedence`` is on; otherwise the overlay
       entry is dropped and the conflict is recorded.

    Parameters
    ----------
    template:
        Parsed template.
    context:
        Machine facts the overlay selectors are evaluated against.

    Returns
    -------
    ResolvedConfig
        Document carrying ``metadata``, ``configuration``, one list per section
        and pass-through keys, plus the contribution history of each entry.

    Examples
    --------
    >>> from lib_template_inheritance.domain.template import parse_template
    >>> template = parse_template({
    ...     "shared": {"files": [{"name": "A", "path": "/shared/config.txt", "mode": "copy"}]},
    ...     "machine_specific": [{
    ...         "machine_selectors": [{"type": "machine_name", "value": "TEST-MACHINE"}],
    ...         "priority": 90,
    ...         "files": [{"name": "A", "path": "/machine/config.txt"}],
    ...     }],
    ... })
    >>> entry = merge_template(template, MachineContext(machine_name="TEST-MACHINE")).find("files", "A")
    >>> entry["path"], entry["mode"], entry["inheritance_source"], entry["conflict_resolution"]
    ('/machine/config.txt', 'copy', 'machine_specific', 'machine_wins')
    """

    bench = Workbench(document=_document_of(template))
    shared_priority = template.shared.priority
    _apply_shared(bench, template.baseline, shared_priority, "baseline")
    _apply_shared(bench, template.shared.sections, shared_priority, "shared")

    overlays = _select_overlays(template.machine_specific, context, bench)
    default_strategy = "replace" if template.settings.inheritance_mode == "override" else "deep_merge"
    for block in overlays:
        _apply_overlay(bench, block, block.merge_strategy or default_strategy, template.settings.machine_precedence)

    resolved = bench.freeze()
    log_info(
        "merge_complete",
        **make_event(
            "merge",
            None,
            {"overlays": [block.name for block in overlays], "sections": list(resolved.sections)},
        ),
    )
    return resolved


def _document_of(template: Template) -> dict[str, Any]:
    document: dict[str, Any] = {
        "metadata": thaw_value(template.metadata),
        "configuration": thaw_value(template.configuration),
    }
    for key, value in template.passthrough.items():
        document[key] = thaw_value(value)
    return document


def _select_overlays(blocks: Iterable[MachineBlock], context: MachineContext, bench: Workbench) -> list[MachineBlock]:
    """Return matching overlays, highest priority first; ``sorted`` keeps ties in declaration order."""

    selected = [block for block in blocks if matches(block.selectors, context, block=block.name, on_warning=bench.warn)]
    for block in selected:
        log_debug("overlay_selected", **make_event("select", None, {"block": block.name, "priority": block.priority}))
    return sorted(selected, key=lambda block: -block.priority)


def _apply_shared(bench: Workbench, sections: Sections, priority: int, origin: str) -> None:
    marks = bench.marks(sections)
    for section, entries in sections.items():
        for entry in entries:
            fields = own_fields(entry)
            contribution = Contribution("shared", origin, priority, fields)
            earlier = bench.lookup(section, entry_key(fields), marks[section])
            if not earlier:
                bench.append(section, fields, contribution)
                continue
            for slot in earlier:
                slot.contributions.append(contribution)
                slot.value = merge_fields(slot.value, fields, path=f"{section}.{slot.key}")


def _apply_overlay(bench: Workbench, block: MachineBlock, strategy: str, machine_precedence: bool) -> None:
    marks = bench.marks(block.sections)
    for section, entries in block.sections.items():
        for entry in entries:
            fields = own_fields(entry)
            key = entry_key(fields)
            contribution = Contribution("machine_specific", block.name, block.priority, fields, strategy)
            earlier = bench.lookup(section, key, marks[section])
            if not earlier:
                bench.append(section, fields, contribution)
                continue
            for slot in earlier:
                if machine_precedence:
                    _overlay_slot(slot, contribution)
                else:
                    slot.outcome = "priority_wins" if slot.source == "machine_specific" else "shared_wins"
                log_debug(
                    "entry_conflict",
                    **make_event("merge", section, {"key": key, "block": block.name, "outcome": slot.outcome}),
                )


def _overlay_slot(slot: EntrySlot, contribution: Contribution) -> None:
    """Insert *contribution* below existing overlay contributions and recompute the value.

    Overlays arrive highest priority first, so a later overlay always ranks
    below the overlays already recorded on the slot and above shared ones.
    """

    position = next(
        (index for index, item in enumerate(slot.contributions) if item.source == "machine_specific"),
        len(slot.contributions),
    )
    slot.contributions.insert(position, contribution)
    slot.value = combine(slot.contributions)
    if slot.source == "machine_specific":
        slot.outcome = "priority_wins"
        return
    slot.source = "machine_specific"
    slot.priority = contribution.priority
    slot.outcome = "machine_wins"


def collapse_duplicates(resolved: ResolvedConfig) -> ResolvedConfig:
    """Merge later entries sharing a key into the first one of their section.

    Examples
    --------
    >>> resolved = ResolvedConfig(
    ...     {"files": [{"name": "A", "path": "/a"}, {"name": "A", "mode": "copy"}]},
    ...     {"files": ((), ())},
    ... )
    >>> [dict(entry) for entry in collapse_duplicates(resolved).entries("files")][0]["mode"]
    'copy'
    """

    bench = Workbench.from_resolved(resolved)
    for section, slots in bench.sections.items():
        kept: list[EntrySlot] = []
        first: dict[str, EntrySlot] = {}
        for slot in slots:
            if slot.key is None or slot.key not in first:
                kept.append(slot)
                if slot.key is not None:
                    first[slot.key] = slot
                continue
            target = first[slot.key]
            target.contributions.extend(slot.contributions)
            target.value = merge_fields(target.value, slot.value, path=f"{section}.{slot.key}")
            log_info("duplicate_collapsed", **make_event("validate", section, {"key": slot.key}))
        bench.sections[section] = kept
    return bench.freeze()

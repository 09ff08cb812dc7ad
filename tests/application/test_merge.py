from __future__ import annotations

import logging
from typing import Any

import pytest
from hypothesis import given
from hypothesis import strategies as st

from lib_template_inheritance.application.merge import collapse_duplicates, combine, merge_fields, merge_template
from lib_template_inheritance.domain.resolved import Contribution
from lib_template_inheritance.domain.template import parse_template
from lib_template_inheritance.testing import make_context
from tests.support import machine_named, overlay, only


SCALAR = st.one_of(st.booleans(), st.integers(), st.text(min_size=1, max_size=5))
VALUE = st.recursive(
    SCALAR,
    lambda children: st.dictionaries(st.text(min_size=1, max_size=5), children, max_size=3),
    max_leaves=10,
)
MAPPING = st.dictionaries(st.text(min_size=1, max_size=5), VALUE, max_size=4)


def _theme_overlays(order: list[int]) -> dict[str, Any]:
    blocks = [
        overlay(
            f"p{priority}",
            priority,
            [machine_named("TEST-MACHINE")],
            registry=[{"name": "Theme", "value": f"from-{priority}", f"only_{priority}": True}],
        )
        for priority in order
    ]
    return {
        "shared": {"registry": [{"name": "Theme", "value": "Light", "path": "HKCU:/Themes"}]},
        "machine_specific": blocks,
    }


def test_machine_overlay_wins_and_keeps_shared_fields(file_template, test_machine) -> None:
    resolved = merge_template(parse_template(file_template), test_machine)
    entry = only(resolved.entries("files"), "A")
    assert entry["path"] == "/machine/config.txt"
    assert entry["inheritance_source"] == "machine_specific"
    assert entry["inheritance_priority"] == 90
    assert entry["conflict_resolution"] == "machine_wins"


def test_unmatched_overlay_leaves_shared_untouched(file_template, other_machine) -> None:
    resolved = merge_template(parse_template(file_template), other_machine)
    entry = only(resolved.entries("files"), "A")
    assert entry["path"] == "/shared/config.txt"
    assert entry["inheritance_source"] == "shared"
    assert "conflict_resolution" not in entry


@pytest.mark.parametrize("order", [[50, 90], [90, 50]])
def test_highest_priority_wins_regardless_of_declaration_order(order: list[int]) -> None:
    resolved = merge_template(parse_template(_theme_overlays(order)), make_context())
    entry = only(resolved.entries("registry"), "Theme")
    assert entry["value"] == "from-90"
    assert entry["inheritance_priority"] == 90
    assert entry["conflict_resolution"] == "priority_wins"
    assert entry["only_50"] is True and entry["only_90"] is True
    assert entry["path"] == "HKCU:/Themes"
    assert resolved.origin("registry", "Theme")["contributors"] == [
        "shared:shared",
        "machine_specific:p50",
        "machine_specific:p90",
    ]


def test_equal_priorities_resolve_in_declaration_order() -> None:
    template = {
        "machine_specific": [
            overlay("first", 50, [machine_named("TEST-MACHINE")], files=[{"name": "A", "path": "/first"}]),
            overlay("second", 50, [machine_named("TEST-MACHINE")], files=[{"name": "A", "path": "/second"}]),
        ]
    }
    entry = only(merge_template(parse_template(template), make_context()).entries("files"), "A")
    assert entry["path"] == "/first"


def test_machine_precedence_off_keeps_shared_value(theme_template) -> None:
    theme_template["configuration"]["machine_precedence"] = False
    theme_template["machine_specific"][0]["registry"].append({"name": "Accent", "value": "Blue"})
    resolved = merge_template(parse_template(theme_template), make_context())
    theme = only(resolved.entries("registry"), "Theme")
    assert theme["value"] == "Dark"
    assert theme["inheritance_source"] == "shared"
    assert theme["conflict_resolution"] == "shared_wins"
    accent = only(resolved.entries("registry"), "Accent")
    assert accent["inheritance_source"] == "machine_specific"


def test_replace_strategy_drops_unrestated_fields() -> None:
    template = {
        "shared": {"files": [{"name": "A", "path": "/a", "mode": "copy"}]},
        "machine_specific": [
            {**overlay("strict", 80, [machine_named("TEST-MACHINE")], files=[{"name": "A", "path": "/b"}]), "merge_strategy": "replace"}
        ],
    }
    entry = only(merge_template(parse_template(template), make_context()).entries("files"), "A")
    assert entry["path"] == "/b"
    assert "mode" not in entry


@pytest.mark.parametrize(("mode", "kept"), [("override", False), ("merge", True)])
def test_inheritance_mode_sets_the_default_overlay_strategy(mode: str, kept: bool) -> None:
    template = {
        "configuration": {"inheritance_mode": mode},
        "shared": {"files": [{"name": "A", "path": "/a", "mode": "copy"}]},
        "machine_specific": [overlay("plain", 80, [machine_named("TEST-MACHINE")], files=[{"name": "A", "path": "/b"}])],
    }
    entry = only(merge_template(parse_template(template), make_context()).entries("files"), "A")
    assert entry["path"] == "/b"
    assert ("mode" in entry) is kept


def test_explicit_merge_strategy_beats_override_inheritance_mode() -> None:
    template = {
        "configuration": {"inheritance_mode": "override"},
        "shared": {"files": [{"name": "A", "path": "/a", "mode": "copy"}]},
        "machine_specific": [
            {**overlay("soft", 80, [machine_named("TEST-MACHINE")], files=[{"name": "A", "path": "/b"}]), "merge_strategy": "deep_merge"}
        ],
    }
    entry = only(merge_template(parse_template(template), make_context()).entries("files"), "A")
    assert (entry["path"], entry["mode"]) == ("/b", "copy")


def test_type_conflict_is_logged_and_incoming_wins(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="lib_template_inheritance")
    template = {
        "shared": {"files": [{"name": "A", "options": {"mode": "copy"}}]},
        "machine_specific": [overlay("flat", 90, [machine_named("TEST-MACHINE")], files=[{"name": "A", "options": "mirror"}])],
    }
    entry = only(merge_template(parse_template(template), make_context()).entries("files"), "A")
    assert entry["options"] == "mirror"
    assert any(record.getMessage() == "merge_type_conflict" for record in caplog.records)


def test_duplicates_within_one_block_stay_separate() -> None:
    template = {
        "shared": {"files": [{"name": "A", "path": "/one"}, {"name": "A", "path": "/two"}]},
        "machine_specific": [overlay("tag", 90, [machine_named("TEST-MACHINE")], files=[{"name": "A", "mode": "copy"}])],
    }
    entries = merge_template(parse_template(template), make_context()).entries("files")
    assert [entry["path"] for entry in entries] == ["/one", "/two"]
    assert all(entry["mode"] == "copy" for entry in entries)


def test_baseline_sections_and_passthrough_survive() -> None:
    template = {
        "metadata": {"name": "Legacy"},
        "files": [{"name": "Old", "path": "/old"}],
        "shared": {"files": [{"name": "Old", "mode": "copy"}]},
        "stages": {"prereqs": [{"type": "script"}]},
    }
    resolved = merge_template(parse_template(template), make_context())
    entry = only(resolved.entries("files"), "Old")
    assert (entry["path"], entry["mode"]) == ("/old", "copy")
    assert resolved.get("stages.prereqs")[0]["type"] == "script"
    assert resolved.get("metadata.name") == "Legacy"


def test_engine_fields_in_authored_entries_are_ignored() -> None:
    template = {"shared": {"files": [{"name": "A", "inheritance_source": "machine_specific", "inheritance_priority": 99}]}}
    entry = only(merge_template(parse_template(template), make_context()).entries("files"), "A")
    assert entry["inheritance_source"] == "shared"
    assert entry["inheritance_priority"] == 0


def test_inheritance_tags_are_sorted_and_unique(theme_template) -> None:
    theme_template["machine_specific"][0]["registry"][0]["inheritance_tags"] = ["theme", "machine", "theme"]
    entry = only(merge_template(parse_template(theme_template), make_context()).entries("registry"), "Theme")
    assert entry["inheritance_tags"] == ("machine", "theme")


def test_merge_template_does_not_mutate_the_template(theme_template) -> None:
    template = parse_template(theme_template)
    merge_template(template, make_context())
    assert template.shared.sections["registry"][0]["value"] == "Dark"


def test_combine_entry_level_with_rule_contribution() -> None:
    history = [
        Contribution("shared", "shared", 0, {"name": "A", "path": "/a", "mode": "copy"}),
        Contribution("machine_specific", "m", 90, {"name": "A", "path": "/b"}),
        Contribution("rule", "fix", 90, {"mode": "mirror"}, "assign"),
    ]
    assert combine(history, merge_level="entry") == {"name": "A", "path": "/b", "mode": "mirror"}
    assert combine(history, conflict_resolution="shared_wins")["path"] == "/a"


def test_collapse_duplicates_folds_later_entries() -> None:
    template = {"shared": {"files": [{"name": "A", "path": "/one"}, {"name": "A", "mode": "copy"}, {"name": "B"}]}}
    collapsed = collapse_duplicates(merge_template(parse_template(template), make_context()))
    assert [entry["name"] for entry in collapsed.entries("files")] == ["A", "B"]
    entry = only(collapsed.entries("files"), "A")
    assert (entry["path"], entry["mode"]) == ("/one", "copy")


@given(st.lists(st.integers(min_value=0, max_value=100), min_size=1, max_size=4, unique=True).flatmap(
    lambda priorities: st.tuples(st.just(priorities), st.permutations(priorities))
))
def test_resolution_is_independent_of_declaration_order(orders: tuple[list[int], list[int]]) -> None:
    first, second = orders
    resolved_a = merge_template(parse_template(_theme_overlays(first)), make_context())
    resolved_b = merge_template(parse_template(_theme_overlays(second)), make_context())
    assert resolved_a.as_dict() == resolved_b.as_dict()
    assert only(resolved_a.entries("registry"), "Theme")["value"] == f"from-{max(first)}"


@given(MAPPING, MAPPING)
def test_incoming_scalars_always_win(base, incoming) -> None:
    merged = merge_fields(base, incoming)
    for key, value in incoming.items():
        if not isinstance(value, dict):
            assert merged[key] == value
    for key in base:
        assert key in merged

from __future__ import annotations

from lib_template_inheritance.testing import make_context, static_predicates


def test_make_context_defaults_are_stable() -> None:
    first = make_context()
    second = make_context()
    assert first == second
    assert first.machine_name == "TEST-MACHINE"
    assert first.timestamp.year == 2024


def test_make_context_overrides() -> None:
    ctx = make_context(machine_name="GAMING-RIG", hardware_info={"gpu": "NVIDIA RTX"})
    assert ctx.machine_name == "GAMING-RIG"
    assert ctx.hardware_info["gpu"] == "NVIDIA RTX"
    assert ctx.user_name == "tester"


def test_static_predicates_return_fixed_results() -> None:
    registry = static_predicates({"gpu": "success", "monitors": 3})
    assert sorted(registry) == ["gpu", "monitors"]
    assert len(registry) == 2
    assert registry.get("gpu")(make_context()) == "success"
    assert registry.get("monitors")(make_context()) == 3
    assert "missing" not in registry

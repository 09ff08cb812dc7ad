from __future__ import annotations

import logging

import pytest

from lib_template_inheritance.application.selectors import compare_values, evaluate_selector, matches
from lib_template_inheritance.domain.errors import SelectorEvaluationError
from lib_template_inheritance.domain.template import Selector
from lib_template_inheritance.testing import make_context


@pytest.fixture()
def ctx():
    return make_context(
        machine_name="TEST-01",
        user_name="ada",
        environment_variables={"ROLE": "build", "GAMING_MODE": "1"},
        hardware_info={"gpu": "NVIDIA GeForce RTX"},
        software_info={"steam": "3.0"},
    )


@pytest.mark.parametrize(
    ("selector", "expected"),
    [
        (Selector("machine_name", "test-01"), True),
        (Selector("machine_name", "test-01", case_sensitive=True), False),
        (Selector("machine_name", "TEST", operator="contains"), True),
        (Selector("hostname_pattern", "^TEST-\\d+$"), True),
        (Selector("hostname_pattern", "^GAMING-"), False),
        (Selector("user_name", "ADA"), True),
        (Selector("os_version", "Windows 11", operator="contains"), True),
        (Selector("architecture", "AMD64"), True),
        (Selector("domain", "WORKGROUP"), True),
        (Selector("environment_variable", "ROLE", expected_value="build"), True),
        (Selector("environment_variable", "role", expected_value="build"), True),
        (Selector("environment_variable", "GAMING_MODE"), True),
        (Selector("environment_variable", "UNSET"), False),
        (Selector("hardware_info", "gpu", operator="matches", expected_value="nvidia"), True),
        (Selector("software_info", "steam"), True),
        (Selector("software_info", "origin"), False),
    ],
)
def test_evaluate_selector(ctx, selector: Selector, expected: bool) -> None:
    assert evaluate_selector(selector, ctx) is expected


@pytest.mark.parametrize(
    "selector",
    [
        Selector("bios_serial", "X"),
        Selector("registry_value", "HKLM:/Software/Vendor"),
        Selector("machine_name", "TEST-01", operator="startswith"),
        Selector("hostname_pattern", "TEST-("),
        Selector("environment_variable"),
    ],
)
def test_unusable_selectors_raise(ctx, selector: Selector) -> None:
    with pytest.raises(SelectorEvaluationError):
        evaluate_selector(selector, ctx)


def test_matches_requires_every_selector(ctx) -> None:
    assert matches([Selector("hostname_pattern", "TEST-.*"), Selector("environment_variable", "ROLE", expected_value="build")], ctx)
    assert not matches(
        [Selector("hostname_pattern", "TEST-.*"), Selector("environment_variable", "ROLE", expected_value="deploy")], ctx
    )


def test_matches_fails_open_with_a_warning(ctx, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="lib_template_inheritance")
    warnings: list[str] = []
    assert matches([Selector("hostname_pattern", "TEST-(")], ctx, block="broken", on_warning=warnings.append) is False
    assert warnings and "broken" in warnings[0]
    assert any(record.getMessage() == "selector_unusable" for record in caplog.records)


def test_empty_selector_list_never_matches(ctx) -> None:
    warnings: list[str] = []
    assert matches([], ctx, block="everyone", on_warning=warnings.append) is False
    assert warnings == ["Machine-specific block 'everyone' has no selectors and is ignored"]


def test_compare_values_rejects_unknown_operator() -> None:
    with pytest.raises(ValueError):
        compare_values("a", "a", "like")

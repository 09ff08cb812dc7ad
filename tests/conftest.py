"""Shared fixtures for the resolution suites."""

from __future__ import annotations

from typing import Any

import pytest

from lib_template_inheritance.domain.context import MachineContext
from lib_template_inheritance.testing import make_context
from tests.support import machine_named, overlay


@pytest.fixture()
def file_template() -> dict[str, Any]:
    """Shared ``files["A"]`` with a single overlay for ``TEST-MACHINE``."""

    return {
        "metadata": {"name": "Files", "version": "1.0", "description": "demo"},
        "shared": {"files": [{"name": "A", "path": "/shared/config.txt"}]},
        "machine_specific": [
            overlay("test machine", 90, [machine_named("TEST-MACHINE")], files=[{"name": "A", "path": "/machine/config.txt"}])
        ],
    }


@pytest.fixture()
def theme_template() -> dict[str, Any]:
    """Shared ``Theme=Dark`` overridden to ``Light`` on ``TEST-MACHINE``."""

    return {
        "metadata": {"name": "Display", "version": "2.0", "description": "theme"},
        "configuration": {"machine_precedence": True, "validation_level": "moderate"},
        "shared": {
            "priority": 0,
            "registry": [{"name": "Theme", "path": "HKCU:/Themes", "value": "Dark", "inheritance_tags": ["theme", "shared"]}],
        },
        "machine_specific": [
            overlay(
                "light machines",
                90,
                [machine_named("TEST-MACHINE")],
                registry=[{"name": "Theme", "value": "Light", "inheritance_tags": ["theme", "machine"]}],
            )
        ],
    }


@pytest.fixture()
def test_machine() -> MachineContext:
    return make_context(machine_name="TEST-MACHINE")


@pytest.fixture()
def other_machine() -> MachineContext:
    return make_context(machine_name="OTHER-MACHINE")

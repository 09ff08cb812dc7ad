"""Template builders shared by the test suites."""

from __future__ import annotations

from typing import Any


def overlay(name: str, priority: int, selectors: list[dict[str, Any]], **sections: Any) -> dict[str, Any]:
    """Build one ``machine_specific`` block."""

    return {"name": name, "priority": priority, "machine_selectors": selectors, **sections}


def machine_named(value: str) -> dict[str, Any]:
    """Selector matching the machine name exactly (case-insensitive)."""

    return {"type": "machine_name", "value": value, "operator": "equals"}


def only(entries: Any, key: str) -> dict[str, Any]:
    """Return the single entry named *key*, failing when it is missing or repeated."""

    matches = [dict(entry) for entry in entries if entry.get("name") == key]
    assert len(matches) == 1, f"expected exactly one {key!r}, found {len(matches)}"
    return matches[0]

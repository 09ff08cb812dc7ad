from __future__ import annotations

import json
from pathlib import Path

import pytest

from lib_template_inheritance.adapters.file_loaders.structured import (
    JSONFileLoader,
    TOMLFileLoader,
    YAMLFileLoader,
    loader_for,
)
from lib_template_inheritance.domain.errors import InvalidFormat, NotFound


def test_toml_loader(tmp_path: Path) -> None:
    path = tmp_path / "display.toml"
    path.write_text('[metadata]\nname = "Display"\n\n[[shared.files]]\nname = "A"\npath = "/a"\n', encoding="utf-8")
    data = TOMLFileLoader().load(str(path))
    assert data["metadata"]["name"] == "Display"
    assert data["shared"]["files"][0]["path"] == "/a"


def test_toml_loader_missing_file(tmp_path: Path) -> None:
    with pytest.raises(NotFound, match="Template file not found"):
        TOMLFileLoader().load(str(tmp_path / "missing.toml"))


def test_json_loader_invalid(tmp_path: Path) -> None:
    path = tmp_path / "display.json"
    path.write_text("{invalid}", encoding="utf-8")
    with pytest.raises(InvalidFormat, match="Invalid JSON"):
        JSONFileLoader().load(str(path))


def test_json_loader_valid(tmp_path: Path) -> None:
    path = tmp_path / "display.json"
    path.write_text(json.dumps({"configuration": {"machine_precedence": True}}), encoding="utf-8")
    assert JSONFileLoader().load(str(path))["configuration"]["machine_precedence"] is True


def test_json_root_must_be_a_mapping(tmp_path: Path) -> None:
    path = tmp_path / "list.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(InvalidFormat, match="did not produce a mapping"):
        JSONFileLoader().load(str(path))


def test_yaml_loader_handles_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("# empty file\n", encoding="utf-8")
    assert YAMLFileLoader().load(str(path)) == {}


def test_yaml_loader_invalid(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("metadata: [unclosed\n", encoding="utf-8")
    with pytest.raises(InvalidFormat, match="Invalid YAML"):
        YAMLFileLoader().load(str(path))


@pytest.mark.parametrize(
    ("name", "expected"),
    [("a.yaml", YAMLFileLoader), ("a.YML", YAMLFileLoader), ("a.json", JSONFileLoader), ("a.toml", TOMLFileLoader)],
)
def test_loader_for_suffix(name: str, expected: type) -> None:
    assert isinstance(loader_for(name), expected)


def test_loader_for_rejects_unknown_suffix() -> None:
    with pytest.raises(InvalidFormat, match="Unsupported template format"):
        loader_for("template.ini")

from __future__ import annotations

from pathlib import Path

import yaml

from lib_template_inheritance.examples import EXAMPLE_CONTEXT_NAME, EXAMPLE_TEMPLATE_NAME, generate_examples


def test_generate_writes_template_and_context(tmp_path: Path) -> None:
    written = generate_examples(tmp_path)
    assert [path.name for path in written] == [EXAMPLE_TEMPLATE_NAME, EXAMPLE_CONTEXT_NAME]
    template = yaml.safe_load((tmp_path / EXAMPLE_TEMPLATE_NAME).read_text(encoding="utf-8"))
    assert template["metadata"]["name"] == "Display Settings with Inheritance"
    assert [block["priority"] for block in template["machine_specific"]] == [90, 85]
    context = yaml.safe_load((tmp_path / EXAMPLE_CONTEXT_NAME).read_text(encoding="utf-8"))
    assert context["machine_name"] == "GAMING-RIG"


def test_generate_keeps_existing_files_unless_forced(tmp_path: Path) -> None:
    target = tmp_path / "nested"
    generate_examples(target)
    template_path = target / EXAMPLE_TEMPLATE_NAME
    template_path.write_text("edited", encoding="utf-8")

    assert generate_examples(target) == []
    assert template_path.read_text(encoding="utf-8") == "edited"

    rewritten = generate_examples(target, force=True)
    assert len(rewritten) == 2
    assert template_path.read_text(encoding="utf-8") != "edited"

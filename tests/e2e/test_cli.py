"""End-to-end CLI coverage for the public commands of lib_template_inheritance.

These tests drive the dry-run workflows operators use (inspect the machine
context, resolve or validate a template, scaffold the example) through
Click's test runner.
"""

from __future__ import annotations

import json
from pathlib import Path

import lib_cli_exit_tools
import yaml
from click.testing import CliRunner

from lib_template_inheritance import cli
from lib_template_inheritance.examples import EXAMPLE_CONTEXT_NAME, EXAMPLE_TEMPLATE_NAME, generate_examples


def _runner() -> CliRunner:
    """Return a fresh CLI runner so each test starts from a clean state."""

    return CliRunner()


def _write_template(tmp_path: Path, template: dict, name: str = "template.yaml") -> Path:
    path = tmp_path / name
    path.write_text(yaml.safe_dump(template), encoding="utf-8")
    return path


def test_cli_context_with_overrides() -> None:
    result = _runner().invoke(
        cli.cli, ["context", "--machine-name", "GAMING-RIG", "--env", "GAMING_MODE=1", "--indent", "0"]
    )
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["machine_name"] == "GAMING-RIG"
    assert payload["environment_variables"]["GAMING_MODE"] == "1"


def test_cli_context_rejects_malformed_pairs() -> None:
    result = _runner().invoke(cli.cli, ["context", "--env", "NO_EQUALS_SIGN"])
    assert result.exit_code != 0
    assert "KEY=VALUE" in result.output


def test_cli_resolve_outputs_json(tmp_path: Path, file_template) -> None:
    template = _write_template(tmp_path, file_template)
    result = _runner().invoke(cli.cli, ["resolve", str(template), "--machine-name", "TEST-MACHINE"])
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["files"][0]["path"] == "/machine/config.txt"
    assert payload["files"][0]["inheritance_source"] == "machine_specific"


def test_cli_resolve_with_provenance(tmp_path: Path, theme_template) -> None:
    template = tmp_path / "theme.json"
    template.write_text(json.dumps(theme_template), encoding="utf-8")
    result = _runner().invoke(
        cli.cli, ["resolve", str(template), "--machine-name", "TEST-MACHINE", "--provenance", "--indent", "2"]
    )
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["valid"] is True
    assert payload["config"]["registry"][0]["value"] == "Light"
    assert [item["source"] for item in payload["provenance"]["registry"][0]] == ["shared", "machine_specific"]


def test_cli_resolve_generated_example(tmp_path: Path) -> None:
    generate_examples(tmp_path)
    result = _runner().invoke(
        cli.cli,
        [
            "resolve",
            str(tmp_path / EXAMPLE_TEMPLATE_NAME),
            "--context",
            str(tmp_path / EXAMPLE_CONTEXT_NAME),
            "--predicate",
            "monitor_count=3",
        ],
    )
    assert result.exit_code == 0
    payload = json.loads(result.output)
    names = [entry["name"] for entry in payload["registry"]]
    assert "Multi-Monitor Display Settings" in names
    assert "Intel Graphics Settings" in names


def test_cli_validate_reports_warnings(tmp_path: Path) -> None:
    template = _write_template(tmp_path, {"metadata": {"name": "Demo"}, "shared": {"files": [{"name": "A"}, {"name": "A"}]}})
    result = _runner().invoke(cli.cli, ["validate", str(template), "--machine-name", "TEST-MACHINE"])
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["valid"] is True
    assert "Duplicate names found in section 'files': A" in payload["warnings"]


def test_cli_validate_fails_for_invalid_template(tmp_path: Path) -> None:
    template = _write_template(tmp_path, {"shared": {"files": [{"name": "A"}]}})
    result = _runner().invoke(cli.cli, ["validate", str(template), "--machine-name", "TEST-MACHINE"])
    assert result.exit_code == 1
    assert json.loads(result.output)["valid"] is False


def test_cli_validate_strict_surfaces_the_error(tmp_path: Path) -> None:
    template = _write_template(tmp_path, {"metadata": {"name": "Demo"}, "shared": {"files": [{"name": "A"}, {"name": "A"}]}})
    result = _runner().invoke(
        cli.cli, ["validate", str(template), "--machine-name", "TEST-MACHINE", "--validation-level", "STRICT"]
    )
    assert result.exit_code != 0
    assert "Duplicate names found" in str(result.exception)


def test_cli_generate_examples_command(tmp_path: Path) -> None:
    destination = tmp_path / "examples"
    result = _runner().invoke(cli.cli, ["generate-example", "--destination", str(destination)])
    assert result.exit_code == 0
    created = [Path(path).name for path in json.loads(result.output)]
    assert created == [EXAMPLE_TEMPLATE_NAME, EXAMPLE_CONTEXT_NAME]

    again = _runner().invoke(cli.cli, ["generate-example", "--destination", str(destination)])
    assert json.loads(again.output) == []


def test_cli_info_handles_missing_metadata(monkeypatch) -> None:
    """`cli info` must degrade gracefully when package metadata is unavailable."""

    def _raise_pkg_not_found(*_args, **_kwargs):
        raise cli.metadata.PackageNotFoundError()

    monkeypatch.setattr(cli.metadata, "metadata", _raise_pkg_not_found)
    result = _runner().invoke(cli.cli, ["info"])
    assert result.exit_code == 0
    assert "metadata unavailable" in result.output


def test_cli_main_restores_traceback_flag() -> None:
    """`cli main` should restore lib_cli_exit_tools tracebacks after execution."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    exit_code = cli.main(["--traceback", "context", "--machine-name", "TEST-MACHINE"], restore_traceback=True)
    assert exit_code == 0
    assert getattr(lib_cli_exit_tools.config, "traceback", False) == previous_traceback

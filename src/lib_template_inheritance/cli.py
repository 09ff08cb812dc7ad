"""CLI adapter for ``lib_template_inheritance`` built on ``lib_cli_exit_tools``.

Purpose
-------
Let operators dry-run template resolution for any machine without running a
backup: print the collected machine context, resolve a template into its
execution plan (optionally with provenance), validate it, or scaffold an
example template.

Contents
--------
* :data:`CLICK_CONTEXT_SETTINGS` – shared Click settings ensuring ``-h`` works.
* :func:`cli` – root command that wires global traceback handling into
  ``lib_cli_exit_tools``.
* :func:`cli_info` – prints distribution metadata for quick diagnostics.
* :func:`cli_context` – prints the machine context as JSON.
* :func:`cli_resolve` – calls :func:`lib_template_inheritance.core.resolve_file` and
  prints the resolved configuration as JSON.
* :func:`cli_validate` – prints the validation verdict and warnings.
* :func:`cli_generate_example` – writes the example template and context.
* :func:`main` – entry point used by ``console_scripts`` registration.

System Role
-----------
The CLI lives in the outermost layer. It builds a machine context (collected,
loaded from a snapshot file, and/or overridden by options), invokes the
composition root, and never reaches into the passes directly.
``lib_cli_exit_tools`` centralises the exit code strategy so all commands
behave consistently across shells and CI.
"""

from __future__ import annotations

import json
import sys
from dataclasses import replace
from importlib import metadata
from pathlib import Path
from typing import Any, Callable, Final, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click

from .adapters.context.default import collect_context
from .adapters.file_loaders.structured import loader_for
from .core import resolve_file
from .domain.context import MachineContext
from .domain.resolved import ResolvedConfig
from .domain.template import VALIDATION_LEVELS
from .examples import generate_examples as _generate_examples
from .testing import static_predicates

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000


def _resolve_version() -> str:
    """Return the installed package version, ``"0.0.0"`` when not installed."""

    try:
        return metadata.version("lib_template_inheritance")
    except metadata.PackageNotFoundError:
        return "0.0.0"


@click.group(
    help="Template inheritance resolution for backup/restore configurations",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name="lib_template_inheritance",
    message="lib_template_inheritance version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.pass_context
def cli(ctx: click.Context, traceback: bool) -> None:
    """Root command configuring traceback handling for all subcommands.

    Side Effects
        Mutates ``lib_cli_exit_tools.config.traceback`` and
        ``lib_cli_exit_tools.config.traceback_force_color``.
    """

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback


def _context_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the machine context options shared by several commands."""

    options = (
        click.option(
            "--context",
            "context_file",
            type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
            default=None,
            help="Machine context snapshot (YAML/JSON/TOML) used instead of probing this host",
        ),
        click.option("--machine-name", default=None, help="Override the machine name"),
        click.option(
            "--env",
            "env_pairs",
            multiple=True,
            metavar="KEY=VALUE",
            help="Override an environment variable of the context (repeatable)",
        ),
    )
    for option in reversed(options):
        func = option(func)
    return func


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata("lib_template_inheritance")
    except metadata.PackageNotFoundError:
        click.echo("lib_template_inheritance (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', 'lib_template_inheritance')}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")


@cli.command("context", context_settings=CLICK_CONTEXT_SETTINGS)
@_context_options
@click.option("--indent", type=int, default=2, show_default=True, help="JSON indent size")
def cli_context(context_file: Optional[Path], machine_name: Optional[str], env_pairs: Sequence[str], indent: int) -> None:
    """Print the machine context templates would be resolved against.

    Examples
    --------
    >>> from click.testing import CliRunner
    >>> result = CliRunner().invoke(cli, ["context", "--machine-name", "GAMING-RIG", "--indent", "0"])
    >>> json.loads(result.output)["machine_name"]
    'GAMING-RIG'
    """

    context = _build_context(context_file, machine_name, env_pairs)
    click.echo(json.dumps(context.as_dict(), indent=indent, ensure_ascii=False))


@cli.command("resolve", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument(
    "template",
    type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
)
@_context_options
@click.option(
    "--predicate",
    "predicate_pairs",
    multiple=True,
    metavar="NAME=RESULT",
    help="Fixed result for a named predicate during this dry run (repeatable)",
)
@click.option(
    "--validation-level",
    type=click.Choice(VALIDATION_LEVELS, case_sensitive=False),
    default=None,
    help="Override the template's configuration.validation_level",
)
@click.option("--indent", type=int, default=None, help="Pretty-print JSON output with the provided indent size")
@click.option(
    "--provenance/--no-provenance",
    default=False,
    help="Include contribution history, warnings, and validity in the output",
)
def cli_resolve(
    template: Path,
    context_file: Optional[Path],
    machine_name: Optional[str],
    env_pairs: Sequence[str],
    predicate_pairs: Sequence[str],
    validation_level: Optional[str],
    indent: Optional[int],
    provenance: bool,
) -> None:
    """Resolve TEMPLATE for a machine and print the result as JSON."""

    resolved = _resolve(template, context_file, machine_name, env_pairs, predicate_pairs, validation_level)
    if provenance:
        payload = {
            "config": resolved.as_dict(),
            "provenance": resolved.history_as_dict(),
            "warnings": list(resolved.warnings),
            "valid": resolved.valid,
        }
        click.echo(json.dumps(payload, indent=indent, separators=(",", ":"), ensure_ascii=False, default=str))
        return
    click.echo(resolved.to_json(indent=indent))


@cli.command("validate", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument(
    "template",
    type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
)
@_context_options
@click.option("--predicate", "predicate_pairs", multiple=True, metavar="NAME=RESULT", help="Fixed predicate result")
@click.option(
    "--validation-level",
    type=click.Choice(VALIDATION_LEVELS, case_sensitive=False),
    default=None,
    help="Override the template's configuration.validation_level",
)
def cli_validate(
    template: Path,
    context_file: Optional[Path],
    machine_name: Optional[str],
    env_pairs: Sequence[str],
    predicate_pairs: Sequence[str],
    validation_level: Optional[str],
) -> None:
    """Resolve TEMPLATE and report whether it validates.

    Exits non-zero when the template is invalid; strict failures surface as
    the error message.
    """

    resolved = _resolve(template, context_file, machine_name, env_pairs, predicate_pairs, validation_level)
    click.echo(json.dumps({"valid": resolved.valid, "warnings": list(resolved.warnings)}, indent=2))
    if not resolved.valid:
        raise SystemExit(1)


@cli.command("generate-example", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option(
    "--destination",
    type=click.Path(path_type=Path, file_okay=False, dir_okay=True, resolve_path=True),
    required=True,
    help="Directory that will receive the example template and context snapshot",
)
@click.option(
    "--force/--no-force",
    default=False,
    help="Overwrite existing example files if set",
    show_default=True,
)
def cli_generate_example(destination: Path, force: bool) -> None:
    """Write an example inheritance template and a matching machine context."""

    created = _generate_examples(destination, force=force)
    click.echo(json.dumps([str(path) for path in created], indent=2))


def _resolve(
    template: Path,
    context_file: Optional[Path],
    machine_name: Optional[str],
    env_pairs: Sequence[str],
    predicate_pairs: Sequence[str],
    validation_level: Optional[str],
) -> ResolvedConfig:
    context = _build_context(context_file, machine_name, env_pairs)
    predicates = static_predicates(_parse_pairs(predicate_pairs, "--predicate"))
    return resolve_file(
        template,
        context,
        predicates=predicates,
        validation_level=validation_level.lower() if validation_level else None,
    )


def _build_context(context_file: Optional[Path], machine_name: Optional[str], env_pairs: Sequence[str]) -> MachineContext:
    """Return the snapshot from *context_file* (or this host) with option overrides applied."""

    if context_file is not None:
        location = str(context_file)
        context = MachineContext.from_mapping(loader_for(location).load(location))
    else:
        context = collect_context()
    if machine_name:
        context = replace(context, machine_name=machine_name)
    overrides = _parse_pairs(env_pairs, "--env")
    if overrides:
        context = replace(context, environment_variables={**context.environment_variables, **overrides})
    return context


def _parse_pairs(values: Sequence[str], option: str) -> dict[str, str]:
    """Split ``KEY=VALUE`` option values.

    Examples
    --------
    >>> _parse_pairs(["GAMING_MODE=1", "EMPTY="], "--env")
    {'GAMING_MODE': '1', 'EMPTY': ''}
    """

    pairs: dict[str, str] = {}
    for value in values:
        key, sep, item = value.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected KEY=VALUE, got {value!r}", param_hint=option)
        pairs[key] = item
    return pairs


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name="lib_template_inheritance",
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))

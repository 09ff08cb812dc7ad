"""Example template generation helpers.

Purpose
-------
Produce a reproducible inheritance template (plus a matching machine context
snapshot) that operators can resolve with the CLI to see shared settings,
overlays, rules and conditional sections interact. This module belongs to the
outer ring of the architecture and has no runtime coupling to the
composition root.

Contents
    - ``EXAMPLE_TEMPLATE_NAME`` / ``EXAMPLE_CONTEXT_NAME``: generated filenames.
    - ``ExampleSpec``: dataclass capturing a relative path and text content.
    - ``generate_examples``: write every example file.
    - ``_write_spec`` / ``_should_write`` / ``_ensure_parent``: tiny filesystem
      helpers that narrate how files are written.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

EXAMPLE_TEMPLATE_NAME = "display-inheritance.yaml"
EXAMPLE_CONTEXT_NAME = "gaming-rig-context.yaml"

_TEMPLATE = """\
# Display settings shared by every machine, with overrides for gaming rigs.
# Resolve it with:
#   lib_template_inheritance resolve display-inheritance.yaml --context gaming-rig-context.yaml \\
#       --predicate monitor_count=2
metadata:
  name: Display Settings with Inheritance
  description: Display settings demonstrating configuration inheritance
  version: "2.0"

configuration:
  inheritance_mode: merge
  machine_precedence: true
  validation_level: moderate
  fallback_strategy: use_shared

shared:
  name: Common Display Settings
  priority: 60
  override_policy: merge
  registry:
    - name: Theme
      path: 'HKCU:\\Software\\Microsoft\\Windows\\CurrentVersion\\Themes\\Personalize'
      value: Light
      inheritance_tags: [theme, appearance, shared]
    - name: Desktop Window Manager Settings
      path: 'HKCU:\\Software\\Microsoft\\Windows\\DWM'
      inheritance_tags: [dwm, shared]
  files:
    - name: Color Profiles Directory
      path: '%SystemRoot%\\System32\\spool\\drivers\\color'
      type: directory
      inheritance_tags: [color, shared]

machine_specific:
  - name: Gaming Machine Display Settings
    priority: 90
    machine_selectors:
      - type: machine_name
        value: GAMING-RIG
      - type: hostname_pattern
        value: "GAMING-.*"
    registry:
      - name: Theme
        value: Dark
        inheritance_tags: [theme, gaming]
      - name: Gaming Display Performance
        path: 'HKCU:\\Software\\Microsoft\\Windows\\CurrentVersion\\VideoSettings'
        inheritance_tags: [gaming, performance]
    files:
      - name: Gaming Color Profiles
        path: '%USERPROFILE%\\Documents\\Gaming\\ColorProfiles'
        type: directory
        inheritance_tags: [color, gaming]

  - name: Intel Graphics Machine Settings
    priority: 85
    machine_selectors:
      - type: environment_variable
        value: PROCESSOR_IDENTIFIER
        expected_value: ".*Intel.*"
        operator: matches
    registry:
      - name: Intel Graphics Settings
        path: 'HKLM:\\SOFTWARE\\Intel\\Display'
        inheritance_tags: [intel, graphics]

inheritance_rules:
  - name: Theme Merge Rule
    applies_to: [registry]
    condition:
      inheritance_tags:
        contains: [theme]
    action: merge
    parameters:
      merge_level: value
      conflict_resolution: machine_wins

  - name: Path Expansion Rule
    applies_to: [files]
    action: transform
    parameters:
      fields: [path]

conditional_sections:
  - name: Multi-Monitor Setup
    logic: and
    conditions:
      - type: hardware_check
        check: monitor_count
        expected_result: "^[2-9]$|^[1-9][0-9]+$"
        on_failure: skip
    registry:
      - name: Multi-Monitor Display Settings
        path: 'HKCU:\\Control Panel\\Desktop'
        inheritance_tags: [multi_monitor, display]

stages:
  prereqs:
    - type: script
      name: Validate Display Inheritance Configuration
"""

_CONTEXT = """\
# Machine facts for a dry run of display-inheritance.yaml.
machine_name: GAMING-RIG
user_name: player
user_profile: 'C:\\Users\\player'
os_version: Windows 11 Pro
architecture: AMD64
environment_variables:
  PROCESSOR_IDENTIFIER: Intel64 Family 6 Model 183 Stepping 1, GenuineIntel
  SystemRoot: 'C:\\Windows'
"""


@dataclass(slots=True)
class ExampleSpec:
    """Describe a single example file to be written to disk.

    Attributes
    ----------
    relative_path:
        Path relative to the destination directory.
    content:
        File contents (UTF-8 text) including explanatory comments.
    """

    relative_path: Path
    content: str


def generate_examples(destination: str | Path, *, force: bool = False) -> list[Path]:
    """Write the example template and context snapshot under *destination*.

    Parameters
    ----------
    destination:
        Directory that will receive the files (created when missing).
    force:
        When ``True`` existing files are overwritten; otherwise the function
        skips files that already exist.

    Returns
    -------
    list[Path]
        File paths written during this invocation.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> [path.name for path in generate_examples(tmp.name)]
    ['display-inheritance.yaml', 'gaming-rig-context.yaml']
    >>> generate_examples(tmp.name)
    []
    >>> tmp.cleanup()
    """

    dest = Path(destination)
    written: list[Path] = []
    for spec in _build_specs():
        path = dest / spec.relative_path
        if not _should_write(path, force):
            continue
        _ensure_parent(path)
        _write_spec(path, spec)
        written.append(path)
    return written


def _build_specs() -> Iterator[ExampleSpec]:
    yield ExampleSpec(Path(EXAMPLE_TEMPLATE_NAME), _TEMPLATE)
    yield ExampleSpec(Path(EXAMPLE_CONTEXT_NAME), _CONTEXT)


def _write_spec(path: Path, spec: ExampleSpec) -> None:
    """Persist ``spec`` content at *path* using UTF-8 encoding."""

    path.write_text(spec.content, encoding="utf-8")


def _should_write(path: Path, force: bool) -> bool:
    """Return ``True`` when *path* should be written respecting *force*."""

    return force or not path.exists()


def _ensure_parent(path: Path) -> None:
    """Create parent directories for *path* when missing."""

    path.parent.mkdir(parents=True, exist_ok=True)

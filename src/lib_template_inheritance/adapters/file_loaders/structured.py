"""Structured template file loaders.

Purpose
-------
Convert template files on disk into plain mappings the template model
understands. Adapters are small wrappers around ``yaml.safe_load`` /
``json`` / ``tomllib`` so error handling and logging live in one place.

Contents
--------
* :class:`BaseFileLoader` – shared helpers for reading files and validating
  mapping outputs.
* :class:`YAMLFileLoader` – loader for the canonical YAML format.
* :class:`JSONFileLoader` – JSON templates.
* :class:`TOMLFileLoader` – TOML templates.
* :func:`loader_for` – pick a loader from the file suffix.

System Role
-----------
Invoked by :func:`lib_template_inheritance.core.load_template` before the raw
tree reaches :func:`~lib_template_inheritance.domain.template.parse_template`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping

import yaml

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[no-redef]

from ...domain.errors import InvalidFormat, NotFound
from ...observability import log_debug, log_error


class BaseFileLoader:
    """Common utilities shared by the structured file loaders."""

    format = "text"

    def _read(self, path: str) -> bytes:
        """Read *path* as bytes, raising :class:`NotFound` when the file is missing.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile(delete=False)
        >>> _ = tmp.write(b"metadata: {}")
        >>> tmp.close()
        >>> BaseFileLoader()._read(tmp.name)[:8]
        b'metadata'
        >>> Path(tmp.name).unlink()
        """

        file_path = Path(path)
        if not file_path.is_file():
            raise NotFound(f"Template file not found: {path}")
        payload = file_path.read_bytes()
        log_debug("template_file_read", path=path, size=len(payload))
        return payload

    @staticmethod
    def _ensure_mapping(data: object, *, path: str) -> Mapping[str, object]:
        """Ensure *data* behaves like a mapping, otherwise raise ``InvalidFormat``.

        Examples
        --------
        >>> BaseFileLoader._ensure_mapping({"metadata": {}}, path="demo")
        {'metadata': {}}
        >>> BaseFileLoader._ensure_mapping(["files"], path="demo")
        Traceback (most recent call last):
        ...
        lib_template_inheritance.domain.errors.InvalidFormat: Template demo did not produce a mapping
        """

        if not isinstance(data, Mapping):
            raise InvalidFormat(f"Template {path} did not produce a mapping")
        return data  # type: ignore[return-value]

    def _invalid(self, path: str, exc: Exception) -> InvalidFormat:
        log_error("template_file_invalid", path=path, format=self.format, error=str(exc))
        return InvalidFormat(f"Invalid {self.format.upper()} in {path}: {exc}")

    def _loaded(self, data: object, path: str) -> Mapping[str, object]:
        result = self._ensure_mapping(data, path=path)
        log_debug("template_file_loaded", path=path, format=self.format)
        return result


class YAMLFileLoader(BaseFileLoader):
    """Load YAML templates with ``yaml.safe_load``."""

    format = "yaml"

    def load(self, path: str) -> Mapping[str, object]:
        """Return the mapping stored in the YAML file at *path*.

        An empty document is an empty template.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile('w', suffix='.yaml', delete=False, encoding='utf-8')
        >>> _ = tmp.write('metadata:\\n  name: Display\\n')
        >>> tmp.close()
        >>> YAMLFileLoader().load(tmp.name)["metadata"]["name"]
        'Display'
        >>> Path(tmp.name).unlink()
        """

        try:
            data = yaml.safe_load(self._read(path))
        except yaml.YAMLError as exc:
            raise self._invalid(path, exc) from exc
        return self._loaded({} if data is None else data, path)


class JSONFileLoader(BaseFileLoader):
    """Load JSON templates."""

    format = "json"

    def load(self, path: str) -> Mapping[str, object]:
        """Return the mapping stored in the JSON file at *path*.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile('w', suffix='.json', delete=False, encoding='utf-8')
        >>> _ = tmp.write('{"configuration": {"machine_precedence": true}}')
        >>> tmp.close()
        >>> JSONFileLoader().load(tmp.name)["configuration"]["machine_precedence"]
        True
        >>> Path(tmp.name).unlink()
        """

        try:
            data = json.loads(self._read(path))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise self._invalid(path, exc) from exc
        return self._loaded(data, path)


class TOMLFileLoader(BaseFileLoader):
    """Load TOML templates using the standard library parser."""

    format = "toml"

    def load(self, path: str) -> Mapping[str, object]:
        """Return the mapping stored in the TOML file at *path*."""

        try:
            data = tomllib.loads(self._read(path).decode("utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
            raise self._invalid(path, exc) from exc
        return self._loaded(data, path)


_LOADERS: dict[str, type[BaseFileLoader]] = {
    ".yaml": YAMLFileLoader,
    ".yml": YAMLFileLoader,
    ".json": JSONFileLoader,
    ".toml": TOMLFileLoader,
}


def loader_for(path: str) -> YAMLFileLoader | JSONFileLoader | TOMLFileLoader:
    """Return the loader matching the suffix of *path*.

    Raises
    ------
    InvalidFormat
        For an unsupported suffix.

    Examples
    --------
    >>> type(loader_for("templates/display.yml")).__name__
    'YAMLFileLoader'
    >>> loader_for("notes.txt")
    Traceback (most recent call last):
    ...
    lib_template_inheritance.domain.errors.InvalidFormat: Unsupported template format '.txt' for notes.txt
    """

    suffix = Path(path).suffix.lower()
    if suffix not in _LOADERS:
        raise InvalidFormat(f"Unsupported template format '{suffix}' for {path}")
    return _LOADERS[suffix]()  # type: ignore[return-value]

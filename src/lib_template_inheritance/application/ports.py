"""Application-layer ports describing adapter responsibilities.

Purpose
-------
Define the structural contracts collaborators must satisfy so the composition
root can orchestrate a resolution without depending on concrete
implementations.

Contents
--------
* :class:`ContextCollector` – captures the :class:`MachineContext` snapshot.
* :class:`TemplateLoader` – parses a template file into a raw mapping.
* :class:`Predicate` – named runtime check used by conditional sections.
* :class:`Protector` – encryption collaborator consumed by the executors.

System Role
-----------
These protocols enforce Dependency Inversion. The default adapters live in
:mod:`lib_template_inheritance.adapters`; host applications may swap any of
them (for example a WMI-backed context collector) without touching the passes.
"""

from __future__ import annotations

from typing import Mapping, Protocol, runtime_checkable

from ..domain.context import MachineContext


@runtime_checkable
class ContextCollector(Protocol):
    """Capture host facts once per backup/restore invocation.

    Why
    ----
    Keep OS-specific fact discovery out of the pure resolution passes.
    """

    def collect(self) -> MachineContext:
        """Return a snapshot; unavailable facts are empty, never exceptions."""


@runtime_checkable
class TemplateLoader(Protocol):
    """Parse a structured template file into a mapping.

    Why
    ----
    Segregate parsing concerns (YAML/JSON/TOML) from orchestration logic.
    """

    def load(self, path: str) -> Mapping[str, object]:
        """Read *path* and return a mapping representation or raise ``InvalidFormat``."""


@runtime_checkable
class Predicate(Protocol):
    """Runtime check referenced by ``named_predicate`` conditions.

    The return value is compared, as text, against the condition's
    ``expected_result`` (``True`` renders as ``"true"``).
    """

    def __call__(self, context: MachineContext) -> object:
        ...


@runtime_checkable
class Protector(Protocol):
    """Encrypt and decrypt secret payloads for the backup executors.

    Resolution only passes entries flagged ``encrypt: true`` through; the
    executors call this collaborator.
    """

    def protect(self, plaintext: bytes, password: str) -> bytes:
        """Return the encrypted form of *plaintext*."""

    def unprotect(self, ciphertext: bytes, password: str) -> bytes:
        """Return the decrypted form of *ciphertext*."""

"""Immutable machine context snapshot.

Purpose
-------
Model the host facts that selectors and conditions are evaluated against. The
snapshot is captured once per backup/restore invocation and shared, read-only,
by every resolution performed during that invocation.

Contents
--------
* :class:`MachineContext` – frozen dataclass with read-only mappings for
  environment variables, hardware facts, and software facts.

System Role
-----------
Produced by :mod:`lib_template_inheritance.adapters.context.default` (or by
tests through :func:`lib_template_inheritance.testing.make_context`) and
consumed by the selector evaluator, the condition evaluator, and the
``transform`` inheritance rule. It performs no I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class MachineContext:
    """Snapshot of the host facts used to pick overlays and conditional sections.

    Why
    ----
    Resolution must be a pure function of the template and the host facts, so
    the facts are frozen into a value object instead of being read on demand.

    Attributes
    ----------
    machine_name / user_name / user_profile / os_version / architecture / domain:
        Scalar host facts; unavailable facts are empty strings.
    environment_variables:
        Process environment at capture time.
    hardware_info / software_info:
        Free-form fact maps (processor, memory, installed runtimes, ...).
    timestamp:
        Capture time in UTC.

    Examples
    --------
    >>> ctx = MachineContext(machine_name="TEST-MACHINE", environment_variables={"Path": "C:/bin"})
    >>> ctx.env("PATH")
    'C:/bin'
    >>> ctx.environment_variables["Path"] = "x"
    Traceback (most recent call last):
    ...
    TypeError: 'mappingproxy' object does not support item assignment
    """

    machine_name: str = ""
    user_name: str = ""
    user_profile: str = ""
    os_version: str = ""
    architecture: str = ""
    domain: str = ""
    environment_variables: Mapping[str, str] = field(default_factory=dict)
    hardware_info: Mapping[str, Any] = field(default_factory=dict)
    software_info: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = _EPOCH

    def __post_init__(self) -> None:
        """Wrap the fact maps in ``MappingProxyType`` so the snapshot stays read-only."""

        object.__setattr__(self, "environment_variables", _freeze(self.environment_variables))
        object.__setattr__(self, "hardware_info", _freeze(self.hardware_info))
        object.__setattr__(self, "software_info", _freeze(self.software_info))

    def env(self, name: str, default: str | None = None) -> str | None:
        """Return environment variable *name*, falling back to a case-insensitive lookup.

        Windows treats variable names case-insensitively while templates are
        usually authored in upper case; the exact name wins when present.
        """

        if name in self.environment_variables:
            return self.environment_variables[name]
        lowered = name.lower()
        for key, value in self.environment_variables.items():
            if key.lower() == lowered:
                return value
        return default

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly ``dict`` copy of the snapshot."""

        return {
            "machine_name": self.machine_name,
            "user_name": self.user_name,
            "user_profile": self.user_profile,
            "os_version": self.os_version,
            "architecture": self.architecture,
            "domain": self.domain,
            "environment_variables": dict(self.environment_variables),
            "hardware_info": dict(self.hardware_info),
            "software_info": dict(self.software_info),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> MachineContext:
        """Rebuild a snapshot from the shape produced by :meth:`as_dict`.

        Unknown keys are ignored and missing keys default to empty values, so
        hand-written context files only need the facts a template relies on.

        Examples
        --------
        >>> MachineContext.from_mapping({"machine_name": "GAMING-RIG"}).machine_name
        'GAMING-RIG'
        """

        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        if not isinstance(timestamp, datetime):
            timestamp = _EPOCH
        return cls(
            machine_name=str(data.get("machine_name") or ""),
            user_name=str(data.get("user_name") or ""),
            user_profile=str(data.get("user_profile") or ""),
            os_version=str(data.get("os_version") or ""),
            architecture=str(data.get("architecture") or ""),
            domain=str(data.get("domain") or ""),
            environment_variables={str(k): str(v) for k, v in (data.get("environment_variables") or {}).items()},
            hardware_info=dict(data.get("hardware_info") or {}),
            software_info=dict(data.get("software_info") or {}),
            timestamp=timestamp,
        )


def _freeze(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return an immutable proxy around a copy of *mapping*."""

    return MappingProxyType(dict(mapping))

"""Default machine context collector.

Purpose
-------
Capture a :class:`MachineContext` snapshot from the running interpreter using
only portable probes (``platform``, ``socket``, ``getpass``, ``os``).

Key behaviours
--------------
* Never fails: a probe that raises leaves its fact empty and emits a
  ``context_fact_unavailable`` warning.
* Windows-style facts (``COMPUTERNAME``, ``USERNAME``, ``USERPROFILE``,
  ``USERDOMAIN``) win over their POSIX counterparts when present.
* ``environ``, ``hostname`` and ``clock`` can be injected for deterministic
  tests.
"""

from __future__ import annotations

import getpass
import os
import platform
import socket
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

from ...domain.context import MachineContext
from ...observability import log_debug, log_warning

_PROBE_ERRORS = (OSError, KeyError, ValueError, RuntimeError, ImportError)


class DefaultContextCollector:
    """Collect host facts for the current process."""

    def __init__(
        self,
        *,
        environ: Mapping[str, str] | None = None,
        hostname: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialise the collector.

        Parameters
        ----------
        environ:
            Mapping to read environment variables from. Defaults to
            :data:`os.environ`.
        hostname:
            Fixed machine name; skips the hostname probes when given.
        clock:
            Callable returning the capture time. Defaults to ``datetime.now(timezone.utc)``.
        """

        self._environ = dict(os.environ if environ is None else environ)
        self._hostname = hostname
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def collect(self) -> MachineContext:
        """Return a snapshot of the host facts.

        Examples
        --------
        >>> collector = DefaultContextCollector(
        ...     environ={"COMPUTERNAME": "TEST-MACHINE", "USERNAME": "ada", "USERPROFILE": "C:/Users/ada"},
        ... )
        >>> ctx = collector.collect()
        >>> ctx.machine_name, ctx.user_name, ctx.user_profile
        ('TEST-MACHINE', 'ada', 'C:/Users/ada')
        """

        context = MachineContext(
            machine_name=self._fact("machine_name", self._machine_name),
            user_name=self._fact("user_name", self._user_name),
            user_profile=self._fact("user_profile", self._user_profile),
            os_version=self._fact("os_version", platform.platform),
            architecture=self._fact("architecture", platform.machine),
            domain=self._fact("domain", self._domain),
            environment_variables=self._environ,
            hardware_info=self._hardware_info(),
            software_info=self._software_info(),
            timestamp=self._clock(),
        )
        log_debug("context_collected", machine_name=context.machine_name, variables=len(self._environ))
        return context

    def _fact(self, name: str, probe: Callable[[], Any]) -> str:
        try:
            value = probe()
        except _PROBE_ERRORS as exc:
            log_warning("context_fact_unavailable", fact=name, error=str(exc))
            return ""
        if not value:
            log_warning("context_fact_unavailable", fact=name, error="empty")
            return ""
        return str(value)

    def _machine_name(self) -> str:
        if self._hostname is not None:
            return self._hostname
        return self._environ.get("COMPUTERNAME") or socket.gethostname() or platform.node()

    def _user_name(self) -> str:
        return self._environ.get("USERNAME") or self._environ.get("USER") or getpass.getuser()

    def _user_profile(self) -> str:
        return self._environ.get("USERPROFILE") or self._environ.get("HOME") or str(Path.home())

    def _domain(self) -> str:
        domain = self._environ.get("USERDOMAIN")
        if domain:
            return domain
        _, _, suffix = socket.getfqdn().partition(".")
        return suffix

    def _hardware_info(self) -> dict[str, Any]:
        return {
            "processor": self._fact("hardware_info.processor", platform.processor),
            "cpu_count": os.cpu_count() or 0,
        }

    def _software_info(self) -> dict[str, Any]:
        return {
            "os": self._fact("software_info.os", platform.system),
            "os_release": self._fact("software_info.os_release", platform.release),
            "python_version": platform.python_version(),
            "python_implementation": platform.python_implementation(),
        }


def collect_context(*, environ: Mapping[str, str] | None = None, hostname: str | None = None) -> MachineContext:
    """Capture the current machine context with :class:`DefaultContextCollector`."""

    return DefaultContextCollector(environ=environ, hostname=hostname).collect()

from __future__ import annotations

import logging
import socket
from datetime import datetime, timezone

import pytest

from lib_template_inheritance.adapters.context.default import DefaultContextCollector, collect_context

FIXED = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def test_windows_variables_take_precedence() -> None:
    environ = {
        "COMPUTERNAME": "GAMING-RIG",
        "USERNAME": "player",
        "USER": "posix-user",
        "USERPROFILE": "C:/Users/player",
        "HOME": "/home/posix-user",
        "USERDOMAIN": "HOME-LAN",
    }
    ctx = DefaultContextCollector(environ=environ, clock=lambda: FIXED).collect()
    assert (ctx.machine_name, ctx.user_name, ctx.user_profile, ctx.domain) == (
        "GAMING-RIG",
        "player",
        "C:/Users/player",
        "HOME-LAN",
    )
    assert ctx.timestamp == FIXED
    assert ctx.env("computername") == "GAMING-RIG"


def test_posix_fallbacks() -> None:
    ctx = DefaultContextCollector(environ={"USER": "ada", "HOME": "/home/ada"}, hostname="build-01").collect()
    assert (ctx.machine_name, ctx.user_name, ctx.user_profile) == ("build-01", "ada", "/home/ada")


def test_fact_maps_are_populated() -> None:
    ctx = collect_context(environ={}, hostname="build-01")
    assert "cpu_count" in ctx.hardware_info
    assert ctx.software_info["python_version"]


def test_failing_probe_leaves_fact_empty(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    def broken() -> str:
        raise OSError("resolver offline")

    monkeypatch.setattr(socket, "getfqdn", broken)
    caplog.set_level(logging.WARNING, logger="lib_template_inheritance")
    ctx = DefaultContextCollector(environ={"USER": "ada"}, hostname="build-01").collect()
    assert ctx.domain == ""
    assert any(
        record.getMessage() == "context_fact_unavailable" and record.context["fact"] == "domain"
        for record in caplog.records
    )


def test_collector_copies_the_environment() -> None:
    environ = {"ROLE": "build"}
    ctx = DefaultContextCollector(environ=environ, hostname="h").collect()
    environ["ROLE"] = "deploy"
    assert ctx.env("ROLE") == "build"

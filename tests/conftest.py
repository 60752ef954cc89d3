"""Shared test fixtures."""

from __future__ import annotations

import logging
import os
import stat
import sys
from pathlib import Path

import pytest

from wv_runner.runner.backend.base import AgentCommand

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
FAKE_AGENT_ARGV = (sys.executable, "-m", "wv_runner.runner.backend.fake_agent")

_RUNNER_ENV_PREFIXES = ("WV_RUNNER_", "CLAUDE_PATH")


@pytest.fixture(autouse=True)
def _clean_runner_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith(_RUNNER_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """configure_logging detaches the package logger from root; undo it after each test."""
    yield
    package_logger = logging.getLogger("wv_runner")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture()
def agent_env() -> dict[str, str]:
    """Environment for subprocesses that import the package from the source tree."""
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(
        part for part in (str(SRC_DIR), env.get("PYTHONPATH", "")) if part
    )
    return env


@pytest.fixture()
def fake_agent_command():
    def _command(*args: str) -> AgentCommand:
        return AgentCommand(argv=(*FAKE_AGENT_ARGV, *args))

    return _command


@pytest.fixture()
def fake_agent_script(tmp_path, agent_env):
    """Write an executable that stands in for ``claude`` and forwards to the fake agent."""

    def _script(*args: str) -> Path:
        script = tmp_path / "claude"
        quoted = " ".join(f"'{arg}'" for arg in args)
        script.write_text(
            "#!/bin/sh\n"
            f"PYTHONPATH='{agent_env['PYTHONPATH']}' "
            f"exec '{sys.executable}' -m wv_runner.runner.backend.fake_agent {quoted} \"$@\"\n",
            encoding="utf-8",
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _script

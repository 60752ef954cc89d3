from __future__ import annotations

import os
import subprocess
import sys
import time

import allure
import pytest

from wv_runner.runner.approvals import ApprovalCollector
from wv_runner.runner.backend.base import AgentCommand
from wv_runner.runner.backend.supervisor import ProcessSupervisor, terminate_process_tree
from wv_runner.runner.errors import AgentTimeoutError, ExecutableNotFoundError
from wv_runner.runner.extractor import extract

pytestmark = [
    allure.epic("Agent Supervision"),
    allure.feature("Process Supervisor"),
    pytest.mark.skipif(os.name == "nt", reason="relies on POSIX process groups and signals"),
]

RESULT_JSON = '{"status": "success", "hours": {"per_day": 8, "task_estimated": 1}}'


def _supervisor(agent_env, **overrides) -> ProcessSupervisor:
    options = {
        "hard_timeout_seconds": 30,
        "soft_timeout_seconds": 25,
        "kill_grace_seconds": 1,
        "completion_grace_seconds": 5,
        "env": agent_env,
    }
    options.update(overrides)
    return ProcessSupervisor(**options)


def test_execute_collects_output_of_normal_run(agent_env, fake_agent_command) -> None:
    command = fake_agent_command("--text", "Working on it", "--result", RESULT_JSON)

    result = _supervisor(agent_env).execute(command)

    assert result.exit_code == 0
    assert result.soft_timeout_fired is False
    assert result.completion_seen is False
    assert "Working on it" in result.output_text
    extraction = extract(result.output_text, elapsed_hours=0.01)
    assert extraction.record is not None
    assert extraction.record.status == "success"


def test_execute_passes_agent_arguments_through(agent_env, fake_agent_command) -> None:
    command = fake_agent_command(
        "--result",
        RESULT_JSON,
        "-p",
        "Do the task",
        "--model",
        "opus",
        "--output-format=stream-json",
        "--verbose",
    )

    result = _supervisor(agent_env).execute(command)

    assert result.exit_code == 0
    assert extract(result.output_text, elapsed_hours=0).ok


def test_execute_captures_stderr(agent_env, fake_agent_command) -> None:
    command = fake_agent_command("--stderr", "deprecation warning", "--result", RESULT_JSON)

    result = _supervisor(agent_env).execute(command)

    assert "deprecation warning" in result.stderr_text
    assert "deprecation warning" not in result.output_text


def test_non_zero_exit_is_reported_not_raised(agent_env, fake_agent_command) -> None:
    command = fake_agent_command("--result", RESULT_JSON, "--exit-code", "3")

    result = _supervisor(agent_env).execute(command)

    assert result.exit_code == 3
    assert extract(result.output_text, elapsed_hours=0).ok


def test_completion_record_is_noticed(agent_env, fake_agent_command) -> None:
    command = fake_agent_command("--result", RESULT_JSON, "--completion-record")

    result = _supervisor(agent_env).execute(command)

    assert result.completion_seen is True
    assert result.exit_code == 0


def test_lingering_agent_is_stopped_after_completion_grace(agent_env, fake_agent_command) -> None:
    command = fake_agent_command("--result", RESULT_JSON, "--completion-record", "--hang", "60")

    started = time.monotonic()
    result = _supervisor(agent_env, completion_grace_seconds=0.5).execute(command)

    assert time.monotonic() - started < 20
    assert result.completion_seen is True
    assert result.exit_code != 0
    assert extract(result.output_text, elapsed_hours=0).ok


def test_soft_timeout_lets_agent_flush_its_result(agent_env, fake_agent_command) -> None:
    command = fake_agent_command(
        "--text",
        "Still working",
        "--result",
        RESULT_JSON,
        "--on-term",
        "flush",
        "--hang",
        "60",
    )

    result = _supervisor(agent_env, soft_timeout_seconds=1.5, hard_timeout_seconds=20).execute(
        command,
    )

    assert result.soft_timeout_fired is True
    assert result.exit_code == 143
    extraction = extract(result.output_text, elapsed_hours=0)
    assert extraction.record is not None
    assert extraction.record.status == "success"


def test_hard_timeout_kills_agent_that_ignores_sigterm(agent_env, fake_agent_command) -> None:
    command = fake_agent_command("--text", "busy", "--on-term", "ignore", "--hang", "60")
    supervisor = _supervisor(agent_env, soft_timeout_seconds=1.0, hard_timeout_seconds=2.5)

    started = time.monotonic()
    with pytest.raises(AgentTimeoutError, match="timed out after 2.5 seconds"):
        supervisor.execute(command)

    assert time.monotonic() - started < 20


def test_tool_errors_feed_approval_collector(agent_env, fake_agent_command) -> None:
    approvals = ApprovalCollector()
    command = fake_agent_command(
        "--tool-error",
        "The following parts require approval: bin/rails db:migrate",
        "--tool-error",
        "Permission denied",
        "--result",
        RESULT_JSON,
    )

    _supervisor(agent_env, approvals=approvals).execute(command)

    assert approvals.commands == ["bin/rails db:migrate"]


def test_missing_executable_raises(agent_env) -> None:
    command = AgentCommand(argv=("/nonexistent/bin/claude", "-p", "hello"))

    with pytest.raises(ExecutableNotFoundError, match="/nonexistent/bin/claude"):
        _supervisor(agent_env).execute(command)


def test_unlaunchable_executable_raises(agent_env, tmp_path) -> None:
    garbage = tmp_path / "claude"
    garbage.write_bytes(b"\x00\x01garbage")
    garbage.chmod(0o755)

    with pytest.raises(ExecutableNotFoundError, match="could not be started"):
        _supervisor(agent_env).execute(AgentCommand(argv=(str(garbage), "-p", "hello")))


def test_terminate_process_tree_is_idempotent() -> None:
    process = subprocess.Popen(  # noqa: S603
        [sys.executable, "-c", "import time; time.sleep(60)"],
        start_new_session=True,
    )

    terminate_process_tree(process, grace_seconds=2, poll_interval_seconds=0.1)
    terminate_process_tree(process, grace_seconds=2, poll_interval_seconds=0.1)

    assert process.poll() is not None

"""Subprocess supervisor for one agent execution with soft and hard timeouts."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import IO, NoReturn

from wv_runner.runner.approvals import ApprovalCollector
from wv_runner.runner.backend.base import AgentCommand, ExecutionResult
from wv_runner.runner.errors import AgentTimeoutError, ExecutableNotFoundError, StreamClosedError
from wv_runner.runner.stream import (
    StreamLogger,
    is_completion_record,
    parse_stream_line,
    tool_error_texts,
)

logger = logging.getLogger(__name__)

_JOIN_POLL_SECONDS = 0.1
_POST_KILL_JOIN_SECONDS = 2.0


@dataclass(slots=True)
class _ExecutionState:
    stopping: threading.Event = field(default_factory=threading.Event)
    completion_seen: threading.Event = field(default_factory=threading.Event)
    soft_timeout_fired: bool = False
    stdout_lines: list[str] = field(default_factory=list)
    stderr_lines: list[str] = field(default_factory=list)
    stream_errors: list[str] = field(default_factory=list)


class ProcessSupervisor:
    """Run the agent once, draining stdout and stderr concurrently.

    The soft timer only asks the agent to stop (SIGTERM) so it can flush its
    last output; the hard deadline kills the process group and raises
    ``AgentTimeoutError``. A non-zero exit status is logged, not raised.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        hard_timeout_seconds: float = 3_600,
        soft_timeout_seconds: float = 3_300,
        kill_grace_seconds: float = 5,
        completion_grace_seconds: float = 30,
        stream_logger: StreamLogger | None = None,
        approvals: ApprovalCollector | None = None,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> None:
        self.hard_timeout_seconds = hard_timeout_seconds
        self.soft_timeout_seconds = soft_timeout_seconds
        self.kill_grace_seconds = kill_grace_seconds
        self.completion_grace_seconds = completion_grace_seconds
        self.stream_logger = stream_logger or StreamLogger()
        self.approvals = approvals
        self.env = dict(env) if env is not None else None
        self.cwd = cwd

    def execute(self, command: AgentCommand) -> ExecutionResult:
        deadline = time.monotonic() + self.hard_timeout_seconds
        process = self._start(command)
        state = _ExecutionState()

        drains = (
            threading.Thread(
                target=self._drain_stdout,
                args=(process.stdout, state),
                name="agent-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=self._drain_stderr,
                args=(process.stderr, state),
                name="agent-stderr",
                daemon=True,
            ),
        )
        soft_timer = threading.Timer(
            self.soft_timeout_seconds,
            self._on_soft_timeout,
            args=(process, state),
        )
        soft_timer.daemon = True

        for drain in drains:
            drain.start()
        soft_timer.start()
        try:
            self._join_drains(process=process, state=state, drains=drains, deadline=deadline)
            exit_code = self._wait_for_exit(
                process=process,
                state=state,
                drains=drains,
                deadline=deadline,
            )
        finally:
            soft_timer.cancel()
            soft_timer.join()
            _close_pipes(process, drains)

        if state.stream_errors:
            raise StreamClosedError(state.stream_errors[0])

        stderr_text = "".join(state.stderr_lines)
        logger.debug("Agent process exit status: %s", exit_code)
        if exit_code != 0:
            logger.warning("Agent exited with non-zero status %s", exit_code)
            if stderr_text:
                logger.debug("Agent stderr: %s", stderr_text[-2000:])

        return ExecutionResult(
            output_text="".join(state.stdout_lines),
            stderr_text=stderr_text,
            exit_code=exit_code,
            soft_timeout_fired=state.soft_timeout_fired,
            completion_seen=state.completion_seen.is_set(),
        )

    def _start(self, command: AgentCommand) -> subprocess.Popen[str]:
        try:
            return subprocess.Popen(  # noqa: S603
                list(command.argv),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                env=self.env,
                cwd=self.cwd,
                start_new_session=os.name != "nt",
            )
        except FileNotFoundError as error:
            raise ExecutableNotFoundError(
                f"Agent executable not found: {command.executable}",
            ) from error
        except PermissionError as error:
            raise ExecutableNotFoundError(
                f"Agent executable is not runnable: {command.executable}",
            ) from error
        except OSError as error:
            raise ExecutableNotFoundError(
                f"Agent executable could not be started: {command.executable}: {error}",
            ) from error

    def _join_drains(
        self,
        *,
        process: subprocess.Popen[str],
        state: _ExecutionState,
        drains: tuple[threading.Thread, ...],
        deadline: float,
    ) -> None:
        completion_deadline: float | None = None
        while any(drain.is_alive() for drain in drains):
            now = time.monotonic()
            if now >= deadline:
                self._stop_on_hard_timeout(process=process, state=state, drains=drains)

            if state.completion_seen.is_set() and not state.stopping.is_set():
                if completion_deadline is None:
                    completion_deadline = now + self.completion_grace_seconds
                elif now >= completion_deadline and process.poll() is None:
                    logger.info(
                        "Agent still running %.0fs after its result record, stopping it",
                        self.completion_grace_seconds,
                    )
                    state.stopping.set()
                    terminate_process_tree(process, grace_seconds=self.kill_grace_seconds)

            for drain in drains:
                drain.join(timeout=min(_JOIN_POLL_SECONDS, max(0.0, deadline - now)))

    def _wait_for_exit(
        self,
        *,
        process: subprocess.Popen[str],
        state: _ExecutionState,
        drains: tuple[threading.Thread, ...],
        deadline: float,
    ) -> int:
        try:
            return process.wait(timeout=max(0.0, deadline - time.monotonic()))
        except subprocess.TimeoutExpired:
            self._stop_on_hard_timeout(process=process, state=state, drains=drains)

    def _stop_on_hard_timeout(
        self,
        *,
        process: subprocess.Popen[str],
        state: _ExecutionState,
        drains: tuple[threading.Thread, ...],
    ) -> NoReturn:
        state.stopping.set()
        logger.error("Agent execution timed out after %s seconds", self.hard_timeout_seconds)
        terminate_process_tree(process, grace_seconds=self.kill_grace_seconds)
        for drain in drains:
            drain.join(timeout=_POST_KILL_JOIN_SECONDS)
        raise AgentTimeoutError(
            f"Claude execution timed out after {self.hard_timeout_seconds:g} seconds",
        )

    def _on_soft_timeout(self, process: subprocess.Popen[str], state: _ExecutionState) -> None:
        if state.completion_seen.is_set() or state.stopping.is_set():
            return
        if process.poll() is not None:
            return
        state.soft_timeout_fired = True
        logger.warning(
            "Soft timeout after %s seconds, asking agent to finish (SIGTERM)",
            self.soft_timeout_seconds,
        )
        _signal_process_tree(process, force=False)

    def _drain_stdout(self, stream: IO[str] | None, state: _ExecutionState) -> None:
        if stream is None:
            return
        try:
            for line in stream:
                state.stdout_lines.append(line)
                event = parse_stream_line(line)
                if is_completion_record(event) and not state.completion_seen.is_set():
                    logger.debug("Agent emitted its completion record")
                    state.completion_seen.set()
                if self.approvals is not None:
                    for text in tool_error_texts(event):
                        self.approvals.extract_from_error(text)
                self.stream_logger.on_stdout(line, event)
        except (OSError, ValueError) as error:
            self._record_stream_error(state=state, name="stdout", error=error)

    def _drain_stderr(self, stream: IO[str] | None, state: _ExecutionState) -> None:
        if stream is None:
            return
        try:
            for line in stream:
                state.stderr_lines.append(line)
                self.stream_logger.on_stderr(line)
        except (OSError, ValueError) as error:
            self._record_stream_error(state=state, name="stderr", error=error)

    @staticmethod
    def _record_stream_error(*, state: _ExecutionState, name: str, error: Exception) -> None:
        if state.stopping.is_set() or state.completion_seen.is_set():
            logger.debug("Ignoring %s stream error during shutdown: %s", name, error)
            return
        message = f"{name} stream closed unexpectedly: {error}"
        logger.error(message)
        state.stream_errors.append(message)


def terminate_process_tree(
    process: subprocess.Popen[str] | subprocess.Popen[bytes],
    *,
    grace_seconds: float = 5,
    poll_interval_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """SIGTERM the process group, wait up to ``grace_seconds``, then SIGKILL.

    Safe to call on a process that already exited.
    """

    if process.poll() is not None:
        return
    if not _signal_process_tree(process, force=False):
        return

    waited = 0.0
    while waited < grace_seconds:
        if process.poll() is not None:
            return
        sleep(poll_interval_seconds)
        waited += poll_interval_seconds
    if process.poll() is not None:
        return

    logger.warning("Agent did not exit %ss after SIGTERM, sending SIGKILL", grace_seconds)
    if not _signal_process_tree(process, force=True):
        return
    try:
        process.wait(timeout=5)
    except subprocess.TimeoutExpired:
        logger.error("Agent process %s is still alive after SIGKILL", process.pid)


def _signal_process_tree(
    process: subprocess.Popen[str] | subprocess.Popen[bytes],
    *,
    force: bool,
) -> bool:
    try:
        if os.name == "nt":
            if force:
                process.kill()
            else:
                process.terminate()
        else:
            os.killpg(process.pid, signal.SIGKILL if force else signal.SIGTERM)
    except ProcessLookupError:
        return False
    except OSError as error:
        logger.warning("Could not signal agent process %s: %s", process.pid, error)
        return False
    return True


def _close_pipes(process: subprocess.Popen[str], drains: tuple[threading.Thread, ...]) -> None:
    # Pipes still being read by a live drain thread are left to the daemon thread.
    if any(drain.is_alive() for drain in drains):
        return
    for pipe in (process.stdout, process.stderr):
        if pipe is not None:
            pipe.close()

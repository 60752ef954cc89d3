"""Retry policy around one logical agent run."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from wv_runner.runner.backend.base import AgentSupervisor
from wv_runner.runner.backend.command import build_agent_command
from wv_runner.runner.errors import ExecutableNotFoundError, MarkerMissingError, RunnerError
from wv_runner.runner.extractor import extract
from wv_runner.runner.models import OutcomeRecord
from wv_runner.runner.workflows import Workflow, augment_for_marker_retry

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3_600


@dataclass(slots=True)
class RunAttempt:
    """Bookkeeping for one process launch within a logical run."""

    number: int
    continue_session: bool
    continuation: bool
    failure: str | None = None


@dataclass(slots=True)
class _RunState:
    started_at: float
    instructions: str
    continue_session: bool = False
    continuation: bool = False
    last_error: RunnerError | None = None
    attempts: list[RunAttempt] = field(default_factory=list)


class RetryController:
    """Turn one logical run into an ``OutcomeRecord``, retrying recoverable failures.

    Timeouts and closed streams back off and retry with ``--continue``. A
    missing result marker switches to continuation mode: the next attempt
    resumes the session with instructions that ask the agent to finish and
    report. Malformed result objects and a missing executable are final.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        supervisor: AgentSupervisor,
        workflow: Workflow,
        executable: str,
        max_attempts: int = 3,
        retry_wait_seconds: float = 30,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.supervisor = supervisor
        self.workflow = workflow
        self.executable = executable
        self.max_attempts = max_attempts
        self.retry_wait_seconds = retry_wait_seconds
        self._sleep = sleep
        self._clock = clock
        self.attempts: list[RunAttempt] = []

    def run(self) -> OutcomeRecord:
        """Run until a record is extracted or attempts are exhausted. Never raises."""

        state = _RunState(started_at=self._clock(), instructions=self.workflow.instructions)
        self.attempts = state.attempts

        for number in range(1, self.max_attempts + 1):
            attempt = RunAttempt(
                number=number,
                continue_session=state.continue_session,
                continuation=state.continuation,
            )
            state.attempts.append(attempt)
            logger.info(
                "Agent attempt %s/%s (workflow=%s, model=%s%s)",
                number,
                self.max_attempts,
                self.workflow.kind.value,
                self.workflow.model,
                ", continuation" if state.continuation else "",
            )

            record = self._attempt(state=state, attempt=attempt)
            if record is not None:
                return record

        return self._exhausted(state)

    def _attempt(self, *, state: _RunState, attempt: RunAttempt) -> OutcomeRecord | None:
        command = build_agent_command(
            executable=self.executable,
            instructions=state.instructions,
            model=self.workflow.model,
            accept_edits=self.workflow.accept_edits,
            continue_session=state.continue_session,
        )
        try:
            execution = self.supervisor.execute(command)
        except RunnerError as error:
            attempt.failure = str(error)
            if not error.recoverable:
                logger.error("Agent run failed: %s", error)
                return OutcomeRecord.error(
                    str(error),
                    task_worked=self._elapsed_hours(state),
                    fatal=isinstance(error, ExecutableNotFoundError),
                )
            state.last_error = error
            logger.warning("Attempt %s failed: %s", attempt.number, error)
            if attempt.number < self.max_attempts:
                logger.info("Waiting %ss before retrying", self.retry_wait_seconds)
                self._sleep(self.retry_wait_seconds)
            state.continue_session = True
            return None

        extraction = extract(execution.output_text, elapsed_hours=self._elapsed_hours(state))
        if extraction.record is not None:
            logger.info(
                "Agent finished with status=%s in %.2fh",
                extraction.record.status,
                extraction.record.hours.task_worked,
            )
            return extraction.record

        error = extraction.to_error()
        attempt.failure = str(error)
        if not isinstance(error, MarkerMissingError):
            logger.error("Agent result could not be parsed: %s", error)
            return OutcomeRecord.error(str(error), task_worked=self._elapsed_hours(state))

        state.last_error = error
        if execution.soft_timeout_fired:
            logger.warning("Agent stopped at the soft timeout without reporting a result")
        logger.warning(
            "Attempt %s ended without the result marker, continuing the session",
            attempt.number,
        )
        state.instructions = augment_for_marker_retry(self.workflow.instructions)
        state.continuation = True
        state.continue_session = True
        return None

    def _exhausted(self, state: _RunState) -> OutcomeRecord:
        reason = str(state.last_error) if state.last_error is not None else "Agent run failed"
        message = f"{reason} (retries exhausted after {self.max_attempts} attempts)"
        logger.error(message)
        return OutcomeRecord.error(message, task_worked=self._elapsed_hours(state))

    def _elapsed_hours(self, state: _RunState) -> float:
        return round((self._clock() - state.started_at) / SECONDS_PER_HOUR, 2)

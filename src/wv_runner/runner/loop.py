"""Top-level run loop: single runs, day-bounded loops, and the daily service mode."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from wv_runner.config import ScheduleSettings
from wv_runner.runner.errors import ConfigurationError
from wv_runner.runner.models import OutcomeRecord, OutcomeStatus, RunMode
from wv_runner.runner.scheduler import QuotaScheduler
from wv_runner.runner.waiting import WaitStrategy
from wv_runner.runner.workflows import Workflow, WorkflowKind

logger = logging.getLogger(__name__)

_SINGLE_RUN_MODES = frozenset({RunMode.ONCE, RunMode.ONCE_DRY, RunMode.REVIEW})


class AgentRunner(Protocol):
    """One logical run that always yields a record."""

    def run(self) -> OutcomeRecord:
        """Run the agent and return its outcome."""


RunnerFactory = Callable[[Workflow], AgentRunner]
WorkflowFactory = Callable[[WorkflowKind], Workflow]


class RunLoop:
    """Drive repeated agent runs according to the selected ``RunMode``.

    The loop only ever sees ``OutcomeRecord`` values; every failure below it
    has already been turned into an ``error`` record.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        runner_factory: RunnerFactory,
        workflow_factory: WorkflowFactory,
        task_workflow: WorkflowKind = WorkflowKind.MANUAL,
        schedule: ScheduleSettings | None = None,
        wait_strategy: WaitStrategy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.runner_factory = runner_factory
        self.workflow_factory = workflow_factory
        self.task_workflow = task_workflow
        self.schedule = schedule or ScheduleSettings()
        self.wait_strategy = wait_strategy or WaitStrategy(
            business_day_start_hour=self.schedule.business_day_start_hour,
            one_cycle_seconds=self.schedule.no_tasks_wait_seconds,
            sleep=sleep,
            now=now,
        )
        self._sleep = sleep
        self._now = now

    def execute(
        self,
        mode: RunMode | str,
        *,
        max_days: int | None = None,
    ) -> OutcomeRecord | list[OutcomeRecord]:
        """Run ``mode``. Single-run modes return one record, loops return the history."""

        run_mode = parse_mode(mode)
        workflow = self.workflow_factory(self._workflow_kind(run_mode))
        logger.info("Starting %s mode with %s workflow", run_mode.value, workflow.kind.value)

        if run_mode in _SINGLE_RUN_MODES:
            return self._run(workflow)
        if run_mode is RunMode.TODAY:
            return self._run_day(workflow, wait_for_tasks=False)
        if run_mode is RunMode.DAILY:
            return self._run_daily(workflow, max_days=max_days)
        if run_mode is RunMode.REVIEWS:
            return self._run_until(
                workflow,
                OutcomeStatus.NO_REVIEWS,
                OutcomeStatus.FAILURE,
                OutcomeStatus.ERROR,
            )
        return self._run_until(
            workflow,
            OutcomeStatus.NO_MORE_TASKS,
            OutcomeStatus.FAILURE,
            OutcomeStatus.ERROR,
        )

    def _workflow_kind(self, mode: RunMode) -> WorkflowKind:
        if mode is RunMode.ONCE_DRY:
            return WorkflowKind.DRY
        if mode is RunMode.REVIEW:
            return WorkflowKind.REVIEW
        if mode is RunMode.REVIEWS:
            return WorkflowKind.REVIEWS
        if mode is RunMode.STORY:
            return WorkflowKind.STORY
        return self.task_workflow

    def _run(self, workflow: Workflow) -> OutcomeRecord:
        record = self.runner_factory(workflow).run()
        logger.info(
            "Run finished: status=%s worked=%.2fh%s",
            record.status,
            record.hours.task_worked,
            f" message={record.message}" if record.message else "",
        )
        return record

    def _run_day(self, workflow: Workflow, *, wait_for_tasks: bool) -> list[OutcomeRecord]:
        history: list[OutcomeRecord] = []
        while True:
            record = self._run(workflow)
            history.append(record)
            if record.fatal:
                break

            if record.has_status(OutcomeStatus.NO_MORE_TASKS):
                if not wait_for_tasks or not self._wait_for_new_tasks():
                    logger.info("No more tasks available")
                    break
                continue

            decision = self._scheduler(history).decision()
            if not decision.should_continue:
                logger.info(
                    "Stopping for today: remaining=%.2fh reason=%s",
                    decision.remaining_hours,
                    decision.wait_reason.value,
                )
                break
            if self._is_end_of_day():
                logger.info("End of day reached, stopping")
                break
            logger.info("Remaining today: %.2fh", decision.remaining_hours)
            self._sleep(self.schedule.iteration_pause_seconds)

        logger.info("Day summary: %s", self._scheduler(history).summary())
        return history

    def _wait_for_new_tasks(self) -> bool:
        """Wait one cycle for new tasks unless the workday is over before or after it."""

        if self._is_end_of_workday():
            logger.info("Past end of workday, resuming on the next business day")
            return False
        self.wait_strategy.wait_one_cycle()
        if self._is_end_of_workday():
            logger.info("Now past end of workday, resuming on the next business day")
            return False
        return True

    def _run_daily(self, workflow: Workflow, *, max_days: int | None) -> list[OutcomeRecord]:
        records: list[OutcomeRecord] = []
        day = 0
        while max_days is None or day < max_days:
            day += 1
            if not self._scheduler().can_work_today():
                logger.info("Daily goal is 0, waiting until the next business day")
                self.wait_strategy.wait_until_next_business_day()
                continue

            logger.info("Starting work day %s", day)
            history = self._run_day(workflow, wait_for_tasks=True)
            records.extend(history)
            if history and history[-1].fatal:
                logger.error("Agent cannot be started, stopping the daily loop")
                break
            self._wait_after_day(history)
        return records

    def _scheduler(self, history: list[OutcomeRecord] | None = None) -> QuotaScheduler:
        return QuotaScheduler(history or (), daily_goal_override=self.schedule.daily_goal_hours)

    def _wait_after_day(self, history: list[OutcomeRecord]) -> None:
        scheduler = self._scheduler(history)
        ended_by_error = bool(history) and history[-1].is_error
        if ended_by_error and scheduler.remaining_hours() > 0:
            logger.warning("Day stopped on an error with quota left, retrying after one cycle")
            self.wait_strategy.wait_one_cycle()
            return
        self.wait_strategy.wait_until_next_business_day()

    def _run_until(self, workflow: Workflow, *stop_statuses: OutcomeStatus) -> list[OutcomeRecord]:
        history: list[OutcomeRecord] = []
        while True:
            record = self._run(workflow)
            history.append(record)
            if record.has_status(*stop_statuses):
                break
            self._sleep(self.schedule.iteration_pause_seconds)
        return history

    def _is_end_of_day(self) -> bool:
        return self._now().hour >= self.schedule.end_of_day_hour

    def _is_end_of_workday(self) -> bool:
        return self._now().hour >= self.schedule.end_of_workday_hour


def parse_mode(mode: RunMode | str) -> RunMode:
    try:
        return RunMode(mode)
    except ValueError as error:
        valid = ", ".join(item.value for item in RunMode)
        raise ConfigurationError(f"Invalid mode: {mode!r}. Expected one of: {valid}") from error

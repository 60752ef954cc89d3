"""CLI controller for supervised agent runs."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import partial
from pathlib import Path

from wv_runner.config import Settings
from wv_runner.logging_setup import configure_logging
from wv_runner.runner.approvals import ApprovalCollector
from wv_runner.runner.backend import ProcessSupervisor, resolve_agent_executable
from wv_runner.runner.errors import ExecutableNotFoundError
from wv_runner.runner.extractor import extract
from wv_runner.runner.loop import RunLoop, parse_mode
from wv_runner.runner.models import OutcomeRecord, RunMode
from wv_runner.runner.retry import RetryController
from wv_runner.runner.scheduler import QuotaScheduler
from wv_runner.runner.stream import StreamLogger
from wv_runner.runner.workflows import Workflow, WorkflowKind, build_workflow

logger = logging.getLogger(__name__)

MODE_DESCRIPTIONS: dict[RunMode, str] = {
    RunMode.ONCE: "Run the next task once.",
    RunMode.ONCE_DRY: "Load and show the next task without changing anything.",
    RunMode.REVIEW: "Address review feedback on the current branch once.",
    RunMode.TODAY: "Work on tasks until today's hour quota is used up.",
    RunMode.DAILY: "Run every business day, waiting between days.",
    RunMode.REVIEWS: "Address review feedback on pull requests until none are left.",
    RunMode.STORY: "Work through the tasks of one story.",
}


@dataclass(slots=True)
class RunCommand:
    """Input for the run CLI command."""

    mode: str
    workflow: WorkflowKind = WorkflowKind.MANUAL
    story_id: int | None = None
    max_days: int | None = None
    verbose: bool = False


@dataclass(slots=True)
class ExtractCommand:
    """Input for the extract CLI command."""

    path: Path
    elapsed_hours: float = 0.0


class RunnerCliController:
    """Wire settings, supervisor, retry controller and run loop for CLI commands."""

    def run(self, command: RunCommand) -> list[str]:
        """Run the selected mode to completion and report the records."""

        settings = Settings.from_env()
        settings.validate()
        configure_logging(settings.logging, verbose=command.verbose)

        mode = parse_mode(command.mode)
        executable = resolve_agent_executable(override=settings.supervision.claude_path)
        workflow_factory = partial(
            build_workflow,
            project_file=settings.project_file,
            story_id=command.story_id,
        )
        approvals = ApprovalCollector()
        loop = RunLoop(
            runner_factory=lambda workflow: self._build_runner(
                settings=settings,
                workflow=workflow,
                executable=executable,
                approvals=approvals,
                verbose=command.verbose,
            ),
            workflow_factory=workflow_factory,
            task_workflow=command.workflow,
            schedule=settings.schedule,
        )

        logger.info("wv-runner starting: mode=%s executable=%s", mode.value, executable)
        try:
            result = loop.execute(mode, max_days=command.max_days)
        finally:
            approval_lines = approvals.summary_lines()
            approvals.clear()

        records = [result] if isinstance(result, OutcomeRecord) else result
        fatal = next((record for record in records if record.fatal), None)
        if fatal is not None:
            raise ExecutableNotFoundError(fatal.message or "Agent executable could not be started")

        lines = _format_result(result)
        lines.extend(approval_lines)
        return lines

    def extract(self, command: ExtractCommand) -> list[str]:
        """Parse the result marker out of a saved transcript."""

        raw_text = command.path.read_text("utf-8", errors="replace")
        extraction = extract(raw_text, elapsed_hours=command.elapsed_hours)
        if extraction.record is None:
            raise extraction.to_error()
        return [json.dumps(extraction.record.to_dict(), ensure_ascii=False, indent=2)]

    def modes(self) -> list[str]:
        return [f"{mode.value:10s} {MODE_DESCRIPTIONS[mode]}" for mode in RunMode]

    @staticmethod
    def _build_runner(
        *,
        settings: Settings,
        workflow: Workflow,
        executable: str,
        approvals: ApprovalCollector,
        verbose: bool,
    ) -> RetryController:
        supervision = settings.supervision
        supervisor = ProcessSupervisor(
            hard_timeout_seconds=supervision.execution_timeout_seconds,
            soft_timeout_seconds=supervision.soft_timeout_seconds,
            kill_grace_seconds=supervision.kill_grace_seconds,
            completion_grace_seconds=supervision.completion_grace_seconds,
            stream_logger=StreamLogger(verbose=verbose),
            approvals=approvals,
        )
        return RetryController(
            supervisor=supervisor,
            workflow=workflow,
            executable=executable,
            max_attempts=supervision.max_attempts,
            retry_wait_seconds=supervision.retry_wait_seconds,
        )


def _format_result(result: OutcomeRecord | list[OutcomeRecord]) -> list[str]:
    if isinstance(result, OutcomeRecord):
        return [_format_record(result)]

    lines = [f"Runs: {len(result)}"]
    lines.extend(f"  {index}. {_format_record(record)}" for index, record in enumerate(result, 1))
    summary = QuotaScheduler(result).summary()
    lines.append(
        f"Completed: {summary['tasks_completed']}  failed: {summary['tasks_failed']}  "
        f"worked: {summary['total_worked']:.2f}h",
    )
    return lines


def _format_record(record: OutcomeRecord) -> str:
    line = f"status={record.status} worked={record.hours.task_worked:.2f}h"
    if record.hours.per_day is not None:
        line += f" per_day={record.hours.per_day:g}"
    if record.hours.task_estimated is not None:
        line += f" estimated={record.hours.task_estimated:g}h"
    if record.message:
        line += f" message={record.message}"
    return line

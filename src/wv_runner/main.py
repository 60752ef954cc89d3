"""CLI entrypoint for wv-runner."""

from pathlib import Path

import rich_click as click

from wv_runner import __version__
from wv_runner.runner.controllers import ExtractCommand, RunCommand, RunnerCliController
from wv_runner.runner.errors import RunnerError
from wv_runner.runner.workflows import WorkflowKind

click.rich_click.USE_MARKDOWN = True
RUNNER_CONTROLLER = RunnerCliController()

_TASK_WORKFLOWS = (WorkflowKind.MANUAL.value, WorkflowKind.AUTO_SQUASH.value)


@click.group()
@click.version_option(version=__version__, prog_name="wv-runner")
def wv_runner() -> None:
    """Supervise the Claude CLI agent working through WorkVector tasks."""


@wv_runner.command("run")
@click.argument("mode", metavar="MODE")
@click.option(
    "--workflow",
    type=click.Choice(_TASK_WORKFLOWS),
    default=WorkflowKind.MANUAL.value,
    show_default=True,
    help="Task workflow for `once`, `today` and `daily` modes.",
)
@click.option(
    "--story-id",
    type=click.IntRange(min=1),
    default=None,
    help="Story to work through in `story` mode.",
)
@click.option(
    "--max-days",
    type=click.IntRange(min=1),
    default=None,
    help="Stop `daily` mode after this many work days.",
)
@click.option("--verbose", is_flag=True, default=False, help="Show the full agent stream.")
def run(
    mode: str,
    workflow: str,
    story_id: int | None,
    max_days: int | None,
    verbose: bool,
) -> None:
    """Run the agent in MODE (see `wv-runner modes`)."""

    try:
        lines = RUNNER_CONTROLLER.run(
            RunCommand(
                mode=mode,
                workflow=WorkflowKind(workflow),
                story_id=story_id,
                max_days=max_days,
                verbose=verbose,
            ),
        )
    except (RunnerError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@wv_runner.command("extract")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--elapsed-hours",
    type=click.FloatRange(min=0),
    default=0.0,
    show_default=True,
    help="Value stored as hours.task_worked.",
)
def extract(path: Path, elapsed_hours: float) -> None:
    """Parse the WVRUNNER_RESULT object from a saved agent transcript."""

    try:
        lines = RUNNER_CONTROLLER.extract(ExtractCommand(path=path, elapsed_hours=elapsed_hours))
    except RunnerError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@wv_runner.command("modes")
def modes() -> None:
    """List run modes."""

    _emit_lines(RUNNER_CONTROLLER.modes())


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    wv_runner()

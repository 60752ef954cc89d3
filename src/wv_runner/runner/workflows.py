"""Workflow variants: instruction payload, model selector, and edit permission.

Variants differ only in the text they send and the model they ask for. All
of them run through the same retry controller and supervisor.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from wv_runner.runner.errors import ConfigurationError
from wv_runner.runner.models import RESULT_MARKER

_PROJECT_ID_PATTERN = re.compile(r"project_relative_id=(\d+)")

RESULT_FORMAT_SECTION = f"""\
At the END, output JSON in this exact format - on a new line in a code block:

```json
{RESULT_MARKER}{{"status": "success", "hours": {{"per_day": X, "task_estimated": Y}}}}
```

CRITICAL FORMATTING:
1. The JSON MUST be inside triple backticks (```json ... ```) on a separate line
2. Output VALID JSON with proper string escaping. Any quotes in string values must be escaped as \\"
3. NO other text after the closing triple backticks

How to get the data:
1. Read workvector://user -> use "hour_goal" value for per_day
2. From the task you're working on -> parse "duration_best" (e.g. "1 hodina" -> 1.0) for task_estimated
"""


class WorkflowKind(str, Enum):
    """Supported instruction variants."""

    MANUAL = "manual"
    AUTO_SQUASH = "auto-squash"
    DRY = "dry"
    REVIEW = "review"
    REVIEWS = "reviews"
    STORY = "story"


@dataclass(frozen=True, slots=True)
class Workflow:
    """Opaque instruction payload plus the agent options it needs."""

    kind: WorkflowKind
    instructions: str
    model: str
    accept_edits: bool = True


def build_workflow(
    kind: WorkflowKind,
    *,
    project_file: Path = Path("CLAUDE.md"),
    story_id: int | None = None,
) -> Workflow:
    """Render the instructions for one workflow kind.

    Raises ``ConfigurationError`` when the project id or story id it needs is
    missing, so that nothing is launched with incomplete instructions.
    """

    if kind is WorkflowKind.MANUAL:
        project_id = _require_project_id(project_file)
        return Workflow(kind=kind, instructions=_manual_instructions(project_id), model="opus")
    if kind is WorkflowKind.AUTO_SQUASH:
        project_id = _require_project_id(project_file)
        return Workflow(
            kind=kind,
            instructions=_auto_squash_instructions(project_id),
            model="opusplan",
        )
    if kind is WorkflowKind.DRY:
        project_id = _require_project_id(project_file)
        return Workflow(
            kind=kind,
            instructions=_dry_instructions(project_id),
            model="haiku",
            accept_edits=False,
        )
    if kind is WorkflowKind.REVIEW:
        return Workflow(kind=kind, instructions=_review_instructions(), model="sonnet")
    if kind is WorkflowKind.REVIEWS:
        return Workflow(kind=kind, instructions=_reviews_instructions(), model="sonnet")
    if kind is WorkflowKind.STORY:
        if story_id is None:
            raise ConfigurationError("The story workflow requires a story id.")
        return Workflow(kind=kind, instructions=_story_instructions(story_id), model="opusplan")
    raise ConfigurationError(f"Unsupported workflow kind: {kind!r}")


def augment_for_marker_retry(original_instructions: str) -> str:
    """Wrap instructions for a continuation attempt after the result marker went missing."""

    return f"""\
Your previous session ended without the required {RESULT_MARKER.strip()} line.

Do NOT start over. First inspect what was already done (git status, git log,
open pull requests, task state in WorkVector). Complete any remaining steps of
the original instructions below, then output the result line exactly as
specified.

{RESULT_FORMAT_SECTION}
--- ORIGINAL INSTRUCTIONS ---
{original_instructions}
--- END OF ORIGINAL INSTRUCTIONS ---
"""


def read_project_relative_id(project_file: Path) -> int | None:
    """Read ``project_relative_id=<n>`` from the project's CLAUDE.md."""

    if not project_file.exists():
        return None
    match = _PROJECT_ID_PATTERN.search(project_file.read_text("utf-8"))
    if match is None:
        return None
    return int(match.group(1))


def _require_project_id(project_file: Path) -> int:
    project_id = read_project_relative_id(project_file)
    if project_id is None:
        raise ConfigurationError(f"project_relative_id not found in {project_file}")
    return project_id


def _next_task_url(project_id: int) -> str:
    return f"workvector://pieces/jchsoft/@next?project_relative_id={project_id}"


def _manual_instructions(project_id: int) -> str:
    return f"""\
[TASK]
Work on next task from: {_next_task_url(project_id)}
- If no tasks are available: STOP and output status "no_more_tasks"

WORKFLOW:
1. Start from an up-to-date main branch and create a new task branch
2. Complete the task, with tests, and keep all tests passing
3. Push the branch and open a pull request linked to the task

{RESULT_FORMAT_SECTION}
Set status: "success" if completed, "no_more_tasks" if nothing to do, "failure" otherwise.
"""


def _auto_squash_instructions(project_id: int) -> str:
    return f"""\
[TASK]
Work on next task from: {_next_task_url(project_id)}
- If no tasks are available: STOP and output status "no_more_tasks"

WORKFLOW:
1. Implement the task on a new branch with passing tests and open a pull request
2. Run bin/ci if it exists; when it passes, squash-merge the pull request
3. If CI fails after one retry, leave the pull request open

{RESULT_FORMAT_SECTION}
Set status: "success", "no_more_tasks", "ci_failed" (PR stays open), or "failure".
"""


def _dry_instructions(project_id: int) -> str:
    return f"""\
Load and display information about the next task from: {_next_task_url(project_id)}

DRY RUN: do not create branches, modify code, or open pull requests.
Include "task_info" with name, id, description, status and priority in the result object.

{RESULT_FORMAT_SECTION}
Set status: "success" if the task was loaded.
"""


def _review_instructions() -> str:
    return f"""\
[TASK]
Address unresolved review feedback on the pull request of the current branch.
Fix the issues, keep all tests passing, commit and push.

{RESULT_FORMAT_SECTION}
Use task_estimated 0.5. Set status: "success", "no_reviews", or "failure".
"""


def _reviews_instructions() -> str:
    return f"""\
[TASK]
Find the NEXT pull request with an unaddressed review from the project lead.
Check out its branch, fix the review feedback, keep tests passing, and push.
This runs repeatedly until no reviews are left.

{RESULT_FORMAT_SECTION}
Use task_estimated 0.5. Set status: "success", "no_reviews" when none are left, or "failure".
"""


def _story_instructions(story_id: int) -> str:
    return f"""\
[TASK]
Work on the next incomplete task of story: workvector://pieces/jchsoft/{story_id}
- If no incomplete tasks are left: STOP and output status "no_more_tasks"

WORKFLOW:
1. Implement the task on a new branch with passing tests
2. Open a pull request linked to the task

{RESULT_FORMAT_SECTION}
Add "story_id": {story_id} and "task_id" to the result object.
Set status: "success", "no_more_tasks", or "failure".
"""

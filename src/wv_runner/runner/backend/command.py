"""Agent executable lookup and argv construction."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path

from wv_runner.runner.backend.base import AgentCommand
from wv_runner.runner.errors import ExecutableNotFoundError

logger = logging.getLogger(__name__)

CLAUDE_PATH_ENV = "CLAUDE_PATH"
DEFAULT_SEARCH_PATHS: tuple[str, ...] = (
    "~/.claude/local/claude",
    "~/.local/bin/claude",
    "/usr/local/bin/claude",
    "/opt/homebrew/bin/claude",
)
OUTPUT_FORMAT_FLAG = "--output-format=stream-json"
ACCEPT_EDITS_FLAG = "--permission-mode=acceptEdits"
CONTINUE_FLAG = "--continue"


def resolve_agent_executable(
    *,
    override: str | None = None,
    search_paths: Sequence[str] | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """Find the ``claude`` executable: explicit override, env var, known paths, then PATH."""

    environ = os.environ if env is None else env
    explicit = override or environ.get(CLAUDE_PATH_ENV)
    if explicit:
        if not _is_executable_file(Path(explicit).expanduser()):
            raise ExecutableNotFoundError(
                f"Claude executable not found or not executable: {explicit}. "
                f"Check the {CLAUDE_PATH_ENV} environment variable.",
            )
        logger.debug("Using agent executable from override: %s", explicit)
        return explicit

    for candidate in DEFAULT_SEARCH_PATHS if search_paths is None else search_paths:
        expanded = Path(candidate).expanduser()
        if _is_executable_file(expanded):
            logger.debug("Found agent executable at %s", expanded)
            return str(expanded)
        logger.debug("Not found or not executable: %s", expanded)

    found = shutil.which("claude", path=environ.get("PATH"))
    if found:
        logger.debug("Found agent executable on PATH: %s", found)
        return found

    raise ExecutableNotFoundError(
        f"Claude executable not found. Set {CLAUDE_PATH_ENV} environment variable.",
    )


def build_agent_command(
    *,
    executable: str,
    instructions: str,
    model: str,
    accept_edits: bool = True,
    continue_session: bool = False,
) -> AgentCommand:
    """Render argv for one attempt. ``--continue`` goes right after the executable."""

    argv = [executable]
    if continue_session:
        argv.append(CONTINUE_FLAG)
    argv.extend(["-p", instructions, "--model", model, OUTPUT_FORMAT_FLAG, "--verbose"])
    if accept_edits:
        argv.append(ACCEPT_EDITS_FLAG)
    logger.debug(
        "Agent command (instructions: %d chars): %s",
        len(instructions),
        shlex.join("<instructions>" if arg is instructions else arg for arg in argv),
    )
    return AgentCommand(argv=tuple(argv), continue_session=continue_session)


def _is_executable_file(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)

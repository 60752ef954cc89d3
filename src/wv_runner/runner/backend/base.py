"""Backend request/result types for one supervised agent execution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class AgentCommand:
    """Fully rendered agent invocation."""

    argv: tuple[str, ...]
    continue_session: bool = False

    @property
    def executable(self) -> str:
        return self.argv[0]


@dataclass(slots=True)
class ExecutionResult:
    """Execution outcome from the supervisor."""

    output_text: str
    stderr_text: str
    exit_code: int | None
    soft_timeout_fired: bool = False
    completion_seen: bool = False


class AgentSupervisor(Protocol):
    """Protocol implemented by agent process supervisors."""

    def execute(self, command: AgentCommand) -> ExecutionResult:
        """Run one agent process to completion and return its output."""

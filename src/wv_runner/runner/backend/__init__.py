"""Agent process backend: command construction and supervision."""

from wv_runner.runner.backend.base import AgentCommand, AgentSupervisor, ExecutionResult
from wv_runner.runner.backend.command import build_agent_command, resolve_agent_executable
from wv_runner.runner.backend.supervisor import ProcessSupervisor, terminate_process_tree

__all__ = [
    "AgentCommand",
    "AgentSupervisor",
    "ExecutionResult",
    "ProcessSupervisor",
    "build_agent_command",
    "resolve_agent_executable",
    "terminate_process_tree",
]

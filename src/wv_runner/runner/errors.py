"""Error taxonomy for supervised agent runs."""

from __future__ import annotations


class RunnerError(RuntimeError):
    """Runner failure with retryability hint."""

    recoverable: bool = False

    def __init__(self, message: str, *, recoverable: bool | None = None) -> None:
        super().__init__(message)
        if recoverable is not None:
            self.recoverable = recoverable


class AgentTimeoutError(RunnerError):
    """The agent exceeded the hard execution ceiling and was killed."""

    recoverable = True


class StreamClosedError(RunnerError):
    """An output pipe failed while the run was not shutting down."""

    recoverable = True


class MarkerMissingError(RunnerError):
    """The agent finished without printing the result marker."""

    recoverable = True


class ResultParseError(RunnerError):
    """The result marker was found but the object after it is malformed."""


class ExecutableNotFoundError(RunnerError):
    """The agent executable could not be located or launched."""


class ConfigurationError(RunnerError):
    """Invalid mode, workflow, or project configuration detected before launch."""

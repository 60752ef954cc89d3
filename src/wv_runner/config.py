"""Runtime configuration for agent supervision and scheduling."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class SupervisionSettings:
    """Timeouts and retry policy for one logical agent run."""

    claude_path: str | None = None
    execution_timeout_seconds: float = 3_600
    soft_timeout_seconds: float = 3_300
    kill_grace_seconds: float = 5
    completion_grace_seconds: float = 30
    max_attempts: int = 3
    retry_wait_seconds: float = 30


@dataclass(slots=True)
class ScheduleSettings:
    """Day-level scheduling knobs used by the run loop."""

    iteration_pause_seconds: float = 2
    end_of_day_hour: int = 23
    end_of_workday_hour: int = 18
    business_day_start_hour: int = 8
    no_tasks_wait_seconds: float = 3_600
    daily_goal_hours: float | None = None


@dataclass(slots=True)
class LoggingSettings:
    """File logging destination and level."""

    log_dir: Path = Path("log")
    level: str = "DEBUG"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    project_file: Path = Path("CLAUDE.md")
    supervision: SupervisionSettings = field(default_factory=SupervisionSettings)
    schedule: ScheduleSettings = field(default_factory=ScheduleSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults matching the agent's one-hour budget."""

        return cls(
            project_file=Path(os.getenv("WV_RUNNER_PROJECT_FILE", "CLAUDE.md")),
            supervision=SupervisionSettings(
                claude_path=os.getenv("CLAUDE_PATH") or None,
                execution_timeout_seconds=_env_float(
                    "WV_RUNNER_EXECUTION_TIMEOUT_SECONDS",
                    3_600,
                ),
                soft_timeout_seconds=_env_float("WV_RUNNER_SOFT_TIMEOUT_SECONDS", 3_300),
                kill_grace_seconds=_env_float("WV_RUNNER_KILL_GRACE_SECONDS", 5),
                completion_grace_seconds=_env_float(
                    "WV_RUNNER_COMPLETION_GRACE_SECONDS",
                    30,
                ),
                max_attempts=_env_int("WV_RUNNER_MAX_ATTEMPTS", 3),
                retry_wait_seconds=_env_float("WV_RUNNER_RETRY_WAIT_SECONDS", 30),
            ),
            schedule=ScheduleSettings(
                iteration_pause_seconds=_env_float("WV_RUNNER_ITERATION_PAUSE_SECONDS", 2),
                end_of_day_hour=_env_int("WV_RUNNER_END_OF_DAY_HOUR", 23),
                end_of_workday_hour=_env_int("WV_RUNNER_END_OF_WORKDAY_HOUR", 18),
                business_day_start_hour=_env_int("WV_RUNNER_BUSINESS_DAY_START_HOUR", 8),
                no_tasks_wait_seconds=_env_float("WV_RUNNER_NO_TASKS_WAIT_SECONDS", 3_600),
                daily_goal_hours=_env_optional_float("WV_RUNNER_DAILY_GOAL_HOURS"),
            ),
            logging=LoggingSettings(
                log_dir=Path(os.getenv("WV_RUNNER_LOG_DIR", "log")),
                level=os.getenv("WV_RUNNER_LOG_LEVEL", "DEBUG").strip().upper(),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if timeouts, attempts, or hours are out of range."""

        supervision = self.supervision
        if supervision.execution_timeout_seconds <= 0:
            raise ValueError("WV_RUNNER_EXECUTION_TIMEOUT_SECONDS must be > 0.")
        if not 0 < supervision.soft_timeout_seconds < supervision.execution_timeout_seconds:
            raise ValueError(
                "WV_RUNNER_SOFT_TIMEOUT_SECONDS must be > 0 and below "
                "WV_RUNNER_EXECUTION_TIMEOUT_SECONDS.",
            )
        if supervision.kill_grace_seconds < 0:
            raise ValueError("WV_RUNNER_KILL_GRACE_SECONDS must be >= 0.")
        if supervision.completion_grace_seconds < 0:
            raise ValueError("WV_RUNNER_COMPLETION_GRACE_SECONDS must be >= 0.")
        if supervision.max_attempts < 1:
            raise ValueError("WV_RUNNER_MAX_ATTEMPTS must be >= 1.")
        if supervision.retry_wait_seconds < 0:
            raise ValueError("WV_RUNNER_RETRY_WAIT_SECONDS must be >= 0.")

        schedule = self.schedule
        for name, hour in (
            ("WV_RUNNER_END_OF_DAY_HOUR", schedule.end_of_day_hour),
            ("WV_RUNNER_END_OF_WORKDAY_HOUR", schedule.end_of_workday_hour),
            ("WV_RUNNER_BUSINESS_DAY_START_HOUR", schedule.business_day_start_hour),
        ):
            if not 0 <= hour <= 23:  # noqa: PLR2004
                raise ValueError(f"{name} must be an hour between 0 and 23, got {hour!r}.")
        if schedule.iteration_pause_seconds < 0:
            raise ValueError("WV_RUNNER_ITERATION_PAUSE_SECONDS must be >= 0.")
        if schedule.no_tasks_wait_seconds < 0:
            raise ValueError("WV_RUNNER_NO_TASKS_WAIT_SECONDS must be >= 0.")
        if schedule.daily_goal_hours is not None and schedule.daily_goal_hours < 0:
            raise ValueError("WV_RUNNER_DAILY_GOAL_HOURS must be >= 0.")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {raw!r}") from error


def _env_optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return _env_float(name, 0.0)

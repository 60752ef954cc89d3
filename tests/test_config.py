from __future__ import annotations

from pathlib import Path

import allure
import pytest

from wv_runner.config import ScheduleSettings, Settings, SupervisionSettings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Environment Settings"),
]


def test_from_env_defaults() -> None:
    settings = Settings.from_env()

    assert settings.supervision.claude_path is None
    assert settings.supervision.execution_timeout_seconds == 3_600
    assert settings.supervision.soft_timeout_seconds == 3_300
    assert settings.supervision.max_attempts == 3
    assert settings.supervision.retry_wait_seconds == 30
    assert settings.schedule.end_of_day_hour == 23
    assert settings.schedule.end_of_workday_hour == 18
    assert settings.schedule.business_day_start_hour == 8
    assert settings.logging.log_dir == Path("log")
    assert settings.project_file == Path("CLAUDE.md")
    settings.validate()


def test_from_env_reads_overrides(monkeypatch) -> None:
    monkeypatch.setenv("CLAUDE_PATH", "/opt/claude")
    monkeypatch.setenv("WV_RUNNER_EXECUTION_TIMEOUT_SECONDS", "120")
    monkeypatch.setenv("WV_RUNNER_SOFT_TIMEOUT_SECONDS", "90")
    monkeypatch.setenv("WV_RUNNER_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("WV_RUNNER_LOG_LEVEL", " info ")
    monkeypatch.setenv("WV_RUNNER_PROJECT_FILE", "docs/CLAUDE.md")

    settings = Settings.from_env()

    assert settings.supervision.claude_path == "/opt/claude"
    assert settings.supervision.execution_timeout_seconds == 120
    assert settings.supervision.soft_timeout_seconds == 90
    assert settings.supervision.max_attempts == 5
    assert settings.logging.level == "INFO"
    assert settings.project_file == Path("docs/CLAUDE.md")


def test_from_env_rejects_non_numeric_values(monkeypatch) -> None:
    monkeypatch.setenv("WV_RUNNER_MAX_ATTEMPTS", "three")

    with pytest.raises(ValueError, match="WV_RUNNER_MAX_ATTEMPTS"):
        Settings.from_env()


def test_validate_requires_soft_timeout_below_hard_timeout() -> None:
    settings = Settings(
        supervision=SupervisionSettings(execution_timeout_seconds=60, soft_timeout_seconds=60),
    )

    with pytest.raises(ValueError, match="SOFT_TIMEOUT"):
        settings.validate()


def test_validate_requires_at_least_one_attempt() -> None:
    settings = Settings(supervision=SupervisionSettings(max_attempts=0))

    with pytest.raises(ValueError, match="MAX_ATTEMPTS"):
        settings.validate()


def test_validate_rejects_out_of_range_hours() -> None:
    settings = Settings(schedule=ScheduleSettings(end_of_day_hour=24))

    with pytest.raises(ValueError, match="END_OF_DAY_HOUR"):
        settings.validate()


def test_daily_goal_is_unset_unless_configured(monkeypatch) -> None:
    assert Settings.from_env().schedule.daily_goal_hours is None

    monkeypatch.setenv("WV_RUNNER_DAILY_GOAL_HOURS", "6.5")

    assert Settings.from_env().schedule.daily_goal_hours == 6.5


def test_validate_rejects_negative_daily_goal() -> None:
    settings = Settings(schedule=ScheduleSettings(daily_goal_hours=-1))

    with pytest.raises(ValueError, match="DAILY_GOAL_HOURS"):
        settings.validate()

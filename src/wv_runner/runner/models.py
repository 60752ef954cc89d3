"""Domain models for agent run outcomes and scheduling decisions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

RESULT_MARKER = "WVRUNNER_RESULT: "

_RESERVED_KEYS = frozenset({"status", "hours", "message"})


class OutcomeStatus(str, Enum):
    """Status values the runner inspects. Agents may report others."""

    SUCCESS = "success"
    ERROR = "error"
    FAILURE = "failure"
    NO_MORE_TASKS = "no_more_tasks"
    NO_REVIEWS = "no_reviews"
    CI_FAILED = "ci_failed"


class WaitReason(str, Enum):
    """Why the scheduler would not start another run today."""

    NONE = "none"
    ZERO_QUOTA = "zero_quota"
    QUOTA_EXCEEDED = "quota_exceeded"


class RunMode(str, Enum):
    """Top-level run loop modes."""

    ONCE = "once"
    ONCE_DRY = "once_dry"
    REVIEW = "review"
    TODAY = "today"
    DAILY = "daily"
    REVIEWS = "reviews"
    STORY = "story"


@dataclass(frozen=True, slots=True)
class HoursRecord:
    """Hour accounting reported by the agent plus the measured run duration."""

    per_day: float | None = None
    task_estimated: float | None = None
    task_worked: float = 0.0
    already_worked: float | None = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        if self.per_day is not None:
            payload["per_day"] = self.per_day
        if self.task_estimated is not None:
            payload["task_estimated"] = self.task_estimated
        if self.already_worked is not None:
            payload["already_worked"] = self.already_worked
        payload["task_worked"] = self.task_worked
        return payload


@dataclass(frozen=True, slots=True)
class OutcomeRecord:
    """Parsed result of one logical agent run. Immutable once created."""

    status: str
    hours: HoursRecord = field(default_factory=HoursRecord)
    message: str | None = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    # Set when the agent cannot be launched at all; loops must not schedule further runs.
    fatal: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, task_worked: float) -> OutcomeRecord:
        """Build a record from the agent's JSON object, forcing the measured duration."""

        raw_hours = payload.get("hours")
        hours_payload: Mapping[str, Any] = raw_hours if isinstance(raw_hours, Mapping) else {}
        hours = HoursRecord(
            per_day=_as_number(hours_payload.get("per_day")),
            task_estimated=_as_number(hours_payload.get("task_estimated")),
            task_worked=task_worked,
            already_worked=_as_number(hours_payload.get("already_worked")),
            extra=MappingProxyType(
                {
                    key: value
                    for key, value in hours_payload.items()
                    if key not in {"per_day", "task_estimated", "task_worked", "already_worked"}
                },
            ),
        )
        message = payload.get("message")
        return cls(
            status=str(payload.get("status", "")),
            hours=hours,
            message=message if isinstance(message, str) else None,
            extra=MappingProxyType(
                {key: value for key, value in payload.items() if key not in _RESERVED_KEYS},
            ),
        )

    @classmethod
    def error(
        cls,
        message: str,
        *,
        task_worked: float = 0.0,
        fatal: bool = False,
    ) -> OutcomeRecord:
        return cls(
            status=OutcomeStatus.ERROR.value,
            hours=HoursRecord(task_worked=task_worked),
            message=message,
            fatal=fatal,
        )

    @property
    def is_error(self) -> bool:
        return self.status == OutcomeStatus.ERROR.value

    def has_status(self, *statuses: OutcomeStatus) -> bool:
        return any(self.status == status.value for status in statuses)

    def to_dict(self) -> dict[str, Any]:
        """Render back into the agent's JSON shape."""

        payload: dict[str, Any] = {"status": self.status}
        if self.message is not None:
            payload["message"] = self.message
        payload["hours"] = self.hours.to_dict()
        payload.update(self.extra)
        return payload


@dataclass(frozen=True, slots=True)
class ScheduleDecision:
    """Snapshot of the scheduler's view of one history."""

    should_continue: bool
    remaining_hours: float
    wait_reason: WaitReason


def _as_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None

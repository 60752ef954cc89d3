"""Daily hour-quota decisions over the history of one day's runs."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from wv_runner.runner.models import OutcomeRecord, OutcomeStatus, ScheduleDecision, WaitReason


class QuotaScheduler:
    """Decide whether another run fits into today's hour goal.

    The goal comes from ``daily_goal_override`` when given, otherwise from
    ``hours.per_day`` of the first record. An error anywhere in the history
    stops the day.
    """

    def __init__(
        self,
        records: Sequence[OutcomeRecord] = (),
        *,
        daily_goal_override: float | None = None,
    ) -> None:
        self.records = tuple(records)
        self.daily_goal_override = daily_goal_override

    def daily_goal(self) -> float:
        if self.daily_goal_override is not None:
            return float(self.daily_goal_override)
        if not self.records:
            return 0.0
        return self.records[0].hours.per_day or 0.0

    def total_worked(self) -> float:
        return sum(record.hours.task_worked for record in self.records)

    def remaining_hours(self) -> float:
        return round(self.daily_goal() - self.total_worked(), 2)

    def should_continue(self) -> bool:
        if any(record.is_error for record in self.records):
            return False
        if not self._has_goal_context():
            return True
        return self.remaining_hours() > 0

    def wait_reason(self) -> WaitReason:
        if self.daily_goal() <= 0:
            return WaitReason.ZERO_QUOTA
        if self.remaining_hours() <= 0:
            return WaitReason.QUOTA_EXCEEDED
        return WaitReason.NONE

    def decision(self) -> ScheduleDecision:
        return ScheduleDecision(
            should_continue=self.should_continue(),
            remaining_hours=self.remaining_hours(),
            wait_reason=self.wait_reason(),
        )

    def can_work_today(self) -> bool:
        if not self._has_goal_context():
            return True
        return self.daily_goal() > 0

    def summary(self) -> dict[str, Any]:
        """Reporting snapshot for the end of a day loop."""

        return {
            "should_continue": self.should_continue(),
            "remaining_hours": self.remaining_hours(),
            "tasks_completed": sum(
                1 for record in self.records if record.has_status(OutcomeStatus.SUCCESS)
            ),
            "tasks_failed": sum(
                1
                for record in self.records
                if record.has_status(OutcomeStatus.FAILURE, OutcomeStatus.ERROR)
            ),
            "daily_limit": self.daily_goal(),
            "total_worked": round(self.total_worked(), 2),
        }

    def _has_goal_context(self) -> bool:
        return bool(self.records) or self.daily_goal_override is not None

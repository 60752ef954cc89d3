"""Sleeping between runs: one cycle, or until the next business morning."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

_SATURDAY = 5


class WaitStrategy:
    """Blocking waits used by the daily run loop. Clock and sleep are injectable."""

    def __init__(
        self,
        *,
        business_day_start_hour: int = 8,
        one_cycle_seconds: float = 3_600,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.business_day_start_hour = business_day_start_hour
        self.one_cycle_seconds = one_cycle_seconds
        self._sleep = sleep
        self._now = now

    def wait_one_cycle(self) -> None:
        logger.info(
            "Waiting %.0f minutes before checking for work again",
            self.one_cycle_seconds / 60,
        )
        self._sleep(self.one_cycle_seconds)

    def next_business_day(self, now: datetime) -> datetime:
        """Start of the next weekday after ``now``, never today."""

        target = (now + timedelta(days=1)).replace(
            hour=self.business_day_start_hour,
            minute=0,
            second=0,
            microsecond=0,
        )
        while target.weekday() >= _SATURDAY:
            target += timedelta(days=1)
        return target

    def wait_until_next_business_day(self) -> None:
        target = self.next_business_day(self._now())
        seconds = (target - self._now()).total_seconds()
        if seconds <= 0:
            logger.debug("Next business day %s already reached", target)
            return
        logger.info(
            "Waiting until %s (%.1f hours)",
            target.strftime("%A %Y-%m-%d %H:%M"),
            seconds / 3_600,
        )
        self._sleep(seconds)

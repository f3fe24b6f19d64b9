"""
Scheduler: Triggers batch runs at a fixed interval.

Runs are aligned to multiples of the interval since midnight UTC
(e.g. :00 every hour for 60 minutes), so the trailing window samples
are evenly spaced.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from momentum_rebalancer.core.config import Config
from momentum_rebalancer.monitoring.logging import get_logger

logger = get_logger(__name__)


class Scheduler:
    """
    Interval scheduler for the ``loop`` command.

    A run that raises is logged and the loop keeps going; runs never overlap
    because the next one is only scheduled after the current one returns.
    """

    def __init__(self, config: Config, run_callback: Callable[[], Awaitable[object]]):
        """
        Initialize scheduler.

        Args:
            config: System configuration
            run_callback: Coroutine function performing one run
        """
        self.config = config
        self.run_callback = run_callback
        self.running = False
        self.runs_completed = 0

    def next_run_time(self, now: Optional[datetime] = None) -> datetime:
        """
        Next interval boundary strictly after ``now``.

        Returns:
            Next run datetime (UTC)
        """
        now = now or datetime.now(timezone.utc)
        interval = timedelta(minutes=self.config.scheduler.interval_minutes)
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        elapsed = now - midnight
        return midnight + (elapsed // interval + 1) * interval

    def seconds_until_next_run(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return max(0.0, (self.next_run_time(now) - now).total_seconds())

    async def run_forever(self, max_runs: Optional[int] = None):
        """
        Run immediately, then on every interval boundary until stopped.

        Args:
            max_runs: Stop after this many runs (None = never)
        """
        self.running = True
        logger.info("Scheduler started", interval_minutes=self.config.scheduler.interval_minutes)

        while self.running:
            try:
                await self.run_callback()
            except Exception:
                logger.exception("Run failed")
            self.runs_completed += 1

            if max_runs is not None and self.runs_completed >= max_runs:
                break

            sleep_sec = self.seconds_until_next_run()
            logger.info("Next run scheduled", at=self.next_run_time().isoformat(), in_seconds=round(sleep_sec))
            await asyncio.sleep(sleep_sec)

        self.running = False

    def stop(self):
        """Stop the loop after the current run."""
        logger.info("Scheduler stopping")
        self.running = False

"""
In-process daily scheduler for the reminder sweep.

One asyncio task per application process. Running several API replicas
means several schedulers; only one replica should have REMINDER_ENABLED set.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from webinar_api.core.clock import ensure_utc, utcnow
from webinar_api.core.logging import get_logger
from webinar_api.services.reminder_sweep import ReminderSweep

logger = get_logger(__name__)


def next_run_at(now: datetime, hour: int, tz_name: str) -> datetime:
    """Next occurrence of hour:00 local time strictly after now, as a local datetime."""
    tz = ZoneInfo(tz_name)
    local_now = ensure_utc(now).astimezone(tz)
    candidate = datetime(local_now.year, local_now.month, local_now.day, hour, tzinfo=tz)
    if candidate <= local_now:
        tomorrow = local_now.date() + timedelta(days=1)
        candidate = datetime(tomorrow.year, tomorrow.month, tomorrow.day, hour, tzinfo=tz)
    return candidate


class ReminderScheduler:
    def __init__(self, sweep: ReminderSweep, hour: int, tz_name: str):
        self.sweep = sweep
        self.hour = hour
        self.tz_name = tz_name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="reminder-scheduler")
        logger.info("reminder_scheduler_started", hour=self.hour, timezone=self.tz_name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("reminder_scheduler_stopped")

    async def _loop(self) -> None:
        while True:
            now = utcnow()
            run_at = next_run_at(now, self.hour, self.tz_name)
            delay = (run_at - now).total_seconds()
            logger.info("reminder_sweep_scheduled", run_at=run_at.isoformat(), delay_seconds=round(delay))
            await asyncio.sleep(delay)

            try:
                await self.sweep.run()
            except Exception as e:
                # keep the loop alive, next run is tomorrow
                logger.exception("reminder_sweep_crashed", error=str(e))

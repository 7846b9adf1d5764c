"""
Day-before reminder sweep.

Once a day, find confirmed registrations that have not been reminded and
whose webinar starts "tomorrow" in the operator's timezone, e-mail each
attendee, then flip reminder_sent.

The reminder_sent flag is the only guard: two sweeps overlapping in time could
both see reminder_sent=false and both send. The scheduler runs a single sweep
per process per day, and nothing else triggers one automatically.

A failure for one registration (bad address, SMTP hiccup, store error) is
logged and the sweep moves on to the next one.
"""

import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import structlog
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from webinar_api.clients.notifications import SmtpNotificationSender
from webinar_api.core.clock import ensure_utc, utcnow
from webinar_api.core.config import Settings
from webinar_api.core.logging import get_logger
from webinar_api.core.metrics import record_reminder, reminder_sweep_duration
from webinar_api.models import Registration
from webinar_api.notifications import templates
from webinar_api.store.registration_store import RegistrationStore

logger = get_logger(__name__)


class ReminderTarget(BaseModel):
    """What one reminder needs, copied off the ORM rows before any write."""

    registration_id: uuid.UUID
    email: str
    name: str
    webinar_title: str
    webinar_start: datetime
    meet_link: Optional[str] = None

    @classmethod
    def from_registration(cls, registration: Registration) -> "ReminderTarget":
        return cls(
            registration_id=registration.id,
            email=registration.user.email,
            name=registration.user.name,
            webinar_title=registration.webinar.title,
            webinar_start=registration.webinar.start_date,
            meet_link=registration.meet_link,
        )


class SweepReport(BaseModel):
    window_start: datetime
    window_end: datetime
    candidates: int = 0
    sent: int = 0
    failed: int = 0
    failed_registration_ids: list[uuid.UUID] = []


def reminder_window(now: datetime, tz_name: str) -> tuple[datetime, datetime]:
    """[tomorrow 00:00, day after tomorrow 00:00) local, returned in UTC."""
    tz = ZoneInfo(tz_name)
    local_today = ensure_utc(now).astimezone(tz).date()
    tomorrow = local_today + timedelta(days=1)
    start = datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=tz)
    day_after = tomorrow + timedelta(days=1)
    end = datetime(day_after.year, day_after.month, day_after.day, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


class ReminderSweep:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: SmtpNotificationSender,
        settings: Settings,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.settings = settings

    async def run(self, now: Optional[datetime] = None) -> SweepReport:
        now = ensure_utc(now or utcnow())
        window_start, window_end = reminder_window(now, self.settings.REMINDER_TIMEZONE)
        report = SweepReport(window_start=window_start, window_end=window_end)
        started = time.perf_counter()

        structlog.contextvars.bind_contextvars(job="reminder_sweep", run_id=uuid.uuid4().hex[:8])
        try:
            async with self.session_factory() as session:
                store = RegistrationStore(session)
                # a failed write rolls back and expires every loaded row
                targets = [
                    ReminderTarget.from_registration(registration)
                    for registration in await store.find_registrations_needing_reminder(window_start, window_end)
                ]
                report.candidates = len(targets)
                logger.info(
                    "reminder_sweep_started",
                    window_start=window_start.isoformat(),
                    window_end=window_end.isoformat(),
                    candidates=report.candidates,
                )

                for target in targets:
                    if await self._remind(store, target):
                        report.sent += 1
                    else:
                        report.failed += 1
                        report.failed_registration_ids.append(target.registration_id)
        finally:
            reminder_sweep_duration.observe(time.perf_counter() - started)
            logger.info(
                "reminder_sweep_finished",
                candidates=report.candidates,
                sent=report.sent,
                failed=report.failed,
            )
            structlog.contextvars.unbind_contextvars("job", "run_id")

        return report

    async def _remind(self, store: RegistrationStore, target: ReminderTarget) -> bool:
        try:
            subject, html = templates.webinar_reminder(
                user_name=target.name,
                webinar_title=target.webinar_title,
                webinar_date=target.webinar_start,
                meet_link=target.meet_link,
                tz_name=self.settings.REMINDER_TIMEZONE,
                company_name=self.settings.COMPANY_NAME,
            )
            await self.notifier.send(target.email, subject, html)
            await store.mark_reminder_sent(target.registration_id)
        except Exception as e:
            record_reminder(sent=False)
            logger.error(
                "reminder_failed",
                registration_id=str(target.registration_id),
                email=target.email,
                error=str(e),
            )
            return False

        record_reminder(sent=True)
        logger.info("reminder_sent", registration_id=str(target.registration_id), email=target.email)
        return True

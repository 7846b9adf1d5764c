"""
Run one reminder sweep and exit.

    python -m webinar_api.jobs.reminders
"""

import asyncio

from webinar_api.clients.notifications import SmtpNotificationSender
from webinar_api.core.config import get_settings
from webinar_api.core.logging import get_logger, setup_logging
from webinar_api.db.session import SessionLocal, engine
from webinar_api.services.reminder_sweep import ReminderSweep


async def main() -> int:
    setup_logging()
    logger = get_logger(__name__)
    settings = get_settings()

    sweep = ReminderSweep(SessionLocal, SmtpNotificationSender(settings), settings)
    try:
        report = await sweep.run()
    finally:
        await engine.dispose()

    logger.info("manual_reminder_sweep_done", **report.model_dump(mode="json", exclude={"failed_registration_ids"}))
    return 1 if report.failed else 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))

"""
Tests for the day-before reminder sweep and its scheduler.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import FakeNotifier, make_webinar
from webinar_api.core.config import get_settings
from webinar_api.jobs.scheduler import ReminderScheduler, next_run_at
from webinar_api.models import Registration, RegistrationStatus, User
from webinar_api.services.reminder_sweep import ReminderSweep, reminder_window

# 09:00 in Paris on Monday 9 March 2026 (CET, UTC+1)
NOW = datetime(2026, 3, 9, 8, 0, tzinfo=timezone.utc)


def test_reminder_window_is_tomorrow_in_local_time():
    start, end = reminder_window(NOW, "Europe/Paris")
    assert start == datetime(2026, 3, 9, 23, 0, tzinfo=timezone.utc)
    assert end == datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc)


def test_reminder_window_across_dst_change():
    """Clocks go forward on 29 March 2026: that local day is only 23 hours long."""
    start, end = reminder_window(datetime(2026, 3, 28, 10, 0, tzinfo=timezone.utc), "Europe/Paris")
    assert start == datetime(2026, 3, 28, 23, 0, tzinfo=timezone.utc)
    assert end == datetime(2026, 3, 29, 22, 0, tzinfo=timezone.utc)
    assert end - start == timedelta(hours=23)


def test_reminder_window_late_evening_utc():
    """23:30 UTC is already the next day in Paris."""
    start, _ = reminder_window(datetime(2026, 3, 9, 23, 30, tzinfo=timezone.utc), "Europe/Paris")
    assert start == datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc)


def test_next_run_at():
    assert next_run_at(NOW, 9, "Europe/Paris") == datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)
    assert next_run_at(NOW - timedelta(hours=1), 9, "Europe/Paris") == NOW


async def _attendee(session, email: str, webinar, status=RegistrationStatus.CONFIRMED, reminder_sent=False):
    user = User(email=email, name=email.split("@")[0].title())
    session.add(user)
    await session.flush()
    registration = Registration(
        user_id=user.id,
        webinar_id=webinar.id,
        status=status.value,
        meet_link="https://meet.google.com/abc-defg-hij",
        reminder_sent=reminder_sent,
    )
    session.add(registration)
    await session.commit()
    return registration


@pytest.mark.asyncio
async def test_sweep_sends_once_then_nothing(db_session, session_factory):
    tomorrow = await make_webinar(db_session, start=datetime(2026, 3, 10, 17, 0, tzinfo=timezone.utc), title="Tomorrow")
    later = await make_webinar(db_session, start=datetime(2026, 3, 12, 17, 0, tzinfo=timezone.utc), title="Later")

    await _attendee(db_session, "alice@example.com", tomorrow)
    await _attendee(db_session, "bob@example.com", tomorrow)
    await _attendee(db_session, "pending@example.com", tomorrow, status=RegistrationStatus.PENDING)
    await _attendee(db_session, "cancelled@example.com", tomorrow, status=RegistrationStatus.CANCELLED)
    await _attendee(db_session, "done@example.com", tomorrow, reminder_sent=True)
    await _attendee(db_session, "later@example.com", later)

    notifier = FakeNotifier()
    sweep = ReminderSweep(session_factory, notifier, get_settings())

    report = await sweep.run(now=NOW)
    assert (report.candidates, report.sent, report.failed) == (2, 2, 0)
    assert sorted(m["to"] for m in notifier.sent) == ["alice@example.com", "bob@example.com"]
    assert notifier.sent[0]["subject"] == "Reminder: Tomorrow - tomorrow!"
    assert "https://meet.google.com/abc-defg-hij" in notifier.sent[0]["html"]

    again = await sweep.run(now=NOW)
    assert (again.candidates, again.sent, again.failed) == (0, 0, 0)
    assert len(notifier.sent) == 2


@pytest.mark.asyncio
async def test_sweep_isolates_failures(db_session, session_factory):
    webinar = await make_webinar(db_session, start=datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))
    broken = await _attendee(db_session, "broken@example.com", webinar)
    await _attendee(db_session, "fine@example.com", webinar)

    notifier = FakeNotifier()
    notifier.fail_for.add("broken@example.com")
    report = await ReminderSweep(session_factory, notifier, get_settings()).run(now=NOW)

    assert (report.candidates, report.sent, report.failed) == (2, 1, 1)
    assert report.failed_registration_ids == [broken.id]

    async with session_factory() as session:
        flags = dict(
            (await session.execute(
                select(User.email, Registration.reminder_sent).join(Registration, Registration.user_id == User.id)
            )).all()
        )
    assert flags == {"broken@example.com": False, "fine@example.com": True}

    # The failed one is retried by the next run
    notifier.fail_for.clear()
    retry = await ReminderSweep(session_factory, notifier, get_settings()).run(now=NOW)
    assert (retry.candidates, retry.sent) == (1, 1)


@pytest.mark.asyncio
async def test_sweep_survives_storage_error(db_session, session_factory, monkeypatch):
    webinar = await make_webinar(db_session, start=datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))
    await _attendee(db_session, "first@example.com", webinar)
    await _attendee(db_session, "second@example.com", webinar)

    real_commit = AsyncSession.commit
    failures = []

    async def flaky_commit(self):
        if not failures:
            failures.append(True)
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        return await real_commit(self)

    monkeypatch.setattr(AsyncSession, "commit", flaky_commit)

    notifier = FakeNotifier()
    report = await ReminderSweep(session_factory, notifier, get_settings()).run(now=NOW)

    assert (report.candidates, report.sent, report.failed) == (2, 1, 1)
    assert len(report.failed_registration_ids) == 1
    assert sorted(m["to"] for m in notifier.sent) == ["first@example.com", "second@example.com"]

    monkeypatch.undo()
    async with session_factory() as session:
        flags = (await session.execute(select(Registration.reminder_sent))).scalars().all()
    assert sorted(flags) == [False, True]


@pytest.mark.asyncio
async def test_scheduler_start_stop(session_factory):
    sweep = ReminderSweep(session_factory, FakeNotifier(), get_settings())
    scheduler = ReminderScheduler(sweep, hour=9, tz_name="Europe/Paris")

    scheduler.start()
    assert scheduler.running
    await scheduler.stop()
    assert not scheduler.running

"""
Tests for the registration store, invoice numbering and the error policies.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import InvalidRequestError

from conftest import make_webinar
from webinar_api.core.exceptions import ConflictError, InternalError
from webinar_api.core.policies import best_effort
from webinar_api.models import (
    Payment,
    PaymentStatus,
    RegistrationStatus,
    can_transition,
)
from webinar_api.services.invoice_numbering import (
    allocate_invoice_number,
    format_invoice_number,
    month_bounds,
)


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        ("pending", "confirmed", True),
        ("pending", "cancelled", True),
        ("confirmed", "confirmed", True),
        ("confirmed", "cancelled", True),
        ("confirmed", "pending", False),
        ("cancelled", "confirmed", False),
        ("cancelled", "cancelled", False),
    ],
)
def test_registration_transitions(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_format_invoice_number():
    assert format_invoice_number(2026, 3, 7) == "INV-202603-0007"
    assert format_invoice_number(2026, 12, 12345) == "INV-202612-12345"


def test_month_bounds_december():
    start, end = month_bounds(datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc))
    assert start == datetime(2026, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2027, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_upsert_user_normalizes_email(store):
    first = await store.upsert_user("  Alice@Example.COM ", "Alice")
    second = await store.upsert_user("alice@example.com", "Alice Martin", company="Acme")

    assert first.id == second.id
    assert second.email == "alice@example.com"
    assert second.name == "Alice Martin"
    assert (await store.get_user_by_email("ALICE@example.com")).company == "Acme"


@pytest.mark.asyncio
async def test_second_active_registration_is_conflict(store, db_session):
    webinar = await make_webinar(db_session)
    user = await store.upsert_user("alice@example.com", "Alice")
    await store.create_registration(user.id, webinar.id)

    with pytest.raises(ConflictError):
        await store.create_registration(user.id, webinar.id)


@pytest.mark.asyncio
async def test_registration_after_cancellation_allowed(store, db_session):
    webinar = await make_webinar(db_session)
    user = await store.upsert_user("alice@example.com", "Alice")
    first = await store.create_registration(user.id, webinar.id)
    await store.update_registration_status(first.id, RegistrationStatus.CANCELLED)

    second = await store.create_registration(user.id, webinar.id)
    assert second.id != first.id
    assert (await store.find_active_registration(user.id, webinar.id)).id == second.id


@pytest.mark.asyncio
async def test_capacity_counts_confirmed_only(store, db_session):
    webinar = await make_webinar(db_session, max_participants=1)
    alice = await store.upsert_user("alice@example.com", "Alice")
    bob = await store.upsert_user("bob@example.com", "Bob")

    pending = await store.create_registration(alice.id, webinar.id)
    assert not await store.is_webinar_full(webinar)

    confirmed = await store.create_registration(bob.id, webinar.id)
    await store.update_registration_status(confirmed.id, RegistrationStatus.CONFIRMED)
    assert await store.count_confirmed_registrations(webinar.id) == 1
    assert await store.is_webinar_full(webinar)
    assert pending.id != confirmed.id


@pytest.mark.asyncio
async def test_payment_lifecycle(store, db_session):
    webinar = await make_webinar(db_session, price=Decimal("20.00"))
    user = await store.upsert_user("alice@example.com", "Alice")
    registration = await store.create_registration(user.id, webinar.id)

    payment = await store.create_payment(registration.id, Decimal("20.00"), "EUR")
    await store.set_payment_checkout(payment.id, "chk_9")
    await store.link_payment(registration.id, payment.id)

    assert (await store.get_payment_by_checkout_id("chk_9")).id == payment.id
    assert (await store.get_payment_for_registration(registration.id)).id == payment.id

    await store.update_payment_status(payment.id, PaymentStatus.COMPLETED, transaction_id="tx_1")
    stored = await store.get_payment(payment.id)
    assert stored.status == "completed"
    assert stored.transaction_id == "tx_1"
    assert stored.payment_date is not None

    details = await store.get_registration_with_details(registration.id)
    assert details.payment.id == payment.id
    assert details.user.email == "alice@example.com"


@pytest.mark.asyncio
async def test_payment_never_loads_its_registration(store, db_session, session_factory):
    webinar = await make_webinar(db_session, price=Decimal("20.00"))
    user = await store.upsert_user("alice@example.com", "Alice")
    registration = await store.create_registration(user.id, webinar.id)
    payment = await store.create_payment(registration.id, Decimal("20.00"), "EUR")

    async with session_factory() as session:
        stored = await session.get(Payment, payment.id)
        assert stored.registration_id == registration.id
        with pytest.raises(InvalidRequestError):
            stored.registration


@pytest.mark.asyncio
async def test_allocate_invoice_number_counts_this_month(store, db_session):
    webinar = await make_webinar(db_session, price=Decimal("20.00"))
    now = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

    for index, paid_at in enumerate([
        datetime(2026, 2, 28, 23, 0, tzinfo=timezone.utc),  # previous month
        datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc),
        datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc),
    ]):
        user = await store.upsert_user(f"user{index}@example.com", f"User {index}")
        registration = await store.create_registration(user.id, webinar.id)
        db_session.add(Payment(
            registration_id=registration.id,
            amount=Decimal("20.00"),
            status=PaymentStatus.COMPLETED.value,
            payment_date=paid_at,
        ))
    await db_session.commit()

    assert await allocate_invoice_number(store, now=now) == "INV-202603-0003"


@pytest.mark.asyncio
async def test_duplicate_invoice_number_is_conflict(store, db_session):
    webinar = await make_webinar(db_session, price=Decimal("20.00"))
    payments = []
    for email in ("a@example.com", "b@example.com"):
        user = await store.upsert_user(email, "User")
        registration = await store.create_registration(user.id, webinar.id)
        payments.append(await store.create_payment(registration.id, Decimal("20.00"), "EUR"))

    await store.update_payment_invoice(payments[0].id, "INV-202603-0001")
    with pytest.raises(ConflictError):
        await store.update_payment_invoice(payments[1].id, "INV-202603-0001")


@pytest.mark.asyncio
async def test_best_effort_swallows_and_reports():
    async def boom():
        raise RuntimeError("calendar down")

    async def fine():
        return "ok"

    assert await best_effort("delete_meeting_event", boom, registration_id="r1") is False
    assert await best_effort("delete_meeting_event", fine) is True


def test_internal_error_is_500():
    assert InternalError().status_code == 500

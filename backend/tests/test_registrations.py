"""
Tests for the registration workflow through the HTTP surface.
"""

import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from conftest import make_webinar, registration_body, token_for
from webinar_api.models import Payment, Registration, User, WebinarStatus


async def _registration(session_factory, registration_id) -> Registration:
    async with session_factory() as session:
        result = await session.execute(select(Registration).where(Registration.id == uuid.UUID(str(registration_id))))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_register_free_webinar_confirms_immediately(
    client: AsyncClient, free_webinar, meetings, notifier, invoices, session_factory
):
    response = await client.post("/api/v1/registrations", json=registration_body(free_webinar.id))
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "confirmed"
    assert data["requires_payment"] is False
    assert data["checkout_url"] is None

    registration = await _registration(session_factory, data["registration_id"])
    assert registration.status == "confirmed"
    assert registration.meet_link == "https://meet.google.com/test-1"
    assert registration.calendar_event_id == "evt_1"
    assert registration.payment_id is None

    async with session_factory() as session:
        payments = await session.scalar(
            select(func.count()).select_from(Payment).where(Payment.registration_id == registration.id)
        )
    assert payments == 0

    # One calendar event with the attendee, one e-mail, no invoice for a free webinar
    assert meetings.created[0].attendee_emails == ["alice@example.com"]
    assert len(notifier.sent) == 1
    assert notifier.sent[0]["attachment"] is None
    assert "https://meet.google.com/test-1" in notifier.sent[0]["html"]
    assert invoices.rendered == []


@pytest.mark.asyncio
async def test_register_paid_webinar_returns_checkout(
    client: AsyncClient, paid_webinar, gateway, meetings, notifier, session_factory
):
    response = await client.post("/api/v1/registrations", json=registration_body(paid_webinar.id))
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["requires_payment"] is True
    assert data["checkout_url"] == "https://pay.test/chk_1"
    assert Decimal(str(data["amount"])) == Decimal("49.00")
    assert data["currency"] == "EUR"

    checkout = gateway.checkouts[0]
    assert checkout["reference"] == f"REG-{data['registration_id']}"
    assert checkout["return_url"] == "http://test/api/v1/payment/return"

    registration = await _registration(session_factory, data["registration_id"])
    assert registration.status == "pending"
    assert str(registration.payment_id) == data["payment_id"]

    async with session_factory() as session:
        payment = await session.get(Payment, registration.payment_id)
        assert payment.status == "pending"
        assert payment.checkout_id == "chk_1"

    # Nothing is provisioned until the payment is confirmed
    assert meetings.created == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_register_unknown_webinar(client: AsyncClient):
    response = await client.post(
        "/api/v1/registrations", json=registration_body("5b0c3f9e-8a57-4f1c-9f0e-3b2b8f8f4a10")
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_register_inactive_webinar(client: AsyncClient, db_session):
    webinar = await make_webinar(db_session, status=WebinarStatus.CANCELLED)
    response = await client.post("/api/v1/registrations", json=registration_body(webinar.id))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_register_full_webinar(client: AsyncClient, db_session, session_factory):
    webinar = await make_webinar(db_session, max_participants=1)

    first = await client.post("/api/v1/registrations", json=registration_body(webinar.id))
    assert first.status_code == 201

    second = await client.post(
        "/api/v1/registrations", json=registration_body(webinar.id, email="bob@example.com", name="Bob")
    )
    assert second.status_code == 409
    assert second.json()["error"] == "This webinar is full"

    # The rejected attempt wrote nothing
    async with session_factory() as session:
        users = (await session.execute(select(User.email))).scalars().all()
    assert users == ["alice@example.com"]


@pytest.mark.asyncio
async def test_register_twice_conflicts(client: AsyncClient, paid_webinar, gateway):
    first = await client.post("/api/v1/registrations", json=registration_body(paid_webinar.id))
    assert first.status_code == 201

    second = await client.post(
        "/api/v1/registrations", json=registration_body(paid_webinar.id, email="ALICE@example.com")
    )
    assert second.status_code == 409
    assert second.json()["error"] == "You are already registered for this webinar"
    assert len(gateway.checkouts) == 1


@pytest.mark.asyncio
async def test_register_missing_fields(client: AsyncClient, free_webinar):
    response = await client.post(
        "/api/v1/registrations", json={"webinar_id": str(free_webinar.id), "user": {"email": "a@b.io"}}
    )
    assert response.status_code == 422
    assert response.json()["fields"] == ["user.name"]


@pytest.mark.asyncio
async def test_register_gateway_failure_surfaces_502(client: AsyncClient, paid_webinar, gateway):
    gateway.fail_checkout = True
    response = await client.post("/api/v1/registrations", json=registration_body(paid_webinar.id))
    assert response.status_code == 502
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_cancel_confirmed_registration(
    client: AsyncClient, free_webinar, meetings, notifier, spy_best_effort, session_factory
):
    created = await client.post("/api/v1/registrations", json=registration_body(free_webinar.id))
    registration_id = created.json()["data"]["registration_id"]
    user = (await _registration(session_factory, registration_id)).user_id
    headers = {"Authorization": f"Bearer {token_for(User(id=user, email='alice@example.com'))}"}

    response = await client.delete(f"/api/v1/registrations/{registration_id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "cancelled"

    assert meetings.deleted == ["evt_1"]
    assert notifier.sent[-1]["subject"] == "Cancellation - Free Intro Session"
    assert spy_best_effort.calls == [("delete_meeting_event", True), ("send_cancellation_email", True)]


@pytest.mark.asyncio
async def test_cancel_survives_calendar_failure(
    client: AsyncClient, free_webinar, meetings, notifier, spy_best_effort, session_factory
):
    """A failing calendar delete is logged by best_effort; the cancellation still succeeds."""
    created = await client.post("/api/v1/registrations", json=registration_body(free_webinar.id))
    registration_id = created.json()["data"]["registration_id"]
    user_id = (await _registration(session_factory, registration_id)).user_id
    headers = {"Authorization": f"Bearer {token_for(User(id=user_id, email='alice@example.com'))}"}

    meetings.fail_delete = True
    response = await client.delete(f"/api/v1/registrations/{registration_id}", headers=headers)

    assert response.status_code == 200
    assert ("delete_meeting_event", False) in spy_best_effort.calls
    assert (await _registration(session_factory, registration_id)).status == "cancelled"


@pytest.mark.asyncio
async def test_cancel_twice_is_invalid_state(client: AsyncClient, paid_webinar, session_factory):
    created = await client.post("/api/v1/registrations", json=registration_body(paid_webinar.id))
    registration_id = created.json()["data"]["registration_id"]
    user_id = (await _registration(session_factory, registration_id)).user_id
    headers = {"Authorization": f"Bearer {token_for(User(id=user_id, email='alice@example.com'))}"}

    first = await client.delete(f"/api/v1/registrations/{registration_id}", headers=headers)
    assert first.status_code == 200

    second = await client.delete(f"/api/v1/registrations/{registration_id}", headers=headers)
    assert second.status_code == 400
    assert second.json()["error"] == "This registration is already cancelled"


@pytest.mark.asyncio
async def test_cancel_pending_skips_calendar(
    client: AsyncClient, paid_webinar, meetings, spy_best_effort, session_factory
):
    created = await client.post("/api/v1/registrations", json=registration_body(paid_webinar.id))
    registration_id = created.json()["data"]["registration_id"]
    user_id = (await _registration(session_factory, registration_id)).user_id
    headers = {"Authorization": f"Bearer {token_for(User(id=user_id, email='alice@example.com'))}"}

    response = await client.delete(f"/api/v1/registrations/{registration_id}", headers=headers)
    assert response.status_code == 200
    assert meetings.deleted == []
    assert spy_best_effort.operations() == ["send_cancellation_email"]


@pytest.mark.asyncio
async def test_cancel_someone_elses_registration(client: AsyncClient, free_webinar, auth_headers):
    created = await client.post(
        "/api/v1/registrations", json=registration_body(free_webinar.id, email="bob@example.com", name="Bob")
    )
    registration_id = created.json()["data"]["registration_id"]

    response = await client.delete(f"/api/v1/registrations/{registration_id}", headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_cancel_requires_token(client: AsyncClient, free_webinar):
    created = await client.post("/api/v1/registrations", json=registration_body(free_webinar.id))
    registration_id = created.json()["data"]["registration_id"]

    response = await client.delete(f"/api/v1/registrations/{registration_id}")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_register_again_after_cancellation(client: AsyncClient, paid_webinar, gateway, session_factory):
    created = await client.post("/api/v1/registrations", json=registration_body(paid_webinar.id))
    registration_id = created.json()["data"]["registration_id"]
    user_id = (await _registration(session_factory, registration_id)).user_id
    headers = {"Authorization": f"Bearer {token_for(User(id=user_id, email='alice@example.com'))}"}
    await client.delete(f"/api/v1/registrations/{registration_id}", headers=headers)

    again = await client.post("/api/v1/registrations", json=registration_body(paid_webinar.id))
    assert again.status_code == 201
    assert again.json()["data"]["registration_id"] != registration_id


@pytest.mark.asyncio
async def test_my_registrations(client: AsyncClient, free_webinar, paid_webinar, test_user, auth_headers):
    await client.post("/api/v1/registrations", json=registration_body(free_webinar.id))
    await client.post("/api/v1/registrations", json=registration_body(paid_webinar.id))
    await client.post(
        "/api/v1/registrations", json=registration_body(free_webinar.id, email="bob@example.com", name="Bob")
    )

    response = await client.get("/api/v1/registrations/my", headers=auth_headers)
    assert response.status_code == 200
    registrations = response.json()["data"]
    assert len(registrations) == 2
    assert {r["webinar"]["title"] for r in registrations} == {"Free Intro Session", "Paid Masterclass"}
    paid = next(r for r in registrations if r["webinar"]["title"] == "Paid Masterclass")
    assert paid["payment"]["status"] == "pending"


@pytest.mark.asyncio
async def test_get_registration(client: AsyncClient, free_webinar):
    created = await client.post("/api/v1/registrations", json=registration_body(free_webinar.id))
    registration_id = created.json()["data"]["registration_id"]

    response = await client.get(f"/api/v1/registrations/{registration_id}")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "confirmed"
    assert data["meet_link"] == "https://meet.google.com/test-1"
    assert data["payment"] is None

"""
Pytest fixtures for the test database, fake collaborators and the HTTP client.

Each test gets a fresh in-memory SQLite schema (StaticPool keeps the single
connection alive across sessions). TEST_DATABASE_URL points the suite at
another database instead.

The payment gateway, calendar, mail and invoice collaborators are replaced by
in-process fakes that record their calls and can be told to fail.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["REDIS_ENABLED"] = "false"
os.environ["REMINDER_ENABLED"] = "false"
os.environ["SUMUP_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["API_URL"] = "http://test/api/v1"

import json
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from webinar_api.api.deps import ServiceContainer, get_services
from webinar_api.clients.invoices import InvoiceData
from webinar_api.clients.meeting_provider import MeetingEvent, MeetingRequest
from webinar_api.clients.notifications import Attachment
from webinar_api.clients.payment_gateway import (
    CheckoutSession,
    CheckoutStatus,
    PaymentState,
    SumUpClient,
    compute_signature,
)
from webinar_api.core.config import get_settings
from webinar_api.core.exceptions import UpstreamError
from webinar_api.core.policies import best_effort
from webinar_api.core.security import create_access_token
from webinar_api.db.base import Base
from webinar_api.db.session import get_db
from webinar_api.main import app
from webinar_api.models import User, Webinar, WebinarStatus
from webinar_api.store.registration_store import RegistrationStore

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
WEBHOOK_SECRET = "test-webhook-secret"


# ----------------------------------------------------------------------
# Fakes
# ----------------------------------------------------------------------


def _offline_transport(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("network disabled in tests", request=request)


class FakeGateway(SumUpClient):
    """Real signature/payload handling, canned checkout calls."""

    def __init__(self):
        super().__init__(
            get_settings(),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(_offline_transport)),
        )
        self.checkouts: list[dict] = []
        self.statuses: dict[str, PaymentState] = {}
        self.fail_checkout = False

    async def create_checkout(self, amount, currency, reference, description, return_url):
        if self.fail_checkout:
            raise UpstreamError("checkout refused", provider="sumup")
        checkout_id = f"chk_{len(self.checkouts) + 1}"
        self.checkouts.append(
            {
                "checkout_id": checkout_id,
                "amount": amount,
                "currency": currency,
                "reference": reference,
                "return_url": return_url,
            }
        )
        return CheckoutSession(
            checkout_id=checkout_id,
            redirect_url=f"https://pay.test/{checkout_id}",
            reference=reference,
        )

    async def get_checkout_status(self, checkout_id):
        status = self.statuses.get(checkout_id, PaymentState.PENDING)
        return CheckoutStatus(
            checkout_id=checkout_id,
            status=status,
            transaction_id="txn_status" if status == PaymentState.COMPLETED else None,
        )


class FakeMeetings:
    def __init__(self):
        self.created: list[MeetingRequest] = []
        self.deleted: list[str] = []
        self.fail_create = False
        self.fail_delete = False

    async def create_event(self, request: MeetingRequest) -> MeetingEvent:
        if self.fail_create:
            raise UpstreamError("calendar down", provider="google_calendar")
        self.created.append(request)
        n = len(self.created)
        return MeetingEvent(event_id=f"evt_{n}", join_link=f"https://meet.google.com/test-{n}")

    async def update_event(self, event_id: str, **fields) -> None:
        pass

    async def delete_event(self, event_id: str) -> None:
        if self.fail_delete:
            raise UpstreamError("calendar down", provider="google_calendar")
        self.deleted.append(event_id)


class FakeNotifier:
    def __init__(self):
        self.sent: list[dict] = []
        self.fail_for: set[str] = set()
        self.fail_all = False

    async def send(self, to: str, subject: str, html: str, attachment: Optional[Attachment] = None) -> None:
        if self.fail_all or to in self.fail_for:
            raise UpstreamError("smtp down", provider="smtp")
        self.sent.append({"to": to, "subject": subject, "html": html, "attachment": attachment})

    def subjects_for(self, to: str) -> list[str]:
        return [m["subject"] for m in self.sent if m["to"] == to]


class FakeInvoices:
    def __init__(self):
        self.rendered: list[InvoiceData] = []

    def render(self, data: InvoiceData) -> bytes:
        self.rendered.append(data)
        return b"%PDF-1.4 fake invoice " + data.invoice_number.encode()


class SpyBestEffort:
    """Delegates to the real policy and records every invocation."""

    def __init__(self):
        self.calls: list[tuple[str, bool]] = []

    async def __call__(self, operation, action, **context) -> bool:
        ok = await best_effort(operation, action, **context)
        self.calls.append((operation, ok))
        return ok

    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]


# ----------------------------------------------------------------------
# Database
# ----------------------------------------------------------------------


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables, yield a session factory, then drop tables for isolation."""
    options = {}
    if TEST_DATABASE_URL.startswith("sqlite"):
        options = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, **options)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def store(db_session: AsyncSession) -> RegistrationStore:
    return RegistrationStore(db_session)


# ----------------------------------------------------------------------
# Collaborators and HTTP client
# ----------------------------------------------------------------------


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def meetings() -> FakeMeetings:
    return FakeMeetings()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def invoices() -> FakeInvoices:
    return FakeInvoices()


@pytest.fixture
def spy_best_effort() -> SpyBestEffort:
    return SpyBestEffort()


@pytest.fixture
def services(session_factory, gateway, meetings, notifier, invoices, spy_best_effort) -> ServiceContainer:
    return ServiceContainer(
        settings=get_settings(),
        session_factory=session_factory,
        gateway=gateway,
        meetings=meetings,
        notifier=notifier,
        invoices=invoices,
        best_effort=spy_best_effort,
    )


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a fresh DB session per request and fake collaborators."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_services] = lambda: services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ----------------------------------------------------------------------
# Data
# ----------------------------------------------------------------------


async def make_webinar(
    session: AsyncSession,
    price: Decimal = Decimal("0"),
    max_participants: int = 100,
    start: Optional[datetime] = None,
    status: WebinarStatus = WebinarStatus.ACTIVE,
    title: str = "Async Python in Production",
) -> Webinar:
    start = start or datetime.now(timezone.utc) + timedelta(days=14)
    webinar = Webinar(
        title=title,
        description="A test webinar",
        start_date=start,
        end_date=start + timedelta(hours=1),
        price=price,
        max_participants=max_participants,
        status=status.value,
    )
    session.add(webinar)
    await session.commit()
    return webinar


@pytest_asyncio.fixture
async def free_webinar(db_session: AsyncSession) -> Webinar:
    return await make_webinar(db_session, title="Free Intro Session")


@pytest_asyncio.fixture
async def paid_webinar(db_session: AsyncSession) -> Webinar:
    return await make_webinar(db_session, price=Decimal("49.00"), title="Paid Masterclass")


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    user = User(email="alice@example.com", name="Alice Martin", company="Acme")
    db_session.add(user)
    await db_session.commit()
    return user


def token_for(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "email": user.email})


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(test_user)}"}


def registration_body(webinar_id, email="alice@example.com", name="Alice Martin", company="Acme") -> dict:
    return {"webinar_id": str(webinar_id), "user": {"email": email, "name": name, "company": company}}


def signed_webhook(payload: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, dict]:
    """Serialized body plus the headers a real gateway delivery would carry."""
    body = json.dumps(payload).encode()
    return body, {
        "Content-Type": "application/json",
        "X-Payment-Signature": compute_signature(secret, body),
    }


def new_uuid() -> str:
    return str(uuid.uuid4())

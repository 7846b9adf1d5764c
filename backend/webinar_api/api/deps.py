"""
Service container and FastAPI dependencies.

The lifespan in main.py builds one ServiceContainer per application and puts
it on app.state. Route handlers never construct clients themselves; they ask
for a store, a workflow or a webhook handler, and tests swap the container
through dependency_overrides[get_services].
"""

from dataclasses import dataclass, field

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from webinar_api.clients.invoices import InvoiceRenderer
from webinar_api.clients.meeting_provider import GoogleCalendarClient
from webinar_api.clients.notifications import SmtpNotificationSender
from webinar_api.clients.payment_gateway import SumUpClient
from webinar_api.core.config import Settings
from webinar_api.core.exceptions import InternalError
from webinar_api.core.policies import BestEffortPolicy, best_effort
from webinar_api.db.session import get_db
from webinar_api.services.registration_workflow import RegistrationWorkflow
from webinar_api.services.webhook_handler import PaymentWebhookHandler
from webinar_api.store.registration_store import RegistrationStore


@dataclass
class ServiceContainer:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    gateway: SumUpClient
    meetings: GoogleCalendarClient
    notifier: SmtpNotificationSender
    invoices: InvoiceRenderer
    best_effort: BestEffortPolicy = field(default=best_effort)

    @classmethod
    def from_settings(
        cls, settings: Settings, session_factory: async_sessionmaker[AsyncSession]
    ) -> "ServiceContainer":
        return cls(
            settings=settings,
            session_factory=session_factory,
            gateway=SumUpClient(settings),
            meetings=GoogleCalendarClient(settings),
            notifier=SmtpNotificationSender(settings),
            invoices=InvoiceRenderer(settings),
        )

    async def aclose(self) -> None:
        await self.gateway.aclose()


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise InternalError("Service container is not initialised")
    return services


async def get_store(db: AsyncSession = Depends(get_db)) -> RegistrationStore:
    return RegistrationStore(db)


async def get_workflow(
    store: RegistrationStore = Depends(get_store),
    services: ServiceContainer = Depends(get_services),
) -> RegistrationWorkflow:
    return RegistrationWorkflow(
        store=store,
        gateway=services.gateway,
        meetings=services.meetings,
        notifier=services.notifier,
        invoices=services.invoices,
        settings=services.settings,
        best_effort=services.best_effort,
    )


async def get_webhook_handler(
    store: RegistrationStore = Depends(get_store),
    services: ServiceContainer = Depends(get_services),
    workflow: RegistrationWorkflow = Depends(get_workflow),
) -> PaymentWebhookHandler:
    return PaymentWebhookHandler(
        store=store,
        gateway=services.gateway,
        workflow=workflow,
        best_effort=services.best_effort,
    )

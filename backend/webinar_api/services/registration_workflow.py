"""
Registration workflow: create, confirm, cancel.

CONFIRMATION ROUTINE
====================

Shared by the free-webinar path (run inline, errors reach the caller) and the
payment webhook (run under best_effort, errors are logged only):

  1. Load registration + user + webinar + payment
  2. Create the calendar event with a Meet link, attendee = the user
  3. Store meet link and event id on the registration
  4. Mark the registration confirmed
  5. If the payment is completed: allocate an invoice number, render the PDF,
     store the number on the payment
  6. E-mail the confirmation (invoice attached when step 5 ran)

Each step commits on its own. A failure after step 3 leaves a registration
with a meeting link but no e-mail; running the routine again is the recovery
path. Re-running is safe for the registration row but creates a second
calendar event, since the provider has no idempotency key we can reuse.
An invoice number, once stored on a payment, is reused by later runs.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from webinar_api.clients.invoices import InvoiceData, InvoiceRenderer
from webinar_api.clients.meeting_provider import GoogleCalendarClient, MeetingRequest
from webinar_api.clients.notifications import Attachment, SmtpNotificationSender
from webinar_api.clients.payment_gateway import SumUpClient, checkout_reference_for
from webinar_api.core.clock import ensure_utc, utcnow
from webinar_api.core.config import Settings
from webinar_api.core.exceptions import (
    CapacityError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from webinar_api.core.logging import get_logger
from webinar_api.core.metrics import (
    cancellations,
    invoices_issued,
    record_confirmation,
    record_registration_attempt,
)
from webinar_api.core.policies import BestEffortPolicy, best_effort
from webinar_api.models import (
    PaymentStatus,
    Registration,
    RegistrationStatus,
    Webinar,
    WebinarStatus,
    can_transition,
)
from webinar_api.notifications import templates
from webinar_api.services.invoice_numbering import allocate_invoice_number
from webinar_api.store.registration_store import RegistrationStore

logger = get_logger(__name__)


class RegistrationResult(BaseModel):
    registration_id: uuid.UUID
    status: RegistrationStatus
    webinar_id: uuid.UUID
    webinar_title: str
    webinar_start_date: datetime
    payment_id: Optional[uuid.UUID] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    checkout_url: Optional[str] = None


class ConfirmationResult(BaseModel):
    registration_id: uuid.UUID
    meet_link: str
    calendar_event_id: str
    invoice_number: Optional[str] = None


class RegistrationWorkflow:
    def __init__(
        self,
        store: RegistrationStore,
        gateway: SumUpClient,
        meetings: GoogleCalendarClient,
        notifier: SmtpNotificationSender,
        invoices: InvoiceRenderer,
        settings: Settings,
        best_effort: BestEffortPolicy = best_effort,
    ):
        self.store = store
        self.gateway = gateway
        self.meetings = meetings
        self.notifier = notifier
        self.invoices = invoices
        self.settings = settings
        self.best_effort = best_effort

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_registration(
        self,
        webinar_id: uuid.UUID,
        email: str,
        name: str,
        company: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Register a user for a webinar.

        Preconditions are checked before anything is written, in this order:
        webinar exists, webinar active, webinar not full, no live registration
        for this e-mail. Free webinars are confirmed before returning; priced
        ones return a checkout URL and stay pending until the webhook.
        """
        webinar = await self.store.get_webinar(webinar_id)
        if webinar is None:
            record_registration_attempt("not_found")
            raise NotFoundError("Webinar not found")

        if webinar.status != WebinarStatus.ACTIVE.value:
            record_registration_attempt("inactive")
            raise InvalidStateError("This webinar is no longer available")

        if await self.store.is_webinar_full(webinar):
            record_registration_attempt("full")
            logger.warning("registration_rejected_full", webinar_id=str(webinar.id))
            raise CapacityError("This webinar is full")

        existing_user = await self.store.get_user_by_email(email)
        if existing_user is not None:
            if await self.store.find_active_registration(existing_user.id, webinar.id):
                record_registration_attempt("conflict")
                raise ConflictError("You are already registered for this webinar")

        user = await self.store.upsert_user(email=email, name=name, company=company)
        try:
            registration = await self.store.create_registration(user.id, webinar.id)
        except ConflictError:
            record_registration_attempt("conflict")
            raise

        logger.info(
            "registration_created",
            registration_id=str(registration.id),
            webinar_id=str(webinar.id),
            user_id=str(user.id),
            price=str(webinar.price),
        )

        result = RegistrationResult(
            registration_id=registration.id,
            status=RegistrationStatus.PENDING,
            webinar_id=webinar.id,
            webinar_title=webinar.title,
            webinar_start_date=webinar.start_date,
        )

        if not webinar.is_free:
            return await self._start_payment(registration, webinar, result)

        await self.confirm_registration(registration.id, webinar, trigger="free")
        record_registration_attempt("confirmed")
        return result.model_copy(update={"status": RegistrationStatus.CONFIRMED})

    async def _start_payment(
        self, registration: Registration, webinar: Webinar, result: RegistrationResult
    ) -> RegistrationResult:
        currency = self.settings.PAYMENT_CURRENCY
        payment = await self.store.create_payment(registration.id, webinar.price, currency)

        checkout = await self.gateway.create_checkout(
            amount=webinar.price,
            currency=currency,
            reference=checkout_reference_for(registration.id),
            description=f"Webinar: {webinar.title}",
            return_url=f"{self.settings.API_URL.rstrip('/')}/payment/return",
        )
        await self.store.set_payment_checkout(payment.id, checkout.checkout_id)
        await self.store.link_payment(registration.id, payment.id)

        record_registration_attempt("pending_payment")
        logger.info(
            "payment_checkout_started",
            registration_id=str(registration.id),
            payment_id=str(payment.id),
            checkout_id=checkout.checkout_id,
        )
        return result.model_copy(
            update={
                "payment_id": payment.id,
                "amount": payment.amount,
                "currency": currency,
                "checkout_url": checkout.redirect_url,
            }
        )

    # ------------------------------------------------------------------
    # Confirm
    # ------------------------------------------------------------------

    async def confirm_registration(
        self,
        registration_id: uuid.UUID,
        webinar: Optional[Webinar] = None,
        trigger: str = "webhook",
    ) -> ConfirmationResult:
        try:
            result = await self._confirm(registration_id, webinar)
        except Exception:
            record_confirmation(trigger, success=False)
            raise
        record_confirmation(trigger, success=True)
        return result

    async def _confirm(
        self, registration_id: uuid.UUID, webinar: Optional[Webinar]
    ) -> ConfirmationResult:
        # 1. Load
        registration = await self.store.get_registration_with_details(registration_id)
        if registration is None:
            raise NotFoundError("Registration not found")
        if not can_transition(registration.status, RegistrationStatus.CONFIRMED.value):
            raise InvalidStateError(
                f"Registration {registration_id} is {registration.status} and cannot be confirmed"
            )

        webinar = webinar or registration.webinar
        user = registration.user

        # 2. Meeting
        meeting = await self.meetings.create_event(
            MeetingRequest(
                title=webinar.title,
                description=webinar.description or "",
                start=ensure_utc(webinar.start_date),
                end=ensure_utc(webinar.end_date),
                attendee_emails=[user.email],
            )
        )

        # 3. Meeting info
        await self.store.update_meeting_info(registration.id, meeting.join_link, meeting.event_id)

        # 4. Status
        await self.store.update_registration_status(registration.id, RegistrationStatus.CONFIRMED)
        logger.info(
            "registration_confirmed",
            registration_id=str(registration.id),
            calendar_event_id=meeting.event_id,
        )

        # 5. Invoice
        attachment = None
        invoice_number = None
        payment = registration.payment
        if payment is not None and payment.status == PaymentStatus.COMPLETED.value:
            invoice_number = payment.invoice_number or await allocate_invoice_number(self.store)
            pdf = self.invoices.render(
                InvoiceData(
                    invoice_number=invoice_number,
                    invoice_date=ensure_utc(payment.payment_date or utcnow()),
                    customer_name=user.name,
                    customer_email=user.email,
                    customer_company=user.company,
                    item_description=webinar.title,
                    item_date=ensure_utc(webinar.start_date),
                    amount=payment.amount,
                    currency=payment.currency,
                )
            )
            if payment.invoice_number != invoice_number:
                await self.store.update_payment_invoice(payment.id, invoice_number)
                invoices_issued.inc()
            attachment = Attachment(
                filename=f"invoice-{invoice_number}.pdf",
                content=pdf,
                mime_type="application/pdf",
            )
            logger.info("invoice_generated", payment_id=str(payment.id), invoice_number=invoice_number)

        # 6. Notify
        subject, html = templates.registration_confirmation(
            user_name=user.name,
            webinar_title=webinar.title,
            webinar_date=webinar.start_date,
            meet_link=meeting.join_link,
            tz_name=self.settings.REMINDER_TIMEZONE,
            company_name=self.settings.COMPANY_NAME,
            has_invoice=attachment is not None,
        )
        await self.notifier.send(user.email, subject, html, attachment)

        return ConfirmationResult(
            registration_id=registration.id,
            meet_link=meeting.join_link,
            calendar_event_id=meeting.event_id,
            invoice_number=invoice_number,
        )

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel_registration(self, registration_id: uuid.UUID, user_id: uuid.UUID) -> Registration:
        """
        Cancel on behalf of the owner. The calendar event deletion and the
        cancellation e-mail are best effort: once the status is stored the
        cancellation has succeeded.
        """
        registration = await self.store.get_registration_with_details(registration_id)
        if registration is None:
            raise NotFoundError("Registration not found")

        if registration.user_id != user_id:
            raise ForbiddenError("You are not allowed to cancel this registration")

        if not can_transition(registration.status, RegistrationStatus.CANCELLED.value):
            raise InvalidStateError("This registration is already cancelled")

        await self.store.update_registration_status(registration.id, RegistrationStatus.CANCELLED)
        cancellations.inc()
        logger.info("registration_cancelled", registration_id=str(registration.id), user_id=str(user_id))

        if registration.calendar_event_id:
            event_id = registration.calendar_event_id
            await self.best_effort(
                "delete_meeting_event",
                lambda: self.meetings.delete_event(event_id),
                registration_id=str(registration.id),
                calendar_event_id=event_id,
            )

        user, webinar = registration.user, registration.webinar
        subject, html = templates.registration_cancelled(
            user_name=user.name,
            webinar_title=webinar.title,
            company_name=self.settings.COMPANY_NAME,
        )
        await self.best_effort(
            "send_cancellation_email",
            lambda: self.notifier.send(user.email, subject, html),
            registration_id=str(registration.id),
        )

        return await self.store.get_registration_with_details(registration.id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_registration(self, registration_id: uuid.UUID) -> Registration:
        registration = await self.store.get_registration_with_details(registration_id)
        if registration is None:
            raise NotFoundError("Registration not found")
        return registration

    async def list_user_registrations(self, user_id: uuid.UUID) -> list[Registration]:
        return await self.store.list_registrations_for_user(user_id)

"""
Payment webhook handler.

PROCESSING ORDER
================

  1. Verify the HMAC signature over the raw body. Failure raises
     AuthenticationError and nothing else happens.
  2. Parse the payload; provider statuses become pending/completed/failed.
  3. Find the payment by checkout id (then by REG-<registration id>
     reference). Unknown payment: acknowledge, change nothing. Answering with
     an error would only make the gateway retry a notification we can never
     match.
  4. Payment already completed: acknowledge, stop. This is the replay guard.
  5. completed: store status/transaction id/payment date, then run the
     confirmation routine under best_effort. The payment update is already
     committed; a calendar or mail failure must not make the gateway retry it.
  6. failed: store status, stop.
  7. Acknowledge.

KNOWN RACE
==========

Step 4 is a read followed by a write, not a compare-and-swap. Two deliveries
of the same "completed" notification arriving at the same moment can both
pass the guard and both run confirmation. Sequential replays are caught.
"""

import enum
import json
import uuid
from typing import Optional

from webinar_api.clients.payment_gateway import (
    PaymentState,
    SumUpClient,
    WebhookNotification,
)
from webinar_api.core.exceptions import AuthenticationError, NotFoundError, ValidationError
from webinar_api.core.logging import get_logger
from webinar_api.core.metrics import record_webhook
from webinar_api.core.policies import BestEffortPolicy, best_effort
from webinar_api.models import Payment, PaymentStatus
from webinar_api.services.registration_workflow import RegistrationWorkflow
from webinar_api.store.registration_store import RegistrationStore

logger = get_logger(__name__)

REFERENCE_PREFIX = "REG-"


class WebhookOutcome(str, enum.Enum):
    IGNORED_UNKNOWN_PAYMENT = "ignored_unknown_payment"
    ALREADY_PROCESSED = "already_processed"
    COMPLETED = "completed"
    CONFIRMATION_FAILED = "confirmation_failed"
    FAILED = "failed"
    PENDING = "pending"


class PaymentWebhookHandler:
    def __init__(
        self,
        store: RegistrationStore,
        gateway: SumUpClient,
        workflow: RegistrationWorkflow,
        best_effort: BestEffortPolicy = best_effort,
    ):
        self.store = store
        self.gateway = gateway
        self.workflow = workflow
        self.best_effort = best_effort

    async def handle(self, raw_body: bytes, signature: Optional[str]) -> WebhookOutcome:
        if not self.gateway.verify_webhook_signature(raw_body, signature):
            record_webhook("rejected")
            logger.warning("webhook_signature_invalid", has_signature=bool(signature))
            raise AuthenticationError("Invalid webhook signature")

        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            record_webhook("malformed")
            raise ValidationError("Webhook body is not valid JSON") from e

        notification = self.gateway.parse_webhook(payload)
        logger.info(
            "webhook_received",
            checkout_id=notification.checkout_id,
            status=notification.status.value,
        )

        outcome = await self._process(notification)
        record_webhook(outcome.value)
        return outcome

    async def _locate_payment(self, notification: WebhookNotification) -> Optional[Payment]:
        payment = await self.store.get_payment_by_checkout_id(notification.checkout_id)
        if payment is not None:
            return payment

        reference = notification.checkout_reference or ""
        if not reference.startswith(REFERENCE_PREFIX):
            return None
        try:
            registration_id = uuid.UUID(reference[len(REFERENCE_PREFIX):])
        except ValueError:
            return None
        return await self.store.get_payment_for_registration(registration_id)

    async def _process(self, notification: WebhookNotification) -> WebhookOutcome:
        payment = await self._locate_payment(notification)
        if payment is None:
            logger.error("webhook_payment_not_found", checkout_id=notification.checkout_id)
            return WebhookOutcome.IGNORED_UNKNOWN_PAYMENT

        if payment.status == PaymentStatus.COMPLETED.value:
            logger.info("webhook_already_processed", payment_id=str(payment.id))
            return WebhookOutcome.ALREADY_PROCESSED

        if notification.status == PaymentState.COMPLETED:
            return await self._complete(payment, notification)

        if notification.status == PaymentState.FAILED:
            await self.store.update_payment_status(payment.id, PaymentStatus.FAILED)
            logger.warning("payment_failed", payment_id=str(payment.id))
            return WebhookOutcome.FAILED

        logger.info("webhook_payment_still_pending", payment_id=str(payment.id))
        return WebhookOutcome.PENDING

    async def _complete(self, payment: Payment, notification: WebhookNotification) -> WebhookOutcome:
        await self.store.update_payment_status(
            payment.id, PaymentStatus.COMPLETED, transaction_id=notification.transaction_id
        )
        logger.info(
            "payment_completed",
            payment_id=str(payment.id),
            transaction_id=notification.transaction_id,
        )

        registration_id = payment.registration_id

        async def confirm():
            registration = await self.store.get_registration(registration_id)
            if registration is None:
                raise NotFoundError(f"Registration {registration_id} not found for payment {payment.id}")
            webinar = await self.store.get_webinar(registration.webinar_id)
            if webinar is None:
                raise NotFoundError(f"Webinar {registration.webinar_id} not found")
            await self.workflow.confirm_registration(registration.id, webinar, trigger="webhook")

        confirmed = await self.best_effort(
            "confirm_registration",
            confirm,
            payment_id=str(payment.id),
            registration_id=str(registration_id),
        )
        return WebhookOutcome.COMPLETED if confirmed else WebhookOutcome.CONFIRMATION_FAILED

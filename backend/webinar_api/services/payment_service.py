"""
Read-only payment views.

Neither function changes a payment: the webhook is the only writer of payment
status. The gateway is asked for its current view so the caller can show
"paid, confirmation on its way" before the webhook lands.
"""

import uuid

from webinar_api.clients.payment_gateway import PaymentState, SumUpClient
from webinar_api.core.exceptions import NotFoundError, UpstreamError
from webinar_api.core.logging import get_logger
from webinar_api.models import PaymentStatus
from webinar_api.schemas.payment import PaymentReturnResponse, PaymentStatusResponse
from webinar_api.store.registration_store import RegistrationStore

logger = get_logger(__name__)

RETURN_MESSAGES = {
    PaymentState.COMPLETED: "Payment received. Your confirmation e-mail is on its way.",
    PaymentState.PENDING: "Payment is being processed.",
    PaymentState.FAILED: "Payment failed or was cancelled.",
}


async def get_payment_status(
    store: RegistrationStore, gateway: SumUpClient, payment_id: uuid.UUID
) -> PaymentStatusResponse:
    payment = await store.get_payment(payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")

    gateway_status = None
    if payment.status == PaymentStatus.PENDING.value and payment.checkout_id:
        try:
            checkout = await gateway.get_checkout_status(payment.checkout_id)
            gateway_status = checkout.status.value
        except UpstreamError as e:
            logger.warning("gateway_status_unavailable", payment_id=str(payment.id), error=str(e))

    return PaymentStatusResponse(
        payment_id=payment.id,
        registration_id=payment.registration_id,
        status=payment.status,
        amount=payment.amount,
        currency=payment.currency,
        checkout_id=payment.checkout_id,
        invoice_number=payment.invoice_number,
        payment_date=payment.payment_date,
        gateway_status=gateway_status,
    )


async def describe_return(
    store: RegistrationStore, gateway: SumUpClient, checkout_id: str
) -> PaymentReturnResponse:
    """Summary for the page the payer lands on after the hosted checkout."""
    checkout = await gateway.get_checkout_status(checkout_id)
    payment = await store.get_payment_by_checkout_id(checkout_id)
    return PaymentReturnResponse(
        checkout_id=checkout_id,
        status=checkout.status.value,
        registration_id=payment.registration_id if payment else None,
        message=RETURN_MESSAGES[checkout.status],
    )

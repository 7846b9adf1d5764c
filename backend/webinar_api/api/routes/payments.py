"""
Payment endpoints: the gateway webhook and read-only status views.
"""

import uuid

from fastapi import APIRouter, Depends, Query, Request

from webinar_api.api.deps import ServiceContainer, get_services, get_store, get_webhook_handler
from webinar_api.schemas.common import ApiResponse
from webinar_api.schemas.payment import PaymentReturnResponse, PaymentStatusResponse, WebhookAck
from webinar_api.services import payment_service
from webinar_api.services.cache_service import invalidate_webinar_cache
from webinar_api.services.webhook_handler import PaymentWebhookHandler, WebhookOutcome
from webinar_api.store.registration_store import RegistrationStore

router = APIRouter(prefix="/payment", tags=["Payments"])

SIGNATURE_HEADERS = ("X-Payment-Signature", "X-SumUp-Signature")


@router.post("/webhook", response_model=ApiResponse[WebhookAck])
async def payment_webhook_endpoint(
    request: Request,
    handler: PaymentWebhookHandler = Depends(get_webhook_handler),
):
    """
    Gateway notification. The signature covers the raw body, so the body is
    read as bytes and never re-serialized before verification.
    """
    raw_body = await request.body()
    signature = next(
        (request.headers[name] for name in SIGNATURE_HEADERS if name in request.headers),
        None,
    )
    outcome = await handler.handle(raw_body, signature)
    if outcome == WebhookOutcome.COMPLETED:
        await invalidate_webinar_cache()
    return ApiResponse(data=WebhookAck(outcome=outcome.value))


@router.get("/return", response_model=ApiResponse[PaymentReturnResponse])
async def payment_return_endpoint(
    checkout_id: str = Query(..., min_length=1),
    store: RegistrationStore = Depends(get_store),
    services: ServiceContainer = Depends(get_services),
):
    summary = await payment_service.describe_return(store, services.gateway, checkout_id)
    return ApiResponse(data=summary, message=summary.message)


@router.get("/{payment_id}/status", response_model=ApiResponse[PaymentStatusResponse])
async def payment_status_endpoint(
    payment_id: uuid.UUID,
    store: RegistrationStore = Depends(get_store),
    services: ServiceContainer = Depends(get_services),
):
    status = await payment_service.get_payment_status(store, services.gateway, payment_id)
    return ApiResponse(data=status)

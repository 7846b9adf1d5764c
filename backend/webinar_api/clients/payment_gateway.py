"""
SumUp payment gateway client.

Everything SumUp-specific stays inside this module: checkout payloads, the
PENDING/PAID/FAILED/CANCELLED vocabulary, the webhook signature scheme. The
rest of the application only sees the tagged types below and PaymentState.
"""

import enum
import hashlib
import hmac
import time
from decimal import Decimal
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from webinar_api.core.config import Settings
from webinar_api.core.exceptions import UpstreamError, ValidationError
from webinar_api.core.logging import get_logger
from webinar_api.core.metrics import upstream_errors, upstream_latency

logger = get_logger(__name__)

PROVIDER = "sumup"


class PaymentState(str, enum.Enum):
    """Internal tri-state a checkout can be in."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


_STATUS_MAP = {
    "PENDING": PaymentState.PENDING,
    "PAID": PaymentState.COMPLETED,
    "FAILED": PaymentState.FAILED,
    "CANCELLED": PaymentState.FAILED,
}


def map_gateway_status(raw: Optional[str]) -> PaymentState:
    """Unknown or missing statuses are treated as still pending."""
    return _STATUS_MAP.get((raw or "").upper(), PaymentState.PENDING)


def checkout_reference_for(registration_id: Any) -> str:
    return f"REG-{registration_id}"


class CheckoutSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    checkout_id: str
    redirect_url: str
    reference: str


class CheckoutStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    checkout_id: str
    status: PaymentState
    transaction_id: Optional[str] = None


class WebhookNotification(BaseModel):
    model_config = ConfigDict(frozen=True)

    checkout_id: str
    checkout_reference: Optional[str] = None
    status: PaymentState
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None


class _WebhookPayload(BaseModel):
    """Wire format of the inbound notification."""

    id: str = Field(..., min_length=1)
    checkout_reference: Optional[str] = None
    status: str
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None


def compute_signature(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


class SumUpClient:
    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self._api_url = settings.SUMUP_API_URL.rstrip("/")
        self._api_key = settings.SUMUP_API_KEY
        self._merchant_code = settings.SUMUP_MERCHANT_CODE
        self._webhook_secret = settings.SUMUP_WEBHOOK_SECRET
        self._checkout_base_url = settings.SUMUP_CHECKOUT_BASE_URL.rstrip("/")
        self._http = http_client or httpx.AsyncClient(timeout=settings.SUMUP_TIMEOUT_SECONDS)

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> dict:
        start = time.perf_counter()
        try:
            response = await self._http.request(
                method, f"{self._api_url}{path}", headers=self._headers(), **kwargs
            )
            response.raise_for_status()
            return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            upstream_errors.labels(provider=PROVIDER, operation=operation).inc()
            logger.error(
                "sumup_request_failed",
                operation=operation,
                status_code=e.response.status_code,
                body=e.response.text[:500],
            )
            raise UpstreamError(f"Payment provider error during {operation}", provider=PROVIDER) from e
        except (httpx.HTTPError, ValueError) as e:
            upstream_errors.labels(provider=PROVIDER, operation=operation).inc()
            logger.error("sumup_request_failed", operation=operation, error=str(e))
            raise UpstreamError(f"Payment provider unreachable during {operation}", provider=PROVIDER) from e
        finally:
            upstream_latency.labels(provider=PROVIDER, operation=operation).observe(
                time.perf_counter() - start
            )

    async def create_checkout(
        self,
        amount: Decimal,
        currency: str,
        reference: str,
        description: str,
        return_url: str,
    ) -> CheckoutSession:
        payload = {
            "checkout_reference": reference,
            "amount": float(amount),
            "currency": currency,
            "merchant_code": self._merchant_code,
            "description": description,
            "return_url": return_url,
        }
        data = await self._request("create_checkout", "POST", "/checkouts", json=payload)

        checkout_id = data.get("id")
        if not checkout_id:
            raise UpstreamError("Payment provider returned no checkout id", provider=PROVIDER)

        logger.info("checkout_created", checkout_id=checkout_id, reference=reference)
        return CheckoutSession(
            checkout_id=checkout_id,
            redirect_url=f"{self._checkout_base_url}/{checkout_id}",
            reference=reference,
        )

    async def get_checkout_status(self, checkout_id: str) -> CheckoutStatus:
        data = await self._request("get_checkout", "GET", f"/checkouts/{checkout_id}")
        state = map_gateway_status(data.get("status"))
        transaction_id = data.get("transaction_id")
        if state == PaymentState.COMPLETED and not transaction_id:
            transactions = data.get("transactions") or []
            transaction_id = transactions[0].get("id") if transactions else checkout_id
        return CheckoutStatus(
            checkout_id=checkout_id,
            status=state,
            transaction_id=transaction_id if state == PaymentState.COMPLETED else None,
        )

    async def create_refund(self, transaction_id: str, amount: Optional[Decimal] = None) -> None:
        body = {"amount": float(amount)} if amount is not None else {}
        await self._request("create_refund", "POST", f"/me/refund/{transaction_id}", json=body)
        logger.info("refund_created", transaction_id=transaction_id)

    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """Constant-time comparison of the hex HMAC-SHA256 of the raw body."""
        if not signature or not self._webhook_secret:
            return False
        expected = compute_signature(self._webhook_secret, raw_body)
        return hmac.compare_digest(signature.strip().lower().encode(), expected.encode())

    def parse_webhook(self, payload: Any) -> WebhookNotification:
        if not isinstance(payload, dict):
            raise ValidationError("Webhook payload must be a JSON object")
        try:
            wire = _WebhookPayload.model_validate(payload)
        except PydanticValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise ValidationError("Malformed webhook payload", fields=fields) from e

        return WebhookNotification(
            checkout_id=wire.id,
            checkout_reference=wire.checkout_reference,
            status=map_gateway_status(wire.status),
            transaction_id=wire.transaction_id,
            amount=wire.amount,
        )

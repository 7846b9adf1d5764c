"""
Pydantic schemas for registrations.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_serializer

from webinar_api.core.clock import ensure_utc
from webinar_api.schemas.user import UserIdentity, UserResponse
from webinar_api.schemas.webinar import WebinarResponse


class RegistrationCreate(BaseModel):
    webinar_id: uuid.UUID
    user: UserIdentity


class PaymentSummary(BaseModel):
    id: uuid.UUID
    amount: Decimal
    currency: str
    status: str
    invoice_number: Optional[str]
    payment_date: Optional[datetime]

    model_config = {"from_attributes": True}


class RegistrationResponse(BaseModel):
    id: uuid.UUID
    status: str
    meet_link: Optional[str]
    reminder_sent: bool
    created_at: datetime
    user: UserResponse
    webinar: WebinarResponse
    payment: Optional[PaymentSummary] = None

    model_config = {"from_attributes": True}

    @field_serializer("created_at")
    def _serialize_utc(self, value: datetime) -> str:
        return ensure_utc(value).isoformat()


class RegistrationCreated(BaseModel):
    """Result of POST /registrations; checkout_url is set for priced webinars only."""

    registration_id: uuid.UUID
    status: str
    webinar_id: uuid.UUID
    webinar_title: str
    webinar_start_date: datetime
    requires_payment: bool
    payment_id: Optional[uuid.UUID] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    checkout_url: Optional[str] = None

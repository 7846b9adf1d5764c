"""
Pydantic schemas for payment endpoints.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class WebhookAck(BaseModel):
    received: bool = True
    outcome: str


class PaymentStatusResponse(BaseModel):
    payment_id: uuid.UUID
    registration_id: uuid.UUID
    status: str
    amount: Decimal
    currency: str
    checkout_id: Optional[str]
    invoice_number: Optional[str]
    payment_date: Optional[datetime]
    gateway_status: Optional[str] = None


class PaymentReturnResponse(BaseModel):
    checkout_id: str
    status: str
    registration_id: Optional[uuid.UUID] = None
    message: str

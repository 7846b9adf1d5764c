"""
Pydantic schemas for webinar-related request/response validation.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_serializer

from webinar_api.core.clock import ensure_utc
from webinar_api.models import WebinarStatus


class WebinarCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    start_date: datetime
    end_date: datetime
    price: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    max_participants: int = Field(100, gt=0, le=100000)


class WebinarUpdate(BaseModel):
    """Partial update; the end-after-start rule is checked against the merged values."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    max_participants: Optional[int] = Field(None, gt=0, le=100000)
    status: Optional[WebinarStatus] = None


class WebinarResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str]
    start_date: datetime
    end_date: datetime
    price: Decimal
    max_participants: int
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_serializer("start_date", "end_date", "created_at")
    def _serialize_utc(self, value: datetime) -> str:
        return ensure_utc(value).isoformat()


class WebinarDetailResponse(WebinarResponse):
    confirmed_registrations: int
    available_spots: int
    is_full: bool


class WebinarListResponse(BaseModel):
    webinars: list[WebinarResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False

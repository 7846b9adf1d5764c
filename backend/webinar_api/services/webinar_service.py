"""
Webinar service handling CRUD operations and listing statistics.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from webinar_api.core.clock import ensure_utc, utcnow
from webinar_api.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from webinar_api.core.logging import get_logger
from webinar_api.models import Payment, Registration, RegistrationStatus, Webinar, WebinarStatus
from webinar_api.schemas.webinar import WebinarCreate, WebinarUpdate

logger = get_logger(__name__)


def _check_dates(start_date: datetime, end_date: datetime) -> None:
    if ensure_utc(end_date) <= ensure_utc(start_date):
        raise ValidationError("end_date must be after start_date", fields=["end_date"])


async def create_webinar(db: AsyncSession, webinar_data: WebinarCreate) -> Webinar:
    """Create an active webinar. Dates are stored in UTC."""
    _check_dates(webinar_data.start_date, webinar_data.end_date)

    webinar = Webinar(
        title=webinar_data.title,
        description=webinar_data.description,
        start_date=ensure_utc(webinar_data.start_date),
        end_date=ensure_utc(webinar_data.end_date),
        price=webinar_data.price,
        max_participants=webinar_data.max_participants,
        status=WebinarStatus.ACTIVE.value,
    )
    db.add(webinar)
    await db.commit()

    logger.info(
        "webinar_created",
        webinar_id=str(webinar.id),
        title=webinar.title,
        price=str(webinar.price),
        capacity=webinar.max_participants,
    )
    return webinar


async def get_webinar(db: AsyncSession, webinar_id: uuid.UUID) -> Webinar:
    webinar = await db.get(Webinar, webinar_id)
    if not webinar:
        raise NotFoundError("Webinar not found")
    return webinar


async def count_confirmed(db: AsyncSession, webinar_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Registration)
        .where(
            Registration.webinar_id == webinar_id,
            Registration.status == RegistrationStatus.CONFIRMED.value,
        )
    )
    return result.scalar_one()


async def get_webinar_with_stats(db: AsyncSession, webinar_id: uuid.UUID) -> dict:
    """Webinar plus confirmed count, remaining spots and the full flag."""
    webinar = await get_webinar(db, webinar_id)
    confirmed = await count_confirmed(db, webinar.id)
    return {
        "webinar": webinar,
        "confirmed_registrations": confirmed,
        "available_spots": max(webinar.max_participants - confirmed, 0),
        "is_full": confirmed >= webinar.max_participants,
    }


async def list_webinars(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    status: Optional[WebinarStatus] = None,
    upcoming_only: bool = False,
) -> tuple[list[Webinar], int]:
    """
    List webinars with pagination, ordered by start date.
    Uses ix_webinars_status_start_date when filtering by status.
    """
    query = select(Webinar)

    if status is not None:
        query = query.where(Webinar.status == status.value)
    if upcoming_only:
        query = query.where(Webinar.start_date >= utcnow())

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    webinars_query = (
        query
        .order_by(Webinar.start_date.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(webinars_query)
    return list(result.scalars().all()), total


async def update_webinar(db: AsyncSession, webinar_id: uuid.UUID, updates: WebinarUpdate) -> Webinar:
    webinar = await get_webinar(db, webinar_id)
    changes = updates.model_dump(exclude_unset=True, exclude_none=True)

    start_date = changes.get("start_date", webinar.start_date)
    end_date = changes.get("end_date", webinar.end_date)
    _check_dates(start_date, end_date)

    for field, value in changes.items():
        if field in ("start_date", "end_date"):
            value = ensure_utc(value)
        elif field == "status":
            value = WebinarStatus(value).value
        setattr(webinar, field, value)
    await db.commit()

    logger.info("webinar_updated", webinar_id=str(webinar.id), fields=sorted(changes))
    return webinar


async def delete_webinar(db: AsyncSession, webinar_id: uuid.UUID) -> None:
    """
    Delete a webinar that has no confirmed registrations. Its pending and
    cancelled registrations (and their payments) go with it.
    """
    webinar = await get_webinar(db, webinar_id)
    if await count_confirmed(db, webinar.id) > 0:
        raise InvalidStateError("Cannot delete a webinar with confirmed registrations")

    registration_ids = select(Registration.id).where(Registration.webinar_id == webinar.id)
    await db.execute(delete(Payment).where(Payment.registration_id.in_(registration_ids)))
    await db.execute(delete(Registration).where(Registration.webinar_id == webinar.id))
    await db.delete(webinar)
    await db.commit()

    logger.info("webinar_deleted", webinar_id=str(webinar_id))


async def get_webinar_summary(db: AsyncSession) -> dict:
    """Counts per status plus upcoming active webinars."""
    rows = await db.execute(select(Webinar.status, func.count()).group_by(Webinar.status))
    by_status = {status: count for status, count in rows.all()}
    upcoming = await db.execute(
        select(func.count())
        .select_from(Webinar)
        .where(Webinar.status == WebinarStatus.ACTIVE.value, Webinar.start_date > utcnow())
    )
    return {
        "total": sum(by_status.values()),
        "active": by_status.get(WebinarStatus.ACTIVE.value, 0),
        "completed": by_status.get(WebinarStatus.COMPLETED.value, 0),
        "cancelled": by_status.get(WebinarStatus.CANCELLED.value, 0),
        "upcoming": upcoming.scalar_one(),
    }

"""
Webinar endpoints with Redis caching on the public listing.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from webinar_api.api.deps import get_store
from webinar_api.core.logging import get_logger
from webinar_api.core.security import get_current_user_id
from webinar_api.db.session import get_db
from webinar_api.models import WebinarStatus
from webinar_api.schemas.common import ApiResponse
from webinar_api.schemas.registration import RegistrationResponse
from webinar_api.schemas.webinar import (
    WebinarCreate,
    WebinarDetailResponse,
    WebinarListResponse,
    WebinarResponse,
    WebinarUpdate,
)
from webinar_api.services import webinar_service
from webinar_api.services.cache_service import (
    get_cached_webinars,
    invalidate_webinar_cache,
    set_cached_webinars,
)
from webinar_api.store.registration_store import RegistrationStore

logger = get_logger(__name__)
router = APIRouter(prefix="/webinars", tags=["Webinars"])


@router.post("", response_model=ApiResponse[WebinarResponse], status_code=status.HTTP_201_CREATED)
async def create_webinar_endpoint(
    webinar_data: WebinarCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    webinar = await webinar_service.create_webinar(db, webinar_data)
    await invalidate_webinar_cache()
    return ApiResponse(data=WebinarResponse.model_validate(webinar), message="Webinar created")


@router.get("", response_model=ApiResponse[WebinarListResponse])
async def list_webinars_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status_filter: Optional[WebinarStatus] = Query(None, alias="status"),
    upcoming: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """
    List webinars with pagination.
    Results are cached in Redis; any webinar or registration change invalidates them.
    """
    status_key = status_filter.value if status_filter else None
    cached = await get_cached_webinars(page, page_size, status_key, upcoming)
    if cached:
        logger.info("webinars_list_cache_hit", page=page)
        cached["cached"] = True
        return ApiResponse(data=WebinarListResponse(**cached))

    webinars, total = await webinar_service.list_webinars(db, page, page_size, status_filter, upcoming)
    response_data = {
        "webinars": [WebinarResponse.model_validate(w).model_dump(mode="json") for w in webinars],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_webinars(page, page_size, status_key, upcoming, response_data)
    return ApiResponse(data=WebinarListResponse(**response_data))


@router.get("/stats/summary", response_model=ApiResponse[dict])
async def webinar_summary_endpoint(db: AsyncSession = Depends(get_db)):
    return ApiResponse(data=await webinar_service.get_webinar_summary(db))


@router.get("/{webinar_id}", response_model=ApiResponse[WebinarDetailResponse])
async def get_webinar_endpoint(webinar_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Single webinar with live seat statistics. Not cached."""
    stats = await webinar_service.get_webinar_with_stats(db, webinar_id)
    webinar = stats.pop("webinar")
    detail = WebinarDetailResponse(**WebinarResponse.model_validate(webinar).model_dump(), **stats)
    return ApiResponse(data=detail)


@router.put("/{webinar_id}", response_model=ApiResponse[WebinarResponse])
async def update_webinar_endpoint(
    webinar_id: uuid.UUID,
    updates: WebinarUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    webinar = await webinar_service.update_webinar(db, webinar_id, updates)
    await invalidate_webinar_cache()
    return ApiResponse(data=WebinarResponse.model_validate(webinar), message="Webinar updated")


@router.delete("/{webinar_id}", response_model=ApiResponse[None])
async def delete_webinar_endpoint(
    webinar_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await webinar_service.delete_webinar(db, webinar_id)
    await invalidate_webinar_cache()
    return ApiResponse(message="Webinar deleted")


@router.get("/{webinar_id}/registrations", response_model=ApiResponse[list[RegistrationResponse]])
async def list_webinar_registrations_endpoint(
    webinar_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    store: RegistrationStore = Depends(get_store),
):
    await webinar_service.get_webinar(db, webinar_id)
    registrations = await store.list_registrations_for_webinar(webinar_id)
    return ApiResponse(data=[RegistrationResponse.model_validate(r) for r in registrations])

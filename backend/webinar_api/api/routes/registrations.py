"""
Registration endpoints: register, list mine, read, cancel.
"""

import uuid

from fastapi import APIRouter, Depends, status

from webinar_api.api.deps import get_workflow
from webinar_api.core.security import get_current_user_id
from webinar_api.models import RegistrationStatus
from webinar_api.schemas.common import ApiResponse
from webinar_api.schemas.registration import (
    RegistrationCreate,
    RegistrationCreated,
    RegistrationResponse,
)
from webinar_api.services.cache_service import invalidate_webinar_cache
from webinar_api.services.registration_workflow import RegistrationWorkflow

router = APIRouter(prefix="/registrations", tags=["Registrations"])


@router.post("", response_model=ApiResponse[RegistrationCreated], status_code=status.HTTP_201_CREATED)
async def create_registration_endpoint(
    body: RegistrationCreate,
    workflow: RegistrationWorkflow = Depends(get_workflow),
):
    """
    Register for a webinar. No token needed: the attendee is identified by e-mail.

    Free webinars come back confirmed. Priced ones come back pending with a
    checkout_url; confirmation happens when the payment webhook arrives.
    """
    result = await workflow.create_registration(
        webinar_id=body.webinar_id,
        email=body.user.email,
        name=body.user.name,
        company=body.user.company,
    )
    if result.status == RegistrationStatus.CONFIRMED:
        await invalidate_webinar_cache()

    data = RegistrationCreated(
        **result.model_dump(exclude={"status"}),
        status=result.status.value,
        requires_payment=result.checkout_url is not None,
    )
    message = "Registration confirmed" if data.status == "confirmed" else "Proceed to payment"
    return ApiResponse(data=data, message=message)


@router.get("/my", response_model=ApiResponse[list[RegistrationResponse]])
async def list_my_registrations_endpoint(
    user_id: uuid.UUID = Depends(get_current_user_id),
    workflow: RegistrationWorkflow = Depends(get_workflow),
):
    registrations = await workflow.list_user_registrations(user_id)
    return ApiResponse(data=[RegistrationResponse.model_validate(r) for r in registrations])


@router.get("/{registration_id}", response_model=ApiResponse[RegistrationResponse])
async def get_registration_endpoint(
    registration_id: uuid.UUID,
    workflow: RegistrationWorkflow = Depends(get_workflow),
):
    registration = await workflow.get_registration(registration_id)
    return ApiResponse(data=RegistrationResponse.model_validate(registration))


@router.delete("/{registration_id}", response_model=ApiResponse[RegistrationResponse])
async def cancel_registration_endpoint(
    registration_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    workflow: RegistrationWorkflow = Depends(get_workflow),
):
    """Cancel your own registration. Calendar and e-mail cleanup are best effort."""
    registration = await workflow.cancel_registration(registration_id, user_id)
    await invalidate_webinar_cache()
    return ApiResponse(data=RegistrationResponse.model_validate(registration), message="Registration cancelled")

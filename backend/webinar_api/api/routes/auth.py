"""
Authentication endpoints: register, login, me.
"""

import uuid

from fastapi import APIRouter, Depends, status

from webinar_api.api.deps import get_store
from webinar_api.core.exceptions import NotFoundError
from webinar_api.core.security import get_current_user_id
from webinar_api.schemas.common import ApiResponse
from webinar_api.schemas.user import AuthResponse, Token, UserIdentity, UserLogin, UserResponse
from webinar_api.services.auth_service import authenticate_user, register_user
from webinar_api.store.registration_store import RegistrationStore

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=ApiResponse[AuthResponse], status_code=status.HTTP_201_CREATED)
async def register(identity: UserIdentity, store: RegistrationStore = Depends(get_store)):
    """Create (or refresh) an attendee by e-mail and issue a token."""
    user, token = await register_user(store, identity)
    return ApiResponse(
        data=AuthResponse(user=UserResponse.model_validate(user), token=Token(access_token=token)),
        message="Registered",
    )


@router.post("/login", response_model=ApiResponse[AuthResponse])
async def login(login_data: UserLogin, store: RegistrationStore = Depends(get_store)):
    user, token = await authenticate_user(store, login_data)
    return ApiResponse(
        data=AuthResponse(user=UserResponse.model_validate(user), token=Token(access_token=token)),
    )


@router.get("/me", response_model=ApiResponse[UserResponse])
async def me(
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: RegistrationStore = Depends(get_store),
):
    user = await store.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return ApiResponse(data=UserResponse.model_validate(user))

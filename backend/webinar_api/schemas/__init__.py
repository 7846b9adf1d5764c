from webinar_api.schemas.common import ApiResponse, ErrorResponse
from webinar_api.schemas.user import UserIdentity, UserLogin, UserResponse, Token, AuthResponse
from webinar_api.schemas.webinar import (
    WebinarCreate,
    WebinarUpdate,
    WebinarResponse,
    WebinarDetailResponse,
    WebinarListResponse,
)
from webinar_api.schemas.registration import (
    RegistrationCreate,
    RegistrationCreated,
    RegistrationResponse,
    PaymentSummary,
)
from webinar_api.schemas.payment import WebhookAck, PaymentStatusResponse, PaymentReturnResponse

__all__ = [
    "ApiResponse", "ErrorResponse",
    "UserIdentity", "UserLogin", "UserResponse", "Token", "AuthResponse",
    "WebinarCreate", "WebinarUpdate", "WebinarResponse", "WebinarDetailResponse", "WebinarListResponse",
    "RegistrationCreate", "RegistrationCreated", "RegistrationResponse", "PaymentSummary",
    "WebhookAck", "PaymentStatusResponse", "PaymentReturnResponse",
]

"""
Domain error taxonomy.

Services raise these instead of HTTPException so the same code can run from a
request handler, the webhook handler or the reminder sweep. The exception
handlers in main.py turn them into the {"success": false, "error": ...}
envelope with the matching status code.
"""

from typing import Optional

from fastapi import status


class WebinarAPIError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Unexpected server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(WebinarAPIError):
    """Malformed or missing input, rejected before any side effect."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid input"

    def __init__(self, message: Optional[str] = None, fields: Optional[list[str]] = None):
        super().__init__(message)
        self.fields = fields or []


class NotFoundError(WebinarAPIError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ForbiddenError(WebinarAPIError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to perform this action"


class InvalidStateError(WebinarAPIError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Operation not allowed in the current state"


class ConflictError(WebinarAPIError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflicting request"


class CapacityError(WebinarAPIError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "This webinar is full"


class AuthenticationError(WebinarAPIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication failed"


class UpstreamError(WebinarAPIError):
    """An external provider (gateway, calendar, mail) failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "External provider error"

    def __init__(self, message: Optional[str] = None, provider: str = "unknown"):
        super().__init__(message)
        self.provider = provider


class InternalError(WebinarAPIError):
    """Store failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal storage error"

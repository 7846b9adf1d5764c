from webinar_api.models.user import User
from webinar_api.models.webinar import Webinar, WebinarStatus
from webinar_api.models.registration import Registration, RegistrationStatus, can_transition
from webinar_api.models.payment import Payment, PaymentStatus

__all__ = [
    "User",
    "Webinar", "WebinarStatus",
    "Registration", "RegistrationStatus", "can_transition",
    "Payment", "PaymentStatus",
]

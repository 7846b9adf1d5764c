"""
Authentication service: attendees are identified by e-mail only.

register = create-or-refresh the user, then issue a token.
login    = issue a token for an e-mail we already know.
"""

from webinar_api.core.exceptions import NotFoundError
from webinar_api.core.logging import get_logger
from webinar_api.core.security import create_access_token
from webinar_api.models import User
from webinar_api.schemas.user import UserIdentity, UserLogin
from webinar_api.store.registration_store import RegistrationStore

logger = get_logger(__name__)


def issue_token(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "email": user.email})


async def register_user(store: RegistrationStore, identity: UserIdentity) -> tuple[User, str]:
    user = await store.upsert_user(email=identity.email, name=identity.name, company=identity.company)
    logger.info("user_registered", user_id=str(user.id), email=user.email)
    return user, issue_token(user)


async def authenticate_user(store: RegistrationStore, login_data: UserLogin) -> tuple[User, str]:
    """Raises NotFoundError for an unknown e-mail."""
    user = await store.get_user_by_email(login_data.email)
    if not user:
        logger.warning("login_failed", email=login_data.email)
        raise NotFoundError("No user with this e-mail")

    logger.info("user_logged_in", user_id=str(user.id))
    return user, issue_token(user)

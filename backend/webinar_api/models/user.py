"""
User model. Attendees are created on their first registration and looked up
by e-mail afterwards; there is no password, tokens are issued per e-mail.
"""

from sqlalchemy import Column, String

from webinar_api.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "users"

    # Always stored lower-cased, see RegistrationStore.upsert_user
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    company = Column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"

"""
Registration model: one user attending one webinar.

Key design decisions:
- A partial unique index on (user_id, webinar_id) WHERE status != 'cancelled'
  allows re-registering after a cancellation but never two live registrations
- meet_link / calendar_event_id are only filled in by the confirmation routine
- reminder_sent only ever goes from false to true
"""

import enum

from sqlalchemy import Column, String, Boolean, ForeignKey, Index, CheckConstraint, Uuid, text
from sqlalchemy.orm import relationship

from webinar_api.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class RegistrationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# pending -> confirmed | cancelled, confirmed -> cancelled (owner cancellation).
# confirmed -> confirmed is the recovery path: re-running confirmation.
ALLOWED_TRANSITIONS = {
    RegistrationStatus.PENDING: {RegistrationStatus.CONFIRMED, RegistrationStatus.CANCELLED},
    RegistrationStatus.CONFIRMED: {RegistrationStatus.CONFIRMED, RegistrationStatus.CANCELLED},
    RegistrationStatus.CANCELLED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return RegistrationStatus(target) in ALLOWED_TRANSITIONS[RegistrationStatus(current)]


class Registration(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "registrations"

    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    webinar_id = Column(Uuid, ForeignKey("webinars.id"), nullable=False, index=True)
    # Mirrors payments.registration_id; kept as a plain column to avoid a FK cycle
    payment_id = Column(Uuid, nullable=True)
    status = Column(String(20), nullable=False, default=RegistrationStatus.PENDING.value)
    meet_link = Column(String(500), nullable=True)
    calendar_event_id = Column(String(255), nullable=True)
    reminder_sent = Column(Boolean, nullable=False, default=False)

    user = relationship("User", lazy="selectin")
    webinar = relationship("Webinar", lazy="selectin")
    payment = relationship("Payment", back_populates="registration", uselist=False, lazy="selectin")

    __table_args__ = (
        Index(
            "uq_registrations_active_user_webinar",
            "user_id",
            "webinar_id",
            unique=True,
            postgresql_where=text("status != 'cancelled'"),
            sqlite_where=text("status != 'cancelled'"),
        ),
        Index("ix_registrations_reminder", "status", "reminder_sent"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled')", name="check_registration_status"
        ),
    )

    def __repr__(self) -> str:
        return f"<Registration(id={self.id}, user={self.user_id}, webinar={self.webinar_id}, status={self.status})>"

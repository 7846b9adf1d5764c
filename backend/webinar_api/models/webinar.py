"""
Webinar model.

Key design decisions:
- end_date > start_date is enforced both in the service layer and by a CHECK
  constraint, so a bad update cannot slip in through another code path
- price is a Decimal; 0 means free and skips the payment gateway entirely
- capacity is counted from confirmed registrations, not denormalized
"""

import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, Index, CheckConstraint

from webinar_api.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class WebinarStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Webinar(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "webinars"

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    max_participants = Column(Integer, nullable=False, default=100)
    status = Column(String(20), nullable=False, default=WebinarStatus.ACTIVE.value)
    # Organizer-side calendar event, not the per-attendee ones
    calendar_event_id = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("end_date > start_date", name="check_webinar_end_after_start"),
        CheckConstraint("price >= 0", name="check_webinar_price_non_negative"),
        CheckConstraint("max_participants > 0", name="check_webinar_capacity_positive"),
        CheckConstraint(
            "status IN ('active', 'cancelled', 'completed')", name="check_webinar_status"
        ),
        Index("ix_webinars_start_date", "start_date"),
        Index("ix_webinars_status_start_date", "status", "start_date"),
    )

    @property
    def is_free(self) -> bool:
        return self.price is None or self.price <= 0

    def __repr__(self) -> str:
        return f"<Webinar(id={self.id}, title={self.title}, status={self.status})>"

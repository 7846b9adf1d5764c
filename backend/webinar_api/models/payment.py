"""
Payment model: the money side of a priced registration (1:1).

Key design decisions:
- status moves pending -> completed | failed only through the webhook handler
- payment_date is stamped on the transition to completed and drives invoice
  numbering (count of completed payments in the same calendar month)
- invoice_number is unique; allocation itself is not serialized
"""

import enum

from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey, Index, CheckConstraint, Uuid
from sqlalchemy.orm import relationship

from webinar_api.db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Payment(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "payments"

    registration_id = Column(Uuid, ForeignKey("registrations.id"), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    checkout_id = Column(String(255), nullable=True, unique=True)
    transaction_id = Column(String(255), nullable=True)
    invoice_number = Column(String(32), nullable=True, unique=True)
    invoice_url = Column(String(500), nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)

    registration = relationship("Registration", back_populates="payment", lazy="raise")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'refunded')", name="check_payment_status"
        ),
        Index("ix_payments_status_payment_date", "status", "payment_date"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, registration={self.registration_id}, status={self.status})>"

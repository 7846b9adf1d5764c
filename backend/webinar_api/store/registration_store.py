"""
Registration store: persistence for users, webinars, registrations, payments.

CONSISTENCY MODEL
=================

Every mutating method commits before returning. The confirmation routine is a
chain of independent commits (meeting info, status, invoice), never one
transaction:

  - a crash half-way leaves a consistent-but-incomplete registration that a
    re-run of the confirmation routine finishes
  - the webhook handler can commit payment=completed before confirmation runs,
    and nothing confirmation does can roll that back

Read-then-write races that follow from this are documented where they occur:

  - invoice numbering (count completed payments this month, then format)
  - webhook de-duplication (read payment status, then update it)
  - reminder sweep (read reminder_sent=false, then set it)

Only the registration uniqueness rule is enforced by the database itself
(partial unique index on user_id, webinar_id where status != 'cancelled').
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import AsyncIterator, Optional

from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from webinar_api.core.exceptions import ConflictError, InternalError
from webinar_api.core.logging import get_logger
from webinar_api.core.clock import utcnow
from webinar_api.models import (
    Payment,
    PaymentStatus,
    Registration,
    RegistrationStatus,
    User,
    Webinar,
)

logger = get_logger(__name__)


class RegistrationStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def _storage_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("store_operation_failed", operation=operation, error=str(e))
            raise InternalError(f"Storage error during {operation}") from e

    async def _commit(self, operation: str) -> None:
        async with self._storage_errors(operation):
            await self.session.commit()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        async with self._storage_errors("get_user"):
            return await self.session.get(User, user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        async with self._storage_errors("get_user_by_email"):
            result = await self.session.execute(
                select(User).where(func.lower(User.email) == email.strip().lower())
            )
            return result.scalar_one_or_none()

    async def upsert_user(self, email: str, name: str, company: Optional[str] = None) -> User:
        """
        Create the user on first sight of an e-mail, otherwise overwrite
        name/company. The e-mail itself never changes.
        """
        user = await self.get_user_by_email(email)
        if user is None:
            user = User(email=email.strip().lower(), name=name, company=company)
            self.session.add(user)
            logger.info("user_created", email=user.email)
        else:
            user.name = name
            user.company = company
        await self._commit("upsert_user")
        return user

    # ------------------------------------------------------------------
    # Webinars
    # ------------------------------------------------------------------

    async def get_webinar(self, webinar_id: uuid.UUID) -> Optional[Webinar]:
        async with self._storage_errors("get_webinar"):
            return await self.session.get(Webinar, webinar_id)

    async def count_confirmed_registrations(self, webinar_id: uuid.UUID) -> int:
        async with self._storage_errors("count_confirmed_registrations"):
            result = await self.session.execute(
                select(func.count())
                .select_from(Registration)
                .where(
                    Registration.webinar_id == webinar_id,
                    Registration.status == RegistrationStatus.CONFIRMED.value,
                )
            )
            return result.scalar_one()

    async def is_webinar_full(self, webinar: Webinar) -> bool:
        confirmed = await self.count_confirmed_registrations(webinar.id)
        return confirmed >= webinar.max_participants

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------

    async def get_registration(self, registration_id: uuid.UUID) -> Optional[Registration]:
        async with self._storage_errors("get_registration"):
            result = await self.session.execute(
                select(Registration)
                .where(Registration.id == registration_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def get_registration_with_details(self, registration_id: uuid.UUID) -> Optional[Registration]:
        """Registration with user, webinar and payment loaded."""
        async with self._storage_errors("get_registration_with_details"):
            result = await self.session.execute(
                select(Registration)
                .options(
                    selectinload(Registration.user),
                    selectinload(Registration.webinar),
                    selectinload(Registration.payment),
                )
                .where(Registration.id == registration_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def find_active_registration(
        self, user_id: uuid.UUID, webinar_id: uuid.UUID
    ) -> Optional[Registration]:
        async with self._storage_errors("find_active_registration"):
            result = await self.session.execute(
                select(Registration).where(
                    Registration.user_id == user_id,
                    Registration.webinar_id == webinar_id,
                    Registration.status != RegistrationStatus.CANCELLED.value,
                )
            )
            return result.scalars().first()

    async def list_registrations_for_user(self, user_id: uuid.UUID) -> list[Registration]:
        async with self._storage_errors("list_registrations_for_user"):
            result = await self.session.execute(
                select(Registration)
                .where(Registration.user_id == user_id)
                .order_by(Registration.created_at.desc())
            )
            return list(result.scalars().all())

    async def list_registrations_for_webinar(self, webinar_id: uuid.UUID) -> list[Registration]:
        async with self._storage_errors("list_registrations_for_webinar"):
            result = await self.session.execute(
                select(Registration)
                .where(Registration.webinar_id == webinar_id)
                .order_by(Registration.created_at.desc())
            )
            return list(result.scalars().all())

    async def create_registration(self, user_id: uuid.UUID, webinar_id: uuid.UUID) -> Registration:
        registration = Registration(
            user_id=user_id,
            webinar_id=webinar_id,
            status=RegistrationStatus.PENDING.value,
            reminder_sent=False,
        )
        self.session.add(registration)
        try:
            await self.session.commit()
        except IntegrityError as e:
            # Lost the race against a concurrent registration for the same pair
            await self.session.rollback()
            logger.warning(
                "registration_conflict", user_id=str(user_id), webinar_id=str(webinar_id)
            )
            raise ConflictError("You are already registered for this webinar") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise InternalError("Storage error during create_registration") from e
        return registration

    async def link_payment(self, registration_id: uuid.UUID, payment_id: uuid.UUID) -> None:
        async with self._storage_errors("link_payment"):
            await self.session.execute(
                update(Registration)
                .where(Registration.id == registration_id)
                .values(payment_id=payment_id, updated_at=utcnow())
            )
        await self._commit("link_payment")

    async def update_meeting_info(
        self, registration_id: uuid.UUID, meet_link: str, calendar_event_id: str
    ) -> None:
        async with self._storage_errors("update_meeting_info"):
            await self.session.execute(
                update(Registration)
                .where(Registration.id == registration_id)
                .values(meet_link=meet_link, calendar_event_id=calendar_event_id, updated_at=utcnow())
            )
        await self._commit("update_meeting_info")

    async def update_registration_status(
        self, registration_id: uuid.UUID, status: RegistrationStatus
    ) -> None:
        async with self._storage_errors("update_registration_status"):
            await self.session.execute(
                update(Registration)
                .where(Registration.id == registration_id)
                .values(status=status.value, updated_at=utcnow())
            )
        await self._commit("update_registration_status")

    async def mark_reminder_sent(self, registration_id: uuid.UUID) -> None:
        async with self._storage_errors("mark_reminder_sent"):
            await self.session.execute(
                update(Registration)
                .where(Registration.id == registration_id, Registration.reminder_sent.is_(False))
                .values(reminder_sent=True, updated_at=utcnow())
            )
        await self._commit("mark_reminder_sent")

    async def find_registrations_needing_reminder(
        self, window_start: datetime, window_end: datetime
    ) -> list[Registration]:
        """Confirmed, not yet reminded, webinar starting in [window_start, window_end)."""
        async with self._storage_errors("find_registrations_needing_reminder"):
            result = await self.session.execute(
                select(Registration)
                .join(Webinar, Registration.webinar_id == Webinar.id)
                .options(selectinload(Registration.user), selectinload(Registration.webinar))
                .where(
                    Registration.status == RegistrationStatus.CONFIRMED.value,
                    Registration.reminder_sent.is_(False),
                    Webinar.start_date >= window_start,
                    Webinar.start_date < window_end,
                )
                .order_by(Webinar.start_date.asc())
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def get_payment(self, payment_id: uuid.UUID) -> Optional[Payment]:
        async with self._storage_errors("get_payment"):
            result = await self.session.execute(
                select(Payment)
                .where(Payment.id == payment_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def get_payment_by_checkout_id(self, checkout_id: str) -> Optional[Payment]:
        async with self._storage_errors("get_payment_by_checkout_id"):
            result = await self.session.execute(
                select(Payment)
                .where(Payment.checkout_id == checkout_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def get_payment_for_registration(self, registration_id: uuid.UUID) -> Optional[Payment]:
        async with self._storage_errors("get_payment_for_registration"):
            result = await self.session.execute(
                select(Payment)
                .where(Payment.registration_id == registration_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def create_payment(
        self, registration_id: uuid.UUID, amount: Decimal, currency: str = "EUR"
    ) -> Payment:
        payment = Payment(
            registration_id=registration_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING.value,
        )
        self.session.add(payment)
        await self._commit("create_payment")
        return payment

    async def set_payment_checkout(self, payment_id: uuid.UUID, checkout_id: str) -> None:
        async with self._storage_errors("set_payment_checkout"):
            await self.session.execute(
                update(Payment)
                .where(Payment.id == payment_id)
                .values(checkout_id=checkout_id, updated_at=utcnow())
            )
        await self._commit("set_payment_checkout")

    async def update_payment_status(
        self,
        payment_id: uuid.UUID,
        status: PaymentStatus,
        transaction_id: Optional[str] = None,
    ) -> None:
        values = {"status": status.value, "updated_at": utcnow()}
        if status == PaymentStatus.COMPLETED:
            values["payment_date"] = utcnow()
        if transaction_id:
            values["transaction_id"] = transaction_id

        async with self._storage_errors("update_payment_status"):
            await self.session.execute(
                update(Payment).where(Payment.id == payment_id).values(**values)
            )
        await self._commit("update_payment_status")

    async def count_completed_payments_between(self, start: datetime, end: datetime) -> int:
        async with self._storage_errors("count_completed_payments_between"):
            result = await self.session.execute(
                select(func.count())
                .select_from(Payment)
                .where(
                    Payment.status == PaymentStatus.COMPLETED.value,
                    Payment.payment_date >= start,
                    Payment.payment_date < end,
                )
            )
            return result.scalar_one()

    async def update_payment_invoice(
        self, payment_id: uuid.UUID, invoice_number: str, invoice_url: Optional[str] = None
    ) -> None:
        try:
            await self.session.execute(
                update(Payment)
                .where(Payment.id == payment_id)
                .values(invoice_number=invoice_number, invoice_url=invoice_url, updated_at=utcnow())
            )
            await self.session.commit()
        except IntegrityError as e:
            # Two confirmations in the same month computed the same sequence
            await self.session.rollback()
            logger.error("invoice_number_collision", payment_id=str(payment_id), invoice_number=invoice_number)
            raise ConflictError(f"Invoice number {invoice_number} is already taken") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise InternalError("Storage error during update_payment_invoice") from e


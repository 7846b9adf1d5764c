"""
Invoice numbers: INV-{year}{month:02}-{sequence:04}.

The sequence is 1 + the number of completed payments dated in the current
calendar month (UTC). Allocation is read-count-then-format, so two
confirmations running at the same moment can compute the same number; the
unique index on payments.invoice_number turns the loser into a ConflictError
instead of a duplicate invoice.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from webinar_api.core.clock import ensure_utc, utcnow
from webinar_api.store.registration_store import RegistrationStore

INVOICE_NUMBER_PATTERN = re.compile(r"^INV-(\d{4})(\d{2})-(\d{4,})$")


def format_invoice_number(year: int, month: int, sequence: int) -> str:
    return f"INV-{year}{month:02d}-{sequence:04d}"


def month_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """[first day of the month 00:00, first day of next month 00:00) in UTC."""
    moment = ensure_utc(moment)
    start = datetime(moment.year, moment.month, 1, tzinfo=timezone.utc)
    if moment.month == 12:
        end = datetime(moment.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(moment.year, moment.month + 1, 1, tzinfo=timezone.utc)
    return start, end


async def allocate_invoice_number(store: RegistrationStore, now: Optional[datetime] = None) -> str:
    now = ensure_utc(now or utcnow())
    start, end = month_bounds(now)
    completed = await store.count_completed_payments_between(start, end)
    return format_invoice_number(now.year, now.month, completed + 1)

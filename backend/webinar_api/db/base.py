"""
Declarative base and shared column mixins.
"""

import uuid

from sqlalchemy import Column, DateTime, Uuid, func
from sqlalchemy.orm import DeclarativeBase

from webinar_api.core.clock import utcnow


def new_id() -> uuid.UUID:
    return uuid.uuid4()


class Base(DeclarativeBase):
    pass


class UUIDPrimaryKeyMixin:
    id = Column(Uuid, primary_key=True, default=new_id)


class TimestampMixin:
    """
    created_at / updated_at, filled in by the ORM at flush time.

    Python-side defaults keep the attributes loaded after a commit, which
    matters with AsyncSession where an expired attribute cannot lazy-load.
    The server defaults cover rows written outside the ORM.
    """

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

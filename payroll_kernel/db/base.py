"""
Declarative bases for the payroll ORM models.

Column types follow the Python annotations:

    UUID      -> sqlalchemy.Uuid (native on PostgreSQL, CHAR(32) elsewhere)
    Decimal   -> Numeric(18, 2); money is never stored as float
    datetime  -> DateTime(timezone=True)

Engines and modules never import from here; only ``orm.py`` companions do.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Numeric, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Root of the payroll metadata.  Every table has a UUID ``id``."""

    type_annotation_map: ClassVar[dict[Any, Any]] = {
        UUID: Uuid(as_uuid=True),
        Decimal: Numeric(18, 2),
        datetime: DateTime(timezone=True),
    }

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds row timestamps and the acting user.

    ``created_by_id`` stays empty for rows written by scheduled jobs such as
    monthly leave accrual.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[UUID | None] = mapped_column()
    updated_by_id: Mapped[UUID | None] = mapped_column()

"""
SQLAlchemy Base Model.

Declarative base, constraint naming and the column helpers shared by the
notification, template and preference tables.

All timestamps are naive UTC (see core.utils.utc_now). Enumerations are
stored as their string values in VARCHAR columns so new statuses or channels
need no database type change.
"""

from datetime import datetime
from enum import StrEnum
from uuid import uuid4

from sqlalchemy import DateTime, Enum, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from modules.notifier.core.utils import utc_now

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all notifier tables."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def string_enum(enum_cls: type[StrEnum]) -> Enum:
    """Column type storing a StrEnum by value; unknown strings are rejected on write."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


class TimestampMixin:
    """created_at / updated_at, both naive UTC."""

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )


class UUIDMixin:
    """String UUID primary key generated on insert."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

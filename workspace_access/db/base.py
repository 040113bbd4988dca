from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

_SIGN_BIT = 1 << 63
_MODULUS = 1 << 64


class Base(DeclarativeBase):
    pass


class UnsignedMask(TypeDecorator):
    """
    Unsigned 64-bit capability mask stored in a signed BIGINT column.

    Values with bit 63 set are written as their two's-complement negative and
    read back as the original unsigned int.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value)
        return value - _MODULUS if value >= _SIGN_BIT else value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value + _MODULUS if value < 0 else value


class SoftDeleteMixin:
    """
    Rows are never hard-deleted; ``deleted_at`` marks removal.

    ORM SELECTs skip marked rows automatically (see ``db/filters.py``).
    """

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

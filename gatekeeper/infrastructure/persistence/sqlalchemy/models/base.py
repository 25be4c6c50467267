"""
Base model class for all database models.

This module provides the declarative base, the constraint naming convention
and the column types shared by every model. Types are dialect-neutral so
the same models run on PostgreSQL (asyncpg) and SQLite (aiosqlite).
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, MetaData, TypeDecorator, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from gatekeeper.core.clock import ensure_utc

# Naming convention for constraints
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UtcDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetime column.

    SQLite drops tzinfo on the way in and out; values are normalized to UTC
    before binding and re-tagged as UTC when read, so entities always see
    aware datetimes regardless of the backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        return ensure_utc(value)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        return ensure_utc(value)


class Base(DeclarativeBase):
    """
    Base class for all database models.

    Usage:
        class UserModel(UUIDPrimaryKeyMixin, Base):
            __tablename__ = "users"
            username: Mapped[str] = mapped_column(String(50))
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class UUIDPrimaryKeyMixin:
    """UUID primary key (``id`` column) for entity tables."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"

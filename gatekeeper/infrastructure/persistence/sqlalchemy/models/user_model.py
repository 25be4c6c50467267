"""User SQLAlchemy model."""

from datetime import datetime

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from gatekeeper.infrastructure.persistence.sqlalchemy.models.base import (
    Base,
    UtcDateTime,
    UUIDPrimaryKeyMixin,
)


class UserModel(UUIDPrimaryKeyMixin, Base):
    """
    User ORM model. Pure persistence, no business logic.

    ``version`` is SQLAlchemy's optimistic-concurrency column: every UPDATE
    is issued with ``WHERE version = <loaded version>`` and fails with
    ``StaleDataError`` if another transaction got there first. The lockout
    counter and two-factor fields rely on it.

    Usernames and emails are stored lowercased (``username_normalized``,
    ``email``) for case-insensitive uniqueness.
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(50), nullable=False)
    username_normalized: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    password_salt: Mapped[str] = mapped_column(String(128), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    phone_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    two_factor_method: Mapped[str] = mapped_column(String(10), nullable=False, default="none")
    two_factor_secret: Mapped[str | None] = mapped_column(String(128), nullable=True)

    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lockout_end: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)

    last_password_change_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

"""
Credential-side SQLAlchemy models: refresh tokens, recovery codes and
login history.

Refresh tokens and recovery codes must survive restarts, since revocation
and expiry checks read them. Both store SHA-256 digests, never plaintext
(recovery codes only when hashing is enabled).
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from gatekeeper.infrastructure.persistence.sqlalchemy.models.base import (
    Base,
    UtcDateTime,
    UUIDPrimaryKeyMixin,
)


class RefreshTokenModel(UUIDPrimaryKeyMixin, Base):
    """
    Refresh token ORM model.

    Token Lifecycle:
        1. Login: insert a new row
        2. Refresh: revoke the old row with replaced_by_token_id -> new row
        3. Reuse of an inactive token: revoke every row reachable through
           replaced_by_token_id
        4. Logout / password change: revoke
    """

    __tablename__ = "refresh_tokens"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    created_by_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    revoked_by_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    revocation_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    replaced_by_token_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), nullable=True
    )

    __table_args__ = (
        Index("ix_refresh_tokens_user_id_revoked_at", "user_id", "revoked_at"),
        Index("ix_refresh_tokens_expires_at", "expires_at"),
    )


class RecoveryCodeModel(UUIDPrimaryKeyMixin, Base):
    """Two-factor recovery code ORM model."""

    __tablename__ = "two_factor_recovery_codes"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    code_value: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)


class LoginAttemptModel(UUIDPrimaryKeyMixin, Base):
    """Login history ORM model. ``user_id`` is null for unknown identifiers."""

    __tablename__ = "login_attempts"

    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    succeeded: Mapped[bool] = mapped_column(Boolean, nullable=False)
    stage: Mapped[str] = mapped_column(String(20), nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (Index("ix_login_attempts_user_id_attempted_at", "user_id", "attempted_at"),)

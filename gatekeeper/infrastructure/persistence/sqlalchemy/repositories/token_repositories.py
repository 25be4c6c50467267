"""SQLAlchemy implementations of the refresh token, recovery code and login history ports."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.application.ports.recovery_code_repository_port import (
    LoginAttemptRepositoryPort,
    RecoveryCodeRepositoryPort,
)
from gatekeeper.application.ports.refresh_token_repository_port import (
    RefreshTokenRepositoryPort,
)
from gatekeeper.core.exceptions import ConcurrencyConflictError, NotFoundError
from gatekeeper.domain.entities.login_attempt import LoginAttempt
from gatekeeper.domain.entities.recovery_code import RecoveryCode
from gatekeeper.domain.entities.refresh_token import RefreshToken
from gatekeeper.infrastructure.persistence.sqlalchemy.mappers import (
    LoginAttemptMapper,
    RecoveryCodeMapper,
    RefreshTokenMapper,
)
from gatekeeper.infrastructure.persistence.sqlalchemy.models import (
    LoginAttemptModel,
    RecoveryCodeModel,
    RefreshTokenModel,
)
from gatekeeper.infrastructure.persistence.sqlalchemy.repositories.base_repository import (
    BaseRepository,
    flush_session,
)


class SqlAlchemyRefreshTokenRepository(
    BaseRepository[RefreshTokenModel, RefreshToken], RefreshTokenRepositoryPort
):
    """SQLAlchemy implementation of RefreshTokenRepositoryPort."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, RefreshTokenModel, RefreshTokenMapper, "Refresh token")

    async def get_by_token_hash(self, token_hash: str) -> RefreshToken | None:
        """
        Retrieve refresh token by token hash.

        Args:
            token_hash: SHA-256 hash of the token

        Returns:
            RefreshToken entity if found, None otherwise
        """
        stmt = select(RefreshTokenModel).where(RefreshTokenModel.token_hash == token_hash)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self.mapper.to_entity(model) if model else None

    async def update(self, refresh_token: RefreshToken) -> RefreshToken:
        """
        Persist a token's revocation.

        Revoking is a compare-and-set on ``revoked_at IS NULL``: when two
        requests rotate the same token concurrently, only one UPDATE matches
        and the other fails with ConcurrencyConflictError.
        """
        if refresh_token.revoked_at is None:
            return refresh_token

        stmt = (
            update(RefreshTokenModel)
            .where(
                RefreshTokenModel.id == refresh_token.id,
                RefreshTokenModel.revoked_at.is_(None),
            )
            .values(
                revoked_at=refresh_token.revoked_at,
                revoked_by_ip=refresh_token.revoked_by_ip,
                revocation_reason=refresh_token.revocation_reason,
                replaced_by_token_id=refresh_token.replaced_by_token_id,
            )
            .execution_options(synchronize_session="evaluate")
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            if await self.session.get(RefreshTokenModel, refresh_token.id) is None:
                raise NotFoundError(resource="Refresh token")
            raise ConcurrencyConflictError(message="Refresh token was already revoked")
        return refresh_token

    async def list_active_for_user(self, user_id: UUID, now: datetime) -> list[RefreshToken]:
        stmt = (
            select(RefreshTokenModel)
            .where(
                RefreshTokenModel.user_id == user_id,
                RefreshTokenModel.revoked_at.is_(None),
                RefreshTokenModel.expires_at > now,
            )
            .order_by(RefreshTokenModel.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return [self.mapper.to_entity(m) for m in result.scalars().all()]

    async def revoke_all_for_user(
        self,
        user_id: UUID,
        now: datetime,
        reason: str,
        ip_address: str | None = None,
    ) -> int:
        """
        Revoke all refresh tokens for a user.

        Used on password change, 2FA disable and logout everywhere.
        """
        stmt = (
            update(RefreshTokenModel)
            .where(
                RefreshTokenModel.user_id == user_id,
                RefreshTokenModel.revoked_at.is_(None),
            )
            .values(revoked_at=now, revocation_reason=reason, revoked_by_ip=ip_address)
            .execution_options(synchronize_session="evaluate")
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def delete_expired(self, before: datetime) -> int:
        """
        Delete expired tokens from the database.

        This is typically run as a scheduled job to keep the table small.
        """
        result = await self.session.execute(
            delete(RefreshTokenModel)
            .where(RefreshTokenModel.expires_at < before)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount


class SqlAlchemyRecoveryCodeRepository(RecoveryCodeRepositoryPort):
    """SQLAlchemy implementation of RecoveryCodeRepositoryPort."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_many(self, codes: list[RecoveryCode]) -> list[RecoveryCode]:
        self.session.add_all([RecoveryCodeMapper.to_model(code) for code in codes])
        await flush_session(self.session, "Recovery code")
        return codes

    async def list_for_user(self, user_id: UUID) -> list[RecoveryCode]:
        stmt = (
            select(RecoveryCodeModel)
            .where(RecoveryCodeModel.user_id == user_id)
            .order_by(RecoveryCodeModel.created_at)
        )
        result = await self.session.execute(stmt)
        return [RecoveryCodeMapper.to_entity(m) for m in result.scalars().all()]

    async def mark_used(self, code_id: UUID, used_at: datetime) -> bool:
        stmt = (
            update(RecoveryCodeModel)
            .where(RecoveryCodeModel.id == code_id, RecoveryCodeModel.is_used.is_(False))
            .values(is_used=True, used_at=used_at)
            .execution_options(synchronize_session="evaluate")
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def delete_for_user(self, user_id: UUID) -> int:
        result = await self.session.execute(
            delete(RecoveryCodeModel)
            .where(RecoveryCodeModel.user_id == user_id)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount


class SqlAlchemyLoginAttemptRepository(LoginAttemptRepositoryPort):
    """SQLAlchemy implementation of LoginAttemptRepositoryPort."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, attempt: LoginAttempt) -> LoginAttempt:
        self.session.add(LoginAttemptMapper.to_model(attempt))
        await flush_session(self.session, "Login attempt")
        return attempt

    async def list_for_user(self, user_id: UUID, limit: int = 50) -> list[LoginAttempt]:
        stmt = (
            select(LoginAttemptModel)
            .where(LoginAttemptModel.user_id == user_id)
            .order_by(LoginAttemptModel.attempted_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [LoginAttemptMapper.to_entity(m) for m in result.scalars().all()]

"""
SQLAlchemy implementation of the Unit of Work pattern.

Each unit of work owns one session, and therefore one transaction, for the
duration of an ``async with`` block.
"""

import logging

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkPort
from gatekeeper.core.exceptions import (
    AlreadyExistsError,
    ConcurrencyConflictError,
    PersistenceUnavailableError,
)
from gatekeeper.infrastructure.persistence.sqlalchemy.repositories import (
    SqlAlchemyLoginAttemptRepository,
    SqlAlchemyPermissionRepository,
    SqlAlchemyRecoveryCodeRepository,
    SqlAlchemyRefreshTokenRepository,
    SqlAlchemyRolePermissionRepository,
    SqlAlchemyRoleRepository,
    SqlAlchemyUserRepository,
    SqlAlchemyUserRoleRepository,
)

logger = logging.getLogger(__name__)


class SqlAlchemyUnitOfWork(UnitOfWorkPort):
    """
    SQLAlchemy implementation of Unit of Work pattern.

    All repositories share the same session, so every operation inside one
    ``async with`` block is atomic.

    Usage:
        async with SqlAlchemyUnitOfWork(session_factory) as uow:
            token = await uow.refresh_tokens.get_by_token_hash(digest)
            token.revoke(now, RevocationReason.LOGOUT)
            await uow.refresh_tokens.update(token)
            # Committed on exit

        # On exception, automatic rollback occurs
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize Unit of Work with a session factory.

        Args:
            session_factory: Factory producing one AsyncSession per unit of work
        """
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        """
        Enter async context manager (open session, begin transaction).

        Returns:
            Self (UnitOfWork instance)
        """
        self._session = self._session_factory()
        session = self._session

        self.users = SqlAlchemyUserRepository(session)
        self.roles = SqlAlchemyRoleRepository(session)
        self.permissions = SqlAlchemyPermissionRepository(session)
        self.role_permissions = SqlAlchemyRolePermissionRepository(session)
        self.user_roles = SqlAlchemyUserRoleRepository(session)
        self.refresh_tokens = SqlAlchemyRefreshTokenRepository(session)
        self.recovery_codes = SqlAlchemyRecoveryCodeRepository(session)
        self.login_attempts = SqlAlchemyLoginAttemptRepository(session)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """
        Exit context manager (commit or rollback, then close).

        If an exception occurred during the context, rollback the transaction.
        Otherwise, commit the transaction.
        """
        try:
            if exc_type is not None:
                await self.rollback()
            else:
                await self.commit()
        finally:
            await self._session.close()
            self._session = None

    async def commit(self) -> None:
        """
        Commit the current transaction.

        Raises:
            ConcurrencyConflictError: If an optimistic version check failed
            AlreadyExistsError: If a unique constraint failed at commit
            PersistenceUnavailableError: If the database could not be reached
        """
        try:
            await self._session.commit()
        except StaleDataError as e:
            await self._session.rollback()
            logger.warning("Commit aborted by concurrent modification")
            raise ConcurrencyConflictError() from e
        except IntegrityError as e:
            await self._session.rollback()
            raise AlreadyExistsError() from e
        except (OperationalError, InterfaceError) as e:
            await self._session.rollback()
            logger.error(f"Database unavailable during commit: {e}")
            raise PersistenceUnavailableError() from e

    async def rollback(self) -> None:
        """Rollback the current transaction."""
        await self._session.rollback()

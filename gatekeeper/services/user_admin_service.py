"""
Administrative account lifecycle: deactivate, activate, delete and lock.

Ending an account's access revokes every refresh token, moves the
"tokens valid since" marker so outstanding access tokens are rejected, and
drops the cached authorization. Deleted rows are kept; the repository
filters them out of every lookup.
"""

import logging
from datetime import timedelta
from uuid import UUID

from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkFactory, UnitOfWorkPort
from gatekeeper.core.clock import Clock, utc_now
from gatekeeper.core.config import Settings
from gatekeeper.core.exceptions import InvalidInputError, NotFoundError
from gatekeeper.domain.entities.refresh_token import RevocationReason
from gatekeeper.domain.entities.user import User
from gatekeeper.services.base import BaseService
from gatekeeper.services.rbac_service import RbacService
from gatekeeper.services.token_service import TokenService

logger = logging.getLogger(__name__)


class UserAdminService(BaseService):
    """
    Account lifecycle operations for administrators.

    Args:
        uow_factory: Unit of work factory
        settings: Application settings (default lock duration)
        token_service: Revokes the account's sessions
        rbac_service: Drops cached authorization
        clock: Time source
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        settings: Settings,
        token_service: TokenService,
        rbac_service: RbacService,
        clock: Clock = utc_now,
    ):
        super().__init__(uow_factory, clock)
        self.settings = settings
        self.tokens = token_service
        self.rbac = rbac_service

    async def deactivate_user(self, user_id: UUID) -> User:
        """
        Deactivate a user.

        The account can no longer log in or refresh, and every token it
        holds stops working. ``activate_user`` restores login but not the
        revoked sessions.

        Raises:
            NotFoundError: If the user does not exist
        """
        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)
            user.deactivate()
            user.updated_at = self._clock()
            await uow.users.update(user)
            await self.tokens.revoke_all_tokens_for_user(user_id, reason=RevocationReason.ADMIN, uow=uow)
        await self.rbac.invalidate_user(user_id)

        logger.info(f"User {user_id} deactivated by administrator")
        return user

    async def activate_user(self, user_id: UUID) -> User:
        """
        Raises:
            NotFoundError: If the user does not exist or was deleted
        """
        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)
            user.activate()
            user.updated_at = self._clock()
            await uow.users.update(user)

        logger.info(f"User {user_id} activated by administrator")
        return user

    async def soft_delete_user(self, user_id: UUID) -> User:
        """
        Soft delete a user (set deleted_at timestamp).

        The row, its role assignments and its revoked tokens are kept for
        audit. A deleted user is invisible to every lookup, so it cannot be
        activated again.

        Raises:
            NotFoundError: If the user does not exist
        """
        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)
            now = self._clock()
            user.soft_delete(now)
            user.updated_at = now
            await uow.users.update(user)
            await self.tokens.revoke_all_tokens_for_user(user_id, reason=RevocationReason.ADMIN, uow=uow)
        await self.rbac.invalidate_user(user_id)

        logger.info(f"User {user_id} soft deleted by administrator")
        return user

    async def lock_account(self, user_id: UUID, duration_minutes: int | None = None) -> User:
        """
        Lock an account for a fixed time, as if it had reached the failure threshold.

        Args:
            user_id: Account to lock
            duration_minutes: Lock length; defaults to ``lockout_duration_minutes``

        Raises:
            InvalidInputError: If the duration is not positive
            NotFoundError: If the user does not exist
        """
        if duration_minutes is None:
            duration_minutes = self.settings.lockout_duration_minutes
        if duration_minutes <= 0:
            raise InvalidInputError(field="duration_minutes", message="Lock duration must be positive")

        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)
            now = self._clock()
            user.lock(now + timedelta(minutes=duration_minutes))
            user.updated_at = now
            await uow.users.update(user)

        logger.warning(f"Account {user_id} locked by administrator until {user.lockout_end.isoformat()}")
        return user

    @staticmethod
    async def _get_user(uow: UnitOfWorkPort, user_id: UUID) -> User:
        user = await uow.users.get_by_id(user_id)
        if user is None:
            logger.warning(f"User {user_id} not found")
            raise NotFoundError(resource="User")
        return user

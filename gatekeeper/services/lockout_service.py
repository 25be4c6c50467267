"""
Account-level lockout, stored on the User entity.

Distinct from the IP/username rate limiter: this counts failed
authentications against one account, whatever their origin, and locks the
account for ``lockout_duration_minutes`` once the threshold is reached.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from gatekeeper.application.ports.notification_port import NotificationPort
from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkFactory, UnitOfWorkPort
from gatekeeper.core.clock import Clock, utc_now
from gatekeeper.core.config import Settings
from gatekeeper.core.exceptions import ConcurrencyConflictError, NotFoundError
from gatekeeper.core.locks import KeyedLock
from gatekeeper.domain.entities.user import User
from gatekeeper.services import alerts
from gatekeeper.services.base import BaseService

logger = logging.getLogger(__name__)

# Optimistic retries when another process updated the same user row
_MAX_CONFLICT_RETRIES = 3


@dataclass(frozen=True)
class LockoutStatus:
    """Failure counter and lockout state of one account."""

    failed_attempts: int
    locked_until: datetime | None
    max_attempts: int
    just_locked: bool = False

    @property
    def remaining_attempts(self) -> int:
        return max(self.max_attempts - self.failed_attempts, 0)


class LockoutService(BaseService):
    """
    Counts failed logins per account and applies temporary lockouts.

    Increments are serialized per user with an in-process lock and
    protected across processes by the user row's version column.

    Args:
        uow_factory: Unit of work factory
        settings: Application settings (threshold and duration)
        notifier: Sends the account-locked alert
        clock: Time source
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        settings: Settings,
        notifier: NotificationPort,
        clock: Clock = utc_now,
    ):
        super().__init__(uow_factory, clock)
        self.settings = settings
        self.notifier = notifier
        self._locks = KeyedLock()

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(minutes=self.settings.lockout_duration_minutes)

    def status_of(self, user: User, just_locked: bool = False) -> LockoutStatus:
        now = self._clock()
        return LockoutStatus(
            failed_attempts=user.failed_login_attempts,
            locked_until=user.lockout_end if user.is_locked_out(now) else None,
            max_attempts=self.settings.lockout_max_failed_attempts,
            just_locked=just_locked,
        )

    async def increment_failed_attempts(self, user_id: UUID) -> LockoutStatus:
        """
        Count one failed authentication for the account.

        Reaching ``lockout_max_failed_attempts`` sets ``lockout_end``. The
        counter is not cleared by the lockout itself; it is cleared by a
        successful login, an administrative unlock, or (with
        ``lockout_reset_on_expiry``) by the first failure after the lockout
        expired. Failures during an active lockout are not counted.

        Args:
            user_id: Account that failed to authenticate

        Returns:
            LockoutStatus after the increment

        Raises:
            NotFoundError: If the user does not exist
            ConcurrencyConflictError: If the row kept changing under us
        """
        async with self._locks.acquire(str(user_id)):
            for attempt in range(1, _MAX_CONFLICT_RETRIES + 1):
                try:
                    async with self._transaction() as uow:
                        user = await self._get_user(uow, user_id)
                        just_locked = user.record_failed_login(
                            self._clock(),
                            self.settings.lockout_max_failed_attempts,
                            self.lockout_duration,
                            reset_on_expiry=self.settings.lockout_reset_on_expiry,
                        )
                        await uow.users.update(user)
                    break
                except ConcurrencyConflictError:
                    if attempt == _MAX_CONFLICT_RETRIES:
                        raise
                    logger.info(f"Retrying failed-attempt increment for user {user_id}")

        if just_locked:
            logger.warning(
                f"Account {user_id} locked until {user.lockout_end.isoformat()} "
                f"after {user.failed_login_attempts} failed attempts"
            )
            await alerts.send_security_alert(self.notifier, user, alerts.ACCOUNT_LOCKED)
        return self.status_of(user, just_locked=just_locked)

    async def record_successful_login(self, user_id: UUID, uow: UnitOfWorkPort | None = None) -> User:
        """
        Clear the failure counter and stamp ``last_login_at``.

        Args:
            user_id: Account that authenticated
            uow: Optional caller transaction
        """
        async with self._transaction(uow) as tx:
            user = await self._get_user(tx, user_id)
            user.record_successful_login(self._clock())
            await tx.users.update(user)
        return user

    async def reset_failed_attempts(self, user_id: UUID, uow: UnitOfWorkPort | None = None) -> User:
        async with self._transaction(uow) as tx:
            user = await self._get_user(tx, user_id)
            if user.failed_login_attempts or user.lockout_end is not None:
                user.reset_failed_attempts()
                await tx.users.update(user)
        return user

    async def unlock_account(self, user_id: UUID) -> User:
        """
        Administrative unlock: clear the lockout and the failure counter.

        Raises:
            NotFoundError: If the user does not exist
        """
        async with self._locks.acquire(str(user_id)):
            async with self._transaction() as uow:
                user = await self._get_user(uow, user_id)
                user.unlock()
                user.updated_at = self._clock()
                await uow.users.update(user)
        logger.info(f"Account {user_id} unlocked by administrator")
        return user

    async def is_locked_out(self, user_id: UUID) -> bool:
        async with self._transaction() as uow:
            user = await self._get_user(uow, user_id)
        return user.is_locked_out(self._clock())

    @staticmethod
    async def _get_user(uow: UnitOfWorkPort, user_id: UUID) -> User:
        user = await uow.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError(resource="User")
        return user

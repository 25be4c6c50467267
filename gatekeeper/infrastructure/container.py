"""
Composition root.

Builds every adapter and service from one ``Settings`` instance. Nothing is
read from module-level state; tests build a container with their own
settings, clock and collaborators.

Usage:
    container = Container.build(settings)
    await container.startup()
    result = await container.auth_service.login("alice", "Str0ng!Pass")
    await container.shutdown()
"""

import logging
from dataclasses import dataclass

from gatekeeper.application.ports.cache_port import CachePort
from gatekeeper.application.ports.notification_port import NotificationPort, QrRendererPort
from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkFactory
from gatekeeper.core.clock import Clock, utc_now
from gatekeeper.core.config import Settings
from gatekeeper.infrastructure.cache import MemoryCache, RedisCache, RetryingCache
from gatekeeper.infrastructure.notifications import LoggingNotifier
from gatekeeper.infrastructure.persistence.sqlalchemy import DatabaseConfig, SqlAlchemyUnitOfWork
from gatekeeper.infrastructure.qr import QrCodeRenderer
from gatekeeper.services.auth_service import AuthService
from gatekeeper.services.credential_service import CredentialService
from gatekeeper.services.lockout_service import LockoutService
from gatekeeper.services.rate_limiter import RateLimiter
from gatekeeper.services.rbac_service import RbacService
from gatekeeper.services.token_service import TokenService
from gatekeeper.services.totp_service import TotpService
from gatekeeper.services.two_factor_service import TwoFactorService
from gatekeeper.services.user_admin_service import UserAdminService

logger = logging.getLogger(__name__)


def create_uow_factory(db_config: DatabaseConfig) -> UnitOfWorkFactory:
    """
    Create a Unit of Work factory bound to a database.

    Each call returns a fresh unit of work; entering it opens a session.

    Example:
        uow_factory = create_uow_factory(db_config)
        async with uow_factory() as uow:
            user = await uow.users.get_by_id(user_id)
    """

    def factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(db_config.session_factory)

    return factory


def create_cache(settings: Settings) -> CachePort:
    """Redis when ``redis_url`` is set, otherwise an in-process cache; reads are retried."""
    inner: CachePort = RedisCache(settings.redis_url) if settings.redis_url else MemoryCache()
    return RetryingCache(
        inner,
        attempts=settings.cache_read_retries,
        backoff_ms=settings.cache_retry_backoff_ms,
    )


@dataclass
class Container:
    """Every wired component of the security core."""

    settings: Settings
    db: DatabaseConfig
    cache: CachePort
    notifier: NotificationPort
    uow_factory: UnitOfWorkFactory
    rbac_service: RbacService
    token_service: TokenService
    credential_service: CredentialService
    totp_service: TotpService
    two_factor_service: TwoFactorService
    rate_limiter: RateLimiter
    lockout_service: LockoutService
    auth_service: AuthService
    user_admin_service: UserAdminService

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        clock: Clock = utc_now,
        cache: CachePort | None = None,
        notifier: NotificationPort | None = None,
        qr_renderer: QrRendererPort | None = None,
    ) -> "Container":
        """
        Wire the security core.

        Args:
            settings: Application settings
            clock: Time source shared by every component
            cache: Cache override (defaults from settings)
            notifier: Notification override (defaults to LoggingNotifier)
            qr_renderer: QR renderer override

        Returns:
            Container
        """
        db = DatabaseConfig.from_settings(settings)
        uow_factory = create_uow_factory(db)
        cache = cache or create_cache(settings)
        notifier = notifier or LoggingNotifier()
        qr_renderer = qr_renderer or QrCodeRenderer()

        rbac = RbacService(uow_factory, settings, cache, clock)
        tokens = TokenService(uow_factory, settings, cache, rbac, clock)
        credentials = CredentialService(uow_factory, settings, tokens, clock)
        totp = TotpService(uow_factory, settings, clock)
        two_factor = TwoFactorService(
            uow_factory, settings, cache, totp, tokens, notifier, qr_renderer, clock
        )
        limiter = RateLimiter(cache, settings, clock)
        lockout = LockoutService(uow_factory, settings, notifier, clock)
        user_admin = UserAdminService(uow_factory, settings, tokens, rbac, clock)
        auth = AuthService(
            uow_factory,
            settings,
            cache,
            credential_service=credentials,
            token_service=tokens,
            rbac_service=rbac,
            totp_service=totp,
            two_factor_service=two_factor,
            rate_limiter=limiter,
            lockout_service=lockout,
            notifier=notifier,
            clock=clock,
        )
        return cls(
            settings=settings,
            db=db,
            cache=cache,
            notifier=notifier,
            uow_factory=uow_factory,
            rbac_service=rbac,
            token_service=tokens,
            credential_service=credentials,
            totp_service=totp,
            two_factor_service=two_factor,
            rate_limiter=limiter,
            lockout_service=lockout,
            auth_service=auth,
            user_admin_service=user_admin,
        )

    async def startup(self, create_tables: bool | None = None) -> None:
        """
        Prepare backing stores.

        Args:
            create_tables: Create missing tables; defaults to True for SQLite
        """
        if create_tables is None:
            create_tables = self.settings.is_sqlite
        if create_tables:
            await self.db.create_tables()
        logger.info(f"{self.settings.app_name} security core started")

    async def shutdown(self) -> None:
        await self.cache.close()
        await self.db.close()
        logger.info(f"{self.settings.app_name} security core stopped")

"""Unit of Work port interface."""

from collections.abc import Callable
from typing import Protocol

from gatekeeper.application.ports.assignment_repository_port import (
    RolePermissionRepositoryPort,
    UserRoleRepositoryPort,
)
from gatekeeper.application.ports.recovery_code_repository_port import (
    LoginAttemptRepositoryPort,
    RecoveryCodeRepositoryPort,
)
from gatekeeper.application.ports.refresh_token_repository_port import (
    RefreshTokenRepositoryPort,
)
from gatekeeper.application.ports.role_repository_port import (
    PermissionRepositoryPort,
    RoleRepositoryPort,
)
from gatekeeper.application.ports.user_repository_port import UserRepositoryPort


class UnitOfWorkPort(Protocol):
    """
    Unit of Work interface for managing transactions.

    All repository operations within one ``async with`` block are committed
    or rolled back together.

    Usage:
        async with uow_factory() as uow:
            user = await uow.users.get_by_id(user_id)
            user.unlock()
            await uow.users.update(user)
            # Committed on clean exit, rolled back on exception
    """

    users: UserRepositoryPort
    roles: RoleRepositoryPort
    permissions: PermissionRepositoryPort
    role_permissions: RolePermissionRepositoryPort
    user_roles: UserRoleRepositoryPort
    refresh_tokens: RefreshTokenRepositoryPort
    recovery_codes: RecoveryCodeRepositoryPort
    login_attempts: LoginAttemptRepositoryPort

    async def __aenter__(self) -> "UnitOfWorkPort":
        """
        Enter async context manager (begin transaction).

        Returns:
            Self (UnitOfWorkPort instance)
        """
        ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """
        Exit context manager (commit or rollback).

        If an exception occurred, the transaction is rolled back.
        Otherwise, the transaction is committed.
        """
        ...

    async def commit(self) -> None:
        """
        Commit the current transaction.

        Raises:
            ConcurrencyConflictError: If an optimistic update collided
            PersistenceUnavailableError: If the database failed
        """
        ...

    async def rollback(self) -> None:
        """Rollback the current transaction."""
        ...


UnitOfWorkFactory = Callable[[], UnitOfWorkPort]

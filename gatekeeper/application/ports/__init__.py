"""Outbound ports (driven adapter interfaces)."""

from gatekeeper.application.ports.assignment_repository_port import (
    RolePermissionRepositoryPort,
    UserRoleRepositoryPort,
)
from gatekeeper.application.ports.cache_port import CachePort, CacheWrite
from gatekeeper.application.ports.notification_port import NotificationPort, QrRendererPort
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
from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkFactory, UnitOfWorkPort
from gatekeeper.application.ports.user_repository_port import UserRepositoryPort

__all__ = [
    "CachePort",
    "CacheWrite",
    "LoginAttemptRepositoryPort",
    "NotificationPort",
    "PermissionRepositoryPort",
    "QrRendererPort",
    "RecoveryCodeRepositoryPort",
    "RefreshTokenRepositoryPort",
    "RolePermissionRepositoryPort",
    "RoleRepositoryPort",
    "UnitOfWorkFactory",
    "UnitOfWorkPort",
    "UserRepositoryPort",
    "UserRoleRepositoryPort",
]

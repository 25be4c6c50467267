"""SQLAlchemy repository implementations."""

from gatekeeper.infrastructure.persistence.sqlalchemy.repositories.rbac_repositories import (
    SqlAlchemyPermissionRepository,
    SqlAlchemyRolePermissionRepository,
    SqlAlchemyRoleRepository,
    SqlAlchemyUserRoleRepository,
)
from gatekeeper.infrastructure.persistence.sqlalchemy.repositories.token_repositories import (
    SqlAlchemyLoginAttemptRepository,
    SqlAlchemyRecoveryCodeRepository,
    SqlAlchemyRefreshTokenRepository,
)
from gatekeeper.infrastructure.persistence.sqlalchemy.repositories.user_repository import (
    SqlAlchemyUserRepository,
)

__all__ = [
    "SqlAlchemyLoginAttemptRepository",
    "SqlAlchemyPermissionRepository",
    "SqlAlchemyRecoveryCodeRepository",
    "SqlAlchemyRefreshTokenRepository",
    "SqlAlchemyRolePermissionRepository",
    "SqlAlchemyRoleRepository",
    "SqlAlchemyUserRepository",
    "SqlAlchemyUserRoleRepository",
]

"""SQLAlchemy ORM models."""

from gatekeeper.infrastructure.persistence.sqlalchemy.models.base import (
    Base,
    UtcDateTime,
    UUIDPrimaryKeyMixin,
)
from gatekeeper.infrastructure.persistence.sqlalchemy.models.rbac_models import (
    PermissionModel,
    RoleModel,
    RolePermissionModel,
    UserRoleModel,
)
from gatekeeper.infrastructure.persistence.sqlalchemy.models.token_models import (
    LoginAttemptModel,
    RecoveryCodeModel,
    RefreshTokenModel,
)
from gatekeeper.infrastructure.persistence.sqlalchemy.models.user_model import UserModel

__all__ = [
    "Base",
    "LoginAttemptModel",
    "PermissionModel",
    "RecoveryCodeModel",
    "RefreshTokenModel",
    "RoleModel",
    "RolePermissionModel",
    "UUIDPrimaryKeyMixin",
    "UserModel",
    "UserRoleModel",
    "UtcDateTime",
]

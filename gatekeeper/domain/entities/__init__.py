"""Domain entities package."""

from gatekeeper.domain.entities.assignments import RolePermission, UserRole
from gatekeeper.domain.entities.login_attempt import LoginAttempt, LoginStage
from gatekeeper.domain.entities.permission import Permission
from gatekeeper.domain.entities.recovery_code import RecoveryCode
from gatekeeper.domain.entities.refresh_token import RefreshToken, RevocationReason
from gatekeeper.domain.entities.role import Role
from gatekeeper.domain.entities.user import User

__all__ = [
    "LoginAttempt",
    "LoginStage",
    "Permission",
    "RecoveryCode",
    "RefreshToken",
    "RevocationReason",
    "Role",
    "RolePermission",
    "User",
    "UserRole",
]

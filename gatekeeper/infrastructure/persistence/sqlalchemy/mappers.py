"""
Mappers between domain entities and SQLAlchemy models.

Each mapper handles bidirectional conversion:
- to_entity(): SQLAlchemy model -> domain entity
- to_model(): domain entity -> SQLAlchemy model (new, or ``existing_model``
  updated in place)

Primary keys and the user ``version`` column are never copied onto an
existing model: identity is fixed and the version is owned by SQLAlchemy.
"""

from gatekeeper.domain.entities.assignments import RolePermission, UserRole
from gatekeeper.domain.entities.login_attempt import LoginAttempt
from gatekeeper.domain.entities.permission import Permission
from gatekeeper.domain.entities.recovery_code import RecoveryCode
from gatekeeper.domain.entities.refresh_token import RefreshToken
from gatekeeper.domain.entities.role import Role
from gatekeeper.domain.entities.user import User
from gatekeeper.domain.value_objects.two_factor import TwoFactorMethod
from gatekeeper.infrastructure.persistence.sqlalchemy.models import (
    LoginAttemptModel,
    PermissionModel,
    RecoveryCodeModel,
    RefreshTokenModel,
    RoleModel,
    RolePermissionModel,
    UserModel,
    UserRoleModel,
)


class UserMapper:
    """Mapper between User entity and UserModel."""

    @staticmethod
    def to_entity(model: UserModel) -> User:
        """
        Convert SQLAlchemy model to domain entity.

        Args:
            model: UserModel from database

        Returns:
            User domain entity carrying the loaded version
        """
        return User(
            id=model.id,
            username=model.username,
            email=model.email,
            password_hash=model.password_hash,
            password_salt=model.password_salt,
            is_active=model.is_active,
            email_verified=model.email_verified,
            phone_number=model.phone_number,
            phone_verified=model.phone_verified,
            two_factor_enabled=model.two_factor_enabled,
            two_factor_method=TwoFactorMethod(model.two_factor_method),
            two_factor_secret=model.two_factor_secret,
            failed_login_attempts=model.failed_login_attempts,
            lockout_end=model.lockout_end,
            last_password_change_at=model.last_password_change_at,
            last_login_at=model.last_login_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
            deleted_at=model.deleted_at,
            version=model.version,
        )

    @staticmethod
    def to_model(entity: User, existing_model: UserModel | None = None) -> UserModel:
        """
        Convert domain entity to SQLAlchemy model.

        Args:
            entity: User domain entity
            existing_model: Loaded model to update in place

        Returns:
            UserModel ready to add or flush
        """
        model = existing_model if existing_model is not None else UserModel(id=entity.id)
        model.username = entity.username
        model.username_normalized = entity.username.lower()
        model.email = entity.email.lower()
        model.password_hash = entity.password_hash
        model.password_salt = entity.password_salt
        model.is_active = entity.is_active
        model.email_verified = entity.email_verified
        model.phone_number = entity.phone_number
        model.phone_verified = entity.phone_verified
        model.two_factor_enabled = entity.two_factor_enabled
        model.two_factor_method = entity.two_factor_method.value
        model.two_factor_secret = entity.two_factor_secret
        model.failed_login_attempts = entity.failed_login_attempts
        model.lockout_end = entity.lockout_end
        model.last_password_change_at = entity.last_password_change_at
        model.last_login_at = entity.last_login_at
        model.created_at = entity.created_at
        model.updated_at = entity.updated_at
        model.deleted_at = entity.deleted_at
        return model


class RoleMapper:
    """Mapper between Role entity and RoleModel."""

    @staticmethod
    def to_entity(model: RoleModel) -> Role:
        return Role(
            id=model.id,
            name=model.name,
            display_name=model.display_name,
            description=model.description,
            is_system=model.is_system,
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def to_model(entity: Role, existing_model: RoleModel | None = None) -> RoleModel:
        model = existing_model if existing_model is not None else RoleModel(id=entity.id)
        model.name = entity.name
        model.name_normalized = entity.name.lower()
        model.display_name = entity.display_name
        model.description = entity.description
        model.is_system = entity.is_system
        model.is_active = entity.is_active
        model.created_at = entity.created_at
        model.updated_at = entity.updated_at
        return model


class PermissionMapper:
    """Mapper between Permission entity and PermissionModel."""

    @staticmethod
    def to_entity(model: PermissionModel) -> Permission:
        return Permission(
            id=model.id,
            name=model.name,
            group=model.group,
            description=model.description,
            is_active=model.is_active,
            created_at=model.created_at,
        )

    @staticmethod
    def to_model(
        entity: Permission, existing_model: PermissionModel | None = None
    ) -> PermissionModel:
        model = existing_model if existing_model is not None else PermissionModel(id=entity.id)
        model.name = entity.name
        model.group = entity.group
        model.description = entity.description
        model.is_active = entity.is_active
        model.created_at = entity.created_at
        return model


class AssignmentMapper:
    """Mapper for RolePermission and UserRole associations."""

    @staticmethod
    def role_permission_to_entity(model: RolePermissionModel) -> RolePermission:
        return RolePermission(
            role_id=model.role_id,
            permission_id=model.permission_id,
            created_at=model.created_at,
        )

    @staticmethod
    def role_permission_to_model(entity: RolePermission) -> RolePermissionModel:
        return RolePermissionModel(
            role_id=entity.role_id,
            permission_id=entity.permission_id,
            created_at=entity.created_at,
        )

    @staticmethod
    def user_role_to_entity(model: UserRoleModel) -> UserRole:
        return UserRole(
            user_id=model.user_id,
            role_id=model.role_id,
            created_at=model.created_at,
            expires_at=model.expires_at,
        )

    @staticmethod
    def user_role_to_model(
        entity: UserRole, existing_model: UserRoleModel | None = None
    ) -> UserRoleModel:
        if existing_model is not None:
            existing_model.expires_at = entity.expires_at
            return existing_model
        return UserRoleModel(
            user_id=entity.user_id,
            role_id=entity.role_id,
            created_at=entity.created_at,
            expires_at=entity.expires_at,
        )


class RefreshTokenMapper:
    """
    Mapper between RefreshToken entity and RefreshTokenModel.

    Both sides carry only the token digest; the plaintext token never
    reaches the persistence layer.
    """

    @staticmethod
    def to_entity(model: RefreshTokenModel) -> RefreshToken:
        return RefreshToken(
            id=model.id,
            user_id=model.user_id,
            token_hash=model.token_hash,
            expires_at=model.expires_at,
            created_at=model.created_at,
            created_by_ip=model.created_by_ip,
            revoked_at=model.revoked_at,
            revoked_by_ip=model.revoked_by_ip,
            revocation_reason=model.revocation_reason,
            replaced_by_token_id=model.replaced_by_token_id,
        )

    @staticmethod
    def to_model(
        entity: RefreshToken, existing_model: RefreshTokenModel | None = None
    ) -> RefreshTokenModel:
        model = existing_model if existing_model is not None else RefreshTokenModel(id=entity.id)
        model.user_id = entity.user_id
        model.token_hash = entity.token_hash
        model.expires_at = entity.expires_at
        model.created_at = entity.created_at
        model.created_by_ip = entity.created_by_ip
        model.revoked_at = entity.revoked_at
        model.revoked_by_ip = entity.revoked_by_ip
        model.revocation_reason = entity.revocation_reason
        model.replaced_by_token_id = entity.replaced_by_token_id
        return model


class RecoveryCodeMapper:
    """Mapper between RecoveryCode entity and RecoveryCodeModel."""

    @staticmethod
    def to_entity(model: RecoveryCodeModel) -> RecoveryCode:
        return RecoveryCode(
            id=model.id,
            user_id=model.user_id,
            code_value=model.code_value,
            created_at=model.created_at,
            expires_at=model.expires_at,
            is_used=model.is_used,
            used_at=model.used_at,
        )

    @staticmethod
    def to_model(entity: RecoveryCode) -> RecoveryCodeModel:
        return RecoveryCodeModel(
            id=entity.id,
            user_id=entity.user_id,
            code_value=entity.code_value,
            created_at=entity.created_at,
            expires_at=entity.expires_at,
            is_used=entity.is_used,
            used_at=entity.used_at,
        )


class LoginAttemptMapper:
    """Mapper between LoginAttempt entity and LoginAttemptModel."""

    @staticmethod
    def to_entity(model: LoginAttemptModel) -> LoginAttempt:
        return LoginAttempt(
            id=model.id,
            identifier=model.identifier,
            succeeded=model.succeeded,
            stage=model.stage,
            attempted_at=model.attempted_at,
            user_id=model.user_id,
            ip_address=model.ip_address,
            user_agent=model.user_agent,
            failure_reason=model.failure_reason,
        )

    @staticmethod
    def to_model(entity: LoginAttempt) -> LoginAttemptModel:
        return LoginAttemptModel(
            id=entity.id,
            identifier=entity.identifier,
            succeeded=entity.succeeded,
            stage=entity.stage,
            attempted_at=entity.attempted_at,
            user_id=entity.user_id,
            ip_address=entity.ip_address,
            user_agent=entity.user_agent,
            failure_reason=entity.failure_reason,
        )

"""
Request and response schemas for the HTTP surface.

Field-level checks here are limited to shape; password strength and
identifier rules are enforced by the core so every caller gets them.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from gatekeeper.application.dto.auth_dto import AuthStatus
from gatekeeper.domain.value_objects.two_factor import TwoFactorMethod

# =============================================================================
# Authentication
# =============================================================================


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50, description="Unique username")
    email: EmailStr = Field(description="User's email address")
    password: str = Field(min_length=1, max_length=1024, description="Plain text password")
    phone_number: str | None = Field(default=None, max_length=20)


class LoginRequest(BaseModel):
    identifier: str = Field(min_length=1, max_length=255, description="Username or email")
    password: str = Field(min_length=1, max_length=1024)


class TwoFactorLoginRequest(BaseModel):
    challenge_token: str = Field(min_length=1, description="Token from the login response")
    code: str = Field(min_length=1, max_length=16)


class RecoveryLoginRequest(BaseModel):
    challenge_token: str = Field(min_length=1, description="Token from the login response")
    recovery_code: str = Field(min_length=1, max_length=64)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: str | None = Field(default=None, description="Refresh token of this session")


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=1024)
    new_password: str = Field(min_length=1, max_length=1024)


class AuthResponse(BaseModel):
    """Login, second-factor and refresh response."""

    status: AuthStatus
    user_id: UUID | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    refresh_expires_at: datetime | None = None
    challenge_token: str | None = None
    two_factor_method: TwoFactorMethod | None = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    email: str
    email_verified: bool
    phone_number: str | None = None
    phone_verified: bool = False
    is_active: bool = True
    lockout_end: datetime | None = None
    two_factor_enabled: bool
    two_factor_method: TwoFactorMethod
    created_at: datetime | None = None
    last_login_at: datetime | None = None


class MeResponse(BaseModel):
    user_id: UUID
    username: str
    email: str
    roles: list[str]
    permissions: list[str]
    expires_at: datetime


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    expires_at: datetime
    created_by_ip: str | None = None


class LoginAttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempted_at: datetime
    succeeded: bool
    stage: str
    ip_address: str | None = None
    user_agent: str | None = None
    failure_reason: str | None = None


class RevokedCountResponse(BaseModel):
    revoked: int


# =============================================================================
# Two-factor
# =============================================================================


class TwoFactorSetupResponse(BaseModel):
    secret: str
    provisioning_uri: str
    qr_code_png_base64: str


class TwoFactorCodeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=16)


class EnableDeliveryRequest(BaseModel):
    method: TwoFactorMethod


class ContactVerificationRequest(BaseModel):
    channel: TwoFactorMethod = Field(description="email or sms")
    phone_number: str | None = Field(default=None, max_length=20, description="New number to verify (sms only)")


class ContactConfirmRequest(BaseModel):
    channel: TwoFactorMethod
    code: str = Field(min_length=1, max_length=16)


class DisableTwoFactorRequest(BaseModel):
    code: str | None = Field(default=None, max_length=16)
    recovery_code: str | None = Field(default=None, max_length=64)


class RecoveryCodesResponse(BaseModel):
    recovery_codes: list[str] = Field(description="Shown once; store them safely")


# =============================================================================
# RBAC administration
# =============================================================================


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    display_name: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=500)


class RoleRename(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    display_name: str
    description: str | None = None
    is_system: bool
    is_active: bool


class PermissionCreate(BaseModel):
    name: str = Field(min_length=3, max_length=100, description="resource:action")
    description: str | None = Field(default=None, max_length=500)
    group: str | None = Field(default=None, max_length=100)


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    group: str | None = None
    description: str | None = None
    is_active: bool


class PermissionIdsRequest(BaseModel):
    permission_ids: list[UUID] = Field(min_length=1)


class AssignRoleRequest(BaseModel):
    expires_at: datetime | None = None


class ChangedCountResponse(BaseModel):
    changed: int


class LockAccountRequest(BaseModel):
    duration_minutes: int | None = Field(default=None, gt=0, description="Defaults to the lockout duration")

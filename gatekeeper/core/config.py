"""
Core configuration module using Pydantic Settings.

This module defines every tunable of the security core, loaded from
environment variables (prefix ``GATEKEEPER_``) or a ``.env`` file.

Settings are immutable. Build them once at startup with ``get_settings()``
(or construct ``Settings(...)`` explicitly in tests) and pass the instance
into each component constructor. No component reads configuration from
module-level state.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Security core settings loaded from environment variables.

    All settings are validated by Pydantic at construction time. A
    misconfiguration (e.g. a signing key shorter than 32 characters) raises
    ``pydantic.ValidationError``, which is the only fatal startup path.
    """

    model_config = SettingsConfigDict(
        env_prefix="GATEKEEPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_name: str = Field(default="Gatekeeper")
    version: str = Field(default="0.1.0")
    environment: Literal["development", "staging", "production"] = Field(default="development")
    debug: bool = Field(default=False)

    # -------------------------------------------------------------------------
    # JWT Token Configuration
    # -------------------------------------------------------------------------
    jwt_secret_key: str = Field(
        ...,
        min_length=32,
        description="Symmetric key for JWT signing. Must be at least 32 characters.",
    )
    jwt_algorithm: Literal["HS256", "HS384", "HS512"] = Field(default="HS256")
    jwt_issuer: str = Field(default="gatekeeper")
    jwt_audience: str | None = Field(default=None)
    access_token_expire_minutes: int = Field(default=15, ge=1, le=60)
    refresh_token_expire_days: int = Field(default=7, ge=1, le=90)
    refresh_token_bytes: int = Field(default=32, ge=32, le=128)

    # -------------------------------------------------------------------------
    # PBKDF2 Password Hashing Configuration
    # -------------------------------------------------------------------------
    pbkdf2_iterations: int = Field(default=310_000, ge=1_000)
    pbkdf2_salt_bytes: int = Field(default=16, ge=16, le=64)
    pbkdf2_key_bytes: int = Field(default=32, ge=32, le=64)

    # -------------------------------------------------------------------------
    # Password Policy
    # -------------------------------------------------------------------------
    password_min_length: int = Field(default=8, ge=1)
    password_max_length: int = Field(default=128, ge=8, le=1024)
    password_require_uppercase: bool = Field(default=True)
    password_require_lowercase: bool = Field(default=True)
    password_require_digit: bool = Field(default=True)
    password_require_special: bool = Field(default=True)
    password_max_repeated_chars: int = Field(default=3, ge=1)

    # -------------------------------------------------------------------------
    # Rate Limiting (per IP / username key)
    # -------------------------------------------------------------------------
    rate_limit_max_attempts: int = Field(default=5, ge=1)
    rate_limit_window_minutes: int = Field(default=15, ge=1)
    rate_limit_blacklist_minutes: int = Field(default=60, ge=1)
    rate_limit_key_policy: Literal["ip", "username", "both"] = Field(default="both")

    # -------------------------------------------------------------------------
    # Account Lockout (per user)
    # -------------------------------------------------------------------------
    lockout_max_failed_attempts: int = Field(default=5, ge=1)
    lockout_duration_minutes: int = Field(default=15, ge=1)
    lockout_reset_on_expiry: bool = Field(
        default=True,
        description="Reset the failed-attempt counter once a lockout has expired",
    )

    # -------------------------------------------------------------------------
    # Two-Factor Authentication
    # -------------------------------------------------------------------------
    totp_issuer: str = Field(default="Gatekeeper")
    totp_digits: int = Field(default=6, ge=6, le=8)
    totp_interval_seconds: int = Field(default=30, ge=15, le=120)
    totp_digest: Literal["sha1", "sha256", "sha512"] = Field(default="sha1")
    totp_valid_window: int = Field(default=1, ge=0, le=3)
    two_factor_challenge_ttl_seconds: int = Field(default=300, ge=30)
    otp_code_validity_minutes: int = Field(default=5, ge=1)

    # Recovery codes
    recovery_code_count: int = Field(default=10, ge=1, le=50)
    recovery_code_length: int = Field(default=10, ge=8, le=32)
    recovery_code_expire_days: int = Field(default=30, ge=1)
    recovery_code_hashing: bool = Field(default=True)

    # -------------------------------------------------------------------------
    # RBAC
    # -------------------------------------------------------------------------
    permission_cache_ttl_seconds: int = Field(default=300, ge=1)
    default_role_name: str | None = Field(default="User")

    # -------------------------------------------------------------------------
    # Database Configuration
    # -------------------------------------------------------------------------
    database_url: str = Field(
        default="sqlite+aiosqlite:///./gatekeeper.db",
        description="SQLAlchemy async URL (postgresql+asyncpg or sqlite+aiosqlite)",
    )
    database_echo: bool = Field(default=False)
    db_pool_size: int = Field(default=5, ge=1, le=50)
    db_max_overflow: int = Field(default=10, ge=0, le=100)
    db_pool_recycle: int = Field(default=3600, ge=300)  # Seconds
    db_pool_pre_ping: bool = Field(default=True)

    # -------------------------------------------------------------------------
    # Cache Configuration
    # -------------------------------------------------------------------------
    redis_url: str | None = Field(
        default=None,
        description="Redis URL for the shared cache; in-process cache when unset",
    )
    cache_read_retries: int = Field(default=3, ge=1, le=10)
    cache_retry_backoff_ms: int = Field(default=50, ge=0)

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(default="console")
    log_file_enabled: bool = Field(default=False)
    log_file_path: str = Field(default="logs/gatekeeper.log")
    log_file_max_bytes: int = Field(default=10485760)  # 10 MB
    log_file_backup_count: int = Field(default=5)

    @field_validator("database_url")
    @classmethod
    def validate_async_driver(cls, v: str) -> str:
        """Require an asyncio-capable SQLAlchemy driver."""
        if not (v.startswith("postgresql+asyncpg://") or v.startswith("sqlite+aiosqlite://")):
            raise ValueError("database_url must use postgresql+asyncpg or sqlite+aiosqlite")
        return v

    @field_validator("password_max_length")
    @classmethod
    def validate_max_length(cls, v: int, info) -> int:
        """Ensure the maximum password length is not below the minimum."""
        min_length = info.data.get("password_min_length", 1)
        if v < min_length:
            raise ValueError("password_max_length must be >= password_min_length")
        return v

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")

    @property
    def access_token_ttl_seconds(self) -> int:
        """Access token lifetime in seconds."""
        return self.access_token_expire_minutes * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        """Refresh token lifetime in seconds."""
        return self.refresh_token_expire_days * 86400


@lru_cache
def get_settings() -> Settings:
    """
    Build the process-wide settings once.

    Returns:
        Settings instance loaded from the environment

    Example:
        >>> settings = get_settings()
        >>> settings.access_token_expire_minutes
        15
    """
    return Settings()

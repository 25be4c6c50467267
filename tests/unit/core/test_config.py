"""Unit tests for Settings validation."""

import pydantic
import pytest

from gatekeeper.core.config import Settings

SECRET = "x" * 32


class TestSettings:
    def test_defaults(self):
        settings = Settings(jwt_secret_key=SECRET)

        assert settings.jwt_algorithm == "HS256"
        assert settings.access_token_ttl_seconds == 15 * 60
        assert settings.refresh_token_ttl_seconds == 7 * 86400
        assert settings.rate_limit_max_attempts == 5
        assert settings.totp_valid_window == 1
        assert settings.recovery_code_hashing is True
        assert settings.is_sqlite is True

    def test_short_signing_key_is_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(jwt_secret_key="too-short")

    def test_unsupported_algorithm_is_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(jwt_secret_key=SECRET, jwt_algorithm="none")

    def test_sync_database_driver_is_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(jwt_secret_key=SECRET, database_url="postgresql://localhost/db")

    def test_max_length_below_min_length_is_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(jwt_secret_key=SECRET, password_min_length=20, password_max_length=10)

    def test_settings_are_immutable(self):
        settings = Settings(jwt_secret_key=SECRET)

        with pytest.raises(pydantic.ValidationError):
            settings.rate_limit_max_attempts = 100

    def test_environment_variables_are_read(self, monkeypatch):
        monkeypatch.setenv("GATEKEEPER_JWT_SECRET_KEY", SECRET)
        monkeypatch.setenv("GATEKEEPER_LOCKOUT_MAX_FAILED_ATTEMPTS", "3")

        settings = Settings()

        assert settings.lockout_max_failed_attempts == 3

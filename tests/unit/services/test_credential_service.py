"""Unit tests for CredentialService."""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from gatekeeper.core.exceptions import NotFoundError, PasswordPolicyViolationError
from gatekeeper.core.security import PasswordHasher
from gatekeeper.domain.entities.refresh_token import RevocationReason
from gatekeeper.domain.entities.user import User
from gatekeeper.domain.value_objects.password_policy import PolicyRule
from gatekeeper.services.credential_service import CredentialService

PASSWORD = "Str0ng!Pass"


@pytest.fixture
def token_service():
    service = MagicMock()
    service.revoke_all_tokens_for_user = AsyncMock(return_value=1)
    return service


@pytest.fixture
def credentials(mock_uow_factory, settings, token_service, clock) -> CredentialService:
    return CredentialService(mock_uow_factory, settings, token_service, clock=clock)


def make_user(hasher: PasswordHasher, password: str = PASSWORD) -> User:
    hashed = hasher.hash_password(password)
    return User(
        id=uuid4(),
        username="alice",
        email="alice@example.com",
        password_hash=hashed.hash,
        password_salt=hashed.salt,
    )


class TestPasswordPolicy:
    """Test strength validation."""

    def test_strong_password_passes(self, credentials):
        assert credentials.validate_strength(PASSWORD) == []

    def test_every_violation_is_reported(self, credentials):
        rules = {v.rule for v in credentials.validate_strength("aaaa")}

        assert rules == {
            PolicyRule.MIN_LENGTH,
            PolicyRule.UPPERCASE,
            PolicyRule.DIGIT,
            PolicyRule.SPECIAL,
            PolicyRule.REPEATED_CHARS,
        }

    @pytest.mark.parametrize(
        "password,rule",
        [
            ("Sh0rt!", PolicyRule.MIN_LENGTH),
            ("str0ng!pass", PolicyRule.UPPERCASE),
            ("STR0NG!PASS", PolicyRule.LOWERCASE),
            ("Strong!Pass", PolicyRule.DIGIT),
            ("Str0ngPass1", PolicyRule.SPECIAL),
            ("Str0ng!Paaaass", PolicyRule.REPEATED_CHARS),
            ("Str0ng!Pass" + "ab" * 60, PolicyRule.MAX_LENGTH),
        ],
    )
    def test_single_rule(self, credentials, password, rule):
        assert [v.rule for v in credentials.validate_strength(password)] == [rule]

    def test_three_repeats_are_allowed(self, credentials):
        assert credentials.validate_strength("Str0ng!Paaass") == []

    def test_ensure_strength_lists_messages(self, credentials):
        with pytest.raises(PasswordPolicyViolationError) as exc_info:
            credentials.ensure_strength("short")

        assert "Password must be at least 8 characters long" in exc_info.value.violations
        assert exc_info.value.details["violations"] == exc_info.value.violations

    def test_relaxed_policy(self, mock_uow_factory, settings, token_service, clock):
        relaxed = CredentialService(
            mock_uow_factory,
            settings.model_copy(
                update={
                    "password_require_uppercase": False,
                    "password_require_special": False,
                }
            ),
            token_service,
            clock=clock,
        )

        assert relaxed.validate_strength("lowercase1") == []


class TestVerify:
    async def test_verify_correct_password(self, credentials):
        user = make_user(credentials.hasher)

        assert await credentials.verify(user, PASSWORD) is True

    async def test_verify_wrong_password(self, credentials):
        user = make_user(credentials.hasher)

        assert await credentials.verify(user, "Wr0ng!Pass") is False

    async def test_weak_hash_is_upgraded_on_login(self, credentials, mock_uow):
        user = make_user(PasswordHasher(iterations=1_000, key_bytes=32))
        stronger = PasswordHasher(iterations=2_000)
        credentials.hasher = stronger
        stored = User(**{**user.__dict__})
        mock_uow.users.get_by_id.return_value = stored

        assert await credentials.verify(user, PASSWORD) is True

        mock_uow.users.update.assert_awaited_once()
        assert stored.password_hash.startswith("pbkdf2_sha512$2000$")
        assert user.password_hash == stored.password_hash
        assert stronger.verify_password(PASSWORD, user.password_hash, user.password_salt)

    async def test_current_hash_is_not_rewritten(self, credentials, mock_uow):
        user = make_user(credentials.hasher)

        await credentials.verify(user, PASSWORD)

        mock_uow.users.update.assert_not_awaited()

    async def test_verify_dummy_completes(self, credentials):
        await credentials.verify_dummy("anything")


class TestSetPassword:
    async def test_set_password_revokes_sessions(self, credentials, mock_uow, token_service, clock):
        user = make_user(credentials.hasher)
        mock_uow.users.get_by_id.return_value = user

        updated = await credentials.set_password(user.id, "N3w!Passw0rd", ip_address="10.0.0.1")

        assert credentials.hasher.verify_password("N3w!Passw0rd", updated.password_hash, updated.password_salt)
        assert updated.last_password_change_at == clock.now
        mock_uow.users.update.assert_awaited_once_with(user)
        token_service.revoke_all_tokens_for_user.assert_awaited_once_with(
            user.id,
            reason=RevocationReason.PASSWORD_CHANGED,
            ip_address="10.0.0.1",
            uow=mock_uow,
        )

    async def test_same_password_is_rejected(self, credentials, mock_uow, token_service):
        user = make_user(credentials.hasher)
        mock_uow.users.get_by_id.return_value = user

        with pytest.raises(PasswordPolicyViolationError):
            await credentials.set_password(user.id, PASSWORD)

        token_service.revoke_all_tokens_for_user.assert_not_awaited()

    async def test_weak_password_is_rejected_before_lookup(self, credentials, mock_uow):
        with pytest.raises(PasswordPolicyViolationError):
            await credentials.set_password(uuid4(), "weak")

        mock_uow.users.get_by_id.assert_not_awaited()

    async def test_unknown_user(self, credentials, mock_uow):
        mock_uow.users.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await credentials.set_password(uuid4(), "N3w!Passw0rd")

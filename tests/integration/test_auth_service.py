"""Integration tests for AuthService: registration, login, sessions and password change."""

from datetime import timedelta

import pytest

from gatekeeper.core.exceptions import (
    AlreadyExistsError,
    ErrorKind,
    InvalidCredentialsError,
    InvalidInputError,
    PasswordPolicyViolationError,
    TokenRevokedError,
)

PASSWORD = "Str0ng!Pass"
NEW_PASSWORD = "N3w!Passw0rd"


async def stored_user(container, user_id):
    async with container.uow_factory() as uow:
        return await uow.users.get_by_id(user_id)


async def fail_logins(container, count, identifier="alice", ip_address="10.0.0.1"):
    return [
        await container.auth_service.login(identifier, "Wr0ng!Pass", ip_address=ip_address)
        for _ in range(count)
    ]


class TestRegister:
    async def test_register_assigns_default_role(self, container, alice, default_role):
        roles = await container.rbac_service.get_user_roles(alice.id)

        assert [r.name for r in roles] == [default_role.name]
        assert alice.email == "alice@example.com"
        assert alice.password_hash != PASSWORD

    async def test_duplicate_username_is_case_insensitive(self, container, alice):
        with pytest.raises(AlreadyExistsError):
            await container.auth_service.register("ALICE", "other@example.com", PASSWORD)

    async def test_duplicate_email(self, container, alice):
        with pytest.raises(AlreadyExistsError):
            await container.auth_service.register("alice2", "Alice@Example.com", PASSWORD)

    @pytest.mark.parametrize("username", ["", "   ", "a@b", "x" * 51])
    async def test_invalid_username(self, container, default_role, username):
        with pytest.raises(InvalidInputError):
            await container.auth_service.register(username, "bob@example.com", PASSWORD)

    async def test_invalid_email(self, container, default_role):
        with pytest.raises(InvalidInputError):
            await container.auth_service.register("bob", "not-an-email", PASSWORD)

    async def test_weak_password(self, container, default_role):
        with pytest.raises(PasswordPolicyViolationError) as exc_info:
            await container.auth_service.register("bob", "bob@example.com", "password")

        assert exc_info.value.violations

    async def test_register_without_default_role(self, container):
        user = await container.auth_service.register("bob", "bob@example.com", PASSWORD)

        assert await container.rbac_service.get_user_roles(user.id) == []


class TestLogin:
    async def test_login_by_username(self, container, alice, default_role):
        result = await container.auth_service.login("alice", PASSWORD, ip_address="10.0.0.1")

        assert result.succeeded
        assert result.user_id == alice.id
        claims = await container.auth_service.authenticate(result.tokens.access_token)
        assert claims.subject == alice.id
        assert claims.username == "alice"
        assert default_role.name in claims.roles
        assert result.tokens.expires_in == container.settings.access_token_ttl_seconds

    async def test_login_by_email(self, container, alice):
        result = await container.auth_service.login("ALICE@example.com", PASSWORD)

        assert result.succeeded

    async def test_unknown_user_and_wrong_password_look_the_same(self, container, alice):
        unknown = await container.auth_service.login("mallory", PASSWORD, ip_address="10.0.0.2")
        wrong = await container.auth_service.login("alice", "Wr0ng!Pass", ip_address="10.0.0.3")

        assert unknown.error == wrong.error == ErrorKind.INVALID_CREDENTIALS
        assert unknown.message == wrong.message
        assert wrong.remaining_attempts == 4

    async def test_inactive_user_cannot_log_in(self, container, alice):
        async with container.uow_factory() as uow:
            user = await uow.users.get_by_id(alice.id)
            user.is_active = False
            await uow.users.update(user)

        result = await container.auth_service.login("alice", PASSWORD)

        assert result.error == ErrorKind.INVALID_CREDENTIALS

    async def test_successful_login_updates_user(self, container, alice, clock):
        await fail_logins(container, 2)

        await container.auth_service.login("alice", PASSWORD)

        user = await stored_user(container, alice.id)
        assert user.failed_login_attempts == 0
        assert user.last_login_at == clock()

    async def test_history_records_outcomes(self, container, alice, clock):
        await fail_logins(container, 1)
        clock.advance(seconds=1)
        await container.auth_service.login("alice", PASSWORD, ip_address="10.0.0.9", user_agent="pytest")

        history = await container.auth_service.login_history(alice.id)

        assert [a.succeeded for a in history] == [True, False]
        assert history[0].ip_address == "10.0.0.9"
        assert history[0].user_agent == "pytest"
        assert history[1].failure_reason == ErrorKind.INVALID_CREDENTIALS.value


class TestLockout:
    async def test_fifth_failure_locks_account(self, container, alice, notifier, clock):
        results = await fail_logins(container, 5)

        assert [r.error for r in results[:4]] == [ErrorKind.INVALID_CREDENTIALS] * 4
        assert results[4].error == ErrorKind.ACCOUNT_LOCKED
        assert results[4].locked_until == clock() + timedelta(minutes=15)
        assert notifier.subjects.count("Your account has been locked") == 1

    async def test_correct_password_is_refused_while_locked(self, container, alice):
        await fail_logins(container, 5)
        limiter = container.rate_limiter
        await limiter.reset_keys(limiter.keys_for("10.0.0.1", "alice"))

        result = await container.auth_service.login("alice", PASSWORD, ip_address="10.0.0.1")

        assert result.error == ErrorKind.ACCOUNT_LOCKED
        assert result.tokens is None

    async def test_lockout_expires(self, container, alice, clock):
        await fail_logins(container, 5)
        clock.advance(minutes=15)

        result = await container.auth_service.login("alice", PASSWORD)

        assert result.succeeded
        assert (await stored_user(container, alice.id)).failed_login_attempts == 0

    async def test_unlock_account(self, container, alice):
        await fail_logins(container, 5)
        limiter = container.rate_limiter
        await limiter.reset_keys(limiter.keys_for("10.0.0.1", "alice"))

        user = await container.auth_service.unlock_account(alice.id)

        assert user.failed_login_attempts == 0
        assert user.lockout_end is None
        assert (await container.auth_service.login("alice", PASSWORD)).succeeded

    async def test_success_resets_counter(self, container, alice):
        await fail_logins(container, 4)
        assert (await container.auth_service.login("alice", PASSWORD)).succeeded

        results = await fail_logins(container, 4)

        assert all(r.error == ErrorKind.INVALID_CREDENTIALS for r in results)


class TestRateLimit:
    async def test_sixth_attempt_is_refused(self, container, alice):
        await fail_logins(container, 5)

        result = await container.auth_service.login("alice", PASSWORD)

        assert result.error == ErrorKind.TOO_MANY_ATTEMPTS
        assert result.retry_after_seconds == container.settings.rate_limit_blacklist_minutes * 60

    async def test_ip_limit_applies_across_usernames(self, container, alice):
        for i in range(5):
            await container.auth_service.login(f"ghost{i}", PASSWORD, ip_address="10.9.9.9")

        blocked = await container.auth_service.login("alice", PASSWORD, ip_address="10.9.9.9")
        other_ip = await container.auth_service.login("alice", PASSWORD, ip_address="10.0.0.2")

        assert blocked.error == ErrorKind.TOO_MANY_ATTEMPTS
        assert other_ip.succeeded

    async def test_blacklist_expires(self, container, alice, clock):
        await fail_logins(container, 6)
        clock.advance(minutes=container.settings.rate_limit_blacklist_minutes)

        assert (await container.auth_service.login("alice", PASSWORD)).succeeded


class TestSessions:
    async def test_refresh_rotates(self, container, alice, login_tokens):
        tokens = await login_tokens("alice")

        refreshed = await container.auth_service.refresh(tokens.refresh_token)
        reused = await container.auth_service.refresh(tokens.refresh_token)

        assert refreshed.succeeded
        assert refreshed.tokens.refresh_token != tokens.refresh_token
        assert reused.error == ErrorKind.TOKEN_REVOKED

    async def test_refresh_with_garbage(self, container):
        result = await container.auth_service.refresh("garbage")

        assert result.error == ErrorKind.TOKEN_MALFORMED

    async def test_logout_revokes_both_tokens(self, container, alice, login_tokens):
        tokens = await login_tokens("alice")
        claims = await container.auth_service.authenticate(tokens.access_token)

        assert await container.auth_service.logout(tokens.refresh_token, claims) is True

        with pytest.raises(TokenRevokedError):
            await container.auth_service.authenticate(tokens.access_token)
        assert (await container.auth_service.refresh(tokens.refresh_token)).error == ErrorKind.TOKEN_REVOKED

    async def test_logout_everywhere(self, container, alice, login_tokens, clock):
        first = await login_tokens("alice")
        second = await login_tokens("alice")
        assert len(await container.auth_service.list_sessions(alice.id)) == 2
        clock.advance(seconds=1)

        assert await container.auth_service.logout_everywhere(alice.id) == 2

        for tokens in (first, second):
            with pytest.raises(TokenRevokedError):
                await container.auth_service.authenticate(tokens.access_token)
        fresh = await login_tokens("alice")
        assert (await container.auth_service.authenticate(fresh.access_token)).subject == alice.id


class TestChangePassword:
    async def test_change_password(self, container, alice, login_tokens, notifier, clock):
        tokens = await login_tokens("alice")
        clock.advance(seconds=1)

        await container.auth_service.change_password(alice.id, PASSWORD, NEW_PASSWORD)

        assert (await container.auth_service.login("alice", PASSWORD)).error == ErrorKind.INVALID_CREDENTIALS
        assert (await container.auth_service.login("alice", NEW_PASSWORD)).succeeded
        with pytest.raises(TokenRevokedError):
            await container.auth_service.authenticate(tokens.access_token)
        assert "Your password was changed" in notifier.subjects

    async def test_wrong_current_password(self, container, alice, notifier):
        with pytest.raises(InvalidCredentialsError):
            await container.auth_service.change_password(alice.id, "Wr0ng!Pass", NEW_PASSWORD)

        assert "Your password was changed" not in notifier.subjects

    async def test_new_password_must_be_strong(self, container, alice):
        with pytest.raises(PasswordPolicyViolationError):
            await container.auth_service.change_password(alice.id, PASSWORD, "weak")

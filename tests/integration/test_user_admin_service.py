"""Integration tests for UserAdminService."""

from uuid import uuid4

import pytest

from gatekeeper.core.exceptions import ErrorKind, InvalidInputError, NotFoundError, TokenRevokedError
from gatekeeper.services import cache_keys

PASSWORD = "Str0ng!Pass"


class TestDeactivation:
    async def test_deactivated_user_loses_every_session(self, container, alice, login_tokens, clock):
        tokens = await login_tokens("alice")
        await container.rbac_service.resolve_permissions(alice.id)
        clock.advance(seconds=1)

        user = await container.user_admin_service.deactivate_user(alice.id)

        assert user.is_active is False
        access = await container.token_service.validate_access_token(tokens.access_token)
        assert access.error == ErrorKind.TOKEN_REVOKED
        with pytest.raises(TokenRevokedError):
            await container.token_service.rotate_refresh_token(tokens.refresh_token)
        assert await container.token_service.list_active_sessions(alice.id) == []
        assert await container.cache.get(cache_keys.user_authorization(alice.id)) is None

    async def test_deactivated_user_cannot_log_in(self, container, alice):
        await container.user_admin_service.deactivate_user(alice.id)

        result = await container.auth_service.login("alice", PASSWORD)

        assert result.error == ErrorKind.INVALID_CREDENTIALS

    async def test_activate_restores_login(self, container, alice):
        admin = container.user_admin_service
        await admin.deactivate_user(alice.id)

        user = await admin.activate_user(alice.id)

        assert user.is_active is True
        assert (await container.auth_service.login("alice", PASSWORD)).succeeded

    async def test_unknown_user(self, container):
        with pytest.raises(NotFoundError):
            await container.user_admin_service.deactivate_user(uuid4())


class TestSoftDelete:
    async def test_deleted_user_is_hidden_and_signed_out(self, container, alice, login_tokens, clock):
        tokens = await login_tokens("alice")
        clock.advance(seconds=1)

        user = await container.user_admin_service.soft_delete_user(alice.id)

        assert user.deleted_at == clock()
        async with container.uow_factory() as uow:
            assert await uow.users.get_by_id(alice.id) is None
            assert (await uow.users.get_by_id(alice.id, include_deleted=True)).is_deleted
        access = await container.token_service.validate_access_token(tokens.access_token)
        assert access.error == ErrorKind.TOKEN_REVOKED
        assert (await container.auth_service.login("alice", PASSWORD)).error == ErrorKind.INVALID_CREDENTIALS

    async def test_deleted_user_cannot_be_restored(self, container, alice):
        admin = container.user_admin_service
        await admin.soft_delete_user(alice.id)

        with pytest.raises(NotFoundError):
            await admin.activate_user(alice.id)
        with pytest.raises(NotFoundError):
            await admin.soft_delete_user(alice.id)


class TestLockAccount:
    async def test_lock_uses_default_duration(self, container, alice, clock):
        user = await container.user_admin_service.lock_account(alice.id)

        assert user.lockout_end == clock() + container.lockout_service.lockout_duration
        result = await container.auth_service.login("alice", PASSWORD)
        assert result.error == ErrorKind.ACCOUNT_LOCKED
        assert result.locked_until == user.lockout_end

    async def test_lock_expires(self, container, alice, clock):
        await container.user_admin_service.lock_account(alice.id, duration_minutes=5)

        clock.advance(minutes=5)

        assert (await container.auth_service.login("alice", PASSWORD)).succeeded

    async def test_unlock_ends_administrative_lock(self, container, alice):
        await container.user_admin_service.lock_account(alice.id, duration_minutes=60)

        await container.auth_service.unlock_account(alice.id)

        assert await container.lockout_service.is_locked_out(alice.id) is False

    async def test_duration_must_be_positive(self, container, alice):
        with pytest.raises(InvalidInputError):
            await container.user_admin_service.lock_account(alice.id, duration_minutes=0)

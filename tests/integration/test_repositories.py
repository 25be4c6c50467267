"""
Integration tests for the SQLAlchemy repositories over SQLite.

Covers the concurrency guards: the user version check and the
compare-and-set updates on refresh tokens and recovery codes.
"""

import uuid
from datetime import timedelta

import pytest

from gatekeeper.core.exceptions import AlreadyExistsError, ConcurrencyConflictError
from gatekeeper.domain.entities import LoginAttempt, LoginStage, RecoveryCode, RefreshToken, RevocationReason


class TestUserRepository:
    async def test_lookup_is_case_insensitive(self, container, alice):
        async with container.uow_factory() as uow:
            by_name = await uow.users.get_by_username("ALICE")
            by_email = await uow.users.get_by_email("Alice@Example.com")

        assert by_name.id == alice.id
        assert by_email.id == alice.id

    async def test_version_increments_on_update(self, container, alice):
        async with container.uow_factory() as uow:
            user = await uow.users.get_by_id(alice.id)
            before = user.version
            user.phone_number = "+15550100"
            await uow.users.update(user)

        assert user.version == before + 1

    async def test_stale_update_is_rejected(self, container, alice):
        async with container.uow_factory() as uow:
            stale = await uow.users.get_by_id(alice.id)

        async with container.uow_factory() as uow:
            fresh = await uow.users.get_by_id(alice.id)
            fresh.failed_login_attempts = 1
            await uow.users.update(fresh)

        stale.failed_login_attempts = 3
        with pytest.raises(ConcurrencyConflictError):
            async with container.uow_factory() as uow:
                await uow.users.update(stale)

        async with container.uow_factory() as uow:
            stored = await uow.users.get_by_id(alice.id)
        assert stored.failed_login_attempts == 1

    async def test_soft_deleted_user_is_hidden(self, container, alice, clock):
        async with container.uow_factory() as uow:
            user = await uow.users.get_by_id(alice.id)
            user.soft_delete(clock())
            await uow.users.update(user)

        async with container.uow_factory() as uow:
            assert await uow.users.get_by_username("alice") is None
            assert await uow.users.get_by_id(alice.id) is None
            assert await uow.users.get_by_id(alice.id, include_deleted=True) is not None
            assert await uow.users.exists_by_username("alice") is True


class TestRefreshTokenRepository:
    async def _add_token(self, container, user_id, clock) -> RefreshToken:
        token = RefreshToken(
            id=uuid.uuid4(),
            user_id=user_id,
            token_hash=uuid.uuid4().hex * 2,
            expires_at=clock() + timedelta(days=7),
            created_at=clock(),
        )
        async with container.uow_factory() as uow:
            await uow.refresh_tokens.add(token)
        return token

    async def test_revoke_is_compare_and_set(self, container, alice, clock):
        token = await self._add_token(container, alice.id, clock)

        async with container.uow_factory() as uow:
            first = await uow.refresh_tokens.get_by_id(token.id)
        async with container.uow_factory() as uow:
            second = await uow.refresh_tokens.get_by_id(token.id)

        first.revoke(clock(), RevocationReason.ROTATED)
        async with container.uow_factory() as uow:
            await uow.refresh_tokens.update(first)

        second.revoke(clock(), RevocationReason.LOGOUT)
        with pytest.raises(ConcurrencyConflictError):
            async with container.uow_factory() as uow:
                await uow.refresh_tokens.update(second)

        async with container.uow_factory() as uow:
            stored = await uow.refresh_tokens.get_by_id(token.id)
        assert stored.revocation_reason == RevocationReason.ROTATED

    async def test_revoke_all_and_list_active(self, container, alice, clock):
        for _ in range(3):
            await self._add_token(container, alice.id, clock)

        async with container.uow_factory() as uow:
            assert len(await uow.refresh_tokens.list_active_for_user(alice.id, clock())) == 3
            revoked = await uow.refresh_tokens.revoke_all_for_user(
                alice.id, clock(), RevocationReason.LOGOUT_ALL
            )

        async with container.uow_factory() as uow:
            active = await uow.refresh_tokens.list_active_for_user(alice.id, clock())
        assert revoked == 3
        assert active == []

    async def test_delete_expired(self, container, alice, clock):
        await self._add_token(container, alice.id, clock)

        async with container.uow_factory() as uow:
            deleted = await uow.refresh_tokens.delete_expired(clock() + timedelta(days=8))

        assert deleted == 1

    async def test_duplicate_hash_is_rejected(self, container, alice, clock):
        token = await self._add_token(container, alice.id, clock)
        clone = RefreshToken(
            id=uuid.uuid4(),
            user_id=alice.id,
            token_hash=token.token_hash,
            expires_at=token.expires_at,
            created_at=clock(),
        )

        with pytest.raises(AlreadyExistsError):
            async with container.uow_factory() as uow:
                await uow.refresh_tokens.add(clone)


class TestRecoveryCodeRepository:
    async def test_mark_used_once(self, container, alice, clock):
        code = RecoveryCode(
            id=uuid.uuid4(),
            user_id=alice.id,
            code_value="digest",
            created_at=clock(),
            expires_at=clock() + timedelta(days=30),
        )
        async with container.uow_factory() as uow:
            await uow.recovery_codes.add_many([code])

        async with container.uow_factory() as uow:
            first = await uow.recovery_codes.mark_used(code.id, clock())
        async with container.uow_factory() as uow:
            second = await uow.recovery_codes.mark_used(code.id, clock())
            stored = await uow.recovery_codes.list_for_user(alice.id)

        assert first is True
        assert second is False
        assert stored[0].is_used is True
        assert stored[0].used_at == clock()


class TestLoginAttemptRepository:
    async def test_history_is_newest_first(self, container, alice, clock):
        async with container.uow_factory() as uow:
            for reason in ("INVALID_CREDENTIALS", None):
                await uow.login_attempts.add(
                    LoginAttempt(
                        id=uuid.uuid4(),
                        identifier="alice",
                        succeeded=reason is None,
                        stage=LoginStage.PASSWORD,
                        attempted_at=clock(),
                        user_id=alice.id,
                        failure_reason=reason,
                    )
                )
                clock.advance(seconds=1)

        async with container.uow_factory() as uow:
            history = await uow.login_attempts.list_for_user(alice.id)

        assert [a.succeeded for a in history] == [True, False]

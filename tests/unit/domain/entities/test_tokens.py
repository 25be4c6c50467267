"""Unit tests for RefreshToken and RecoveryCode entities."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from gatekeeper.domain.entities import RecoveryCode, RefreshToken, RevocationReason

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


def make_refresh_token(**kwargs) -> RefreshToken:
    fields = {
        "id": uuid4(),
        "user_id": uuid4(),
        "token_hash": "a" * 64,
        "expires_at": NOW + timedelta(days=7),
        "created_at": NOW,
    }
    fields.update(kwargs)
    return RefreshToken(**fields)


class TestRefreshToken:
    def test_new_token_is_active(self):
        token = make_refresh_token()

        assert token.is_active(NOW) is True
        assert token.is_revoked is False

    def test_expired_token_is_inactive(self):
        token = make_refresh_token()

        assert token.is_expired(NOW + timedelta(days=7)) is True
        assert token.is_active(NOW + timedelta(days=7)) is False

    def test_revoke_records_reason_and_successor(self):
        token = make_refresh_token()
        successor = uuid4()

        revoked = token.revoke(NOW, RevocationReason.ROTATED, "10.0.0.1", successor)

        assert revoked is True
        assert token.is_revoked is True
        assert token.revocation_reason == RevocationReason.ROTATED
        assert token.revoked_by_ip == "10.0.0.1"
        assert token.replaced_by_token_id == successor

    def test_second_revoke_keeps_first_record(self):
        token = make_refresh_token()
        token.revoke(NOW, RevocationReason.LOGOUT)

        revoked = token.revoke(NOW + timedelta(hours=1), RevocationReason.ADMIN)

        assert revoked is False
        assert token.revoked_at == NOW
        assert token.revocation_reason == RevocationReason.LOGOUT

    def test_repr_hides_hash(self):
        token = make_refresh_token()

        assert "a" * 64 not in repr(token)


class TestRecoveryCode:
    def test_usable_until_used(self):
        code = RecoveryCode(
            id=uuid4(),
            user_id=uuid4(),
            code_value="digest",
            created_at=NOW,
            expires_at=NOW + timedelta(days=30),
        )

        assert code.is_usable(NOW) is True
        code.mark_used(NOW)
        assert code.is_usable(NOW) is False
        assert code.used_at == NOW

    def test_expired_code_is_not_usable(self):
        code = RecoveryCode(
            id=uuid4(),
            user_id=uuid4(),
            code_value="digest",
            created_at=NOW,
            expires_at=NOW + timedelta(days=30),
        )

        assert code.is_usable(NOW + timedelta(days=30)) is False

    def test_repr_hides_code(self):
        code = RecoveryCode(
            id=uuid4(),
            user_id=uuid4(),
            code_value="secret-digest",
            created_at=NOW,
            expires_at=NOW + timedelta(days=30),
        )

        assert "secret-digest" not in repr(code)

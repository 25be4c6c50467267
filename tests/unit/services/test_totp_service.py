"""Unit tests for TotpService: RFC 6238 codes and recovery codes."""

from datetime import timedelta
from uuid import uuid4

import pyotp
import pytest

from gatekeeper.core.security import sha256_hex
from gatekeeper.domain.entities.recovery_code import RecoveryCode
from gatekeeper.services.totp_service import RECOVERY_CODE_ALPHABET, TotpService


@pytest.fixture
def totp(mock_uow_factory, settings, clock) -> TotpService:
    return TotpService(mock_uow_factory, settings, clock=clock)


class TestTotpCodes:
    """Test code generation and drift window."""

    def test_secret_is_base32_with_160_bits(self, totp):
        secret = totp.generate_secret()

        assert len(secret) == 32
        assert set(secret) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZ234567")

    def test_current_code_is_accepted(self, totp):
        secret = totp.generate_secret()

        assert totp.verify_code(secret, totp.compute_code(secret)) is True

    def test_matches_reference_implementation(self, totp, clock):
        secret = totp.generate_secret()

        assert totp.compute_code(secret) == pyotp.TOTP(secret).at(clock.now)

    @pytest.mark.parametrize("seconds", [-30, 30])
    def test_adjacent_steps_are_accepted(self, totp, clock, seconds):
        secret = totp.generate_secret()
        code = totp.compute_code(secret, clock.now + timedelta(seconds=seconds))

        assert totp.verify_code(secret, code) is True

    @pytest.mark.parametrize("seconds", [-60, 60])
    def test_steps_outside_window_are_rejected(self, totp, clock, seconds):
        secret = totp.generate_secret()
        code = totp.compute_code(secret, clock.now + timedelta(seconds=seconds))

        assert totp.verify_code(secret, code) is False

    def test_zero_window_accepts_current_step_only(self, totp, clock):
        secret = totp.generate_secret()
        code = totp.compute_code(secret, clock.now + timedelta(seconds=30))

        assert totp.verify_code(secret, code, window=0) is False

    def test_spaces_in_code_are_ignored(self, totp):
        secret = totp.generate_secret()
        code = totp.compute_code(secret)

        assert totp.verify_code(secret, f" {code[:3]} {code[3:]} ") is True

    @pytest.mark.parametrize("candidate", ["", "12345", "1234567", "abcdef"])
    def test_malformed_codes_are_rejected(self, totp, candidate):
        assert totp.verify_code(totp.generate_secret(), candidate) is False

    def test_empty_secret_is_rejected(self, totp):
        assert totp.verify_code("", "123456") is False

    def test_provisioning_uri(self, totp):
        secret = totp.generate_secret()

        uri = totp.generate_provisioning_uri(secret, "alice@example.com")

        assert uri.startswith("otpauth://totp/")
        assert f"secret={secret}" in uri
        assert "issuer=Gatekeeper" in uri

    def test_numeric_code(self):
        code = TotpService.generate_numeric_code(6)

        assert len(code) == 6
        assert code.isdigit()


@pytest.mark.slow
class TestCodeComparisonTiming:
    def test_first_and_last_digit_mismatch_cost_the_same(self, totp, median_latencies):
        secret = totp.generate_secret()
        code = totp.compute_code(secret)

        def replace(index: int) -> str:
            digits = list(code)
            digits[index] = str((int(digits[index]) + 1) % 10)
            return "".join(digits)

        first_digit, last_digit = replace(0), replace(-1)
        assert totp.verify_code(secret, first_digit, window=0) is False
        assert totp.verify_code(secret, last_digit, window=0) is False

        early, late = median_latencies(
            lambda: totp.verify_code(secret, first_digit, window=0),
            lambda: totp.verify_code(secret, last_digit, window=0),
            rounds=201,
            batch=20,
        )

        assert 0.67 < early / late < 1.5


class TestRecoveryCodes:
    """Test recovery code generation and consumption."""

    def test_generate_unique_codes(self, totp):
        codes = totp.generate_recovery_codes()

        assert len(codes) == 10
        assert len(set(codes)) == 10
        assert all(len(code) == 10 for code in codes)
        assert all(set(code) <= set(RECOVERY_CODE_ALPHABET) for code in codes)

    def test_normalization(self):
        assert TotpService.normalize_recovery_code(" abcd-efgh 23 ") == "ABCDEFGH23"

    def test_stored_value_is_digest(self, totp):
        assert totp.stored_recovery_value("abcd-efgh23") == sha256_hex("ABCDEFGH23")

    def test_stored_value_plaintext_when_hashing_disabled(self, mock_uow_factory, settings, clock):
        plain = TotpService(
            mock_uow_factory,
            settings.model_copy(update={"recovery_code_hashing": False}),
            clock=clock,
        )

        assert plain.stored_recovery_value("abcd-efgh23") == "ABCDEFGH23"

    async def test_replace_recovery_codes(self, totp, mock_uow, clock):
        user_id = uuid4()

        codes = await totp.replace_recovery_codes(user_id)

        mock_uow.recovery_codes.delete_for_user.assert_awaited_once_with(user_id)
        records = mock_uow.recovery_codes.add_many.await_args.args[0]
        assert len(records) == len(codes)
        assert {r.code_value for r in records} == {sha256_hex(c) for c in codes}
        assert all(r.expires_at == clock.now + timedelta(days=30) for r in records)

    async def test_consume_matching_code(self, totp, mock_uow, clock):
        user_id = uuid4()
        record = RecoveryCode(
            id=uuid4(),
            user_id=user_id,
            code_value=sha256_hex("ABCDEFGH23"),
            created_at=clock.now,
            expires_at=clock.now + timedelta(days=30),
        )
        mock_uow.recovery_codes.list_for_user.return_value = [record]
        mock_uow.recovery_codes.mark_used.return_value = True

        assert await totp.consume_recovery_code(user_id, "abcd-efgh23") is True
        mock_uow.recovery_codes.mark_used.assert_awaited_once_with(record.id, clock.now)

    async def test_consume_lost_race_returns_false(self, totp, mock_uow, clock):
        user_id = uuid4()
        record = RecoveryCode(
            id=uuid4(),
            user_id=user_id,
            code_value=sha256_hex("ABCDEFGH23"),
            created_at=clock.now,
            expires_at=clock.now + timedelta(days=30),
        )
        mock_uow.recovery_codes.list_for_user.return_value = [record]
        mock_uow.recovery_codes.mark_used.return_value = False

        assert await totp.consume_recovery_code(user_id, "ABCDEFGH23") is False

    async def test_expired_code_is_not_consumed(self, totp, mock_uow, clock):
        user_id = uuid4()
        record = RecoveryCode(
            id=uuid4(),
            user_id=user_id,
            code_value=sha256_hex("ABCDEFGH23"),
            created_at=clock.now - timedelta(days=31),
            expires_at=clock.now - timedelta(days=1),
        )
        mock_uow.recovery_codes.list_for_user.return_value = [record]

        assert await totp.consume_recovery_code(user_id, "ABCDEFGH23") is False
        mock_uow.recovery_codes.mark_used.assert_not_awaited()

    async def test_unknown_code_is_rejected(self, totp, mock_uow):
        mock_uow.recovery_codes.list_for_user.return_value = []

        assert await totp.consume_recovery_code(uuid4(), "ABCDEFGH23") is False
        assert await totp.consume_recovery_code(uuid4(), "   ") is False

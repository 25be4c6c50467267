"""
TOTP engine and recovery codes.

TOTP follows RFC 6238 through ``pyotp``; digest, digits, step and drift
window come from settings. Recovery codes are single-use backup
credentials stored as SHA-256 digests (or plaintext when hashing is
disabled).
"""

import hashlib
import hmac
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from uuid import UUID

import pyotp

from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkFactory, UnitOfWorkPort
from gatekeeper.core.clock import Clock, utc_now
from gatekeeper.core.config import Settings
from gatekeeper.core.security import constant_time_equals, sha256_hex
from gatekeeper.domain.entities.recovery_code import RecoveryCode
from gatekeeper.services.base import BaseService

logger = logging.getLogger(__name__)

# Upper-case letters and digits without look-alikes (0/O, 1/I/L)
RECOVERY_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


class TotpService(BaseService):
    """
    Time-based one-time passwords and recovery codes.

    Args:
        uow_factory: Unit of work factory (recovery code storage)
        settings: Application settings (TOTP and recovery code parameters)
        clock: Time source

    Example:
        >>> secret = totp.generate_secret()
        >>> code = totp.compute_code(secret)
        >>> totp.verify_code(secret, code)
        True
    """

    def __init__(self, uow_factory: UnitOfWorkFactory, settings: Settings, clock: Clock = utc_now):
        super().__init__(uow_factory, clock)
        self.settings = settings

    # =========================================================================
    # TOTP
    # =========================================================================

    @staticmethod
    def generate_secret() -> str:
        """Generate a base32 secret with 160 bits of entropy."""
        return pyotp.random_base32(length=32)

    def _totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(
            secret,
            digits=self.settings.totp_digits,
            digest=getattr(hashlib, self.settings.totp_digest),
            interval=self.settings.totp_interval_seconds,
        )

    def generate_provisioning_uri(self, secret: str, account_label: str, issuer: str | None = None) -> str:
        """
        Build the ``otpauth://totp/...`` URI scanned by authenticator apps.

        Args:
            secret: Base32 secret
            account_label: Account name shown in the app (username or email)
            issuer: Issuer shown in the app; defaults to ``totp_issuer``

        Returns:
            Provisioning URI
        """
        return self._totp(secret).provisioning_uri(
            name=account_label,
            issuer_name=issuer or self.settings.totp_issuer,
        )

    def compute_code(self, secret: str, for_time: datetime | None = None) -> str:
        """Compute the code for the step containing ``for_time`` (default: now)."""
        return self._totp(secret).at(for_time or self._clock())

    def verify_code(self, secret: str, candidate: str, window: int | None = None) -> bool:
        """
        Verify a code against the current step and ``window`` steps either side.

        Every step in the window is computed and compared, and the results
        are combined without short-circuiting, so timing does not reveal
        which step matched or where a mismatch occurred.

        Args:
            secret: Base32 secret
            candidate: Submitted code
            window: Tolerated drift in steps; defaults to ``totp_valid_window``

        Returns:
            True if the code matches any step in the window
        """
        if not secret or not candidate:
            return False
        candidate = candidate.strip().replace(" ", "")
        if len(candidate) != self.settings.totp_digits or not candidate.isdigit():
            return False

        window = self.settings.totp_valid_window if window is None else window
        totp = self._totp(secret)
        now = self._clock()
        matched = False
        for offset in range(-window, window + 1):
            expected = totp.at(now, counter_offset=offset)
            matched |= hmac.compare_digest(expected.encode("ascii"), candidate.encode("ascii"))
        return matched

    @staticmethod
    def generate_numeric_code(digits: int = 6) -> str:
        """Generate a random numeric one-time code for email or SMS delivery."""
        return f"{secrets.randbelow(10**digits):0{digits}d}"

    # =========================================================================
    # Recovery codes
    # =========================================================================

    def generate_recovery_codes(self, count: int | None = None, length: int | None = None) -> list[str]:
        """
        Generate fresh recovery codes. They are shown to the user once.

        Args:
            count: Number of codes; defaults to ``recovery_code_count``
            length: Characters per code; defaults to ``recovery_code_length``

        Returns:
            Plaintext codes
        """
        count = count or self.settings.recovery_code_count
        length = length or self.settings.recovery_code_length
        codes: set[str] = set()
        while len(codes) < count:
            codes.add("".join(secrets.choice(RECOVERY_CODE_ALPHABET) for _ in range(length)))
        return list(codes)

    @staticmethod
    def normalize_recovery_code(code: str) -> str:
        return "".join(code.split()).replace("-", "").upper()

    def stored_recovery_value(self, code: str) -> str:
        """Value persisted for a code: its digest, or the code when hashing is off."""
        normalized = self.normalize_recovery_code(code)
        return sha256_hex(normalized) if self.settings.recovery_code_hashing else normalized

    async def replace_recovery_codes(self, user_id: UUID, uow: UnitOfWorkPort | None = None) -> list[str]:
        """
        Delete a user's recovery codes and store a fresh set.

        Args:
            user_id: Owner
            uow: Optional caller transaction

        Returns:
            The new plaintext codes
        """
        codes = self.generate_recovery_codes()
        now = self._clock()
        expires_at = now + timedelta(days=self.settings.recovery_code_expire_days)
        records = [
            RecoveryCode(
                id=uuid.uuid4(),
                user_id=user_id,
                code_value=self.stored_recovery_value(code),
                created_at=now,
                expires_at=expires_at,
            )
            for code in codes
        ]
        async with self._transaction(uow) as tx:
            await tx.recovery_codes.delete_for_user(user_id)
            await tx.recovery_codes.add_many(records)
        return codes

    async def consume_recovery_code(self, user_id: UUID, code: str, uow: UnitOfWorkPort | None = None) -> bool:
        """
        Consume a recovery code.

        The code must be unused and unexpired. Marking it used is a
        compare-and-set, so of two concurrent attempts with the same code
        exactly one succeeds. A consumed or expired code never validates
        again.

        Args:
            user_id: Owner
            code: Submitted code
            uow: Optional caller transaction

        Returns:
            True if this call consumed the code
        """
        if not code or not code.strip():
            return False
        submitted = self.stored_recovery_value(code)

        async with self._transaction(uow) as tx:
            now = self._clock()
            match: RecoveryCode | None = None
            for candidate in await tx.recovery_codes.list_for_user(user_id):
                if constant_time_equals(candidate.code_value, submitted) and match is None:
                    match = candidate
            if match is None or not match.is_usable(now):
                return False
            consumed = await tx.recovery_codes.mark_used(match.id, now)

        if consumed:
            logger.info(f"Recovery code consumed for user {user_id}")
        return consumed

    async def count_usable_recovery_codes(self, user_id: UUID) -> int:
        async with self._transaction() as uow:
            codes = await uow.recovery_codes.list_for_user(user_id)
        now = self._clock()
        return sum(1 for code in codes if code.is_usable(now))

"""
Credential management: password policy, hashing, verification and change.

PBKDF2 derivation is CPU-bound and runs in a worker thread
(``asyncio.to_thread``) so concurrent requests keep flowing.
"""

import asyncio
import logging
from datetime import datetime
from uuid import UUID

from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkFactory, UnitOfWorkPort
from gatekeeper.core.clock import Clock, utc_now
from gatekeeper.core.config import Settings
from gatekeeper.core.exceptions import (
    ConcurrencyConflictError,
    NotFoundError,
    PasswordPolicyViolationError,
)
from gatekeeper.core.security import HashedPassword, PasswordHasher
from gatekeeper.domain.entities.refresh_token import RevocationReason
from gatekeeper.domain.entities.user import User
from gatekeeper.domain.value_objects.password_policy import PolicyRule, PolicyViolation
from gatekeeper.services.base import BaseService
from gatekeeper.services.token_service import TokenService

logger = logging.getLogger(__name__)


class CredentialService(BaseService):
    """
    Owns password hashes: strength policy, hashing, verification, rehash
    on login and password changes.

    Args:
        uow_factory: Unit of work factory
        settings: Application settings (policy and PBKDF2 parameters)
        token_service: Used to revoke sessions after a password change
        clock: Time source
        hasher: Optional pre-built hasher
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        settings: Settings,
        token_service: TokenService,
        clock: Clock = utc_now,
        hasher: PasswordHasher | None = None,
    ):
        super().__init__(uow_factory, clock)
        self.settings = settings
        self.hasher = hasher or PasswordHasher.from_settings(settings)
        self.token_service = token_service
        self._dummy_hash: HashedPassword | None = None

    # -------------------------------------------------------------------------
    # Strength policy
    # -------------------------------------------------------------------------

    def validate_strength(self, password: str) -> list[PolicyViolation]:
        """
        Check a password against every policy rule.

        All violated rules are returned, not just the first one.

        Args:
            password: Candidate password

        Returns:
            List of violations; empty when the password is acceptable

        Example:
            >>> service.validate_strength("short")
            [PolicyViolation(rule=<PolicyRule.MIN_LENGTH ...>), ...]
        """
        s = self.settings
        violations: list[PolicyViolation] = []
        password = password or ""

        if len(password) < s.password_min_length:
            violations.append(
                PolicyViolation(
                    PolicyRule.MIN_LENGTH,
                    f"Password must be at least {s.password_min_length} characters long",
                )
            )
        if len(password) > s.password_max_length:
            violations.append(
                PolicyViolation(
                    PolicyRule.MAX_LENGTH,
                    f"Password must be at most {s.password_max_length} characters long",
                )
            )
        if s.password_require_uppercase and not any(c.isupper() for c in password):
            violations.append(
                PolicyViolation(
                    PolicyRule.UPPERCASE, "Password must contain at least one uppercase letter"
                )
            )
        if s.password_require_lowercase and not any(c.islower() for c in password):
            violations.append(
                PolicyViolation(
                    PolicyRule.LOWERCASE, "Password must contain at least one lowercase letter"
                )
            )
        if s.password_require_digit and not any(c.isdigit() for c in password):
            violations.append(
                PolicyViolation(PolicyRule.DIGIT, "Password must contain at least one digit")
            )
        if s.password_require_special and not any(
            not c.isalnum() and not c.isspace() for c in password
        ):
            violations.append(
                PolicyViolation(
                    PolicyRule.SPECIAL, "Password must contain at least one special character"
                )
            )
        if _longest_run(password) > s.password_max_repeated_chars:
            violations.append(
                PolicyViolation(
                    PolicyRule.REPEATED_CHARS,
                    f"Password must not repeat a character more than "
                    f"{s.password_max_repeated_chars} times in a row",
                )
            )
        return violations

    def ensure_strength(self, password: str) -> None:
        """
        Raises:
            PasswordPolicyViolationError: Listing every violated rule
        """
        violations = self.validate_strength(password)
        if violations:
            raise PasswordPolicyViolationError(violations=[str(v) for v in violations])

    # -------------------------------------------------------------------------
    # Hashing and verification
    # -------------------------------------------------------------------------

    async def hash_password(self, password: str) -> HashedPassword:
        """Hash a password in a worker thread."""
        return await asyncio.to_thread(self.hasher.hash_password, password)

    async def _verify_hash(self, password: str, password_hash: str, salt: str) -> bool:
        return await asyncio.to_thread(self.hasher.verify_password, password, password_hash, salt)

    async def verify(self, user: User, candidate_password: str) -> bool:
        """
        Verify a candidate password and opportunistically upgrade the hash.

        When the stored hash was made with weaker parameters than the
        current policy, it is re-derived from the verified plaintext in the
        same request. The plaintext is not kept afterwards.

        Args:
            user: User whose hash to check
            candidate_password: Submitted password

        Returns:
            True if the password matches
        """
        verified = await self._verify_hash(candidate_password, user.password_hash, user.password_salt)
        if verified and self.hasher.needs_rehash(user.password_hash):
            await self._rehash(user, candidate_password)
        return verified

    async def verify_dummy(self, candidate_password: str) -> None:
        """
        Spend the same work as a real verification.

        Called when the identifier matched no user, so response time does
        not reveal whether an account exists.
        """
        if self._dummy_hash is None:
            self._dummy_hash = await self.hash_password("gatekeeper-dummy-password")
        await self._verify_hash(
            candidate_password or "x", self._dummy_hash.hash, self._dummy_hash.salt
        )

    async def _rehash(self, user: User, password: str) -> None:
        new_hash = await self.hash_password(password)
        try:
            async with self._transaction() as uow:
                current = await uow.users.get_by_id(user.id)
                # Skip if the password changed since it was verified
                if current is None or current.password_hash != user.password_hash:
                    return
                current.rehash_password(new_hash.hash, new_hash.salt)
                current.updated_at = self._clock()
                await uow.users.update(current)
        except ConcurrencyConflictError:
            logger.info(f"Skipped password rehash for user {user.id}: concurrent update")
            return
        user.rehash_password(new_hash.hash, new_hash.salt)
        user.version = current.version
        logger.info(f"Upgraded password hash parameters for user {user.id}")

    # -------------------------------------------------------------------------
    # Password change
    # -------------------------------------------------------------------------

    async def set_password(
        self,
        user_id: UUID,
        new_password: str,
        ip_address: str | None = None,
        uow: UnitOfWorkPort | None = None,
    ) -> User:
        """
        Replace a user's password and end every session.

        Steps: validate strength, reject reuse of the current password,
        hash, store with ``last_password_change_at``, revoke all refresh
        tokens and mark all outstanding access tokens invalid.

        Args:
            user_id: User to update
            new_password: New plaintext password
            ip_address: Client IP recorded on revoked tokens
            uow: Optional caller transaction

        Returns:
            Updated user

        Raises:
            PasswordPolicyViolationError: If the password is weak or unchanged
            NotFoundError: If the user does not exist
        """
        self.ensure_strength(new_password)

        async with self._transaction(uow) as tx:
            user = await tx.users.get_by_id(user_id)
            if user is None:
                raise NotFoundError(resource="User")

            if await self._verify_hash(new_password, user.password_hash, user.password_salt):
                raise PasswordPolicyViolationError(
                    violations=["New password must be different from the current password"]
                )

            new_hash = await self.hash_password(new_password)
            now: datetime = self._clock()
            user.change_password(new_hash.hash, new_hash.salt, now)
            user.updated_at = now
            await tx.users.update(user)

            await self.token_service.revoke_all_tokens_for_user(
                user_id,
                reason=RevocationReason.PASSWORD_CHANGED,
                ip_address=ip_address,
                uow=tx,
            )

        logger.info(f"Password changed for user {user_id}")
        return user


def _longest_run(value: str) -> int:
    """Length of the longest run of one repeated character."""
    longest = current = 0
    previous = None
    for ch in value:
        current = current + 1 if ch == previous else 1
        previous = ch
        longest = max(longest, current)
    return longest

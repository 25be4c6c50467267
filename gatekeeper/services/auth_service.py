"""
Authentication orchestrator.

This module ties the core components together:
- Registration with strength policy and default role
- Password login with rate limiting, account lockout and login history
- Two-factor challenge completion (authenticator, email/SMS code, recovery code)
- Token refresh with rotation
- Logout, logout everywhere and password change

Expected authentication outcomes are returned as ``AuthResult`` values.
Failure messages are deliberately vague: an unknown account and a wrong
password produce the same result and cost the same PBKDF2 work.
"""

import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from uuid import UUID

from email_validator import EmailNotValidError, validate_email

from gatekeeper.application.dto.auth_dto import AuthResult, TokenPair
from gatekeeper.application.ports.cache_port import CachePort
from gatekeeper.application.ports.notification_port import NotificationPort
from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkFactory
from gatekeeper.core.clock import Clock, utc_now
from gatekeeper.core.config import Settings
from gatekeeper.core.exceptions import (
    AlreadyExistsError,
    ErrorKind,
    InvalidCredentialsError,
    InvalidInputError,
    NotFoundError,
    TokenExpiredError,
    TokenMalformedError,
    TokenRevokedError,
)
from gatekeeper.core.security import generate_opaque_token, sha256_hex
from gatekeeper.domain.entities.login_attempt import LoginAttempt, LoginStage
from gatekeeper.domain.entities.refresh_token import RefreshToken
from gatekeeper.domain.entities.user import User
from gatekeeper.domain.value_objects.token_claims import AccessTokenClaims
from gatekeeper.services import alerts, cache_keys
from gatekeeper.services.base import BaseService
from gatekeeper.services.credential_service import CredentialService
from gatekeeper.services.lockout_service import LockoutService
from gatekeeper.services.rate_limiter import RateLimiter
from gatekeeper.services.rbac_service import RbacService
from gatekeeper.services.token_service import IssuedRefreshToken, TokenService
from gatekeeper.services.totp_service import TotpService
from gatekeeper.services.two_factor_service import TwoFactorService

logger = logging.getLogger(__name__)

USERNAME_MAX_LENGTH = 50


class AuthService(BaseService):
    """
    Service class for authentication flows.

    Args:
        uow_factory: Unit of work factory
        settings: Application settings
        cache: Holds two-factor login challenges
        credential_service: Password policy, hashing and change
        token_service: Token issuance, rotation and revocation
        rbac_service: Resolves roles and permissions for access tokens
        totp_service: Recovery code consumption
        two_factor_service: Second factor verification and code delivery
        rate_limiter: Per-IP/username attempt limiter
        lockout_service: Per-account lockout
        notifier: Security alerts
        clock: Time source
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        settings: Settings,
        cache: CachePort,
        credential_service: CredentialService,
        token_service: TokenService,
        rbac_service: RbacService,
        totp_service: TotpService,
        two_factor_service: TwoFactorService,
        rate_limiter: RateLimiter,
        lockout_service: LockoutService,
        notifier: NotificationPort,
        clock: Clock = utc_now,
    ):
        super().__init__(uow_factory, clock)
        self.settings = settings
        self.cache = cache
        self.credentials = credential_service
        self.tokens = token_service
        self.rbac = rbac_service
        self.totp = totp_service
        self.two_factor = two_factor_service
        self.rate_limiter = rate_limiter
        self.lockout = lockout_service
        self.notifier = notifier

    # =========================================================================
    # Registration
    # =========================================================================

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        phone_number: str | None = None,
    ) -> User:
        """
        Register a new user.

        This method:
        1. Validates username, email and password strength
        2. Hashes the password with PBKDF2-SHA512
        3. Creates the user and assigns the default role, in one transaction

        Args:
            username: Unique username (case-insensitive)
            email: Unique email address
            password: Plain text password
            phone_number: Optional phone number for SMS codes

        Returns:
            Created user

        Raises:
            InvalidInputError: If username or email is malformed
            PasswordPolicyViolationError: If the password is weak
            AlreadyExistsError: If username or email is taken

        Example:
            user = await auth_service.register("alice", "alice@example.com", "Str0ng!Pass")
        """
        username = (username or "").strip()
        if not username or len(username) > USERNAME_MAX_LENGTH or "@" in username:
            raise InvalidInputError(field="username")
        try:
            email = validate_email(email or "", check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise InvalidInputError(field="email", message=str(e)) from e

        self.credentials.ensure_strength(password)
        hashed = await self.credentials.hash_password(password)
        now = self._clock()

        async with self._transaction() as uow:
            if await uow.users.exists_by_username(username):
                logger.warning(f"Registration attempted with existing username: {username}")
                raise AlreadyExistsError("User with this username")
            if await uow.users.exists_by_email(email):
                logger.warning("Registration attempted with an existing email")
                raise AlreadyExistsError("User with this email")

            user = User(
                id=uuid.uuid4(),
                username=username,
                email=email.lower(),
                password_hash=hashed.hash,
                password_salt=hashed.salt,
                phone_number=phone_number,
                last_password_change_at=now,
                created_at=now,
                updated_at=now,
            )
            user = await uow.users.add(user)

            if self.settings.default_role_name:
                role = await uow.roles.get_by_name(self.settings.default_role_name)
                if role is not None:
                    await self.rbac.assign_role(user.id, role.id, uow=uow)
                else:
                    logger.warning(f"Default role '{self.settings.default_role_name}' does not exist")

        await self.rbac.invalidate_user(user.id)
        logger.info(f"User registered successfully: {user.id}")
        return user

    # =========================================================================
    # Login
    # =========================================================================

    async def login(
        self,
        identifier: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """
        Authenticate with username (or email) and password.

        Order of checks:
        1. IP/username rate limit (independent of account state)
        2. Credential verification (dummy work for unknown accounts)
        3. Account lockout
        4. Second factor: a challenge token is returned instead of tokens

        Args:
            identifier: Username or email
            password: Plain text password
            ip_address: Client IP
            user_agent: Client user agent

        Returns:
            AuthResult: success with tokens, two-factor challenge, or failure
        """
        identifier = (identifier or "").strip()
        keys = self.rate_limiter.keys_for(ip_address, identifier)
        decision = await self.rate_limiter.check_keys(keys)
        record = self._attempt_recorder(identifier, LoginStage.PASSWORD, ip_address, user_agent)

        if not decision.allowed:
            await record(None, ErrorKind.TOO_MANY_ATTEMPTS)
            return AuthResult.failure(
                ErrorKind.TOO_MANY_ATTEMPTS, retry_after_seconds=decision.retry_after_seconds
            )

        async with self._transaction() as uow:
            if "@" in identifier:
                user = await uow.users.get_by_email(identifier)
            else:
                user = await uow.users.get_by_username(identifier)

        if user is None or not user.can_authenticate:
            await self.credentials.verify_dummy(password)
            await record(user.id if user else None, ErrorKind.INVALID_CREDENTIALS)
            return AuthResult.failure(
                ErrorKind.INVALID_CREDENTIALS, remaining_attempts=decision.remaining_attempts
            )

        now = self._clock()
        if user.is_locked_out(now):
            await self.credentials.verify_dummy(password)
            await record(user.id, ErrorKind.ACCOUNT_LOCKED)
            return AuthResult.failure(ErrorKind.ACCOUNT_LOCKED, locked_until=user.lockout_end)

        if not await self.credentials.verify(user, password):
            status = await self.lockout.increment_failed_attempts(user.id)
            if status.locked_until is not None:
                await record(user.id, ErrorKind.ACCOUNT_LOCKED)
                return AuthResult.failure(ErrorKind.ACCOUNT_LOCKED, locked_until=status.locked_until)
            await record(user.id, ErrorKind.INVALID_CREDENTIALS)
            return AuthResult.failure(
                ErrorKind.INVALID_CREDENTIALS, remaining_attempts=decision.remaining_attempts
            )

        await self.rate_limiter.reset_keys(keys)

        if user.two_factor_enabled:
            challenge = await self._issue_challenge(user)
            if user.two_factor_method.delivers_code:
                await self.two_factor.send_login_code(user)
            await record(user.id, ErrorKind.TWO_FACTOR_REQUIRED)
            logger.info(f"Password accepted for user {user.id}; second factor required")
            return AuthResult.two_factor_required(challenge, user.two_factor_method)

        return await self._complete_login(user, LoginStage.PASSWORD, identifier, ip_address, user_agent)

    async def verify_two_factor(
        self,
        challenge_token: str,
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """
        Complete a login with the second factor code.

        Wrong codes count toward the account lockout, so repeated guessing
        locks the account like repeated wrong passwords.

        Args:
            challenge_token: Token from the TWO_FACTOR_REQUIRED result
            code: Authenticator, email or SMS code
            ip_address: Client IP
            user_agent: Client user agent
        """

        async def verify(user: User) -> bool:
            return await self.two_factor.verify_second_factor(user, code)

        return await self._complete_challenge(
            challenge_token, verify, LoginStage.TWO_FACTOR, ip_address, user_agent
        )

    async def login_with_recovery_code(
        self,
        challenge_token: str,
        recovery_code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """
        Complete a login with a single-use recovery code instead of the second factor.

        The response is identical for unknown, used and expired codes.
        """

        async def verify(user: User) -> bool:
            return await self.totp.consume_recovery_code(user.id, recovery_code)

        return await self._complete_challenge(
            challenge_token, verify, LoginStage.RECOVERY_CODE, ip_address, user_agent
        )

    async def _complete_challenge(
        self,
        challenge_token: str,
        verify: Callable[[User], Awaitable[bool]],
        stage: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthResult:
        challenge_key = cache_keys.login_challenge(sha256_hex(challenge_token or ""))
        raw = await self.cache.get(challenge_key)
        if raw is None:
            return AuthResult.failure(ErrorKind.TWO_FACTOR_INVALID_CODE)
        challenge = json.loads(raw)
        user_id = UUID(challenge["user_id"])
        record = self._attempt_recorder(challenge["identifier"], stage, ip_address, user_agent)

        limiter_key = f"two_factor:{user_id}"
        if not await self.rate_limiter.check_and_increment(limiter_key):
            await record(user_id, ErrorKind.TOO_MANY_ATTEMPTS)
            return AuthResult.failure(
                ErrorKind.TOO_MANY_ATTEMPTS,
                retry_after_seconds=await self.rate_limiter.retry_after(limiter_key),
            )

        async with self._transaction() as uow:
            user = await uow.users.get_by_id(user_id)
        if user is None or not user.can_authenticate or not user.two_factor_enabled:
            await self.cache.remove(challenge_key)
            await record(user_id, ErrorKind.INVALID_CREDENTIALS)
            return AuthResult.failure(ErrorKind.INVALID_CREDENTIALS)

        if user.is_locked_out(self._clock()):
            await self.cache.remove(challenge_key)
            await record(user_id, ErrorKind.ACCOUNT_LOCKED)
            return AuthResult.failure(ErrorKind.ACCOUNT_LOCKED, locked_until=user.lockout_end)

        if not await verify(user):
            status = await self.lockout.increment_failed_attempts(user.id)
            if status.locked_until is not None:
                await self.cache.remove(challenge_key)
                await record(user_id, ErrorKind.ACCOUNT_LOCKED)
                return AuthResult.failure(ErrorKind.ACCOUNT_LOCKED, locked_until=status.locked_until)
            await record(user_id, ErrorKind.TWO_FACTOR_INVALID_CODE)
            return AuthResult.failure(
                ErrorKind.TWO_FACTOR_INVALID_CODE, remaining_attempts=status.remaining_attempts
            )

        await self.cache.remove(challenge_key)
        await self.rate_limiter.reset(limiter_key)
        return await self._complete_login(user, stage, challenge["identifier"], ip_address, user_agent)

    async def _issue_challenge(self, user: User) -> str:
        token = generate_opaque_token()
        payload = json.dumps({"user_id": str(user.id), "identifier": user.username})
        await self.cache.set(
            cache_keys.login_challenge(sha256_hex(token)),
            payload,
            self.settings.two_factor_challenge_ttl_seconds,
        )
        return token

    async def _complete_login(
        self,
        user: User,
        stage: str,
        identifier: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthResult:
        """Reset the failure counter, persist a refresh token and issue the access token."""
        async with self._transaction() as uow:
            user = await self.lockout.record_successful_login(user.id, uow=uow)
            refresh = await self.tokens.issue_refresh_token(user.id, ip_address, uow=uow)
            await uow.login_attempts.add(
                self._attempt(identifier, stage, ip_address, user_agent, user.id, None)
            )

        authorization = await self.rbac.resolve_authorization(user.id)
        access_token = self.tokens.issue_access_token(
            user, authorization.roles, authorization.permissions
        )
        logger.info(f"User logged in successfully: {user.id}")
        return AuthResult.success(user.id, self._token_pair(access_token, refresh))

    # =========================================================================
    # Tokens
    # =========================================================================

    async def refresh(self, refresh_token: str, ip_address: str | None = None) -> AuthResult:
        """
        Exchange a refresh token for a new token pair.

        A revoked or expired token fails and revokes its whole chain; the
        client has to log in again.
        """
        try:
            rotated = await self.tokens.rotate_refresh_token(refresh_token, ip_address)
        except (TokenMalformedError, TokenExpiredError, TokenRevokedError) as e:
            return AuthResult.failure(ErrorKind(e.error_code))
        return AuthResult.success(
            rotated.user.id, self._token_pair(rotated.access_token, rotated.refresh)
        )

    async def authenticate(self, access_token: str) -> AccessTokenClaims:
        """
        Validate an access token, including revocation.

        Raises:
            TokenMalformedError, TokenExpiredError, TokenRevokedError
        """
        result = await self.tokens.validate_access_token(access_token)
        return result.raise_for_error()

    async def logout(
        self,
        refresh_token: str | None = None,
        access_claims: AccessTokenClaims | None = None,
        ip_address: str | None = None,
    ) -> bool:
        """
        End one session: revoke its refresh token and its access token ``jti``.

        Returns:
            True if a refresh token was revoked
        """
        revoked = False
        if refresh_token:
            revoked = await self.tokens.revoke_refresh_token(
                refresh_token,
                ip_address,
                user_id=access_claims.subject if access_claims else None,
            )
        if access_claims is not None:
            await self.tokens.revoke_access_token(access_claims.jti, access_claims.expires_at)
        return revoked

    async def logout_everywhere(self, user_id: UUID, ip_address: str | None = None) -> int:
        """End every session of the user. Returns the number of refresh tokens revoked."""
        return await self.tokens.revoke_all_tokens_for_user(user_id, ip_address=ip_address)

    async def list_sessions(self, user_id: UUID) -> list[RefreshToken]:
        return await self.tokens.list_active_sessions(user_id)

    # =========================================================================
    # Account
    # =========================================================================

    async def change_password(
        self,
        user_id: UUID,
        current_password: str,
        new_password: str,
        ip_address: str | None = None,
    ) -> User:
        """
        Change the password after re-verifying the current one.

        Every session ends; the user must log in again everywhere.

        Raises:
            InvalidCredentialsError: If the current password is wrong
            PasswordPolicyViolationError: If the new password is weak or unchanged
        """
        async with self._transaction() as uow:
            user = await uow.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError(resource="User")
        if not await self.credentials.verify(user, current_password):
            logger.warning(f"Password change with wrong current password for user {user_id}")
            raise InvalidCredentialsError(message="Current password is incorrect")

        user = await self.credentials.set_password(user_id, new_password, ip_address)
        await alerts.send_security_alert(self.notifier, user, alerts.PASSWORD_CHANGED)
        return user

    async def unlock_account(self, user_id: UUID) -> User:
        return await self.lockout.unlock_account(user_id)

    async def login_history(self, user_id: UUID, limit: int = 50) -> list[LoginAttempt]:
        async with self._transaction() as uow:
            return await uow.login_attempts.list_for_user(user_id, limit)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _token_pair(self, access_token: str, refresh: IssuedRefreshToken) -> TokenPair:
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh.token,
            expires_in=self.settings.access_token_ttl_seconds,
            refresh_expires_at=refresh.record.expires_at,
        )

    def _attempt(
        self,
        identifier: str,
        stage: str,
        ip_address: str | None,
        user_agent: str | None,
        user_id: UUID | None,
        failure: ErrorKind | None,
    ) -> LoginAttempt:
        return LoginAttempt(
            id=uuid.uuid4(),
            identifier=identifier[:255],
            succeeded=failure is None,
            stage=stage,
            attempted_at=self._clock(),
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
            failure_reason=failure.value if failure else None,
        )

    def _attempt_recorder(
        self,
        identifier: str,
        stage: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> Callable[[UUID | None, ErrorKind | None], Awaitable[None]]:
        async def record(user_id: UUID | None, failure: ErrorKind | None) -> None:
            async with self._transaction() as uow:
                await uow.login_attempts.add(
                    self._attempt(identifier, stage, ip_address, user_agent, user_id, failure)
                )

        return record

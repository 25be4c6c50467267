"""
Token lifecycle: access token issuance and validation, refresh token
issuance, rotation and revocation.

Access tokens are HS256/384/512 JWTs carrying identity, roles and
permissions. They are validated without touching the database; the only
stateful check is the revocation lookup in the cache (revoked ``jti`` set
and per-user "tokens valid since" marker).

Refresh tokens are opaque CSPRNG strings. Only their SHA-256 digest is
stored, and every successful refresh rotates them.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from jose import JWTError, jwt

from gatekeeper.application.dto.auth_dto import TokenValidationResult
from gatekeeper.application.ports.cache_port import CachePort
from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkFactory, UnitOfWorkPort
from gatekeeper.core.clock import Clock, utc_now
from gatekeeper.core.config import Settings
from gatekeeper.core.exceptions import (
    ConcurrencyConflictError,
    ErrorKind,
    TokenExpiredError,
    TokenMalformedError,
    TokenRevokedError,
)
from gatekeeper.core.security import generate_opaque_token, sha256_hex
from gatekeeper.domain.entities.refresh_token import RefreshToken, RevocationReason
from gatekeeper.domain.entities.user import User
from gatekeeper.domain.value_objects.token_claims import TOKEN_TYPE_ACCESS, AccessTokenClaims
from gatekeeper.services import cache_keys
from gatekeeper.services.base import BaseService
from gatekeeper.services.rbac_service import RbacService

logger = logging.getLogger(__name__)

# Extra lifetime for revocation markers so they outlive clock skew
_REVOCATION_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class IssuedRefreshToken:
    """A newly issued refresh token. ``token`` is the only plaintext copy."""

    token: str
    record: RefreshToken

    def __repr__(self) -> str:
        return f"IssuedRefreshToken(token='[REDACTED]', record={self.record!r})"


@dataclass(frozen=True)
class RotatedTokens:
    """Result of a successful refresh token rotation."""

    user: User
    access_token: str
    refresh: IssuedRefreshToken


class TokenService(BaseService):
    """
    Issues, validates, rotates and revokes tokens.

    Args:
        uow_factory: Unit of work factory
        settings: Application settings (JWT and TTL configuration)
        cache: Revocation store
        rbac_service: Resolves roles and permissions for new access tokens
        clock: Time source
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        settings: Settings,
        cache: CachePort,
        rbac_service: RbacService,
        clock: Clock = utc_now,
    ):
        super().__init__(uow_factory, clock)
        self.settings = settings
        self.cache = cache
        self.rbac_service = rbac_service

    # =========================================================================
    # Access tokens
    # =========================================================================

    def issue_access_token(
        self,
        user: User,
        roles: frozenset[str] | set[str],
        permissions: frozenset[str] | set[str],
    ) -> str:
        """
        Create a signed access token.

        ``iat`` is written with sub-second precision so it can be compared
        against the "tokens valid since" marker set by revoke-all.

        Args:
            user: Token subject
            roles: Resolved role names
            permissions: Resolved permission names

        Returns:
            Encoded JWT string

        Example:
            >>> token = service.issue_access_token(user, {"Editor"}, {"content:write"})
        """
        now = self._clock()
        expires_at = now + timedelta(minutes=self.settings.access_token_expire_minutes)
        claims = {
            "sub": str(user.id),
            "username": user.username,
            "email": user.email,
            "roles": sorted(roles),
            "permissions": sorted(permissions),
            "type": TOKEN_TYPE_ACCESS,
            "iat": now.timestamp(),
            "exp": int(expires_at.timestamp()),
            "jti": uuid.uuid4().hex,
            "iss": self.settings.jwt_issuer,
        }
        if self.settings.jwt_audience:
            claims["aud"] = self.settings.jwt_audience

        return jwt.encode(claims, self.settings.jwt_secret_key, algorithm=self.settings.jwt_algorithm)

    def decode_access_token(self, token: str) -> AccessTokenClaims:
        """
        Verify signature, issuer, audience, type and expiry.

        Pure with respect to the signing key and the clock; the revocation
        store is not consulted. Only the configured algorithm is accepted,
        so unsigned (``alg=none``) tokens are rejected.

        Raises:
            TokenMalformedError: Bad signature, wrong claims or wrong type
            TokenExpiredError: Past ``exp``
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm],
                audience=self.settings.jwt_audience,
                issuer=self.settings.jwt_issuer,
                options={
                    "verify_exp": False,
                    "verify_aud": self.settings.jwt_audience is not None,
                },
            )
        except JWTError as e:
            logger.warning(f"JWT decode error: {e}")
            raise TokenMalformedError() from e

        if payload.get("type") != TOKEN_TYPE_ACCESS:
            raise TokenMalformedError(message="Invalid token type")

        try:
            claims = AccessTokenClaims(
                subject=UUID(payload["sub"]),
                username=payload["username"],
                email=payload["email"],
                jti=payload["jti"],
                issued_at=datetime.fromtimestamp(float(payload["iat"]), UTC),
                expires_at=datetime.fromtimestamp(float(payload["exp"]), UTC),
                roles=frozenset(payload.get("roles", [])),
                permissions=frozenset(payload.get("permissions", [])),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TokenMalformedError(message="Token is missing required claims") from e

        if self._clock() >= claims.expires_at:
            raise TokenExpiredError()
        return claims

    async def validate_access_token(self, token: str) -> TokenValidationResult:
        """
        Fully validate an access token, including revocation.

        A revoked ``jti`` or a token issued before the user's "valid since"
        marker is rejected even when signature and expiry are fine.

        Args:
            token: Encoded JWT

        Returns:
            TokenValidationResult with claims or an error kind

        Raises:
            ServiceUnavailableError: If the revocation store is unreachable
        """
        try:
            claims = self.decode_access_token(token)
        except TokenExpiredError:
            return TokenValidationResult(error=ErrorKind.TOKEN_EXPIRED)
        except TokenMalformedError:
            return TokenValidationResult(error=ErrorKind.TOKEN_MALFORMED)

        if await self.is_access_token_revoked(claims):
            return TokenValidationResult(error=ErrorKind.TOKEN_REVOKED)
        return TokenValidationResult(claims=claims)

    async def is_access_token_revoked(self, claims: AccessTokenClaims) -> bool:
        if await self.cache.get(cache_keys.revoked_jti(claims.jti)) is not None:
            return True
        valid_since = await self.cache.get(cache_keys.tokens_valid_since(claims.subject))
        return valid_since is not None and claims.issued_at.timestamp() < float(valid_since)

    async def revoke_access_token(self, jti: str, expires_at: datetime) -> None:
        """
        Add a ``jti`` to the revocation set until the token would expire.

        Args:
            jti: Token id
            expires_at: Token expiry; the entry is kept no longer than needed
        """
        ttl = (expires_at - self._clock()).total_seconds() + _REVOCATION_MARGIN_SECONDS
        if ttl > 0:
            await self.cache.set(cache_keys.revoked_jti(jti), "1", ttl)

    async def _mark_tokens_invalid_before_now(self, user_id: UUID) -> None:
        await self.cache.set(
            cache_keys.tokens_valid_since(user_id),
            repr(self._clock().timestamp()),
            self.settings.access_token_ttl_seconds + _REVOCATION_MARGIN_SECONDS,
        )

    # =========================================================================
    # Refresh tokens
    # =========================================================================

    def _new_refresh_token(self, user_id: UUID, client_ip: str | None, now: datetime) -> IssuedRefreshToken:
        plaintext = generate_opaque_token(self.settings.refresh_token_bytes)
        record = RefreshToken(
            id=uuid.uuid4(),
            user_id=user_id,
            token_hash=sha256_hex(plaintext),
            expires_at=now + timedelta(days=self.settings.refresh_token_expire_days),
            created_at=now,
            created_by_ip=client_ip,
        )
        return IssuedRefreshToken(token=plaintext, record=record)

    async def issue_refresh_token(
        self,
        user_id: UUID,
        client_ip: str | None = None,
        uow: UnitOfWorkPort | None = None,
    ) -> IssuedRefreshToken:
        """
        Create and persist an opaque refresh token.

        Args:
            user_id: Owner
            client_ip: IP that requested the token
            uow: Optional caller transaction

        Returns:
            IssuedRefreshToken holding the plaintext (returned once) and the record
        """
        issued = self._new_refresh_token(user_id, client_ip, self._clock())
        async with self._transaction(uow) as tx:
            await tx.refresh_tokens.add(issued.record)
        return issued

    async def rotate_refresh_token(self, old_token: str, client_ip: str | None = None) -> RotatedTokens:
        """
        Exchange an active refresh token for a new refresh and access token.

        The look-up runs first and may be cancelled freely. The rotation
        itself (revoke old, insert new) is one transaction run under
        ``asyncio.shield``: once started it completes even if the caller is
        cancelled, so a committed rotation is never half-undone. Rotation
        is never retried.

        Presenting a revoked or expired token revokes every token reachable
        from it through ``replaced_by_token_id`` and invalidates the user's
        access tokens.

        Args:
            old_token: Refresh token presented by the client
            client_ip: Client IP

        Returns:
            RotatedTokens

        Raises:
            TokenMalformedError: Unknown token value
            TokenRevokedError: Token already revoked (reuse) or owner disabled
            TokenExpiredError: Token expired
        """
        token_hash = sha256_hex(old_token or "")

        async with self._transaction() as uow:
            stored = await uow.refresh_tokens.get_by_token_hash(token_hash)
        if stored is None:
            raise TokenMalformedError(message="Invalid refresh token")

        now = self._clock()
        if not stored.is_active(now):
            reused = stored.is_revoked
            await self._revoke_chain(stored, client_ip)
            if reused:
                logger.warning(
                    f"Refresh token reuse detected for user {stored.user_id}; chain revoked"
                )
                raise TokenRevokedError(message="Refresh token has been revoked")
            raise TokenExpiredError(message="Refresh token has expired")

        try:
            user, issued = await asyncio.shield(self._commit_rotation(token_hash, client_ip))
        except ConcurrencyConflictError:
            logger.warning(
                f"Concurrent use of refresh token {stored.id} for user {stored.user_id}; chain revoked"
            )
            await self._revoke_chain(stored, client_ip)
            raise TokenRevokedError(message="Refresh token has been revoked") from None

        if user is None:
            raise TokenRevokedError(message="Refresh token has been revoked")

        authorization = await self.rbac_service.resolve_authorization(user.id)
        access_token = self.issue_access_token(user, authorization.roles, authorization.permissions)
        logger.info(f"Rotated refresh token for user {user.id}")
        return RotatedTokens(user=user, access_token=access_token, refresh=issued)

    async def _commit_rotation(
        self, token_hash: str, client_ip: str | None
    ) -> tuple[User | None, IssuedRefreshToken | None]:
        async with self._transaction() as uow:
            stored = await uow.refresh_tokens.get_by_token_hash(token_hash)
            now = self._clock()
            if stored is None or not stored.is_active(now):
                raise ConcurrencyConflictError(message="Refresh token changed during rotation")

            user = await uow.users.get_by_id(stored.user_id)
            if user is None or not user.can_authenticate:
                await uow.refresh_tokens.revoke_all_for_user(
                    stored.user_id, now, RevocationReason.ADMIN, client_ip
                )
                return None, None

            issued = self._new_refresh_token(user.id, client_ip, now)
            await uow.refresh_tokens.add(issued.record)
            stored.revoke(now, RevocationReason.ROTATED, client_ip, replaced_by_token_id=issued.record.id)
            await uow.refresh_tokens.update(stored)
        return user, issued

    async def _revoke_chain(self, start: RefreshToken, client_ip: str | None) -> int:
        """Revoke ``start`` and every successor; returns how many were revoked."""
        revoked = 0
        async with self._transaction() as uow:
            now = self._clock()
            current: RefreshToken | None = start
            seen: set[UUID] = set()
            while current is not None and current.id not in seen:
                seen.add(current.id)
                if current.revoke(now, RevocationReason.REUSE_DETECTED, client_ip):
                    try:
                        await uow.refresh_tokens.update(current)
                        revoked += 1
                    except ConcurrencyConflictError:
                        # Revoked concurrently; keep walking with the stored row
                        pass
                    current = await uow.refresh_tokens.get_by_id(current.id)
                if current is None or current.replaced_by_token_id is None:
                    break
                current = await uow.refresh_tokens.get_by_id(current.replaced_by_token_id)

        await self._mark_tokens_invalid_before_now(start.user_id)
        return revoked

    async def revoke_refresh_token(
        self,
        token: str,
        client_ip: str | None = None,
        reason: str = RevocationReason.LOGOUT,
        user_id: UUID | None = None,
    ) -> bool:
        """
        Revoke a single refresh token (logout).

        Args:
            token: Refresh token plaintext
            client_ip: Client IP
            reason: Revocation reason
            user_id: When given, the token must belong to this user

        Returns:
            True if an active token was revoked
        """
        async with self._transaction() as uow:
            stored = await uow.refresh_tokens.get_by_token_hash(sha256_hex(token or ""))
            if stored is None or stored.is_revoked:
                return False
            if user_id is not None and stored.user_id != user_id:
                return False
            stored.revoke(self._clock(), reason, client_ip)
            try:
                await uow.refresh_tokens.update(stored)
            except ConcurrencyConflictError:
                return False
        return True

    async def revoke_all_tokens_for_user(
        self,
        user_id: UUID,
        reason: str = RevocationReason.LOGOUT_ALL,
        ip_address: str | None = None,
        uow: UnitOfWorkPort | None = None,
    ) -> int:
        """
        Revoke every refresh token and invalidate outstanding access tokens.

        Access tokens are invalidated by moving the user's "tokens valid
        since" marker to now; validation rejects any token issued earlier.
        The marker is written before this call returns.

        Args:
            user_id: User whose sessions end
            reason: Revocation reason
            ip_address: Client IP
            uow: Optional caller transaction

        Returns:
            Number of refresh tokens revoked
        """
        async with self._transaction(uow) as tx:
            count = await tx.refresh_tokens.revoke_all_for_user(
                user_id, self._clock(), reason, ip_address
            )
        await self._mark_tokens_invalid_before_now(user_id)
        logger.info(f"Revoked {count} refresh tokens for user {user_id} ({reason})")
        return count

    async def list_active_sessions(self, user_id: UUID) -> list[RefreshToken]:
        """List the user's active refresh tokens, newest first."""
        async with self._transaction() as uow:
            return await uow.refresh_tokens.list_active_for_user(user_id, self._clock())

    async def cleanup_expired_refresh_tokens(self, retention: timedelta = timedelta(0)) -> int:
        """
        Delete refresh tokens that expired more than ``retention`` ago.

        Returns:
            Number of tokens deleted
        """
        async with self._transaction() as uow:
            deleted = await uow.refresh_tokens.delete_expired(self._clock() - retention)
        logger.info(f"Deleted {deleted} expired refresh tokens")
        return deleted

"""Unit tests for access token issuance and validation."""

import base64
import json
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from jose import jwt

from gatekeeper.core.exceptions import ErrorKind, TokenExpiredError, TokenMalformedError
from gatekeeper.domain.entities.user import User
from gatekeeper.infrastructure.cache import MemoryCache
from gatekeeper.services.token_service import TokenService


@pytest.fixture
def cache(clock) -> MemoryCache:
    return MemoryCache(monotonic=clock.monotonic)


@pytest.fixture
def token_service(mock_uow_factory, settings, cache, clock) -> TokenService:
    return TokenService(mock_uow_factory, settings, cache, rbac_service=MagicMock(), clock=clock)


@pytest.fixture
def user() -> User:
    return User(
        id=uuid4(),
        username="alice",
        email="alice@example.com",
        password_hash="pbkdf2_sha512$1000$AAAA",
        password_salt="AAAA",
    )


def _b64(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()


class TestIssueAccessToken:
    def test_claims_round_trip(self, token_service, user, clock):
        token = token_service.issue_access_token(user, {"Editor"}, {"content:write"})

        claims = token_service.decode_access_token(token)

        assert claims.subject == user.id
        assert claims.username == "alice"
        assert claims.email == "alice@example.com"
        assert claims.roles == frozenset({"Editor"})
        assert claims.permissions == frozenset({"content:write"})
        assert claims.issued_at == clock.now
        assert (claims.expires_at - claims.issued_at).total_seconds() == 15 * 60

    def test_each_token_has_unique_jti(self, token_service, user):
        first = token_service.decode_access_token(token_service.issue_access_token(user, set(), set()))
        second = token_service.decode_access_token(token_service.issue_access_token(user, set(), set()))

        assert first.jti != second.jti

    def test_header_uses_configured_algorithm(self, token_service, user):
        token = token_service.issue_access_token(user, set(), set())

        assert jwt.get_unverified_header(token)["alg"] == "HS256"


class TestDecodeAccessToken:
    def test_expired_token(self, token_service, user, clock):
        token = token_service.issue_access_token(user, set(), set())
        clock.advance(minutes=15)

        with pytest.raises(TokenExpiredError):
            token_service.decode_access_token(token)

    def test_wrong_key(self, token_service, user, settings):
        token = token_service.issue_access_token(user, set(), set())
        payload = jwt.get_unverified_claims(token)
        forged = jwt.encode(payload, "another-secret-key-of-at-least-32-chars", algorithm="HS256")

        with pytest.raises(TokenMalformedError):
            token_service.decode_access_token(forged)

    def test_unsigned_token_is_rejected(self, token_service, user):
        token = token_service.issue_access_token(user, set(), set())
        payload = jwt.get_unverified_claims(token)
        unsigned = f"{_b64({'alg': 'none', 'typ': 'JWT'})}.{_b64(payload)}."

        with pytest.raises(TokenMalformedError):
            token_service.decode_access_token(unsigned)

    def test_tampered_payload_is_rejected(self, token_service, user):
        token = token_service.issue_access_token(user, set(), set())
        header, _, signature = token.split(".")
        payload = jwt.get_unverified_claims(token)
        payload["permissions"] = ["users:manage"]

        with pytest.raises(TokenMalformedError):
            token_service.decode_access_token(f"{header}.{_b64(payload)}.{signature}")

    def test_wrong_token_type(self, token_service, user, settings):
        payload = jwt.get_unverified_claims(token_service.issue_access_token(user, set(), set()))
        payload["type"] = "refresh"
        token = jwt.encode(payload, settings.jwt_secret_key, algorithm="HS256")

        with pytest.raises(TokenMalformedError):
            token_service.decode_access_token(token)

    def test_wrong_issuer(self, token_service, user, settings):
        payload = jwt.get_unverified_claims(token_service.issue_access_token(user, set(), set()))
        payload["iss"] = "someone-else"
        token = jwt.encode(payload, settings.jwt_secret_key, algorithm="HS256")

        with pytest.raises(TokenMalformedError):
            token_service.decode_access_token(token)

    def test_missing_claims(self, token_service, user, settings):
        payload = jwt.get_unverified_claims(token_service.issue_access_token(user, set(), set()))
        del payload["sub"]
        token = jwt.encode(payload, settings.jwt_secret_key, algorithm="HS256")

        with pytest.raises(TokenMalformedError):
            token_service.decode_access_token(token)

    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    def test_garbage(self, token_service, token):
        with pytest.raises(TokenMalformedError):
            token_service.decode_access_token(token)


class TestValidateAccessToken:
    async def test_valid_token(self, token_service, user):
        token = token_service.issue_access_token(user, set(), {"content:read"})

        result = await token_service.validate_access_token(token)

        assert result.is_valid is True
        assert result.claims.has_permission("content:read")

    async def test_expired_token_result(self, token_service, user, clock):
        token = token_service.issue_access_token(user, set(), set())
        clock.advance(minutes=16)

        result = await token_service.validate_access_token(token)

        assert result.error == ErrorKind.TOKEN_EXPIRED

    async def test_malformed_token_result(self, token_service):
        result = await token_service.validate_access_token("garbage")

        assert result.error == ErrorKind.TOKEN_MALFORMED

    async def test_revoked_jti(self, token_service, user):
        token = token_service.issue_access_token(user, set(), set())
        claims = token_service.decode_access_token(token)

        await token_service.revoke_access_token(claims.jti, claims.expires_at)

        result = await token_service.validate_access_token(token)
        assert result.error == ErrorKind.TOKEN_REVOKED

    async def test_revoke_all_invalidates_earlier_tokens(self, token_service, user, mock_uow, clock):
        mock_uow.refresh_tokens.revoke_all_for_user.return_value = 2
        old_token = token_service.issue_access_token(user, set(), set())
        clock.advance(seconds=1)

        revoked = await token_service.revoke_all_tokens_for_user(user.id)
        new_token = token_service.issue_access_token(user, set(), set())

        assert revoked == 2
        assert (await token_service.validate_access_token(old_token)).error == ErrorKind.TOKEN_REVOKED
        assert (await token_service.validate_access_token(new_token)).is_valid is True

    async def test_revocation_boundary(self, token_service, user, mock_uow, clock):
        mock_uow.refresh_tokens.revoke_all_for_user.return_value = 0
        just_before = token_service.issue_access_token(user, set(), set())
        clock.advance(microseconds=1)

        await token_service.revoke_all_tokens_for_user(user.id)
        same_instant = token_service.issue_access_token(user, set(), set())

        assert (await token_service.validate_access_token(just_before)).error == ErrorKind.TOKEN_REVOKED
        assert (await token_service.validate_access_token(same_instant)).is_valid is True

    async def test_revocation_marker_outlives_access_tokens(self, token_service, user, mock_uow, clock, cache):
        mock_uow.refresh_tokens.revoke_all_for_user.return_value = 0
        old_token = token_service.issue_access_token(user, set(), set())
        clock.advance(seconds=1)
        await token_service.revoke_all_tokens_for_user(user.id)

        clock.advance(minutes=14)

        assert (await token_service.validate_access_token(old_token)).error == ErrorKind.TOKEN_REVOKED

"""Cache key layout shared by the services."""

from uuid import UUID


def rate_limit(key: str) -> str:
    return f"rate_limit:{key}"


def user_authorization(user_id: UUID) -> str:
    return f"rbac:user:{user_id}:authorization"


def user_authorization_epoch(user_id: UUID) -> str:
    return f"rbac:user:{user_id}:epoch"


def revoked_jti(jti: str) -> str:
    return f"token:revoked_jti:{jti}"


def tokens_valid_since(user_id: UUID | str) -> str:
    return f"token:valid_since:{user_id}"


def login_challenge(challenge_digest: str) -> str:
    return f"two_factor:challenge:{challenge_digest}"


def delivered_code(user_id: UUID) -> str:
    return f"two_factor:code:{user_id}"


def used_totp(user_id: UUID, code_digest: str) -> str:
    return f"two_factor:used:{user_id}:{code_digest}"


def contact_code(user_id: UUID, channel: str) -> str:
    return f"two_factor:contact:{user_id}:{channel}"

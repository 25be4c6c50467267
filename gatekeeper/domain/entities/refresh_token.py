"""Refresh token domain entity."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


class RevocationReason:
    """Reasons recorded when a refresh token is revoked."""

    ROTATED = "rotated"
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    PASSWORD_CHANGED = "password_changed"
    TWO_FACTOR_DISABLED = "two_factor_disabled"
    REUSE_DETECTED = "reuse_detected"
    ADMIN = "admin"


@dataclass(eq=False)
class RefreshToken:
    """
    Opaque, rotatable refresh token.

    Only the SHA-256 digest of the token value is stored (``token_hash``);
    the plaintext is handed to the client once. Each successful refresh
    revokes the token and links it to its successor through
    ``replaced_by_token_id``, forming a rotation chain.
    """

    id: UUID
    user_id: UUID
    token_hash: str
    expires_at: datetime
    created_at: datetime
    created_by_ip: str | None = None
    revoked_at: datetime | None = None
    revoked_by_ip: str | None = None
    revocation_reason: str | None = None
    replaced_by_token_id: UUID | None = None

    def __repr__(self) -> str:
        return (
            f"RefreshToken(id={self.id}, user_id={self.user_id}, "
            f"expires_at={self.expires_at.isoformat()}, revoked={self.is_revoked})"
        )

    def is_expired(self, now: datetime) -> bool:
        """
        Check if the refresh token has expired.

        Returns:
            True if token has expired, False otherwise
        """
        return now >= self.expires_at

    @property
    def is_revoked(self) -> bool:
        """
        Check if the refresh token has been revoked.

        Returns:
            True if token has been revoked, False otherwise
        """
        return self.revoked_at is not None

    def is_active(self, now: datetime) -> bool:
        """
        Check if the refresh token can still be used.

        Returns:
            True if token is neither revoked nor expired
        """
        return not self.is_revoked and not self.is_expired(now)

    def revoke(
        self,
        now: datetime,
        reason: str,
        ip_address: str | None = None,
        replaced_by_token_id: UUID | None = None,
    ) -> bool:
        """
        Revoke this refresh token.

        Revoking an already revoked token keeps the first revocation record.

        Returns:
            True if the token was active-or-expired and is now revoked
        """
        if self.revoked_at is not None:
            return False
        self.revoked_at = now
        self.revocation_reason = reason
        self.revoked_by_ip = ip_address
        self.replaced_by_token_id = replaced_by_token_id
        return True

    def __eq__(self, other: object) -> bool:
        """Entity equality based on identity (id), not value."""
        if not isinstance(other, RefreshToken):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on identity."""
        return hash(self.id)

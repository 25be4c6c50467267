"""
Cryptographic primitives for the security core.

This module provides:
- Password hashing with PBKDF2-HMAC-SHA512 (salted, configurable iterations)
- Constant-time password verification
- Rehash detection when the stored parameters fall below current policy
- CSPRNG-backed random bytes and opaque tokens
- SHA-256 digests for refresh tokens and recovery codes at rest

All functions here are synchronous and CPU-bound. Services run the PBKDF2
derivation through ``asyncio.to_thread`` so the event loop is not blocked.
"""

import base64
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from gatekeeper.core.config import Settings
from gatekeeper.core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


# =============================================================================
# Password Hashing with PBKDF2-HMAC-SHA512
# =============================================================================
# The stored hash embeds its own parameters:
#     pbkdf2_sha512$<iterations>$<base64 derived key>
# The salt is stored next to it (base64). Verification always re-derives with
# the embedded iteration count, so raising the policy never breaks old hashes;
# needs_rehash() reports them for an opportunistic upgrade on next login.
# =============================================================================

HASH_ALGORITHM = "pbkdf2_sha512"
_SEPARATOR = "$"


@dataclass(frozen=True)
class HashedPassword:
    """Encoded password hash and salt, both safe to persist."""

    hash: str
    salt: str

    def __repr__(self) -> str:
        return "HashedPassword(hash='[REDACTED]', salt='[REDACTED]')"


class PasswordHasher:
    """
    PBKDF2-HMAC-SHA512 password hasher.

    Args:
        iterations: PBKDF2 iteration count for new hashes
        salt_bytes: Random salt length in bytes (>= 16)
        key_bytes: Derived key length in bytes (>= 32)

    Example:
        >>> hasher = PasswordHasher.from_settings(settings)
        >>> hashed = hasher.hash_password("Str0ng!Pass")
        >>> hasher.verify_password("Str0ng!Pass", hashed.hash, hashed.salt)
        True
    """

    def __init__(self, iterations: int = 310_000, salt_bytes: int = 16, key_bytes: int = 32):
        if salt_bytes < 16:
            raise ValueError("salt_bytes must be at least 16 (128 bits)")
        if key_bytes < 32:
            raise ValueError("key_bytes must be at least 32 (256 bits)")
        self.iterations = iterations
        self.salt_bytes = salt_bytes
        self.key_bytes = key_bytes

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordHasher":
        """Build a hasher from the PBKDF2 settings."""
        return cls(
            iterations=settings.pbkdf2_iterations,
            salt_bytes=settings.pbkdf2_salt_bytes,
            key_bytes=settings.pbkdf2_key_bytes,
        )

    @staticmethod
    def _kdf(salt: bytes, iterations: int, length: int) -> PBKDF2HMAC:
        return PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=length,
            salt=salt,
            iterations=iterations,
        )

    def hash_password(self, password: str) -> HashedPassword:
        """
        Hash a password with a fresh random salt.

        Args:
            password: Plain text password to hash

        Returns:
            HashedPassword with the encoded hash and base64 salt

        Raises:
            InvalidInputError: If the password is empty
        """
        if not password:
            raise InvalidInputError(field="password", message="Password must not be empty")

        salt = generate_secure_random(self.salt_bytes)
        key = self._kdf(salt, self.iterations, self.key_bytes).derive(password.encode("utf-8"))
        encoded = _SEPARATOR.join(
            [HASH_ALGORITHM, str(self.iterations), base64.b64encode(key).decode("ascii")]
        )
        return HashedPassword(hash=encoded, salt=base64.b64encode(salt).decode("ascii"))

    def verify_password(self, password: str, password_hash: str, salt: str) -> bool:
        """
        Verify a password against a stored hash and salt.

        The derived key is compared in constant time by
        ``PBKDF2HMAC.verify``; a mismatch at the first byte costs the same
        as one at the last.

        Args:
            password: Plain text password to verify
            password_hash: Stored encoded hash
            salt: Stored base64 salt

        Returns:
            True if the password matches, False otherwise
        """
        if not password:
            return False

        parsed = _parse_hash(password_hash)
        if parsed is None:
            logger.warning("Password hash has an unrecognized format")
            return False
        algorithm, iterations, expected = parsed
        if algorithm != HASH_ALGORITHM:
            return False

        try:
            raw_salt = base64.b64decode(salt, validate=True)
        except ValueError:
            logger.warning("Password salt is not valid base64")
            return False

        try:
            self._kdf(raw_salt, iterations, len(expected)).verify(
                password.encode("utf-8"), expected
            )
            return True
        except InvalidKey:
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """
        Check whether a stored hash is weaker than the current policy.

        Args:
            password_hash: Stored encoded hash

        Returns:
            True if the algorithm, iteration count or key length is outdated
        """
        parsed = _parse_hash(password_hash)
        if parsed is None:
            return True
        algorithm, iterations, key = parsed
        return (
            algorithm != HASH_ALGORITHM
            or iterations < self.iterations
            or len(key) < self.key_bytes
        )


def _parse_hash(password_hash: str) -> tuple[str, int, bytes] | None:
    """Split an encoded hash into (algorithm, iterations, key); None if malformed."""
    parts = password_hash.split(_SEPARATOR) if password_hash else []
    if len(parts) != 3:
        return None
    algorithm, iterations, encoded_key = parts
    try:
        iteration_count = int(iterations)
        key = base64.b64decode(encoded_key, validate=True)
    except ValueError:
        return None
    if iteration_count < 1 or not key:
        return None
    return algorithm, iteration_count, key


# =============================================================================
# Secure Random Generation
# =============================================================================


def generate_secure_random(n: int) -> bytes:
    """
    Return ``n`` bytes from the operating system CSPRNG.

    Args:
        n: Number of bytes (must be positive)

    Returns:
        Random bytes
    """
    if n <= 0:
        raise ValueError("n must be positive")
    return secrets.token_bytes(n)


def generate_opaque_token(n_bytes: int = 32) -> str:
    """
    Generate a URL-safe opaque token with ``n_bytes`` of entropy.

    Used for refresh tokens and login challenges. The value carries no
    structure and can only be matched against a stored digest.
    """
    return secrets.token_urlsafe(n_bytes)


# =============================================================================
# Digests for Secrets at Rest
# =============================================================================
# Refresh tokens and recovery codes are high-entropy, so an unsalted SHA-256
# digest is enough to keep their plaintext out of the database.
# =============================================================================


def sha256_hex(value: str) -> str:
    """
    Hash a high-entropy secret with SHA-256.

    Args:
        value: Secret string

    Returns:
        Hex digest

    Example:
        >>> token_hash = sha256_hex(refresh_token)
        >>> # Store token_hash, never the token itself
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two strings without leaking the position of the first mismatch."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))

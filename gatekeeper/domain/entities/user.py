"""User domain entity."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from gatekeeper.core.clock import ensure_utc
from gatekeeper.domain.exceptions import InvalidStateTransitionError
from gatekeeper.domain.value_objects.two_factor import TwoFactorMethod, TwoFactorState


@dataclass(eq=False)
class User:
    """
    User entity, the identity anchor of the security core.

    Holds the credential, two-factor and lockout state. Role assignments,
    refresh tokens and recovery codes live in their own repositories and are
    addressed by ``user_id``.

    Invariant: ``failed_login_attempts >= max_attempts`` implies
    ``lockout_end`` was set when the threshold was reached; clearing the
    lockout resets the counter to zero. Users are never hard-deleted.
    """

    id: UUID
    username: str
    email: str
    password_hash: str
    password_salt: str
    is_active: bool = True
    email_verified: bool = False
    phone_number: str | None = None
    phone_verified: bool = False
    two_factor_enabled: bool = False
    two_factor_method: TwoFactorMethod = TwoFactorMethod.NONE
    two_factor_secret: str | None = None
    failed_login_attempts: int = 0
    lockout_end: datetime | None = None
    last_password_change_at: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None
    version: int = 0

    def __post_init__(self) -> None:
        """Validate user after initialization."""
        if not self.username or not self.username.strip():
            raise ValueError("Username cannot be empty")
        if not self.email or "@" not in self.email:
            raise ValueError("Email is invalid")
        self.lockout_end = ensure_utc(self.lockout_end)

    def __repr__(self) -> str:
        return f"User(id={self.id}, username={self.username!r}, is_active={self.is_active})"

    # -------------------------------------------------------------------------
    # Lockout
    # -------------------------------------------------------------------------

    def is_locked_out(self, now: datetime) -> bool:
        """Check whether a lockout is currently in force."""
        return self.lockout_end is not None and now < self.lockout_end

    def record_failed_login(
        self,
        now: datetime,
        max_attempts: int,
        lockout_duration: timedelta,
        reset_on_expiry: bool = True,
    ) -> bool:
        """
        Count a failed authentication attempt.

        When a previous lockout has already expired and ``reset_on_expiry``
        is set, counting restarts from zero so one extra failure does not
        re-lock the account.

        Args:
            now: Current time
            max_attempts: Failures that trigger a lockout
            lockout_duration: How long the lockout lasts
            reset_on_expiry: Reset the counter after an expired lockout

        Returns:
            True if this failure locked the account
        """
        if self.is_locked_out(now):
            return False

        if self.lockout_end is not None and reset_on_expiry:
            self.failed_login_attempts = 0
            self.lockout_end = None

        self.failed_login_attempts += 1
        if self.failed_login_attempts >= max_attempts:
            self.lockout_end = now + lockout_duration
            return True
        return False

    def reset_failed_attempts(self) -> None:
        """Clear the failure counter and any lockout."""
        self.failed_login_attempts = 0
        self.lockout_end = None

    def record_successful_login(self, now: datetime) -> None:
        """Record a completed login."""
        self.reset_failed_attempts()
        self.last_login_at = now

    def unlock(self) -> None:
        """Administrative unlock."""
        self.reset_failed_attempts()

    def lock(self, until: datetime) -> None:
        """Administrative lock until ``until``; the failure counter is left alone."""
        self.lockout_end = ensure_utc(until)

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    def change_password(self, password_hash: str, password_salt: str, now: datetime) -> None:
        """
        Store a new password hash.

        Args:
            password_hash: Encoded PBKDF2 hash
            password_salt: Base64 salt
            now: Change timestamp
        """
        self.password_hash = password_hash
        self.password_salt = password_salt
        self.last_password_change_at = now

    def rehash_password(self, password_hash: str, password_salt: str) -> None:
        """Replace the stored hash with a stronger one for the same password."""
        self.password_hash = password_hash
        self.password_salt = password_salt

    # -------------------------------------------------------------------------
    # Contact details
    # -------------------------------------------------------------------------

    def set_phone_number(self, phone_number: str | None) -> None:
        """Replace the phone number; a changed number must be verified again."""
        if phone_number != self.phone_number:
            self.phone_number = phone_number
            self.phone_verified = False

    def verify_email(self) -> None:
        self.email_verified = True

    def verify_phone(self) -> None:
        """
        Mark the current phone number as verified.

        Raises:
            InvalidStateTransitionError: If no phone number is set
        """
        if not self.phone_number:
            raise InvalidStateTransitionError("phone number", "missing", "verify")
        self.phone_verified = True

    # -------------------------------------------------------------------------
    # Two-factor state machine
    # -------------------------------------------------------------------------

    @property
    def two_factor_state(self) -> TwoFactorState:
        """Derived two-factor lifecycle state."""
        if self.two_factor_enabled:
            return TwoFactorState.ENABLED
        if self.two_factor_secret is not None:
            return TwoFactorState.PENDING_SETUP
        return TwoFactorState.DISABLED

    def begin_two_factor_setup(self, secret: str) -> None:
        """
        Store a new, unconfirmed authenticator secret.

        Restarting a pending setup replaces the previous secret.

        Raises:
            InvalidStateTransitionError: If two-factor is already enabled
        """
        if self.two_factor_enabled:
            raise InvalidStateTransitionError("two-factor", str(self.two_factor_state), "begin setup of")
        self.two_factor_secret = secret
        self.two_factor_method = TwoFactorMethod.APP

    def confirm_two_factor_setup(self) -> None:
        """
        Move PENDING_SETUP to ENABLED.

        Raises:
            InvalidStateTransitionError: If no setup is pending
        """
        if self.two_factor_state != TwoFactorState.PENDING_SETUP:
            raise InvalidStateTransitionError("two-factor", str(self.two_factor_state), "confirm")
        self.two_factor_enabled = True
        self.two_factor_method = TwoFactorMethod.APP

    def enable_code_delivery(self, method: TwoFactorMethod) -> None:
        """
        Enable an email or SMS second factor.

        Raises:
            InvalidStateTransitionError: If two-factor is already enabled
            ValueError: If method does not deliver codes
        """
        if not method.delivers_code:
            raise ValueError(f"Method {method} does not deliver codes")
        if self.two_factor_enabled:
            raise InvalidStateTransitionError("two-factor", str(self.two_factor_state), "enable")
        self.two_factor_enabled = True
        self.two_factor_method = method
        self.two_factor_secret = None

    def disable_two_factor(self) -> None:
        """
        Move ENABLED (or PENDING_SETUP) to DISABLED and drop the secret.

        Raises:
            InvalidStateTransitionError: If two-factor is already disabled
        """
        if self.two_factor_state == TwoFactorState.DISABLED:
            raise InvalidStateTransitionError("two-factor", str(self.two_factor_state), "disable")
        self.two_factor_enabled = False
        self.two_factor_method = TwoFactorMethod.NONE
        self.two_factor_secret = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def deactivate(self) -> None:
        """Block authentication while keeping the account restorable."""
        self.is_active = False

    def activate(self) -> None:
        """
        Reverse a deactivation.

        Raises:
            InvalidStateTransitionError: If the account was deleted
        """
        if self.is_deleted:
            raise InvalidStateTransitionError("user", "deleted", "activate")
        self.is_active = True

    def soft_delete(self, now: datetime) -> None:
        """Deactivate and mark deleted; rows are kept for the audit trail."""
        self.is_active = False
        self.deleted_at = now

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def can_authenticate(self) -> bool:
        """True if the account may log in at all."""
        return self.is_active and not self.is_deleted

    def __eq__(self, other: object) -> bool:
        """Entity equality based on identity (id), not value."""
        if not isinstance(other, User):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on identity."""
        return hash(self.id)

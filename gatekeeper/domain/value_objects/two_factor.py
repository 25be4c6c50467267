"""Two-factor authentication value objects."""

from enum import Enum


class TwoFactorMethod(str, Enum):
    """Second factor chosen by the user."""

    NONE = "none"
    EMAIL = "email"
    SMS = "sms"
    APP = "app"

    def __str__(self) -> str:
        return self.value

    @property
    def delivers_code(self) -> bool:
        """True for methods where the server sends a one-time code."""
        return self in (TwoFactorMethod.EMAIL, TwoFactorMethod.SMS)


class TwoFactorState(str, Enum):
    """
    Per-user two-factor lifecycle.

    DISABLED -> PENDING_SETUP (secret generated, not yet confirmed) -> ENABLED.
    ENABLED -> DISABLED only with a valid current code or recovery code.
    """

    DISABLED = "disabled"
    PENDING_SETUP = "pending_setup"
    ENABLED = "enabled"

    def __str__(self) -> str:
        return self.value

"""Security alert messages sent through the notification collaborator."""

import logging

from gatekeeper.application.ports.notification_port import NotificationPort
from gatekeeper.domain.entities.user import User

logger = logging.getLogger(__name__)

PASSWORD_CHANGED = (
    "Your password was changed",
    "The password for your account was just changed. "
    "If this was not you, reset your password immediately.",
)
ACCOUNT_LOCKED = (
    "Your account has been locked",
    "Your account was temporarily locked after repeated failed sign-in attempts.",
)
TWO_FACTOR_ENABLED = (
    "Two-factor authentication enabled",
    "Two-factor authentication is now enabled on your account.",
)
TWO_FACTOR_DISABLED = (
    "Two-factor authentication disabled",
    "Two-factor authentication was turned off for your account. "
    "If this was not you, secure your account immediately.",
)


async def send_security_alert(notifier: NotificationPort, user: User, alert: tuple[str, str]) -> bool:
    """
    Email a security alert to the user.

    Delivery failures are logged and reported as False; they never fail the
    operation that triggered the alert.

    Args:
        notifier: Notification collaborator
        user: Recipient
        alert: (subject, body) pair

    Returns:
        True if the alert was handed to the notifier
    """
    subject, body = alert
    try:
        await notifier.send_email(user.email, subject, body)
    except Exception:
        logger.exception(f"Failed to send security alert '{subject}' to user {user.id}")
        return False
    return True

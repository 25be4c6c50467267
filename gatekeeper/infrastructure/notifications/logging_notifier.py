"""Notification sender that writes to the log instead of delivering."""

import logging

from gatekeeper.application.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


def _mask(destination: str) -> str:
    """Keep the first two characters and the domain or last two digits."""
    if "@" in destination:
        local, _, domain = destination.partition("@")
        return f"{local[:2]}***@{domain}"
    return f"***{destination[-2:]}" if len(destination) > 2 else "***"


class LoggingNotifier(NotificationPort):
    """
    Development stand-in for email/SMS delivery.

    Message bodies can contain one-time codes, so only the subject and a
    masked destination are logged. Real deployments plug a delivery
    adapter into the container instead.
    """

    def __init__(self) -> None:
        self.sent_count = 0

    async def send_email(self, destination: str, subject: str, body: str) -> None:
        self.sent_count += 1
        logger.info(f"Email queued to {_mask(destination)}: {subject}")

    async def send_sms(self, destination: str, message: str) -> None:
        self.sent_count += 1
        logger.info(f"SMS queued to {_mask(destination)} ({len(message)} chars)")

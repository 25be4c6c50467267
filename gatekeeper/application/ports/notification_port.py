"""Notification and QR rendering port interfaces."""

from typing import Protocol


class NotificationPort(Protocol):
    """Outbound email/SMS delivery. The core passes (destination, payload) only."""

    async def send_email(self, destination: str, subject: str, body: str) -> None:
        """
        Send an email.

        Args:
            destination: Recipient email address
            subject: Message subject
            body: Plain text body
        """
        ...

    async def send_sms(self, destination: str, message: str) -> None:
        """
        Send a text message.

        Args:
            destination: Recipient phone number
            message: Message text
        """
        ...


class QrRendererPort(Protocol):
    """Renders a provisioning URI as an image. Never sees stored secrets."""

    def render_png(self, data: str) -> bytes:
        """
        Render ``data`` as a PNG QR code.

        Args:
            data: ``otpauth://`` provisioning URI

        Returns:
            PNG image bytes
        """
        ...

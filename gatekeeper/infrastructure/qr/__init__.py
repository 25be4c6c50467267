"""QR code rendering adapter."""

from gatekeeper.infrastructure.qr.qrcode_renderer import QrCodeRenderer

__all__ = ["QrCodeRenderer"]

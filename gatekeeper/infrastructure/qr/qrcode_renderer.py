"""QR code rendering with the ``qrcode`` library."""

import io

import qrcode

from gatekeeper.application.ports.notification_port import QrRendererPort


class QrCodeRenderer(QrRendererPort):
    """
    Renders provisioning URIs as PNG QR codes.

    The renderer only ever receives the ``otpauth://`` URI. It has no access
    to where secrets are stored.
    """

    def __init__(self, box_size: int = 10, border: int = 4):
        self.box_size = box_size
        self.border = border

    def render_png(self, data: str) -> bytes:
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=self.box_size,
            border=self.border,
        )
        qr.add_data(data)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return buffer.getvalue()

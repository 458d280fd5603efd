"""QR code rendering for download links."""

import io

import qrcode
from PIL import Image

from event_photobooth.services.imaging import to_data_url

QR_SIZE = 300
QR_BORDER = 2


def make_qr_png(url: str, size: int = QR_SIZE, border: int = QR_BORDER) -> bytes:
    """Render ``url`` as a black-on-white PNG QR code of ``size`` pixels."""
    qr = qrcode.QRCode(border=border)
    qr.add_data(url)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    img = img.resize((size, size), Image.Resampling.NEAREST)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def make_qr_data_url(url: str) -> str:
    """Return the QR code for ``url`` as a PNG data URL."""
    return to_data_url(make_qr_png(url), "image/png")

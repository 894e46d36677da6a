# printables/infrastructure/qr/qr_code.py
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_M

# Fixed encoder settings keep the PNG byte-identical for the same URL
QR_BOX_SIZE = 10
QR_BORDER = 1


def generate_qr_png(url: str) -> bytes:
    if not url:
        raise ValueError("QR payload is empty")
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=QR_BOX_SIZE,
        border=QR_BORDER,
    )
    qr.add_data(url)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()

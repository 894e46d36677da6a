# printables/infrastructure/pdf/fonts.py
import io
import logging
import threading
from typing import Optional

from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont

from printables.config.layout import FontName

FALLBACK_FONT = "Helvetica"

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] [FONT] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

# reportlab keeps fonts in a process-wide registry; compositing runs on worker threads
_register_lock = threading.Lock()


def register_font(font: FontName, data: Optional[bytes]) -> str:
    """Register a custom font with reportlab and return the face name to draw with.

    Falls back to the built-in Helvetica when the font bytes are missing or
    cannot be parsed (reportlab only embeds TrueType outlines).
    """
    face = f"printables-{FontName(font).value}"
    with _register_lock:
        if face in pdfmetrics.getRegisteredFontNames():
            return face
        if not data:
            logger.warning(f"Font '{font.value}' not available, using {FALLBACK_FONT}.")
            return FALLBACK_FONT
        try:
            pdfmetrics.registerFont(TTFont(face, io.BytesIO(data)))
        except Exception as e:
            logger.warning(f"Font '{font.value}' could not be loaded ({type(e).__name__}: {e}), using {FALLBACK_FONT}.")
            return FALLBACK_FONT
    logger.info(f"Font '{font.value}' registered as '{face}'.")
    return face


def text_width(text: str, font_name: str, font_size: float) -> float:
    return pdfmetrics.stringWidth(text, font_name, font_size)

# dapurasri/utils/barcode.py

import io

from barcode import Code128
from barcode.writer import ImageWriter
from PIL import Image

BARCODE_OPTIONS = {
    "module_height": 8.0,
    "font_size": 6,
    "text_distance": 3.0,
    "quiet_zone": 2.0,
}


def barcode_image(barcode_text: str) -> Image.Image:
    """
    Render a Code128 barcode for `barcode_text` as a PIL image.
    """
    if not barcode_text or not isinstance(barcode_text, str):
        raise ValueError("barcode_text must be a non-empty string")
    code = Code128(barcode_text, writer=ImageWriter())
    return code.render(writer_options=BARCODE_OPTIONS)


def barcode_png(barcode_text: str) -> bytes:
    buf = io.BytesIO()
    barcode_image(barcode_text).save(buf, format="PNG")
    return buf.getvalue()

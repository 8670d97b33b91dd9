import base64
import binascii
import io
import logging
from typing import Union

from PIL import Image, UnidentifiedImageError

from pdf_workbench.core.errors import UnsupportedImageError

logger = logging.getLogger(__name__)

PNG_MAGIC = b"\x89PNG"
JPEG_MAGIC = b"\xff\xd8\xff"


def decode_payload(payload: Union[bytes, bytearray, str]) -> bytes:
    """Return raw image bytes from bytes or a (data URL / bare) base64 string."""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    text = str(payload)
    if text.startswith("data:") or "," in text:
        text = text.split(",", 1)[1]
    try:
        return base64.b64decode(text, validate=False)
    except (binascii.Error, ValueError) as e:
        raise UnsupportedImageError(f"Invalid base64 image payload: {e}") from e


def sniff_format(data: bytes) -> str:
    if data.startswith(PNG_MAGIC):
        return "png"
    if data.startswith(JPEG_MAGIC):
        return "jpeg"
    raise UnsupportedImageError(f"Unrecognized image header: {data[:4].hex() or '<empty>'}")


def load_raster(payload: Union[bytes, str]) -> Image.Image:
    """Decode an image payload into a fully loaded Pillow image.

    Only PNG and JPEG containers are accepted. Corrupt data raises
    UnsupportedImageError.
    """
    data = decode_payload(payload)
    fmt = sniff_format(data)
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise UnsupportedImageError(f"Could not decode {fmt} image: {e}") from e
    if fmt == "png" and img.mode not in ("RGB", "RGBA", "L", "LA"):
        img = img.convert("RGBA")
    elif fmt == "jpeg" and img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    return img

import io
from typing import Callable, List, Sequence, Tuple

import pdfplumber
import pytest
from PIL import Image
from reportlab.pdfgen import canvas

LETTER = (612.0, 792.0)


def _make_pdf(texts: Sequence[str] = ("Page 1",), size: Tuple[float, float] = LETTER) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=size, invariant=1)
    for text in texts:
        c.setFont("Helvetica", 14)
        c.drawString(72, size[1] - 100, text)
        c.showPage()
    c.save()
    return buf.getvalue()


def _page_texts(data: bytes) -> List[str]:
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        return [page.extract_text() or "" for page in pdf.pages]


def _image_bytes(fmt: str, size: Tuple[int, int] = (40, 20)) -> bytes:
    mode = "RGBA" if fmt == "PNG" else "RGB"
    color = (200, 30, 30, 255) if mode == "RGBA" else (200, 30, 30)
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def make_pdf() -> Callable[..., bytes]:
    return _make_pdf


@pytest.fixture
def page_texts() -> Callable[[bytes], List[str]]:
    return _page_texts


@pytest.fixture
def one_page_pdf() -> bytes:
    return _make_pdf(["Page 1"])


@pytest.fixture
def three_page_pdf() -> bytes:
    return _make_pdf(["Page 1", "Page 2", "Page 3"])


@pytest.fixture
def png_bytes() -> bytes:
    return _image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return _image_bytes("JPEG")

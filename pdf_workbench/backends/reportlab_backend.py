import io
import logging
from typing import Sequence

from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas as rl_canvas

from pdf_workbench.core.errors import UnsupportedImageError
from pdf_workbench.core.geometry import PageBox
from pdf_workbench.core.images import load_raster
from pdf_workbench.engine.layout import DrawImage, DrawOp, DrawText, FillRect, StrokeLine

logger = logging.getLogger(__name__)


def render_overlay(ops: Sequence[DrawOp], page: PageBox) -> bytes:
    """Replay draw operations onto a single-page overlay PDF.

    The canvas is created `invariant` so identical operations always yield
    identical bytes. Images that fail to decode are skipped.
    """
    packet = io.BytesIO()
    c = rl_canvas.Canvas(
        packet,
        pagesize=(page.left + page.width, page.bottom + page.height),
        invariant=1,
    )
    for op in ops:
        if isinstance(op, FillRect):
            c.setFillColorRGB(*op.color)
            c.rect(op.x, op.y, op.width, op.height, stroke=0, fill=1)
        elif isinstance(op, DrawText):
            if not op.text:
                continue
            c.setFillColorRGB(*op.color)
            c.setFont(op.font_name, op.font_size)
            c.drawString(op.x, op.y, op.text)
        elif isinstance(op, StrokeLine):
            c.setStrokeColorRGB(*op.color)
            c.setLineWidth(op.thickness)
            c.line(op.x1, op.y1, op.x2, op.y2)
        elif isinstance(op, DrawImage):
            try:
                img = load_raster(op.payload)
            except UnsupportedImageError as e:
                logger.warning(f"Skipping image annotation {op.source_id}: {e}")
                continue
            c.drawImage(ImageReader(img), op.x, op.y, width=op.width, height=op.height, mask="auto")
    c.showPage()
    c.save()
    return packet.getvalue()

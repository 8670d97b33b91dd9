"""Bake annotations, text patches, images and page rotations into new PDF bytes."""
import logging
from typing import Dict, Mapping, Optional, Sequence

from PyPDF2 import PdfReader, PdfWriter

from pdf_workbench.backends.pypdf2_backend import add_rotation, open_reader, page_box, stamp, to_bytes
from pdf_workbench.backends.reportlab_backend import render_overlay
from pdf_workbench.core.geometry import normalize_rotation
from pdf_workbench.core.model import ImageAnnotation, TextAnnotation, TextPatch
from pdf_workbench.engine.layout import layout_page

logger = logging.getLogger(__name__)


def has_edits(
    annotations: Sequence[TextAnnotation] = (),
    patches: Sequence[TextPatch] = (),
    rotations: Optional[Mapping[int, int]] = None,
    images: Sequence[ImageAnnotation] = (),
) -> bool:
    if annotations or patches or images:
        return True
    return any(normalize_rotation(r) for r in (rotations or {}).values())


def _log_out_of_range(kind: str, items: Sequence, total: int) -> None:
    for item in items:
        if item.page < 1 or item.page > total:
            logger.debug(f"Skipping {kind} {item.id}: page {item.page} outside 1-{total}")


def composite(
    source: bytes,
    annotations: Sequence[TextAnnotation] = (),
    patches: Sequence[TextPatch] = (),
    rotations: Optional[Mapping[int, int]] = None,
    images: Sequence[ImageAnnotation] = (),
) -> bytes:
    """Return a new document with every edit applied.

    Per page: add the rotation delta, then draw patches (whiteout + text),
    free annotations (background + text) and images, in that order.
    Entities addressing a page outside the document are ignored. Raises
    DocumentDecodeError when `source` is not a PDF.
    """
    reader: PdfReader = open_reader(source)
    total = len(reader.pages)
    rotations: Dict[int, int] = dict(rotations or {})

    _log_out_of_range("annotation", annotations, total)
    _log_out_of_range("patch", patches, total)
    _log_out_of_range("image", images, total)

    writer = PdfWriter()
    for index, page in enumerate(reader.pages):
        number = index + 1
        delta = rotations.get(number, 0)
        if delta:
            add_rotation(page, delta)

        box = page_box(page)
        ops = layout_page(number, box, annotations, patches, images)
        if ops:
            overlay = open_reader(render_overlay(ops, box)).pages[0]
            stamp(page, overlay)
        writer.add_page(page)

    out = to_bytes(writer)
    logger.debug(f"Composited {total} pages ({len(annotations)} annotations, "
                 f"{len(patches)} patches, {len(images)} images)")
    return out

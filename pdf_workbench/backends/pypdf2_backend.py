import io
import logging
from typing import Dict, List, Sequence, Set, Tuple

import PyPDF2
from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.generic import ContentStream, DictionaryObject, NameObject, NumberObject

from pdf_workbench.core.errors import DocumentDecodeError, MergeValidationError, SplitError
from pdf_workbench.core.geometry import PageBox, normalize_rotation

logger = logging.getLogger(__name__)


def open_reader(data: bytes) -> PdfReader:
    """Parse PDF bytes. The caller's buffer is wrapped, never modified."""
    if not data:
        raise DocumentDecodeError("Empty document")
    try:
        reader = PdfReader(io.BytesIO(bytes(data)), strict=False)
        # force the page tree to load so broken xrefs fail here
        len(reader.pages)
    except Exception as e:
        logger.error(f"PyPDF2 could not parse document ({len(data)} bytes): {e}")
        raise DocumentDecodeError(f"Could not parse PDF: {e}") from e
    return reader


def page_count(data: bytes) -> int:
    return len(open_reader(data).pages)


def page_box(page: PyPDF2.PageObject) -> PageBox:
    mb = page.mediabox
    return PageBox(float(mb.left), float(mb.bottom), float(mb.width), float(mb.height))


def page_rotation(page: PyPDF2.PageObject) -> int:
    return normalize_rotation(page.rotation or 0)


def add_rotation(page: PyPDF2.PageObject, delta: int) -> int:
    """Add `delta` degrees to the page's stored /Rotate; returns the new value."""
    delta = normalize_rotation(delta)
    if delta == 0:
        return page_rotation(page)
    current = page_rotation(page)
    target = (current + delta) % 360
    page.rotate(target - current)
    return target


def to_bytes(writer: PdfWriter) -> bytes:
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


# content-stream operators whose name operand refers to a resource category
_NAMED_RESOURCE_OPERATORS = {
    b"Tf": "/Font",
    b"Do": "/XObject",
    b"gs": "/ExtGState",
    b"sh": "/Shading",
    b"cs": "/ColorSpace",
    b"CS": "/ColorSpace",
    b"scn": "/Pattern",
    b"SCN": "/Pattern",
    b"BDC": "/Properties",
    b"DP": "/Properties",
}


def _free_name(taken: Set[str], prefix: str) -> str:
    n = 1
    while f"/{prefix}{n}" in taken:
        n += 1
    return f"/{prefix}{n}"


def stamp(page: PyPDF2.PageObject, overlay: PyPDF2.PageObject) -> None:
    """Draw `overlay` on top of `page`.

    The overlay's resources are first renamed to names the page does not use,
    so merge_page never has to invent (random) names for clashing keys and the
    output stays byte-stable.
    """
    page_resources = page.get("/Resources")
    page_resources = page_resources.get_object() if page_resources is not None else DictionaryObject()
    overlay_resources = overlay["/Resources"].get_object()

    renames: Dict[Tuple[str, str], NameObject] = {}
    resources = DictionaryObject()
    for category in sorted(overlay_resources.keys()):
        entries = overlay_resources[category]
        if not isinstance(entries, DictionaryObject):
            resources[NameObject(category)] = overlay_resources.raw_get(category)
            continue
        taken = set(page_resources[category].get_object().keys()) if category in page_resources else set()
        renamed = DictionaryObject()
        for key in sorted(entries.keys()):
            name = _free_name(taken, "Wb" + category[1])
            taken.add(name)
            renames[(category, key)] = NameObject(name)
            renamed[NameObject(name)] = entries.raw_get(key)
        resources[NameObject(category)] = renamed

    content = ContentStream(overlay.get_contents(), overlay.pdf)
    for operands, operator in content.operations:
        category = _NAMED_RESOURCE_OPERATORS.get(operator)
        if category is None or not isinstance(operands, list):
            continue
        for i, operand in enumerate(operands):
            if isinstance(operand, NameObject) and (category, operand) in renames:
                operands[i] = renames[(category, operand)]

    overlay[NameObject("/Resources")] = resources
    overlay[NameObject("/Contents")] = content
    page.merge_page(overlay)


def without_rotation(data: bytes) -> bytes:
    """A copy of the document with every stored /Rotate cleared.

    Returns `data` itself when no page is rotated.
    """
    reader = open_reader(data)
    if not any(page_rotation(page) for page in reader.pages):
        return data
    writer = PdfWriter()
    for page in reader.pages:
        if page_rotation(page):
            page[NameObject("/Rotate")] = NumberObject(0)
        writer.add_page(page)
    return to_bytes(writer)


def merge_into(sources: Sequence[bytes]) -> bytes:
    """Concatenate documents in order. Needs at least two non-empty inputs."""
    buffers = [b for b in sources if b]
    if len(buffers) < 2:
        raise MergeValidationError(f"Need at least 2 valid files to merge (got {len(buffers)})")
    readers = [open_reader(b) for b in buffers]

    writer = PdfWriter()
    for reader in readers:
        for page in reader.pages:
            writer.add_page(page)
    merged = to_bytes(writer)
    logger.info(f"Merged {len(readers)} documents into {len(writer.pages)} pages")
    return merged


def split_by_page(source: bytes) -> List[bytes]:
    """One single-page document per page, in original order."""
    reader = open_reader(source)
    out: List[bytes] = []
    for page in reader.pages:
        writer = PdfWriter()
        writer.add_page(page)
        out.append(to_bytes(writer))
    if not out:
        raise SplitError("PDF splitting resulted in 0 pages.")
    return out

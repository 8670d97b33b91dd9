"""Page layout for the compositor.

Turns model entities into draw operations in PDF point space. Nothing here
touches a PDF object; the render step replays the operations on an overlay
canvas.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from reportlab.pdfbase.pdfmetrics import stringWidth

from pdf_workbench.core.fonts import resolve_font
from pdf_workbench.core.geometry import PageBox, Rect, canonical_to_points, px_to_pt
from pdf_workbench.core.model import (
    DEFAULT_ANNOTATION_WIDTH,
    ImageAnnotation,
    TextAnnotation,
    TextPatch,
    TextStyle,
)
from pdf_workbench.core.runs import Run, resolve_runs

logger = logging.getLogger(__name__)

RGB = Tuple[float, float, float]
WHITE: RGB = (1.0, 1.0, 1.0)
BLACK: RGB = (0.0, 0.0, 0.0)

PADDING_X_PX = 6
PADDING_Y_PX = 4
LINE_HEIGHT_FACTOR = 1.3
AVG_GLYPH_WIDTH_FACTOR = 0.5
WHITEOUT_BLEED_PT = 0.5
UNDERLINE_OFFSET_PT = 2.0
DECORATION_THICKNESS_PT = 1.0
# the standard-14 fonts are drawn WinAnsi-encoded
FONT_ENCODING = "cp1252"

_HEX_RE = re.compile(r"^#?([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})$", re.IGNORECASE)
_SHORT_HEX_RE = re.compile(r"^#?([0-9a-f])([0-9a-f])([0-9a-f])$", re.IGNORECASE)


def hex_to_rgb(value: Optional[str]) -> RGB:
    """'#rrggbb' or '#rgb' -> floats in 0..1; anything else is black."""
    text = (value or "").strip()
    m = _HEX_RE.match(text)
    if not m:
        short = _SHORT_HEX_RE.match(text)
        if not short:
            return BLACK
        m = _HEX_RE.match("".join(c * 2 for c in short.groups()))
    return tuple(int(g, 16) / 255.0 for g in m.groups())


# --- Draw operations ---

@dataclass(frozen=True)
class FillRect:
    x: float
    y: float
    width: float
    height: float
    color: RGB = WHITE


@dataclass(frozen=True)
class DrawText:
    text: str
    x: float
    y: float        # baseline
    font_name: str
    font_size: float
    color: RGB = BLACK


@dataclass(frozen=True)
class StrokeLine:
    x1: float
    y1: float
    x2: float
    y2: float
    color: RGB = BLACK
    thickness: float = DECORATION_THICKNESS_PT


@dataclass(frozen=True)
class DrawImage:
    source_id: str
    payload: Union[bytes, str]
    x: float
    y: float
    width: float
    height: float


DrawOp = Union[FillRect, DrawText, StrokeLine, DrawImage]


# --- Text ---

def drawable_text(text: str) -> str:
    """`text` with characters the standard fonts cannot encode replaced by '?'."""
    safe = text.encode(FONT_ENCODING, errors="replace").decode(FONT_ENCODING)
    if safe != text:
        missing = sorted({c for c in text if c not in safe})
        logger.warning(f"Cannot draw {''.join(missing)!r} with the standard fonts; replaced by '?'")
    return safe


def estimate_box_height(runs: Sequence[Run], width: float, font_size: float) -> float:
    """Estimated height (pt) of a text box `width` points wide.

    No text shaping: every glyph is assumed to be half the font size wide and
    lines are counted from the total width.
    """
    pad_x = px_to_pt(PADDING_X_PX)
    pad_y = px_to_pt(PADDING_Y_PX)
    avg_glyph = font_size * AVG_GLYPH_WIDTH_FACTOR
    text_width = sum(len(r.text) for r in runs) * avg_glyph
    content_width = max(width - 2 * pad_x, avg_glyph)
    lines = max(1, math.ceil(text_width / content_width)) if avg_glyph > 0 else 1
    return lines * font_size * LINE_HEIGHT_FACTOR + 2 * pad_y


def layout_runs(runs: Sequence[Run], box: Rect, style: TextStyle) -> List[DrawOp]:
    """Draw `runs` left to right on one line inside `box` (PDF points)."""
    font_size = px_to_pt(style.font_size)
    pad_x = px_to_pt(PADDING_X_PX)
    pad_y = px_to_pt(PADDING_Y_PX)
    color = hex_to_rgb(style.color)
    baseline = box.y + box.height - pad_y - font_size

    measured = []
    total = 0.0
    for run in runs:
        font = resolve_font(style.font_family, run.bold, run.italic)
        text = drawable_text(run.text)
        width = stringWidth(text, font.pdf_name, font_size)
        measured.append((run, text, font.pdf_name, width))
        total += width

    if style.text_align == "center":
        cursor = box.x + box.width / 2 - total / 2
    elif style.text_align == "right":
        cursor = box.x + box.width - pad_x - total
    else:
        cursor = box.x + pad_x

    ops: List[DrawOp] = []
    for run, text, font_name, width in measured:
        ops.append(DrawText(text, cursor, baseline, font_name, font_size, color))
        if run.underline:
            y = baseline - UNDERLINE_OFFSET_PT
            ops.append(StrokeLine(cursor, y, cursor + width, y, color))
        if run.strike:
            y = baseline + font_size / 3
            ops.append(StrokeLine(cursor, y, cursor + width, y, color))
        cursor += width
    return ops


def layout_patch(patch: TextPatch, page: PageBox) -> List[DrawOp]:
    box = canonical_to_points(patch.bbox, page)
    b = WHITEOUT_BLEED_PT
    ops: List[DrawOp] = [FillRect(box.x - b, box.y - b, box.width + 2 * b, box.height + 2 * b)]
    runs = resolve_runs(patch.html, patch.new_text, patch.style)
    ops.extend(layout_runs(runs, box, patch.style))
    return ops


def annotation_box(ann: TextAnnotation, page: PageBox, runs: Sequence[Run]) -> Rect:
    """Bake-time box of a free annotation; the height is always estimated."""
    x = page.left + ann.x * page.width
    width = (ann.width or DEFAULT_ANNOTATION_WIDTH) * page.width
    height = estimate_box_height(runs, width, px_to_pt(ann.style.font_size))
    y = page.bottom + page.height - ann.y * page.height - height
    return Rect(x, y, width, height)


def layout_annotation(ann: TextAnnotation, page: PageBox) -> List[DrawOp]:
    runs = resolve_runs(ann.html, ann.text, ann.style)
    box = annotation_box(ann, page, runs)
    ops: List[DrawOp] = [FillRect(box.x, box.y, box.width, box.height)]
    ops.extend(layout_runs(runs, box, ann.style))
    return ops


def layout_image(img: ImageAnnotation, page: PageBox) -> List[DrawOp]:
    box = canonical_to_points(img.rect, page)
    return [DrawImage(img.id, img.payload, box.x, box.y, box.width, box.height)]


def layout_page(
    page_number: int,
    page: PageBox,
    annotations: Sequence[TextAnnotation],
    patches: Sequence[TextPatch],
    images: Sequence[ImageAnnotation],
) -> List[DrawOp]:
    """All draw operations for one page: patches, then annotations, then images."""
    ops: List[DrawOp] = []
    for patch in patches:
        if patch.page == page_number:
            ops.extend(layout_patch(patch, page))
    for ann in annotations:
        if ann.page == page_number:
            ops.extend(layout_annotation(ann, page))
    for img in images:
        if img.page == page_number:
            ops.extend(layout_image(img, page))
    return ops

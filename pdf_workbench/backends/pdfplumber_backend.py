import io
import logging
from typing import Dict, List, Optional, Sequence

import pdfplumber

from pdf_workbench.core.errors import DocumentDecodeError
from pdf_workbench.core.fonts import normalize_family
from pdf_workbench.backends.pypdf2_backend import without_rotation
from pdf_workbench.core.geometry import Rect, pt_to_px
from pdf_workbench.core.types import DetectedSpan, SpanStyle

logger = logging.getLogger(__name__)

LINE_TOLERANCE = 3.0      # points between word tops on the same line
GAP_FACTOR = 1.0          # horizontal gap (in font sizes) that starts a new span


def _style_from_word(word: Dict) -> SpanStyle:
    fontname = str(word.get("fontname", ""))
    base = fontname.split("+", 1)[-1]  # drop subset prefix, e.g. "ABCDEF+Times-Bold"
    lowered = base.lower()
    return {
        "font_family": normalize_family(base).value,
        "font_size": round(pt_to_px(float(word.get("size") or 12.0)), 2),
        "bold": any(k in lowered for k in ("bold", "black", "heavy", "semibold")),
        "italic": "italic" in lowered or "oblique" in lowered,
        "color": "#000000",
    }


def _group_lines(words: List[Dict], line_tol: float = LINE_TOLERANCE) -> List[List[Dict]]:
    words = sorted(words, key=lambda w: (w["top"], w["x0"]))
    lines: List[List[Dict]] = []
    for w in words:
        if lines and abs(w["top"] - lines[-1][-1]["top"]) <= line_tol:
            lines[-1].append(w)
        else:
            lines.append([w])
    for line in lines:
        line.sort(key=lambda w: w["x0"])
    return lines


def _split_spans(line: List[Dict]) -> List[List[Dict]]:
    spans: List[List[Dict]] = []
    for w in line:
        if spans:
            prev = spans[-1][-1]
            same_font = prev.get("fontname") == w.get("fontname") and prev.get("size") == w.get("size")
            gap = w["x0"] - prev["x1"]
            if same_font and gap <= float(w.get("size") or 12.0) * GAP_FACTOR:
                spans[-1].append(w)
                continue
        spans.append([w])
    return spans


def _span_rect(words: List[Dict], page_w: float, page_h: float) -> Rect:
    x0 = min(w["x0"] for w in words)
    top = min(w["top"] for w in words)
    x1 = max(w["x1"] for w in words)
    bottom = max(w["bottom"] for w in words)
    return Rect(x0 / page_w, top / page_h, (x1 - x0) / page_w, (bottom - top) / page_h)


def detect_text_spans(source: bytes, pages: Optional[Sequence[int]] = None) -> List[DetectedSpan]:
    """Locate existing glyph runs so they can be replaced by a TextPatch.

    `pages` are 1-based page numbers (all pages when None). Boxes are returned
    in canonical space. Words are read from a copy with /Rotate cleared:
    pdfplumber splits and reverses words on rotated pages.
    """
    out: List[DetectedSpan] = []
    upright = without_rotation(source)
    try:
        pdf = pdfplumber.open(io.BytesIO(bytes(upright)))
    except Exception as e:
        logger.error(f"pdfplumber could not open document: {e}")
        raise DocumentDecodeError(f"Could not parse PDF: {e}") from e

    with pdf:
        total = len(pdf.pages)
        numbers = list(pages) if pages is not None else list(range(1, total + 1))
        for number in numbers:
            if number < 1 or number > total:
                raise ValueError(f"Page {number} out of range (1-{total})")
            pl_page = pdf.pages[number - 1]
            page_w = float(pl_page.width)
            page_h = float(pl_page.height)
            words = pl_page.extract_words(extra_attrs=["fontname", "size"]) or []
            for line in _group_lines(words):
                for span_words in _split_spans(line):
                    rect = _span_rect(span_words, page_w, page_h)
                    out.append({
                        "page": number,
                        "text": " ".join(w["text"] for w in span_words),
                        "bbox": {"x": rect.x, "y": rect.y, "width": rect.width, "height": rect.height},
                        "fontname": str(span_words[0].get("fontname", "")),
                        "style": _style_from_word(span_words[0]),
                    })
    logger.debug(f"Detected {len(out)} text spans")
    return out


def find_span_at(spans: Sequence[DetectedSpan], page: int, x: float, y: float) -> Optional[DetectedSpan]:
    """The span on `page` whose canonical box contains point (x, y)."""
    for span in spans:
        bb = span["bbox"]
        if (span["page"] == page and bb["x"] <= x <= bb["x"] + bb["width"]
                and bb["y"] <= y <= bb["y"] + bb["height"]):
            return span
    return None

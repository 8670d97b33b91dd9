from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from pdf_workbench.core.fonts import css_font_stack
from pdf_workbench.core.geometry import Rect, normalize_rotation, to_display
from pdf_workbench.core.model import ImageAnnotation, TextAnnotation, TextPatch, TextStyle
from pdf_workbench.core.runs import Run, resolve_runs


@dataclass
class Overlay:
    """One editable element of the live view, in display space."""
    kind: str            # "patch" | "annotation" | "image"
    source_id: str
    page: int
    rect: Rect
    text: str = ""
    html: Optional[str] = None
    style: Optional[TextStyle] = None
    runs: List[Run] = field(default_factory=list)
    font_css: str = ""
    payload: Union[bytes, str, None] = None


def _text_overlay(kind: str, source_id: str, page: int, rect: Rect, text: str,
                  html: Optional[str], style: TextStyle) -> Overlay:
    return Overlay(
        kind=kind,
        source_id=source_id,
        page=page,
        rect=rect,
        text=text,
        html=html,
        style=style,
        runs=resolve_runs(html, text, style),
        font_css=css_font_stack(style.font_family),
    )


def project_overlays(
    annotations: Sequence[TextAnnotation],
    patches: Sequence[TextPatch],
    images: Sequence[ImageAnnotation],
    page: int,
    rotation: int = 0,
) -> List[Overlay]:
    """Overlays for `page` ordered patches -> annotations -> images."""
    rot = normalize_rotation(rotation)
    out: List[Overlay] = []
    for p in patches:
        if p.page == page:
            out.append(_text_overlay("patch", p.id, page, to_display(p.bbox, rot), p.new_text, p.html, p.style))
    for a in annotations:
        if a.page == page:
            out.append(_text_overlay("annotation", a.id, page, to_display(a.rect, rot), a.text, a.html, a.style))
    for img in images:
        if img.page == page:
            out.append(Overlay(kind="image", source_id=img.id, page=page,
                               rect=to_display(img.rect, rot), payload=img.payload))
    return out

"""Annotation model: entities persisted in canonical page space."""
import uuid
from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, Optional, Union

from pdf_workbench.core.fonts import FontFamily, normalize_family
from pdf_workbench.core.geometry import Rect

PLACEHOLDER_TEXT = "New Text"
DEFAULT_ANNOTATION_WIDTH = 0.32
DEFAULT_ANNOTATION_HEIGHT = 0.05
ALIGNMENTS = ("left", "center", "right")


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass
class TextStyle:
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strike: bool = False
    font_size: float = 16.0   # CSS px
    color: str = "#000000"
    font_family: FontFamily = FontFamily.SANS
    text_align: str = "left"

    def __post_init__(self):
        self.font_family = normalize_family(self.font_family)
        if self.text_align not in ALIGNMENTS:
            self.text_align = "left"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TextStyle":
        data = data or {}
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names and v is not None})

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["font_family"] = self.font_family.value
        return out


def _style_from(data: Dict[str, Any]) -> TextStyle:
    # accept both a nested "style" block and flat style keys
    merged = dict(data)
    merged.update(data.get("style") or {})
    return TextStyle.from_dict(merged)


@dataclass
class TextAnnotation:
    """Free-standing text box layered over a page."""
    id: str
    page: int
    x: float
    y: float
    text: str = ""
    width: Optional[float] = None
    height: Optional[float] = None
    html: Optional[str] = None
    style: TextStyle = field(default_factory=TextStyle)

    @property
    def rect(self) -> Rect:
        return Rect(
            self.x,
            self.y,
            self.width if self.width else DEFAULT_ANNOTATION_WIDTH,
            self.height if self.height else DEFAULT_ANNOTATION_HEIGHT,
        )

    def is_placeholder(self) -> bool:
        t = self.text.strip()
        return t == "" or t == PLACEHOLDER_TEXT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextAnnotation":
        return cls(
            id=data.get("id") or new_id("ann"),
            page=int(data["page"]),
            x=float(data["x"]),
            y=float(data["y"]),
            text=str(data.get("text", "")),
            width=data.get("width"),
            height=data.get("height"),
            html=data.get("html"),
            style=_style_from(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "page": self.page,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "text": self.text,
            "html": self.html,
            "style": self.style.to_dict(),
        }


@dataclass
class TextPatch:
    """Replacement of an existing glyph run: whiteout over `bbox`, then redraw.

    `bbox` is the detected box of the original text and never changes.
    """
    id: str
    document_id: str
    page: int
    bbox: Rect
    original_text: str
    new_text: str
    html: Optional[str] = None
    style: TextStyle = field(default_factory=TextStyle)

    def is_unchanged(self) -> bool:
        t = self.new_text.strip()
        return t == "" or t == PLACEHOLDER_TEXT or t == self.original_text

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextPatch":
        bb = data["bbox"]
        if isinstance(bb, dict):
            bbox = Rect(float(bb["x"]), float(bb["y"]), float(bb["width"]), float(bb["height"]))
        else:
            bbox = Rect(*(float(v) for v in bb))
        original = str(data.get("original_text", ""))
        return cls(
            id=data.get("id") or new_id("patch"),
            document_id=str(data.get("document_id", "")),
            page=int(data["page"]),
            bbox=bbox,
            original_text=original,
            new_text=str(data.get("new_text", original)),
            html=data.get("html"),
            style=_style_from(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "page": self.page,
            "bbox": {"x": self.bbox.x, "y": self.bbox.y, "width": self.bbox.width, "height": self.bbox.height},
            "original_text": self.original_text,
            "new_text": self.new_text,
            "html": self.html,
            "style": self.style.to_dict(),
        }


@dataclass
class ImageAnnotation:
    """Placed signature/stamp. `payload` is raw PNG/JPEG bytes or a data URL."""
    id: str
    page: int
    x: float
    y: float
    width: float
    height: float
    payload: Union[bytes, str] = b""

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageAnnotation":
        return cls(
            id=data.get("id") or new_id("img"),
            page=int(data["page"]),
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            height=float(data["height"]),
            payload=data.get("payload") or data.get("data_url") or b"",
        )

from typing import TypedDict


class SpanBox(TypedDict):
    x: float
    y: float
    width: float
    height: float


class SpanStyle(TypedDict, total=False):
    font_family: str      # "sans" | "serif" | "mono"
    font_size: float      # CSS px
    bold: bool
    italic: bool
    color: str


class DetectedSpan(TypedDict):
    page: int
    text: str
    bbox: SpanBox           # canonical space
    fontname: str           # as stored in the PDF
    style: SpanStyle


class PdfFileEntry(TypedDict):
    name: str
    path: str
    size_mb: float

from enum import Enum
from typing import Dict, NamedTuple, Optional, Tuple


class FontFamily(str, Enum):
    SANS = "sans"
    SERIF = "serif"
    MONO = "mono"


class FontVariant(NamedTuple):
    pdf_name: str   # reportlab standard-14 font name used when baking
    css_stack: str  # font-family stack used by previews
    bold: bool
    italic: bool


_CSS_STACKS: Dict[FontFamily, str] = {
    FontFamily.SANS: "Arial, Helvetica, sans-serif",
    FontFamily.SERIF: '"Times New Roman", Times, serif',
    FontFamily.MONO: '"Courier New", Courier, monospace',
}

# (family, bold, italic) -> variant. Previews and the compositor both read this table.
FONT_VARIANTS: Dict[Tuple[FontFamily, bool, bool], FontVariant] = {}
for _family, _names in (
    (FontFamily.SANS, ("Helvetica", "Helvetica-Bold", "Helvetica-Oblique", "Helvetica-BoldOblique")),
    (FontFamily.SERIF, ("Times-Roman", "Times-Bold", "Times-Italic", "Times-BoldItalic")),
    (FontFamily.MONO, ("Courier", "Courier-Bold", "Courier-Oblique", "Courier-BoldOblique")),
):
    for (_bold, _italic), _name in zip(((False, False), (True, False), (False, True), (True, True)), _names):
        FONT_VARIANTS[(_family, _bold, _italic)] = FontVariant(_name, _CSS_STACKS[_family], _bold, _italic)

_MONO_HINTS = ("mono", "courier", "consol", "menlo", "code")
_SERIF_HINTS = ("serif", "times", "georgia", "garamond", "roman", "cambria", "book")


def normalize_family(name: Optional[str]) -> FontFamily:
    """Map any font family name onto the closed enum.

    Accepts enum values, PDF base font names ("Times-Bold", "ABCDEF+Courier"),
    desktop names ("Liberation Serif", "DejaVu Sans Mono") and CSS generics.
    Unknown names fall back to sans.
    """
    if isinstance(name, FontFamily):
        return name
    if not name:
        return FontFamily.SANS
    lowered = str(name).strip().lower()
    try:
        return FontFamily(lowered)
    except ValueError:
        pass
    if any(h in lowered for h in _MONO_HINTS):
        return FontFamily.MONO
    # "sans-serif" contains "serif"
    if "sans" in lowered:
        return FontFamily.SANS
    if any(h in lowered for h in _SERIF_HINTS):
        return FontFamily.SERIF
    return FontFamily.SANS


def resolve_font(family, bold: bool, italic: bool) -> FontVariant:
    return FONT_VARIANTS[(normalize_family(family), bool(bold), bool(italic))]


def css_font_stack(family) -> str:
    return _CSS_STACKS[normalize_family(family)]

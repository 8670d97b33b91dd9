"""Rich-text run model.

Markup produced by the editor is a small HTML subset (b/strong, i/em, u, s,
spans with inline style). It is flattened into ordered runs that both the
preview and the compositor draw from, so the two never disagree about which
characters carry which formatting.
"""
import html
from html.parser import HTMLParser
from typing import Iterable, List, NamedTuple, Optional

FLAGS = ("bold", "italic", "underline", "strike")

_BOLD_TAGS = {"b", "strong"}
_ITALIC_TAGS = {"i", "em"}
_UNDERLINE_TAGS = {"u", "ins"}
_STRIKE_TAGS = {"s", "strike", "del"}
_VOID_TAGS = {"br", "hr", "img", "input", "meta", "link", "wbr", "col", "area", "base", "source"}


class Run(NamedTuple):
    text: str
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strike: bool = False

    def same_format(self, other: "Run") -> bool:
        return self[1:] == other[1:]


class Flags(NamedTuple):
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strike: bool = False


def _parse_style(style: Optional[str]) -> dict:
    out = {}
    for decl in (style or "").split(";"):
        if ":" not in decl:
            continue
        prop, value = decl.split(":", 1)
        out[prop.strip().lower()] = value.strip().lower()
    return out


def _is_bold_weight(value: str) -> bool:
    if value in ("bold", "bolder"):
        return True
    try:
        return int(value) >= 600
    except ValueError:
        return False


def _element_flags(parent: Flags, tag: str, style: Optional[str]) -> Flags:
    css = _parse_style(style)
    decoration = css.get("text-decoration", "") + " " + css.get("text-decoration-line", "")
    return Flags(
        bold=parent.bold or tag in _BOLD_TAGS or _is_bold_weight(css.get("font-weight", "")),
        italic=parent.italic or tag in _ITALIC_TAGS or css.get("font-style", "") in ("italic", "oblique"),
        underline=parent.underline or tag in _UNDERLINE_TAGS or "underline" in decoration,
        strike=parent.strike or tag in _STRIKE_TAGS or "line-through" in decoration,
    )


class _RunCollector(HTMLParser):
    def __init__(self, base: Flags):
        super().__init__(convert_charrefs=True)
        self._stack = [("", base)]
        self.runs: List[Run] = []

    def handle_starttag(self, tag, attrs):
        if tag in _VOID_TAGS:
            return
        style = dict(attrs).get("style")
        self._stack.append((tag, _element_flags(self._stack[-1][1], tag, style)))

    def handle_startendtag(self, tag, attrs):
        # self-closing elements carry no text
        pass

    def handle_endtag(self, tag):
        # tolerate unbalanced markup: close up to the nearest matching open tag
        for i in range(len(self._stack) - 1, 0, -1):
            if self._stack[i][0] == tag:
                del self._stack[i:]
                return

    def handle_data(self, data):
        if data:
            self.runs.append(Run(data, *self._stack[-1][1]))


def flatten_markup(markup: Optional[str], base: Optional[Flags] = None) -> List[Run]:
    """Walk the markup depth-first and emit one run per non-empty text node."""
    if not markup:
        return []
    collector = _RunCollector(base or Flags())
    collector.feed(markup)
    collector.close()
    return collector.runs


def plain_text(markup: Optional[str]) -> str:
    """Markup with tags stripped and entities decoded."""
    return "".join(run.text for run in flatten_markup(markup))


def resolve_runs(markup: Optional[str], text: str, style=None) -> List[Run]:
    """Runs to draw for an entity, falling back to its plain text.

    `style` is the entity's base style block; its flags are inherited by the
    whole markup tree the same way the preview container's style is.
    """
    base = Flags(*(bool(getattr(style, f, False)) for f in FLAGS)) if style is not None else Flags()
    runs = flatten_markup(markup, base)
    if runs:
        return runs
    return [Run(text or "", *base)]


def coalesce(runs: Iterable[Run]) -> List[Run]:
    out: List[Run] = []
    for run in runs:
        if not run.text:
            continue
        if out and out[-1].same_format(run):
            out[-1] = out[-1]._replace(text=out[-1].text + run.text)
        else:
            out.append(run)
    return out


def runs_to_markup(runs: Iterable[Run]) -> str:
    parts = []
    for run in coalesce(runs):
        piece = html.escape(run.text, quote=False)
        if run.strike:
            piece = f"<s>{piece}</s>"
        if run.underline:
            piece = f"<u>{piece}</u>"
        if run.italic:
            piece = f"<i>{piece}</i>"
        if run.bold:
            piece = f"<b>{piece}</b>"
        parts.append(piece)
    return "".join(parts)


def toggle_format(markup: Optional[str], start: int, end: int, flag: str) -> str:
    """Toggle `flag` over characters [start, end) of the markup's plain text.

    The flag is cleared when every selected character already carries it and
    set otherwise. Returns new markup; the input is left untouched.
    """
    if flag not in FLAGS:
        raise ValueError(f"Unknown formatting flag: {flag}")
    chars = [Run(ch, *run[1:]) for run in flatten_markup(markup) for ch in run.text]
    start = max(0, start)
    end = min(len(chars), end)
    selected = chars[start:end]
    if not selected:
        return runs_to_markup(chars)
    turn_on = not all(getattr(c, flag) for c in selected)
    for i in range(start, end):
        chars[i] = chars[i]._replace(**{flag: turn_on})
    return runs_to_markup(chars)

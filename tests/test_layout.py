import pytest

from pdf_workbench.core.geometry import PageBox, Rect, points_to_canonical, px_to_pt
from pdf_workbench.core.model import TextAnnotation, TextPatch, TextStyle
from pdf_workbench.core.runs import Run
from pdf_workbench.engine.layout import (
    LINE_HEIGHT_FACTOR,
    PADDING_X_PX,
    PADDING_Y_PX,
    WHITEOUT_BLEED_PT,
    DrawText,
    FillRect,
    StrokeLine,
    drawable_text,
    estimate_box_height,
    hex_to_rgb,
    layout_annotation,
    layout_page,
    layout_patch,
    layout_runs,
)

PAGE = PageBox(0, 0, 612, 792)


def test_estimate_box_height_single_line():
    runs = [Run("short")]
    expected = 12 * LINE_HEIGHT_FACTOR + 2 * px_to_pt(PADDING_Y_PX)
    assert estimate_box_height(runs, 200, 12) == pytest.approx(expected)


def test_estimate_box_height_wraps_long_text():
    runs = [Run("x" * 100)]
    width = 100.0
    content = width - 2 * px_to_pt(PADDING_X_PX)
    lines = -(-100 * 6 // content)  # ceil
    expected = lines * 12 * LINE_HEIGHT_FACTOR + 2 * px_to_pt(PADDING_Y_PX)
    assert estimate_box_height(runs, width, 12) == pytest.approx(expected)
    assert lines > 1


def test_annotation_box_is_anchored_at_its_top_edge():
    ann = TextAnnotation(id="a", page=1, x=0.1, y=0.1, text="Hello", width=0.3)
    ops = layout_annotation(ann, PAGE)
    background = ops[0]
    assert isinstance(background, FillRect)

    font_size = px_to_pt(ann.style.font_size)
    est = estimate_box_height([Run("Hello")], 0.3 * 612, font_size)
    assert background.y == pytest.approx(792 - 0.1 * 792 - est)
    assert background.x == pytest.approx(61.2)
    assert background.width == pytest.approx(183.6)

    text_ops = [op for op in ops if isinstance(op, DrawText)]
    assert [op.text for op in text_ops] == ["Hello"]
    pad_y = px_to_pt(PADDING_Y_PX)
    assert text_ops[0].y == pytest.approx(background.y + est - pad_y - font_size)
    assert text_ops[0].font_name == "Helvetica"


def test_patch_whiteout_covers_original_bbox():
    bbox = Rect(0.2, 0.3, 0.25, 0.02)
    patch = TextPatch(id="p", document_id="d", page=1, bbox=bbox, original_text="old", new_text="new")
    ops = layout_patch(patch, PAGE)
    whiteout = ops[0]
    assert isinstance(whiteout, FillRect)
    assert whiteout.color == (1.0, 1.0, 1.0)
    covered = points_to_canonical(Rect(whiteout.x, whiteout.y, whiteout.width, whiteout.height), PAGE)
    assert covered.contains(bbox)
    assert whiteout.width == pytest.approx(0.25 * 612 + 2 * WHITEOUT_BLEED_PT)


def test_runs_map_to_font_variants_and_decorations():
    style = TextStyle(font_size=16, font_family="serif", color="#ff0000")
    runs = [Run("a", bold=True), Run("b", italic=True, underline=True), Run("c", strike=True)]
    ops = layout_runs(runs, Rect(0, 0, 300, 30), style)

    texts = [op for op in ops if isinstance(op, DrawText)]
    assert [t.font_name for t in texts] == ["Times-Bold", "Times-Italic", "Times-Roman"]
    assert all(t.color == (1.0, 0.0, 0.0) for t in texts)
    assert texts[0].x < texts[1].x < texts[2].x

    lines = [op for op in ops if isinstance(op, StrokeLine)]
    assert len(lines) == 2
    underline, strike = lines
    baseline = texts[0].y
    assert underline.y1 == pytest.approx(baseline - 2)
    assert strike.y1 == pytest.approx(baseline + 12 / 3)


@pytest.mark.parametrize("align", ["left", "center", "right"])
def test_alignment_positions_first_run(align):
    box = Rect(100, 100, 200, 30)
    style = TextStyle(text_align=align)
    ops = layout_runs([Run("Hi")], box, style)
    text = ops[0]
    pad_x = px_to_pt(PADDING_X_PX)
    if align == "left":
        assert text.x == pytest.approx(100 + pad_x)
    elif align == "center":
        assert text.x < 200 < text.x + 20
    else:
        assert text.x < 300 - pad_x
        assert text.x > 200


def test_layout_page_orders_and_filters():
    ann = TextAnnotation(id="a", page=1, x=0.1, y=0.1, text="A")
    patch = TextPatch(id="p", document_id="d", page=1, bbox=Rect(0.1, 0.5, 0.1, 0.02),
                      original_text="o", new_text="n")
    elsewhere = TextAnnotation(id="b", page=2, x=0.1, y=0.1, text="B")
    ops = layout_page(1, PAGE, [ann, elsewhere], [patch], [])
    texts = [op.text for op in ops if isinstance(op, DrawText)]
    assert texts == ["n", "A"]
    assert layout_page(3, PAGE, [ann], [patch], []) == []


@pytest.mark.parametrize(
    "value,expected",
    [("#ffffff", (1.0, 1.0, 1.0)), ("#000", (0.0, 0.0, 0.0)), ("f00", (1.0, 0.0, 0.0)), ("red", (0.0, 0.0, 0.0))],
)
def test_hex_to_rgb(value, expected):
    assert hex_to_rgb(value) == expected


def test_characters_outside_the_font_encoding_are_replaced_and_logged(caplog):
    style = TextStyle()
    with caplog.at_level("WARNING", logger="pdf_workbench.engine.layout"):
        ops = layout_runs([Run("café → 日本 €")], Rect(0, 0, 300, 30), style)
    assert [op.text for op in ops if isinstance(op, DrawText)] == ["café ? ?? €"]
    assert "→" in caplog.text and "日" in caplog.text


def test_encodable_text_is_untouched(caplog):
    with caplog.at_level("WARNING", logger="pdf_workbench.engine.layout"):
        assert drawable_text("naïve “quotes” – 10€") == "naïve “quotes” – 10€"
    assert caplog.records == []

import asyncio

import pytest

from pdf_workbench.core.errors import (
    DocumentDecodeError,
    EntityNotFoundError,
    ImmutableFieldError,
    NodeNotFoundError,
)
from pdf_workbench.core.geometry import Rect, to_display
from pdf_workbench.core.model import PLACEHOLDER_TEXT, ImageAnnotation, TextAnnotation, TextPatch, TextStyle
from pdf_workbench.workspace.editor import WorkspaceEditor


@pytest.fixture
def editor():
    return WorkspaceEditor()


@pytest.fixture
def doc(editor, three_page_pdf):
    return editor.upload("doc.pdf", three_page_pdf)


def _patch(doc_id, new_text="new", original="old"):
    return TextPatch(id="p1", document_id=doc_id, page=1, bbox=Rect(0.1, 0.2, 0.3, 0.02),
                     original_text=original, new_text=new_text)


def test_upload_into_unknown_folder_fails(editor, one_page_pdf):
    with pytest.raises(NodeNotFoundError):
        editor.upload("x.pdf", one_page_pdf, "nope")
    assert len(editor.history) == 0


def test_folder_tree_operations(editor, one_page_pdf):
    folder = editor.create_folder("Contracts")
    doc = editor.upload("a.pdf", one_page_pdf, folder.id)
    assert editor.node(folder.id).children == [doc]
    editor.rename(doc.id, "b.pdf")
    assert doc.name == "b.pdf"
    captured = len(editor.history)
    editor.rename(doc.id, "   ")
    assert doc.name == "b.pdf"
    assert len(editor.history) == captured
    with pytest.raises(NodeNotFoundError):
        editor.document(folder.id)


def test_place_annotation_on_rotated_page_round_trips(editor, doc):
    editor.rotate_page(doc.id, 1, 90)
    ann = editor.place_annotation(doc.id, 1, 0.25, 0.4)
    assert ann.text == PLACEHOLDER_TEXT
    overlay = editor.overlays(doc.id, 1)[0]
    assert overlay.rect.is_close(Rect(0.25, 0.4, 0.32, 0.05), 1e-12)


def test_exit_edit_mode_prunes_empty_edits(editor, doc):
    editor.place_annotation(doc.id, 1, 0.1, 0.1)
    editor.add_annotation(doc.id, TextAnnotation(id="keep", page=1, x=0.1, y=0.5, text="Real"))
    editor.add_patch(doc.id, _patch(doc.id, new_text="old"))
    assert editor.exit_edit_mode(doc.id) == 2
    assert [a.id for a in editor.workspace.annotations[doc.id]] == ["keep"]
    assert editor.workspace.patches[doc.id] == []

    captured = len(editor.history)
    assert editor.exit_edit_mode(doc.id) == 0
    assert len(editor.history) == captured


def test_patch_bbox_is_immutable(editor, doc):
    patch = editor.add_patch(doc.id, _patch(doc.id))
    with pytest.raises(ImmutableFieldError):
        editor.update_patch(doc.id, patch.id, bbox=Rect(0, 0, 1, 1))
    with pytest.raises(ImmutableFieldError):
        editor.move_entity(doc.id, "patch", patch.id, Rect(0, 0, 0.1, 0.1))
    assert patch.bbox == Rect(0.1, 0.2, 0.3, 0.02)

    editor.update_patch(doc.id, patch.id, new_text="newer", style={"bold": True})
    assert patch.new_text == "newer"
    assert patch.style.bold


def test_patch_from_detected_span_copies_style(editor, doc):
    span = {
        "page": 2,
        "text": "Page 2",
        "bbox": {"x": 0.1, "y": 0.1, "width": 0.1, "height": 0.02},
        "fontname": "Times-Bold",
        "style": {"font_family": "serif", "font_size": 18.0, "bold": True},
    }
    patch = editor.patch_from_span(doc.id, span, new_text="Chapter 2")
    assert patch.original_text == "Page 2"
    assert patch.style.bold and patch.style.font_size == 18.0
    assert patch.style.font_family.value == "serif"
    assert patch.bbox == Rect(0.1, 0.1, 0.1, 0.02)


def test_update_annotation_merges_style(editor, doc):
    editor.add_annotation(doc.id, TextAnnotation(id="a", page=1, x=0.1, y=0.1, text="x",
                                                  style=TextStyle(font_size=20)))
    ann = editor.update_annotation(doc.id, "a", style={"italic": True}, text="y")
    assert ann.style.italic and ann.style.font_size == 20
    assert ann.text == "y"
    with pytest.raises(ImmutableFieldError):
        editor.update_annotation(doc.id, "a", id="other")


def test_unknown_entity(editor, doc):
    with pytest.raises(EntityNotFoundError):
        editor.delete_annotation(doc.id, "missing")
    with pytest.raises(KeyError):
        editor.delete_image(doc.id, "missing")


def test_resize_image_keeps_aspect(editor, doc, png_bytes):
    editor.add_image(doc.id, ImageAnnotation(id="i", page=1, x=0.1, y=0.1, width=0.2, height=0.1, payload=png_bytes))
    img = editor.resize_image(doc.id, "i", 0.4)
    assert img.width == 0.4
    assert img.height == pytest.approx(0.2)


def test_move_image_stores_canonical_rect(editor, doc, png_bytes):
    editor.add_image(doc.id, ImageAnnotation(id="i", page=2, x=0.1, y=0.1, width=0.2, height=0.1, payload=png_bytes))
    editor.rotate_page(doc.id, 2, 270)
    dragged = Rect(0.3, 0.3, 0.1, 0.2)
    img = editor.move_entity(doc.id, "image", "i", dragged)
    assert to_display(img.rect, 270).is_close(dragged, 1e-12)


def test_delete_then_undo_restores_entity(editor, doc):
    editor.add_annotation(doc.id, TextAnnotation(id="a", page=1, x=0.1, y=0.1, text="x"))
    editor.delete_annotation(doc.id, "a")
    assert editor.workspace.annotations[doc.id] == []
    editor.undo()
    assert [a.id for a in editor.workspace.annotations[doc.id]] == ["a"]


def test_rotate_accumulates(editor, doc):
    assert editor.rotate_page(doc.id, 1, 90) == 90
    assert editor.rotate_page(doc.id, 1, 270) == 0
    assert editor.rotate_page(doc.id, 1, -90) == 270
    with pytest.raises(ValueError):
        editor.rotate_page(doc.id, 1, 45)


def test_export_without_edits_returns_source(editor, doc, three_page_pdf):
    assert editor.export(doc.id) is doc.data


def test_export_async_bakes_edits(editor, doc, page_texts):
    editor.add_annotation(doc.id, TextAnnotation(id="a", page=3, x=0.1, y=0.5, text="Exported"))
    data = asyncio.run(editor.export_async(doc.id))
    assert "Exported" in page_texts(data)[2]
    assert editor.guard.generation(doc.id) == 1


def test_deleting_a_folder_releases_composite_state(editor, one_page_pdf):
    folder = editor.create_folder("Batch")
    inner = editor.upload("a.pdf", one_page_pdf, folder.id)
    editor.add_annotation(inner.id, TextAnnotation(id="a", page=1, x=0.1, y=0.5, text="x"))
    asyncio.run(editor.export_async(inner.id))
    assert editor.guard.generation(inner.id) == 1

    editor.delete(folder.id)
    assert editor.guard.generation(inner.id) == 0
    assert inner.id not in editor.guard._locks


def test_corrupt_document_is_marked_unusable(editor):
    bad = editor.upload("broken.pdf", b"%PDF-1.4 truncated")
    editor.rotate_page(bad.id, 1, 90)
    with pytest.raises(DocumentDecodeError):
        editor.export(bad.id)
    assert bad.unusable

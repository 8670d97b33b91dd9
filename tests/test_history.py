import pytest

from pdf_workbench.core.model import ImageAnnotation, TextAnnotation
from pdf_workbench.workspace.editor import WorkspaceEditor
from pdf_workbench.workspace.history import HistoryManager, restore_snapshot, take_snapshot
from pdf_workbench.workspace.state import Workspace
from pdf_workbench.workspace.tree import DocumentNode


def _ann(i: int) -> TextAnnotation:
    return TextAnnotation(id=f"a{i}", page=1, x=0.1, y=0.1 * i, text=f"note {i}")


def test_upload_undo_redo_restores_identical_payload(one_page_pdf):
    editor = WorkspaceEditor()
    node = editor.upload("doc.pdf", one_page_pdf)
    assert editor.undo()
    assert editor.workspace.tree == []

    assert editor.redo()
    restored = editor.workspace.tree[0]
    assert restored.id == node.id
    assert len(restored.data) == len(one_page_pdf)
    assert restored.data == one_page_pdf


def test_k_edits_then_k_undos_returns_to_start(one_page_pdf):
    editor = WorkspaceEditor()
    doc = editor.upload("doc.pdf", one_page_pdf)
    start = take_snapshot(editor.workspace)

    for i in range(5):
        editor.add_annotation(doc.id, _ann(i))
    editor.rotate_page(doc.id, 1, 90)
    for _ in range(6):
        assert editor.undo()

    assert editor.workspace.annotations == start.annotations
    assert editor.workspace.rotations == start.rotations
    assert editor.workspace.tree[0].data is one_page_pdf


def test_undo_then_redo_returns_to_pre_undo_state(one_page_pdf):
    editor = WorkspaceEditor()
    doc = editor.upload("doc.pdf", one_page_pdf)
    editor.add_annotation(doc.id, _ann(1))
    editor.add_annotation(doc.id, _ann(2))

    editor.undo()
    assert [a.id for a in editor.workspace.annotations[doc.id]] == ["a1"]
    editor.redo()
    assert [a.id for a in editor.workspace.annotations[doc.id]] == ["a1", "a2"]
    assert not editor.history.can_redo


def test_repeated_undo_and_redo_walk_the_log(one_page_pdf):
    editor = WorkspaceEditor()
    doc = editor.upload("doc.pdf", one_page_pdf)
    for i in range(3):
        editor.add_annotation(doc.id, _ann(i))

    counts = []
    while editor.undo():
        counts.append(len(editor.workspace.annotations.get(doc.id, [])) if editor.workspace.tree else -1)
    assert counts == [2, 1, 0, -1]
    assert not editor.history.can_undo

    counts = []
    while editor.redo():
        counts.append(len(editor.workspace.annotations.get(doc.id, [])))
    assert counts == [0, 1, 2, 3]


def test_new_edit_after_undo_discards_redo(one_page_pdf):
    editor = WorkspaceEditor()
    doc = editor.upload("doc.pdf", one_page_pdf)
    editor.add_annotation(doc.id, _ann(1))
    editor.undo()
    editor.add_annotation(doc.id, _ann(2))
    assert not editor.history.can_redo
    assert not editor.redo()
    assert [a.id for a in editor.workspace.annotations[doc.id]] == ["a2"]


def test_empty_history_is_a_no_op():
    history = HistoryManager(Workspace())
    assert not history.undo()
    assert not history.redo()


def test_history_is_bounded():
    ws = Workspace()
    history = HistoryManager(ws, limit=3)
    for i in range(10):
        history.capture()
        ws.annotations_for("d").append(_ann(i))
    assert len(history) == 3

    undone = 0
    while history.undo():
        undone += 1
    assert undone == 3
    assert [a.id for a in ws.annotations["d"]] == ["a0", "a1", "a2", "a3", "a4", "a5", "a6"]


def test_invalid_limit():
    with pytest.raises(ValueError):
        HistoryManager(Workspace(), limit=0)


def test_snapshot_is_isolated_from_live_edits(one_page_pdf):
    ws = Workspace(tree=[DocumentNode(id="d", name="doc.pdf", data=one_page_pdf)])
    ws.annotations_for("d").append(_ann(1))
    snap = take_snapshot(ws)

    ws.annotations["d"][0].text = "changed"
    ws.tree[0].name = "renamed.pdf"
    assert snap.annotations["d"][0].text == "note 1"
    assert snap.tree[0].name == "doc.pdf"

    restore_snapshot(ws, snap)
    ws.annotations["d"][0].text = "changed again"
    assert snap.annotations["d"][0].text == "note 1"


def test_snapshot_shares_payloads_instead_of_copying(one_page_pdf, png_bytes):
    ws = Workspace(tree=[DocumentNode(id="d", name="doc.pdf", data=one_page_pdf)])
    ws.images_for("d").append(ImageAnnotation(id="i", page=1, x=0, y=0, width=0.1, height=0.1, payload=png_bytes))
    snap = take_snapshot(ws)
    assert snap.payloads["d"] is one_page_pdf
    assert snap.tree[0].data is None

    ws.tree.clear()
    restore_snapshot(ws, snap)
    assert ws.tree[0].data is one_page_pdf
    assert ws.images["d"][0].payload == png_bytes


def test_deleted_document_is_restorable(three_page_pdf):
    editor = WorkspaceEditor()
    folder = editor.create_folder("Reports")
    doc = editor.upload("doc.pdf", three_page_pdf, folder.id)
    editor.add_annotation(doc.id, _ann(1))
    editor.delete(folder.id)
    assert editor.workspace.tree == []
    assert doc.id not in editor.workspace.annotations

    editor.undo()
    restored = editor.node(doc.id)
    assert restored.data == three_page_pdf
    assert [a.id for a in editor.workspace.annotations[doc.id]] == ["a1"]

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP
from PIL import Image

from pdf_workbench.backends.pdfplumber_backend import detect_text_spans as backend_detect_spans
from pdf_workbench.backends.pdfplumber_backend import find_span_at
from pdf_workbench.backends.pypdf2_backend import open_reader, page_box
from pdf_workbench.core import paths as _paths
from pdf_workbench.core.errors import WorkbenchError
from pdf_workbench.core.images import load_raster
from pdf_workbench.core.model import ImageAnnotation, TextAnnotation, TextStyle, new_id
from pdf_workbench.core.page_range import parse_page_range
from pdf_workbench.core.paths import IMAGE_EXTENSIONS, find_file, resolve_output_path
from pdf_workbench.workspace.editor import WorkspaceEditor
from pdf_workbench.workspace.tree import DocumentNode, iter_nodes

logger = logging.getLogger(__name__)

mcp = FastMCP("PDF Workbench")

_editor: Optional[WorkspaceEditor] = None
# document id -> file it was opened from (outputs default to the same directory)
_sources: Dict[str, Path] = {}


def get_editor() -> WorkspaceEditor:
    global _editor
    if _editor is None:
        _editor = WorkspaceEditor(history_limit=_paths.HISTORY_LIMIT)
    return _editor


def _dump(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False)


def _node_summary(node: DocumentNode) -> Dict[str, Any]:
    ws = get_editor().workspace
    out: Dict[str, Any] = {"id": node.id, "name": node.name, "type": node.kind}
    if node.is_folder:
        out["children"] = [_node_summary(c) for c in node.children]
    else:
        out.update({
            "size": node.size,
            "modified_at": node.modified_at,
            "unusable": node.unusable,
            "annotations": len(ws.annotations.get(node.id, [])),
            "patches": len(ws.patches.get(node.id, [])),
            "images": len(ws.images.get(node.id, [])),
            "rotations": {str(k): v for k, v in ws.rotations.get(node.id, {}).items() if v},
        })
    return out


def _write_output(node_id: str, data: bytes, output_name: str, overwrite: bool) -> Path:
    target = resolve_output_path(output_name, next_to=_sources.get(node_id), overwrite=overwrite)
    target.write_bytes(data)
    logger.info(f"Wrote {len(data)} bytes to {target}")
    return target


# ---------- Files ----------
@mcp.tool()
async def list_pdf_files(directory: str = "all", limit: int = 50) -> str:
    """List the most recent PDFs in the configured directories.

    `directory` is "all" or a substring of an allowed root's name/path.
    """
    entries = _paths.list_pdf_files(directory, limit)
    if not entries:
        return f"No PDF files found (directory filter: {directory})."
    return _dump(entries)


@mcp.tool()
async def show_accessible_directories() -> str:
    """Return the current directory/configuration constraints as JSON."""
    info = {
        "accessible_directories": _paths.SEARCH_DIRECTORIES,
        "directory_count": len(_paths.SEARCH_DIRECTORIES),
        "max_file_size_mb": _paths.MAX_FILE_SIZE // (1024 * 1024),
        "allowed_extensions": _paths.ALLOWED_EXTENSIONS,
        "history_limit": _paths.HISTORY_LIMIT,
    }
    return _dump(info)


# ---------- Workspace ----------
@mcp.tool()
async def open_pdf(file_path: str, folder_id: Optional[str] = None) -> str:
    """Load a PDF from the accessible directories into the workspace.

    Returns the new document id and page count.
    """
    path = find_file(file_path)
    if not path:
        return (
            f"Error: Could not find file '{file_path}'. Provide an absolute path or place the file "
            "within the configured accessible directories."
        )
    try:
        data = path.read_bytes()
        pages = len(open_reader(data).pages)
        node = get_editor().upload(path.name, data, folder_id)
    except WorkbenchError as e:
        return f"Error: {e}"
    _sources[node.id] = path
    return _dump({"document_id": node.id, "name": node.name, "pages": pages, "size": node.size})


@mcp.tool()
async def list_workspace() -> str:
    """Show the workspace tree with per-document edit counts and undo/redo state."""
    editor = get_editor()
    return _dump({
        "tree": [_node_summary(n) for n in editor.workspace.tree],
        "can_undo": editor.history.can_undo,
        "can_redo": editor.history.can_redo,
    })


@mcp.tool()
async def create_folder(name: str, parent_id: Optional[str] = None) -> str:
    """Create an empty workspace folder, at the top level or inside `parent_id`."""
    if not name.strip():
        return "Error: Folder name cannot be empty."
    try:
        folder = get_editor().create_folder(name.strip(), parent_id)
    except WorkbenchError as e:
        return f"Error: {e}"
    return _dump({"folder_id": folder.id, "name": folder.name})


@mcp.tool()
async def rename_node(node_id: str, new_name: str) -> str:
    """Rename a document or folder. A blank name leaves it unchanged."""
    editor = get_editor()
    try:
        editor.rename(node_id, new_name.strip())
        node = editor.node(node_id)
    except WorkbenchError as e:
        return f"Error: {e}"
    return _dump({"id": node.id, "name": node.name})


@mcp.tool()
async def delete_node(node_id: str, confirm: bool = False) -> str:
    """Remove a document, or a folder with everything inside it, from the workspace.

    Without `confirm` nothing is deleted; the reply lists what would go.
    Files on disk are never touched, and `undo` brings the node back.
    """
    editor = get_editor()
    try:
        node = editor.node(node_id)
        documents = [n.name for n in iter_nodes([node]) if not n.is_folder]
        if not confirm:
            return _dump({
                "confirm_required": True,
                "name": node.name,
                "type": node.kind,
                "documents": documents,
            })
        editor.delete(node_id)
    except WorkbenchError as e:
        return f"Error: {e}"
    return _dump({"deleted": node_id, "name": node.name, "type": node.kind, "documents": documents})


@mcp.tool()
async def detect_text_spans(document_id: str, page_range: Optional[str] = None) -> str:
    """Find existing text runs (canonical boxes + detected style) that `replace_text` can patch.

    `page_range`: `first`, `last`, `N`, `S-E`, comma lists, or None for all pages.
    """
    try:
        node = get_editor().document(document_id)
        total = len(open_reader(node.data).pages)
        pages = [i + 1 for i in parse_page_range(total, page_range)]
        spans = backend_detect_spans(node.data, pages)
    except (WorkbenchError, ValueError) as e:
        return f"Error: {e}"
    return _dump(spans)


@mcp.tool()
async def add_text_annotation(
    document_id: str,
    page: int,
    x: float,
    y: float,
    text: str,
    width: Optional[float] = None,
    html: Optional[str] = None,
    style: Optional[Dict[str, Any]] = None,
) -> str:
    """Place a free text box. x/y/width are fractions (0-1) of the unrotated page.

    `html` may use <b>, <i>, <u>, <s> and inline font-weight/font-style/text-decoration.
    `style` keys: bold, italic, underline, strike, font_size (px), color (#hex),
    font_family (sans|serif|mono), text_align (left|center|right).
    """
    ann = TextAnnotation(
        id=new_id("ann"), page=page, x=x, y=y, text=text, width=width, html=html,
        style=TextStyle.from_dict(style),
    )
    try:
        get_editor().add_annotation(document_id, ann)
    except WorkbenchError as e:
        return f"Error: {e}"
    return _dump(ann.to_dict())


@mcp.tool()
async def replace_text(
    document_id: str,
    page: int,
    x: float,
    y: float,
    new_text: str,
    html: Optional[str] = None,
) -> str:
    """Replace the existing text run under canonical point (x, y) on `page`.

    The original text is whited out and `new_text` drawn in its detected style.
    """
    editor = get_editor()
    try:
        node = editor.document(document_id)
        span = find_span_at(backend_detect_spans(node.data, [page]), page, x, y)
        if span is None:
            return f"Error: No text found at ({x}, {y}) on page {page}."
        patch = editor.patch_from_span(document_id, span, new_text=new_text, html=html)
    except (WorkbenchError, ValueError) as e:
        return f"Error: {e}"
    return _dump(patch.to_dict())


@mcp.tool()
async def add_image(
    document_id: str,
    page: int,
    x: float,
    y: float,
    width: float,
    image_path: Optional[str] = None,
    data_url: Optional[str] = None,
) -> str:
    """Place a PNG/JPEG signature or stamp, from a file in the accessible directories or a data URL.

    x/y/width are fractions of the unrotated page; height follows the image's aspect ratio.
    """
    editor = get_editor()
    try:
        if image_path:
            path = find_file(image_path, IMAGE_EXTENSIONS)
            if not path:
                return f"Error: Could not find image '{image_path}'."
            payload: Any = path.read_bytes()
        elif data_url:
            payload = data_url
        else:
            return "Error: Provide image_path or data_url."
        img: Image.Image = load_raster(payload)
        node = editor.document(document_id)
        reader = open_reader(node.data)
        if page < 1 or page > len(reader.pages):
            return f"Error: Page {page} out of range (1-{len(reader.pages)})"
        box = page_box(reader.pages[page - 1])
        height = width * (img.height / img.width) * (box.width / box.height)
        image = ImageAnnotation(id=new_id("img"), page=page, x=x, y=y, width=width, height=height, payload=payload)
        editor.add_image(document_id, image)
    except WorkbenchError as e:
        return f"Error: {e}"
    return _dump({"id": image.id, "page": page, "x": x, "y": y, "width": width, "height": height})


@mcp.tool()
async def update_annotation(
    document_id: str,
    annotation_id: str,
    text: Optional[str] = None,
    html: Optional[str] = None,
    style: Optional[Dict[str, Any]] = None,
    x: Optional[float] = None,
    y: Optional[float] = None,
    width: Optional[float] = None,
) -> str:
    """Change a text annotation. Only the given fields change; `style` keys are merged into its style."""
    fields = {"text": text, "html": html, "style": style, "x": x, "y": y, "width": width}
    changes = {k: v for k, v in fields.items() if v is not None}
    if not changes:
        return "Error: Nothing to update."
    try:
        ann = get_editor().update_annotation(document_id, annotation_id, **changes)
    except WorkbenchError as e:
        return f"Error: {e}"
    return _dump(ann.to_dict())


@mcp.tool()
async def update_text_patch(
    document_id: str,
    patch_id: str,
    new_text: Optional[str] = None,
    html: Optional[str] = None,
    style: Optional[Dict[str, Any]] = None,
) -> str:
    """Change the replacement text or style of a patch created by `replace_text`."""
    fields = {"new_text": new_text, "html": html, "style": style}
    changes = {k: v for k, v in fields.items() if v is not None}
    if not changes:
        return "Error: Nothing to update."
    try:
        patch = get_editor().update_patch(document_id, patch_id, **changes)
    except WorkbenchError as e:
        return f"Error: {e}"
    return _dump(patch.to_dict())


@mcp.tool()
async def resize_image(document_id: str, image_id: str, width: float) -> str:
    """Set a placed image's width (fraction of the page); height keeps the aspect ratio."""
    if width <= 0:
        return "Error: Width must be positive."
    try:
        img = get_editor().resize_image(document_id, image_id, width)
    except WorkbenchError as e:
        return f"Error: {e}"
    return _dump({"id": img.id, "page": img.page, "x": img.x, "y": img.y, "width": img.width, "height": img.height})


@mcp.tool()
async def delete_edit(document_id: str, kind: str, entity_id: str) -> str:
    """Remove one edit from a document. `kind` is annotation, patch or image."""
    editor = get_editor()
    removers = {
        "annotation": editor.delete_annotation,
        "patch": editor.delete_patch,
        "image": editor.delete_image,
    }
    remove = removers.get(kind)
    if remove is None:
        return f"Error: Unknown edit kind '{kind}' (expected annotation, patch or image)."
    try:
        remove(document_id, entity_id)
    except WorkbenchError as e:
        return f"Error: {e}"
    return _dump({"document_id": document_id, "deleted": entity_id, "kind": kind})


@mcp.tool()
async def rotate_page(document_id: str, page: int, degrees: int = 90) -> str:
    """Rotate one page by a multiple of 90 degrees (added to its current rotation)."""
    try:
        total = get_editor().rotate_page(document_id, page, degrees)
    except (WorkbenchError, ValueError) as e:
        return f"Error: {e}"
    return _dump({"document_id": document_id, "page": page, "rotation": total})


@mcp.tool()
async def undo() -> str:
    """Undo the last workspace change."""
    done = get_editor().undo()
    return "Undone." if done else "Nothing to undo."


@mcp.tool()
async def redo() -> str:
    """Redo the last undone workspace change."""
    done = get_editor().redo()
    return "Redone." if done else "Nothing to redo."


@mcp.tool()
async def exit_edit_mode(document_id: str) -> str:
    """Finish editing a document: drops placeholder annotations and patches whose text never changed."""
    editor = get_editor()
    try:
        editor.document(document_id)
        removed = editor.exit_edit_mode(document_id)
    except WorkbenchError as e:
        return f"Error: {e}"
    return _dump({"document_id": document_id, "removed": removed})


# ---------- Output ----------
@mcp.tool()
async def export_pdf(document_id: str, output_name: Optional[str] = None, overwrite: bool = False) -> str:
    """Bake all edits of a document and write the result as a new PDF.

    Defaults to `<name>_edited.pdf` next to the source file.
    """
    editor = get_editor()
    try:
        node = editor.document(document_id)
        data = await editor.export_async(document_id)
        name = output_name or f"{Path(node.name).stem}_edited.pdf"
        target = _write_output(document_id, data, name, overwrite)
    except (WorkbenchError, ValueError, OSError) as e:
        logger.error(f"Export failed for {document_id}: {e}")
        return f"Error: {e}"
    return _dump({"document_id": document_id, "output": str(target), "bytes": len(data)})


@mcp.tool()
async def merge_pdfs(document_ids: List[str], output_name: Optional[str] = None, overwrite: bool = False) -> str:
    """Merge documents in the given order (edits baked in) into a new workspace document.

    When `output_name` is given the result is also written to disk.
    """
    editor = get_editor()
    name = None
    if output_name:
        name = output_name if output_name.lower().endswith(".pdf") else f"{output_name}.pdf"
    try:
        node = editor.merge(document_ids, name=name)
        result: Dict[str, Any] = {"document_id": node.id, "name": node.name, "size": node.size}
        if output_name:
            result["output"] = str(_write_output(document_ids[0], node.data, output_name, overwrite))
    except (WorkbenchError, ValueError, OSError) as e:
        logger.error(f"Merge failed: {e}")
        return f"Error: {e}"
    return _dump(result)


@mcp.tool()
async def split_pdf(document_id: str, page_range: Optional[str] = None, folder_name: Optional[str] = None) -> str:
    """Split a document (edits baked in) into one document per page inside a new workspace folder.

    `page_range` keeps only the selected pages (`first`, `last`, `N`, `S-E`, comma lists).
    """
    editor = get_editor()
    try:
        total = len(open_reader(editor.document(document_id).data).pages)
        pages = parse_page_range(total, page_range)
        folder = editor.split(document_id, folder_name, pages)
    except (WorkbenchError, ValueError) as e:
        logger.error(f"Split failed for {document_id}: {e}")
        return f"Error: {e}"
    return _dump(_node_summary(folder))

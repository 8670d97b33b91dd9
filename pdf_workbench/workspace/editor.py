"""Mutating operations on a workspace.

Every discrete edit captures a history snapshot immediately before it
changes anything, so each call is exactly one undo step.
"""
import copy
import logging
from pathlib import PurePath
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pdf_workbench.backends import pypdf2_backend
from pdf_workbench.core.errors import (
    DocumentDecodeError,
    EntityNotFoundError,
    ImmutableFieldError,
    MergeValidationError,
    NodeNotFoundError,
)
from pdf_workbench.core.geometry import Rect, normalize_rotation, to_canonical
from pdf_workbench.core.model import (
    DEFAULT_ANNOTATION_HEIGHT,
    DEFAULT_ANNOTATION_WIDTH,
    PLACEHOLDER_TEXT,
    ImageAnnotation,
    TextAnnotation,
    TextPatch,
    TextStyle,
    new_id,
)
from pdf_workbench.core.overlay import Overlay, project_overlays
from pdf_workbench.core.types import DetectedSpan
from pdf_workbench.engine.compositor import composite, has_edits
from pdf_workbench.engine.guard import CompositeGuard
from pdf_workbench.workspace.history import DEFAULT_HISTORY_LIMIT, HistoryManager
from pdf_workbench.workspace.state import Workspace
from pdf_workbench.workspace.tree import (
    FOLDER,
    PDF,
    DocumentNode,
    find_node,
    find_parent_id,
    insert_node,
    iter_nodes,
    remove_node,
    size_label,
    today,
)

logger = logging.getLogger(__name__)

Edits = Tuple[List[TextAnnotation], List[TextPatch], Dict[int, int], List[ImageAnnotation]]

_ANNOTATION_FIELDS = {"page", "x", "y", "width", "height", "text", "html", "style"}
_PATCH_FIELDS = {"page", "new_text", "html", "style"}
_IMAGE_FIELDS = {"page", "x", "y", "width", "height", "payload"}


def _merge_style(style: TextStyle, changes: Union[TextStyle, Mapping[str, Any]]) -> TextStyle:
    if isinstance(changes, TextStyle):
        return copy.copy(changes)
    merged = style.to_dict()
    merged.update(changes)
    return TextStyle.from_dict(merged)


def _apply_changes(entity: Any, changes: Mapping[str, Any]) -> None:
    for key, value in changes.items():
        if key == "style":
            value = _merge_style(entity.style, value)
        setattr(entity, key, value)


class WorkspaceEditor:
    def __init__(self, workspace: Optional[Workspace] = None, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self.workspace = workspace if workspace is not None else Workspace()
        self.history = HistoryManager(self.workspace, limit=history_limit)
        self.guard = CompositeGuard()

    # ---------- lookups ----------
    def node(self, node_id: str) -> DocumentNode:
        node = find_node(self.workspace.tree, node_id)
        if node is None:
            raise NodeNotFoundError(f"No document or folder with id '{node_id}'")
        return node

    def document(self, document_id: str) -> DocumentNode:
        node = self.node(document_id)
        if node.kind != PDF:
            raise NodeNotFoundError(f"'{document_id}' is a folder, not a document")
        return node

    def _require_parent(self, parent_id: Optional[str]) -> None:
        if parent_id is not None and not self.node(parent_id).is_folder:
            raise NodeNotFoundError(f"'{parent_id}' is not a folder")

    def documents(self) -> List[DocumentNode]:
        return [n for n in iter_nodes(self.workspace.tree) if n.kind == PDF]

    def edits(self, document_id: str) -> Edits:
        """Independent copies of a document's edit maps (payloads shared)."""
        ws = self.workspace
        return (
            copy.deepcopy(ws.annotations.get(document_id, [])),
            copy.deepcopy(ws.patches.get(document_id, [])),
            dict(ws.rotations.get(document_id, {})),
            copy.deepcopy(ws.images.get(document_id, [])),
        )

    def page_rotation(self, document_id: str, page: int) -> int:
        return self.workspace.rotations.get(document_id, {}).get(page, 0)

    def overlays(self, document_id: str, page: int, rotation: Optional[int] = None) -> List[Overlay]:
        ws = self.workspace
        rot = self.page_rotation(document_id, page) if rotation is None else rotation
        return project_overlays(
            ws.annotations.get(document_id, []),
            ws.patches.get(document_id, []),
            ws.images.get(document_id, []),
            page,
            rot,
        )

    # ---------- history ----------
    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    # ---------- tree ----------
    def upload(self, name: str, data: bytes, parent_id: Optional[str] = None) -> DocumentNode:
        self._require_parent(parent_id)
        node = DocumentNode(
            id=new_id("upload"),
            name=name,
            kind=PDF,
            size=size_label(len(data)),
            modified_at=today(),
            data=bytes(data),
        )
        self.history.capture()
        insert_node(self.workspace.tree, node, parent_id)
        logger.info(f"Uploaded '{name}' as {node.id} ({node.size})")
        return node

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> DocumentNode:
        self._require_parent(parent_id)
        folder = DocumentNode(id=new_id("folder"), name=name, kind=FOLDER, modified_at=today())
        self.history.capture()
        insert_node(self.workspace.tree, folder, parent_id)
        return folder

    def rename(self, node_id: str, new_name: str) -> None:
        if not new_name.strip():
            return
        node = self.node(node_id)
        self.history.capture()
        node.name = new_name

    def delete(self, node_id: str) -> DocumentNode:
        node = self.node(node_id)
        self.history.capture()
        for item in iter_nodes([node]):
            self.workspace.forget(item.id)
            self.guard.forget(item.id)
        remove_node(self.workspace.tree, node_id)
        logger.info(f"Deleted {node.kind} '{node.name}' ({node_id})")
        return node

    # ---------- free text annotations ----------
    def add_annotation(self, document_id: str, annotation: TextAnnotation) -> TextAnnotation:
        self.document(document_id)
        self.history.capture()
        self.workspace.annotations_for(document_id).append(annotation)
        return annotation

    def place_annotation(
        self,
        document_id: str,
        page: int,
        display_x: float,
        display_y: float,
        display_width: float = DEFAULT_ANNOTATION_WIDTH,
        display_height: float = DEFAULT_ANNOTATION_HEIGHT,
        style: Optional[TextStyle] = None,
        rotation: Optional[int] = None,
    ) -> TextAnnotation:
        """Create a placeholder annotation at a point clicked on the rotated view."""
        rot = self.page_rotation(document_id, page) if rotation is None else rotation
        rect = to_canonical(Rect(display_x, display_y, display_width, display_height), rot)
        ann = TextAnnotation(
            id=new_id("ann"),
            page=page,
            x=rect.x,
            y=rect.y,
            width=rect.width,
            height=rect.height,
            text=PLACEHOLDER_TEXT,
            html=PLACEHOLDER_TEXT,
            style=copy.copy(style) if style else TextStyle(),
        )
        return self.add_annotation(document_id, ann)

    def _find(self, items: List[Any], entity_id: str) -> Any:
        for item in items:
            if item.id == entity_id:
                return item
        raise EntityNotFoundError(f"No entity with id '{entity_id}'")

    def update_annotation(self, document_id: str, annotation_id: str, **changes: Any) -> TextAnnotation:
        ann = self._find(self.workspace.annotations.get(document_id, []), annotation_id)
        bad = set(changes) - _ANNOTATION_FIELDS
        if bad:
            raise ImmutableFieldError(f"TextAnnotation fields {sorted(bad)} cannot be changed")
        self.history.capture()
        _apply_changes(ann, changes)
        return ann

    def delete_annotation(self, document_id: str, annotation_id: str) -> None:
        items = self.workspace.annotations.get(document_id, [])
        ann = self._find(items, annotation_id)
        self.history.capture()
        items.remove(ann)

    # ---------- text patches ----------
    def add_patch(self, document_id: str, patch: TextPatch) -> TextPatch:
        self.document(document_id)
        patch.document_id = document_id
        self.history.capture()
        self.workspace.patches_for(document_id).append(patch)
        return patch

    def patch_from_span(self, document_id: str, span: DetectedSpan,
                        new_text: Optional[str] = None, html: Optional[str] = None) -> TextPatch:
        """Create a patch over a detected glyph run, copying its detected style."""
        bb = span["bbox"]
        text = span["text"]
        patch = TextPatch(
            id=new_id("patch"),
            document_id=document_id,
            page=span["page"],
            bbox=Rect(bb["x"], bb["y"], bb["width"], bb["height"]),
            original_text=text,
            new_text=text if new_text is None else new_text,
            html=html if html is not None else (text if new_text is None else None),
            style=TextStyle.from_dict(span.get("style")),
        )
        return self.add_patch(document_id, patch)

    def update_patch(self, document_id: str, patch_id: str, **changes: Any) -> TextPatch:
        patch = self._find(self.workspace.patches.get(document_id, []), patch_id)
        bad = set(changes) - _PATCH_FIELDS
        if bad:
            raise ImmutableFieldError(f"TextPatch fields {sorted(bad)} cannot be changed")
        self.history.capture()
        _apply_changes(patch, changes)
        return patch

    def delete_patch(self, document_id: str, patch_id: str) -> None:
        items = self.workspace.patches.get(document_id, [])
        patch = self._find(items, patch_id)
        self.history.capture()
        items.remove(patch)

    # ---------- images ----------
    def add_image(self, document_id: str, image: ImageAnnotation) -> ImageAnnotation:
        self.document(document_id)
        self.history.capture()
        self.workspace.images_for(document_id).append(image)
        return image

    def update_image(self, document_id: str, image_id: str, **changes: Any) -> ImageAnnotation:
        img = self._find(self.workspace.images.get(document_id, []), image_id)
        bad = set(changes) - _IMAGE_FIELDS
        if bad:
            raise ImmutableFieldError(f"ImageAnnotation fields {sorted(bad)} cannot be changed")
        self.history.capture()
        _apply_changes(img, changes)
        return img

    def resize_image(self, document_id: str, image_id: str, width: float) -> ImageAnnotation:
        """Resize keeping the image's aspect ratio."""
        img = self._find(self.workspace.images.get(document_id, []), image_id)
        height = img.height * (width / img.width) if img.width else img.height
        return self.update_image(document_id, image_id, width=width, height=height)

    def delete_image(self, document_id: str, image_id: str) -> None:
        items = self.workspace.images.get(document_id, [])
        img = self._find(items, image_id)
        self.history.capture()
        items.remove(img)

    def move_entity(self, document_id: str, kind: str, entity_id: str,
                    display_rect: Rect, rotation: Optional[int] = None) -> Any:
        """Store a rect dragged/resized on the rotated view back in canonical space."""
        if kind == "patch":
            raise ImmutableFieldError("A text patch's bounding box cannot be moved")
        if kind == "annotation":
            ann = self._find(self.workspace.annotations.get(document_id, []), entity_id)
            rot = self.page_rotation(document_id, ann.page) if rotation is None else rotation
            r = to_canonical(display_rect, rot)
            return self.update_annotation(document_id, entity_id, x=r.x, y=r.y, width=r.width, height=r.height)
        if kind == "image":
            img = self._find(self.workspace.images.get(document_id, []), entity_id)
            rot = self.page_rotation(document_id, img.page) if rotation is None else rotation
            r = to_canonical(display_rect, rot)
            return self.update_image(document_id, entity_id, x=r.x, y=r.y, width=r.width, height=r.height)
        raise ValueError(f"Unknown overlay kind: {kind}")

    # ---------- page rotation ----------
    def rotate_page(self, document_id: str, page: int, delta: int = 90) -> int:
        self.document(document_id)
        delta = normalize_rotation(delta)
        self.history.capture()
        rotations = self.workspace.rotations_for(document_id)
        rotations[page] = normalize_rotation(rotations.get(page, 0) + delta)
        return rotations[page]

    # ---------- edit mode ----------
    def exit_edit_mode(self, document_id: str) -> int:
        """Drop placeholder annotations and patches left unchanged. Returns the count removed."""
        ws = self.workspace
        anns = ws.annotations.get(document_id, [])
        patches = ws.patches.get(document_id, [])
        keep_anns = [a for a in anns if not a.is_placeholder()]
        keep_patches = [p for p in patches if not p.is_unchanged()]
        removed = (len(anns) - len(keep_anns)) + (len(patches) - len(keep_patches))
        if removed:
            self.history.capture()
            ws.annotations[document_id] = keep_anns
            ws.patches[document_id] = keep_patches
            logger.debug(f"Pruned {removed} empty edits from {document_id}")
        return removed

    # ---------- baking ----------
    def _baked(self, node: DocumentNode, edits: Optional[Edits] = None) -> bytes:
        if node.data is None:
            raise DocumentDecodeError(f"Document '{node.name}' has no data")
        annotations, patches, rotations, images = edits if edits is not None else self.edits(node.id)
        if not has_edits(annotations, patches, rotations, images):
            return node.data
        try:
            return composite(node.data, annotations, patches, rotations, images)
        except DocumentDecodeError:
            node.unusable = True
            raise

    def export(self, document_id: str) -> bytes:
        """Document bytes with all of its edits baked in."""
        return self._baked(self.document(document_id))

    async def export_async(self, document_id: str) -> bytes:
        """`export` in a worker thread, at most one in flight per document."""
        node = self.document(document_id)
        edits = self.edits(document_id)
        _, data = await self.guard.run(document_id, self._baked, node, edits)
        return data

    def merge(self, document_ids: Sequence[str], name: Optional[str] = None) -> DocumentNode:
        """Bake each input, concatenate, and add the result next to the first input."""
        sources = []
        for doc_id in document_ids:
            node = find_node(self.workspace.tree, doc_id)
            if node is None or node.kind != PDF or node.data is None:
                logger.warning(f"Merge: skipping missing document {doc_id}")
                continue
            sources.append(self._baked(node))
        if len(sources) < 2:
            raise MergeValidationError("Need at least 2 valid files to merge.")
        merged = pypdf2_backend.merge_into(sources)

        parent_id = find_parent_id(self.workspace.tree, document_ids[0])
        node = DocumentNode(
            id=new_id("merge"),
            name=name or f"Merged-{len(sources)}-documents.pdf",
            kind=PDF,
            size=size_label(len(merged)),
            modified_at=today(),
            data=merged,
        )
        self.history.capture()
        insert_node(self.workspace.tree, node, parent_id)
        return node

    def split(self, document_id: str, folder_name: Optional[str] = None,
              pages: Optional[Sequence[int]] = None) -> DocumentNode:
        """Bake, split into single pages, and add them in a new folder beside the source.

        `pages` selects zero-based page indices to keep (all when None).
        """
        source = self.document(document_id)
        parts = pypdf2_backend.split_by_page(self._baked(source))
        selected = range(len(parts)) if pages is None else pages
        stem = PurePath(source.name).stem
        children = [
            DocumentNode(
                id=new_id("split"),
                name=f"{stem}-page-{i + 1}.pdf",
                kind=PDF,
                size=size_label(len(parts[i])),
                modified_at=today(),
                data=parts[i],
            )
            for i in selected
        ]
        folder = DocumentNode(
            id=new_id("folder"),
            name=folder_name or f"{stem}-pages",
            kind=FOLDER,
            children=children,
            modified_at=today(),
        )
        self.history.capture()
        insert_node(self.workspace.tree, folder, find_parent_id(self.workspace.tree, document_id))
        logger.info(f"Split '{source.name}' into {len(children)} pages")
        return folder

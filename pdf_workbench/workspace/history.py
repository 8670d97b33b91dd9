"""Undo/redo for the whole workspace.

Snapshots copy structure and edit maps but never document payloads: each
snapshot keeps an id -> bytes table whose values are the very objects held by
the live tree. `bytes` is immutable, so sharing them is safe and a document
deleted from the tree stays restorable for as long as a snapshot refers to it.
"""
import copy
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping

from pdf_workbench.core.model import ImageAnnotation, TextAnnotation, TextPatch
from pdf_workbench.workspace.state import Workspace
from pdf_workbench.workspace.tree import DocumentNode, attach_payloads, collect_payloads, copy_structure

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


@dataclass(frozen=True)
class WorkspaceSnapshot:
    tree: List[DocumentNode]
    payloads: Mapping[str, bytes]
    annotations: Dict[str, List[TextAnnotation]]
    patches: Dict[str, List[TextPatch]]
    images: Dict[str, List[ImageAnnotation]]
    rotations: Dict[str, Dict[int, int]]


def take_snapshot(ws: Workspace) -> WorkspaceSnapshot:
    return WorkspaceSnapshot(
        tree=copy_structure(ws.tree),
        payloads=MappingProxyType(collect_payloads(ws.tree)),
        annotations=copy.deepcopy(ws.annotations),
        patches=copy.deepcopy(ws.patches),
        images=copy.deepcopy(ws.images),
        rotations=copy.deepcopy(ws.rotations),
    )


def restore_snapshot(ws: Workspace, snap: WorkspaceSnapshot) -> None:
    """Overwrite live state in place. The snapshot is copied again so later
    edits to the live workspace never reach it."""
    ws.tree = attach_payloads(snap.tree, dict(snap.payloads))
    ws.annotations = copy.deepcopy(snap.annotations)
    ws.patches = copy.deepcopy(snap.patches)
    ws.images = copy.deepcopy(snap.images)
    ws.rotations = copy.deepcopy(snap.rotations)


class HistoryManager:
    """Bounded linear undo log with a cursor.

    `cursor` indexes the newest snapshot older than the live state. After an
    undo the live state equals the entry at `cursor + 1`, so redo restores
    `cursor + 2`.
    """

    def __init__(self, workspace: Workspace, limit: int = DEFAULT_HISTORY_LIMIT):
        if limit < 1:
            raise ValueError(f"History limit must be positive: {limit}")
        self.workspace = workspace
        self.limit = limit
        self.entries: List[WorkspaceSnapshot] = []
        self.cursor = -1

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def can_undo(self) -> bool:
        return self.cursor >= 0

    @property
    def can_redo(self) -> bool:
        return self.cursor + 2 < len(self.entries)

    def clear(self) -> None:
        self.entries.clear()
        self.cursor = -1

    def capture(self) -> None:
        """Record live state before a mutation; discards redo history."""
        del self.entries[self.cursor + 1:]
        self.entries.append(take_snapshot(self.workspace))
        if len(self.entries) > self.limit:
            self.entries.pop(0)
        self.cursor = len(self.entries) - 1

    def undo(self) -> bool:
        if self.cursor < 0:
            return False
        if self.cursor == len(self.entries) - 1:
            # keep the live state so redo can come back to it
            self.entries.append(take_snapshot(self.workspace))
        restore_snapshot(self.workspace, self.entries[self.cursor])
        self.cursor -= 1
        logger.debug(f"Undo -> cursor {self.cursor} of {len(self.entries)}")
        return True

    def redo(self) -> bool:
        if not self.can_redo:
            return False
        restore_snapshot(self.workspace, self.entries[self.cursor + 2])
        self.cursor += 1
        logger.debug(f"Redo -> cursor {self.cursor} of {len(self.entries)}")
        return True

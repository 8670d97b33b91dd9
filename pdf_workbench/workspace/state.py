from dataclasses import dataclass, field
from typing import Dict, List

from pdf_workbench.core.model import ImageAnnotation, TextAnnotation, TextPatch
from pdf_workbench.workspace.tree import DocumentNode


@dataclass
class Workspace:
    """Live, in-memory state owned by the host application.

    Edit maps are keyed by document id; rotation maps hold page -> delta.
    """
    tree: List[DocumentNode] = field(default_factory=list)
    annotations: Dict[str, List[TextAnnotation]] = field(default_factory=dict)
    patches: Dict[str, List[TextPatch]] = field(default_factory=dict)
    images: Dict[str, List[ImageAnnotation]] = field(default_factory=dict)
    rotations: Dict[str, Dict[int, int]] = field(default_factory=dict)

    def annotations_for(self, document_id: str) -> List[TextAnnotation]:
        return self.annotations.setdefault(document_id, [])

    def patches_for(self, document_id: str) -> List[TextPatch]:
        return self.patches.setdefault(document_id, [])

    def images_for(self, document_id: str) -> List[ImageAnnotation]:
        return self.images.setdefault(document_id, [])

    def rotations_for(self, document_id: str) -> Dict[int, int]:
        return self.rotations.setdefault(document_id, {})

    def forget(self, document_id: str) -> None:
        for table in (self.annotations, self.patches, self.images, self.rotations):
            table.pop(document_id, None)

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, Iterator, List, Optional

from pdf_workbench.core.errors import NodeNotFoundError

FOLDER = "folder"
PDF = "pdf"


@dataclass
class DocumentNode:
    id: str
    name: str
    kind: str = PDF
    children: List["DocumentNode"] = field(default_factory=list)
    size: str = ""
    modified_at: str = ""
    data: Optional[bytes] = None
    unusable: bool = False

    @property
    def is_folder(self) -> bool:
        return self.kind == FOLDER


def size_label(num_bytes: int) -> str:
    return f"{num_bytes / 1024:.1f} KB"


def today() -> str:
    return date.today().isoformat()


def iter_nodes(nodes: List[DocumentNode]) -> Iterator[DocumentNode]:
    """Depth-first, pre-order."""
    for node in nodes:
        yield node
        if node.children:
            yield from iter_nodes(node.children)


def find_node(nodes: List[DocumentNode], node_id: str) -> Optional[DocumentNode]:
    for node in iter_nodes(nodes):
        if node.id == node_id:
            return node
    return None


def find_parent_id(nodes: List[DocumentNode], node_id: str) -> Optional[str]:
    for node in iter_nodes(nodes):
        if any(child.id == node_id for child in node.children):
            return node.id
    return None


def insert_node(nodes: List[DocumentNode], new_node: DocumentNode, parent_id: Optional[str] = None) -> None:
    """Append `new_node` at the root or under folder `parent_id` (in place)."""
    if parent_id is None:
        nodes.append(new_node)
        return
    parent = find_node(nodes, parent_id)
    if parent is None or not parent.is_folder:
        raise NodeNotFoundError(f"No folder with id '{parent_id}'")
    parent.children.append(new_node)


def remove_node(nodes: List[DocumentNode], node_id: str) -> Optional[DocumentNode]:
    for i, node in enumerate(nodes):
        if node.id == node_id:
            return nodes.pop(i)
        if node.children:
            removed = remove_node(node.children, node_id)
            if removed is not None:
                return removed
    return None


# --- Payload handling for history snapshots ---

def collect_payloads(nodes: List[DocumentNode]) -> Dict[str, bytes]:
    """id -> payload for every node carrying bytes. Payloads are not copied."""
    return {n.id: n.data for n in iter_nodes(nodes) if n.data is not None}


def copy_structure(nodes: List[DocumentNode]) -> List[DocumentNode]:
    """Independent copy of the tree with payloads detached."""
    return [replace(n, data=None, children=copy_structure(n.children)) for n in nodes]


def attach_payloads(nodes: List[DocumentNode], payloads: Dict[str, bytes]) -> List[DocumentNode]:
    """Fresh tree copy with payloads re-attached by reference."""
    return [
        replace(n, data=payloads.get(n.id, n.data), children=attach_payloads(n.children, payloads))
        for n in nodes
    ]

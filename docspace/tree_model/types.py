"""Domain datatypes for space-relative folder/document tree nodes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

NodeKind = Literal["folder", "document"]

FOLDER: NodeKind = "folder"
DOCUMENT: NodeKind = "document"


@dataclass(frozen=True)
class DocumentNode:
    """Leaf node for one file inside a space."""

    path: str
    name: str
    space_id: int | None = None
    space_name: str = ""
    title: str = ""
    extension: str = ""
    category: str = "other"
    size: int | None = None
    modified_at: int | None = None

    @property
    def kind(self) -> NodeKind:
        return DOCUMENT


@dataclass(frozen=True)
class FolderNode:
    """Folder node with ordered, recursively nested children."""

    path: str
    name: str
    space_id: int | None = None
    space_name: str = ""
    children: tuple["TreeNode", ...] = ()

    @property
    def kind(self) -> NodeKind:
        return FOLDER


TreeNode = FolderNode | DocumentNode


def sort_key(node: TreeNode) -> tuple[bool, str, str]:
    """Ordering key: folders first, then case-insensitive name, exact name as tiebreak."""
    return (not isinstance(node, FolderNode), node.name.casefold(), node.name)


def sort_nodes(nodes) -> tuple[TreeNode, ...]:
    return tuple(sorted(nodes, key=sort_key))


def node_to_payload(node: TreeNode) -> dict[str, Any]:
    """Serialize a node (recursively for folders) to its JSON wire shape."""
    payload: dict[str, Any] = {
        "type": node.kind,
        "name": node.name,
        "path": node.path,
        "spaceId": node.space_id,
        "spaceName": node.space_name,
    }
    match node:
        case FolderNode():
            payload["children"] = [node_to_payload(child) for child in node.children]
        case DocumentNode():
            payload["title"] = node.title or node.name
            payload["extension"] = node.extension
            payload["category"] = node.category
            payload["size"] = node.size
            payload["modifiedAt"] = node.modified_at
    return payload


def node_from_payload(payload: dict[str, Any]) -> TreeNode:
    """Inverse of :func:`node_to_payload`.

    Raises ``ValueError`` for payloads whose ``type`` is neither folder nor
    document.
    """
    node_type = payload.get("type")
    path = str(payload.get("path") or "")
    name = str(payload.get("name") or "")
    space_id = payload.get("spaceId")
    space_name = str(payload.get("spaceName") or "")
    if node_type == FOLDER:
        return FolderNode(
            path=path,
            name=name,
            space_id=space_id,
            space_name=space_name,
            children=tuple(node_from_payload(child) for child in payload.get("children") or ()),
        )
    if node_type == DOCUMENT:
        return DocumentNode(
            path=path,
            name=name,
            space_id=space_id,
            space_name=space_name,
            title=str(payload.get("title") or ""),
            extension=str(payload.get("extension") or ""),
            category=str(payload.get("category") or "other"),
            size=payload.get("size"),
            modified_at=payload.get("modifiedAt"),
        )
    raise ValueError(f"unknown node type: {node_type!r}")


__all__ = [
    "NodeKind",
    "FOLDER",
    "DOCUMENT",
    "DocumentNode",
    "FolderNode",
    "TreeNode",
    "sort_key",
    "sort_nodes",
    "node_to_payload",
    "node_from_payload",
]

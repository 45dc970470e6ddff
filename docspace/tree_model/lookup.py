"""Pure lookup and patch helpers over immutable folder/document trees."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import replace

from ..errors import SubtreeNotFoundError
from .paths import join_path, normalize_path, split_path
from .types import DocumentNode, FolderNode, TreeNode


def find_node(root: FolderNode | None, path: str) -> TreeNode | None:
    """Return the node at ``path`` or ``None``.

    Descends segment by segment, so only the folders along ``path`` are
    inspected. Paths are unique, so at most one node matches.
    """
    if root is None:
        return None
    node: TreeNode = root
    walked = ""
    for segment in split_path(path):
        if not isinstance(node, FolderNode):
            return None
        walked = join_path(walked, segment)
        node = next((child for child in node.children if child.path == walked), None)
        if node is None:
            return None
    return node


def find_folder(root: FolderNode | None, path: str) -> FolderNode | None:
    node = find_node(root, path)
    return node if isinstance(node, FolderNode) else None


def iter_nodes(node: TreeNode) -> Iterator[TreeNode]:
    """Yield ``node`` and all descendants depth-first in tree order."""
    yield node
    if isinstance(node, FolderNode):
        for child in node.children:
            yield from iter_nodes(child)


def build_path_index(root: FolderNode) -> dict[str, TreeNode]:
    """Map every path in ``root`` to its node.

    Raises ``ValueError`` on a duplicate path, which would break the
    uniqueness invariant.
    """
    index: dict[str, TreeNode] = {}
    for node in iter_nodes(root):
        if node.path in index:
            raise ValueError(f"duplicate tree path: {node.path!r}")
        index[node.path] = node
    return index


def count_nodes(root: FolderNode) -> tuple[int, int]:
    """Return ``(folder_count, document_count)`` excluding the root itself."""
    folders = 0
    documents = 0
    for node in iter_nodes(root):
        if node is root:
            continue
        match node:
            case FolderNode():
                folders += 1
            case DocumentNode():
                documents += 1
    return folders, documents


def replace_children(
    root: FolderNode,
    path: str,
    children: tuple[TreeNode, ...],
) -> FolderNode:
    """Return a new root whose folder at ``path`` holds ``children``.

    Only folders on the route from the root to ``path`` are rebuilt; every
    other node is shared with ``root`` by identity. Raises
    ``SubtreeNotFoundError`` when ``path`` is not a folder in ``root``.
    """
    segments = split_path(path)

    def rebuild(folder: FolderNode, depth: int) -> FolderNode:
        if depth == len(segments):
            return replace(folder, children=tuple(children))
        child_path = join_path(folder.path, segments[depth])
        for idx, child in enumerate(folder.children):
            if child.path != child_path:
                continue
            if not isinstance(child, FolderNode):
                break
            updated = rebuild(child, depth + 1)
            return replace(
                folder,
                children=folder.children[:idx] + (updated,) + folder.children[idx + 1 :],
            )
        raise SubtreeNotFoundError(f"folder not in tree: {normalize_path(path)!r}")

    return rebuild(root, 0)


__all__ = [
    "find_node",
    "find_folder",
    "iter_nodes",
    "build_path_index",
    "count_nodes",
    "replace_children",
]

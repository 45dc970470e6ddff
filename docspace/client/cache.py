"""Client-held copy of one space's tree.

The cache is patched in place by swapping in a new immutable root produced by
path copying, so any node outside a patched folder keeps its identity and a
renderer can skip it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from ..errors import SubtreeNotFoundError
from ..tree_model.lookup import find_folder, find_node, replace_children
from ..tree_model.paths import ROOT_PATH, normalize_path
from ..tree_model.types import FolderNode, TreeNode

logger = logging.getLogger(__name__)

ChangeKind = Literal["reset", "subtree", "cleared"]


@dataclass(frozen=True)
class CacheChange:
    """Notification for one effective cache update."""

    kind: ChangeKind
    path: str
    revision: int


CacheListener = Callable[[CacheChange], None]


def _reuse_equal(old: tuple[TreeNode, ...], new: tuple[TreeNode, ...]) -> tuple[TreeNode, ...]:
    """Keep the cached object for every fresh child equal to it."""
    by_path = {child.path: child for child in old}
    out: list[TreeNode] = []
    for child in new:
        previous = by_path.get(child.path)
        out.append(previous if previous is not None and previous == child else child)
    return tuple(out)


class TreeCache:
    """Holds the tree of at most one space at a time."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._root: FolderNode | None = None
        self._revision = 0
        self._listeners: list[CacheListener] = []

    @property
    def root(self) -> FolderNode | None:
        return self._root

    @property
    def space_id(self) -> int | None:
        root = self._root
        return root.space_id if root is not None else None

    @property
    def revision(self) -> int:
        return self._revision

    def add_listener(self, listener: CacheListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _changed(self, kind: ChangeKind, path: str) -> CacheChange:
        self._revision += 1
        change = CacheChange(kind=kind, path=path, revision=self._revision)
        for listener in list(self._listeners):
            listener(change)
        return change

    def replace_all(self, tree: FolderNode) -> CacheChange:
        """Discard whatever was cached and store ``tree``."""
        with self._lock:
            self._root = tree
            return self._changed("reset", ROOT_PATH)

    def replace_subtree(self, path: str, children: tuple[TreeNode, ...]) -> CacheChange | None:
        """Replace the children of the folder at ``path``.

        Returns ``None`` when ``children`` already match the cached ones.
        Raises ``SubtreeNotFoundError`` when ``path`` is not a cached folder.
        """
        folder_path = normalize_path(path)
        children = tuple(children)
        with self._lock:
            if self._root is None:
                raise SubtreeNotFoundError("no tree loaded")
            current = find_folder(self._root, folder_path)
            if current is None:
                raise SubtreeNotFoundError(f"folder not in cache: {folder_path!r}")
            if current.children == children:
                logger.debug("subtree %r unchanged, skipping patch", folder_path)
                return None
            self._root = replace_children(self._root, folder_path, _reuse_equal(current.children, children))
            return self._changed("subtree", folder_path)

    def find(self, path: str) -> TreeNode | None:
        return find_node(self._root, normalize_path(path))

    def contains(self, path: str) -> bool:
        return self.find(path) is not None

    def clear(self) -> CacheChange | None:
        with self._lock:
            if self._root is None:
                return None
            self._root = None
            return self._changed("cleared", ROOT_PATH)


__all__ = ["CacheChange", "CacheListener", "TreeCache"]

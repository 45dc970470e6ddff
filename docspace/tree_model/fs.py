"""Filesystem scanning and canonical tree construction for space directories."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from ..errors import NotFoundError
from .categories import category_for_name, file_extension
from .paths import ROOT_PATH, base_name, join_path, normalize_path, resolve_within_root
from .types import DocumentNode, FolderNode, TreeNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryChild:
    """One visible directory child row plus cached stat metadata."""

    name: str
    path: Path
    is_dir: bool
    file_size: int | None
    mtime_ns: int | None


def is_hidden_name(name: str) -> bool:
    """Names with a leading dot are system folders/files (e.g. ``.templates``)."""
    return name.startswith(".")


def list_directory_children(
    directory: Path,
    show_hidden: bool = False,
) -> tuple[list[DirectoryChild], Exception | None]:
    """List visible children with stat metadata in canonical order.

    Returns ``(children, scan_error)``. ``scan_error`` is set when the
    directory cannot be scanned; children are then empty. Entries that vanish
    between listing and stat keep ``None`` metadata rather than failing.
    """
    children: list[DirectoryChild] = []
    try:
        with os.scandir(directory) as entries:
            for child in entries:
                name = child.name
                if not show_hidden and is_hidden_name(name):
                    continue
                try:
                    is_dir = child.is_dir(follow_symlinks=False)
                except OSError:
                    is_dir = False

                file_size: int | None = None
                mtime_ns: int | None = None
                try:
                    stat = child.stat(follow_symlinks=False)
                    mtime_ns = int(stat.st_mtime_ns)
                    if not is_dir:
                        file_size = int(stat.st_size)
                except OSError:
                    pass

                children.append(
                    DirectoryChild(
                        name=name,
                        path=Path(child.path),
                        is_dir=is_dir,
                        file_size=file_size,
                        mtime_ns=mtime_ns,
                    )
                )
    except OSError as exc:
        return [], exc

    children.sort(key=lambda item: (not item.is_dir, item.name.casefold(), item.name))
    return children, None


def _document_node(
    child: DirectoryChild,
    path: str,
    space_id: int | None,
    space_name: str,
) -> DocumentNode:
    return DocumentNode(
        path=path,
        name=child.name,
        space_id=space_id,
        space_name=space_name,
        title=child.name,
        extension=file_extension(child.name),
        category=category_for_name(child.name),
        size=child.file_size,
        modified_at=child.mtime_ns,
    )


def scan_children(
    directory: Path,
    relative_path: str,
    *,
    space_id: int | None = None,
    space_name: str = "",
    show_hidden: bool = False,
) -> tuple[TreeNode, ...]:
    """Recursively build ordered child nodes for ``directory``.

    A directory that cannot be read contributes an empty child list; its
    siblings are still scanned.
    """
    children, scan_error = list_directory_children(directory, show_hidden)
    if scan_error is not None:
        logger.debug("scan of %s failed, treating as empty: %s", directory, scan_error)
        return ()

    nodes: list[TreeNode] = []
    for child in children:
        child_path = join_path(relative_path, child.name)
        if child.is_dir:
            nodes.append(
                FolderNode(
                    path=child_path,
                    name=child.name,
                    space_id=space_id,
                    space_name=space_name,
                    children=scan_children(
                        child.path,
                        child_path,
                        space_id=space_id,
                        space_name=space_name,
                        show_hidden=show_hidden,
                    ),
                )
            )
            continue
        nodes.append(_document_node(child, child_path, space_id, space_name))
    return tuple(nodes)


def build_space_tree(
    root: Path,
    *,
    space_id: int | None = None,
    space_name: str = "",
    show_hidden: bool = False,
) -> FolderNode:
    """Build the canonical tree for a space rooted at ``root``.

    A missing root directory yields an empty root folder: a space with no
    documents yet is a valid state.
    """
    children: tuple[TreeNode, ...] = ()
    if root.is_dir():
        children = scan_children(
            root,
            ROOT_PATH,
            space_id=space_id,
            space_name=space_name,
            show_hidden=show_hidden,
        )
    return FolderNode(
        path=ROOT_PATH,
        name=space_name,
        space_id=space_id,
        space_name=space_name,
        children=children,
    )


def build_subtree(
    root: Path,
    path: str,
    *,
    space_id: int | None = None,
    space_name: str = "",
    show_hidden: bool = False,
) -> FolderNode:
    """Re-scan one folder of a space and return it with fresh children.

    Raises ``NotFoundError`` when ``path`` is not an existing folder. The
    root path on a missing space directory returns an empty root, matching
    :func:`build_space_tree`.
    """
    normalized = normalize_path(path)
    if normalized == ROOT_PATH:
        return build_space_tree(root, space_id=space_id, space_name=space_name, show_hidden=show_hidden)
    if not show_hidden and any(is_hidden_name(segment) for segment in normalized.split("/")):
        raise NotFoundError(f"folder not found: {normalized}")
    directory = resolve_within_root(root, normalized)
    if directory.is_symlink() or not directory.is_dir():
        raise NotFoundError(f"folder not found: {normalized}")
    return FolderNode(
        path=normalized,
        name=base_name(normalized),
        space_id=space_id,
        space_name=space_name,
        children=scan_children(
            directory,
            normalized,
            space_id=space_id,
            space_name=space_name,
            show_hidden=show_hidden,
        ),
    )


__all__ = [
    "DirectoryChild",
    "is_hidden_name",
    "list_directory_children",
    "scan_children",
    "build_space_tree",
    "build_subtree",
]

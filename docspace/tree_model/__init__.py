"""Domain model for space folder/document trees.

This package contains non-UI tree primitives:
- folder/document node datatypes (two-case tagged union) and wire payloads
- space-relative path helpers and sandbox resolution
- filesystem scanning into canonical, ordered trees
- lookup, path index, and path-copying subtree replacement
- stat indexes and signatures for poll-based change detection
"""

from __future__ import annotations

from .categories import category_for_name, file_extension
from .fs import (
    DirectoryChild,
    build_space_tree,
    build_subtree,
    is_hidden_name,
    list_directory_children,
    scan_children,
)
from .lookup import build_path_index, count_nodes, find_folder, find_node, iter_nodes, replace_children
from .paths import (
    ROOT_PATH,
    base_name,
    is_ancestor,
    join_path,
    normalize_path,
    parent_path,
    resolve_within_root,
)
from .types import (
    DOCUMENT,
    FOLDER,
    DocumentNode,
    FolderNode,
    NodeKind,
    TreeNode,
    node_from_payload,
    node_to_payload,
    sort_key,
    sort_nodes,
)
from .watch import (
    IndexChange,
    IndexEntry,
    build_index_signature,
    build_path_stat_index,
    diff_path_indexes,
)

__all__ = [
    "DOCUMENT",
    "FOLDER",
    "ROOT_PATH",
    "DirectoryChild",
    "DocumentNode",
    "FolderNode",
    "IndexChange",
    "IndexEntry",
    "NodeKind",
    "TreeNode",
    "base_name",
    "build_index_signature",
    "build_path_index",
    "build_path_stat_index",
    "build_space_tree",
    "build_subtree",
    "category_for_name",
    "count_nodes",
    "diff_path_indexes",
    "file_extension",
    "find_folder",
    "find_node",
    "is_ancestor",
    "is_hidden_name",
    "iter_nodes",
    "join_path",
    "list_directory_children",
    "node_from_payload",
    "node_to_payload",
    "normalize_path",
    "parent_path",
    "replace_children",
    "resolve_within_root",
    "scan_children",
    "sort_key",
    "sort_nodes",
]

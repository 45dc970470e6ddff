"""Filesystem change signatures and flat path indexes for poll-based watching.

A poll computes a flat ``{path: IndexEntry}`` index of one space directory and
a digest over it. Watchers compare digests to skip unchanged spaces and diff
indexes to turn a change into added/changed/deleted paths.
"""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from pathlib import Path

from .fs import is_hidden_name
from .paths import join_path, parent_path
from .types import DOCUMENT, FOLDER, NodeKind


@dataclass(frozen=True)
class IndexEntry:
    """Stat summary for one path in a space."""

    kind: NodeKind
    mtime_ns: int
    size: int


@dataclass(frozen=True)
class IndexChange:
    """One path-level difference between two indexes."""

    change: str
    kind: NodeKind
    path: str

    @property
    def parent_path(self) -> str:
        return parent_path(self.path)


def _update_digest(digest, token: str) -> None:
    """Append a token plus separator byte to a hash digest."""
    digest.update(token.encode("utf-8", errors="surrogateescape"))
    digest.update(b"\0")


def build_path_stat_index(root: Path, show_hidden: bool = False) -> dict[str, IndexEntry]:
    """Walk ``root`` and return stat metadata keyed by space-relative path.

    Unreadable directories are skipped; symlinked directories are indexed as
    documents and not descended into.
    """
    index: dict[str, IndexEntry] = {}
    if not root.is_dir():
        return index

    pending: list[tuple[Path, str]] = [(root, "")]
    while pending:
        directory, relative = pending.pop()
        try:
            with os.scandir(directory) as entries:
                for child in entries:
                    if not show_hidden and is_hidden_name(child.name):
                        continue
                    child_relative = join_path(relative, child.name)
                    try:
                        is_dir = child.is_dir(follow_symlinks=False)
                        st = child.stat(follow_symlinks=False)
                    except OSError:
                        continue
                    if is_dir:
                        index[child_relative] = IndexEntry(FOLDER, 0, 0)
                        pending.append((Path(child.path), child_relative))
                    else:
                        index[child_relative] = IndexEntry(DOCUMENT, int(st.st_mtime_ns), int(st.st_size))
        except OSError:
            continue
    return index


def build_index_signature(index: dict[str, IndexEntry]) -> str:
    """Digest over a path index; equal indexes produce equal signatures."""
    digest = hashlib.blake2b(digest_size=20)
    for path in sorted(index):
        entry = index[path]
        _update_digest(digest, f"{entry.kind}:{path}:{entry.mtime_ns}:{entry.size}")
    return digest.hexdigest()


def diff_path_indexes(
    previous: dict[str, IndexEntry],
    current: dict[str, IndexEntry],
) -> list[IndexChange]:
    """Compute added/changed/deleted paths between two indexes.

    Deletions of descendants of a deleted folder are folded into the folder's
    own deletion; additions under a new folder are reported individually so
    every new document gets its own event. A path whose kind flipped is
    reported as a deletion followed by an addition.
    """
    changes: list[IndexChange] = []

    deleted_folders: list[str] = []
    for path in sorted(previous):
        entry = previous[path]
        if path in current and current[path].kind == entry.kind:
            continue
        if any(path.startswith(folder + "/") for folder in deleted_folders):
            continue
        if entry.kind == FOLDER:
            deleted_folders.append(path)
        changes.append(IndexChange("deleted", entry.kind, path))

    for path in sorted(current):
        entry = current[path]
        old = previous.get(path)
        if old is None or old.kind != entry.kind:
            changes.append(IndexChange("added", entry.kind, path))
            continue
        if entry.kind == DOCUMENT and (old.mtime_ns != entry.mtime_ns or old.size != entry.size):
            changes.append(IndexChange("changed", entry.kind, path))

    return changes


__all__ = [
    "IndexEntry",
    "IndexChange",
    "build_path_stat_index",
    "build_index_signature",
    "diff_path_indexes",
]

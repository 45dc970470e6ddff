"""Space-relative POSIX path helpers.

Tree paths are plain strings relative to a space root; ``""`` is the root.
"""

from __future__ import annotations

from pathlib import Path

from ..errors import AccessDeniedError, ValidationError

ROOT_PATH = ""


def normalize_path(path: str | None) -> str:
    """Normalize a relative path: backslashes to ``/``, no empty or ``.`` segments.

    ``None`` and ``"/"`` normalize to the root. ``..`` segments are rejected
    with ``ValidationError`` since tree paths never climb.
    """
    if not path:
        return ROOT_PATH
    segments: list[str] = []
    for segment in str(path).replace("\\", "/").split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            raise ValidationError(f"path may not contain '..': {path!r}")
        segments.append(segment)
    return "/".join(segments)


def parent_path(path: str) -> str:
    """Return the path up to the last separator (root for top-level entries)."""
    normalized = normalize_path(path)
    if "/" not in normalized:
        return ROOT_PATH
    return normalized.rsplit("/", 1)[0]


def base_name(path: str) -> str:
    return normalize_path(path).rsplit("/", 1)[-1]


def join_path(parent: str, name: str) -> str:
    parent = normalize_path(parent)
    return f"{parent}/{name}" if parent else name


def split_path(path: str) -> list[str]:
    normalized = normalize_path(path)
    return normalized.split("/") if normalized else []


def is_ancestor(ancestor: str, path: str, *, inclusive: bool = True) -> bool:
    """Return whether ``ancestor`` contains ``path`` (the root contains everything)."""
    ancestor = normalize_path(ancestor)
    path = normalize_path(path)
    if ancestor == path:
        return inclusive
    if ancestor == ROOT_PATH:
        return True
    return path.startswith(ancestor + "/")


def resolve_within_root(root: Path, path: str) -> Path:
    """Map a space-relative path to an absolute path under ``root``.

    Raises ``AccessDeniedError`` when the resolved target (after following
    symlinks) falls outside the space directory.
    """
    root_resolved = root.resolve()
    normalized = normalize_path(path)
    target = root_resolved.joinpath(*normalized.split("/")) if normalized else root_resolved
    try:
        resolved = target.resolve()
    except OSError as exc:
        raise AccessDeniedError(f"cannot resolve path: {path!r}") from exc
    if resolved != root_resolved and not resolved.is_relative_to(root_resolved):
        raise AccessDeniedError(f"path escapes space directory: {path!r}")
    return target


__all__ = [
    "ROOT_PATH",
    "normalize_path",
    "parent_path",
    "base_name",
    "join_path",
    "split_path",
    "is_ancestor",
    "resolve_within_root",
]

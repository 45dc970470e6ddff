"""Error taxonomy shared by the server, the transports, and the client session."""

from __future__ import annotations


class DocspaceError(Exception):
    """Base error for workspace operations."""

    kind = "error"


class ValidationError(DocspaceError):
    """Input rejected before touching the store (bad name, root deletion, ...)."""

    kind = "validation"


class NotFoundError(DocspaceError):
    """Space or path does not exist (stale reference, concurrent delete)."""

    kind = "not_found"


class ConflictError(DocspaceError):
    """Target name already exists."""

    kind = "conflict"


class AccessDeniedError(DocspaceError):
    """Relative path escapes the space root."""

    kind = "access_denied"


class TransportError(DocspaceError):
    """Network failure, timeout, or unexpected server error.

    The operation is treated as not applied.
    """

    kind = "transport"


class SubtreeNotFoundError(DocspaceError):
    """Cache patch target does not resolve to a folder in the cached tree."""

    kind = "subtree_not_found"


ERROR_KINDS: dict[str, type[DocspaceError]] = {
    cls.kind: cls
    for cls in (ValidationError, NotFoundError, ConflictError, AccessDeniedError, TransportError)
}


def error_for_kind(kind: str, message: str) -> DocspaceError:
    """Rebuild a typed error from its wire ``kind``; unknown kinds become transport errors."""
    return ERROR_KINDS.get(kind, TransportError)(message)


__all__ = [
    "DocspaceError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "AccessDeniedError",
    "TransportError",
    "SubtreeNotFoundError",
    "ERROR_KINDS",
    "error_for_kind",
]

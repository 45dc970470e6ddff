"""Name validation for folders and documents.

Both the client session and the server service run these checks; the server
is authoritative. Every check runs before any store access.
"""

from __future__ import annotations

import re

from .errors import ValidationError

INVALID_CHARS = frozenset('<>:"|?*\\/')
INVALID_CHARS_MESSAGE = '< > : " | ? * \\ /'
MAX_NAME_LENGTH = 255

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _check_common(name: object, label: str) -> str:
    if not isinstance(name, str):
        raise ValidationError(f"{label} must be a string")
    trimmed = name.strip()
    if not trimmed:
        raise ValidationError(f"{label} cannot be empty")
    if any(ch in INVALID_CHARS for ch in trimmed):
        raise ValidationError(f"{label} cannot contain: {INVALID_CHARS_MESSAGE}")
    if any(ord(ch) < 32 for ch in trimmed):
        raise ValidationError(f"{label} cannot contain control characters")
    if trimmed in (".", ".."):
        raise ValidationError(f"{label} cannot be '.' or '..'")
    if len(trimmed) > MAX_NAME_LENGTH:
        raise ValidationError(f"{label} is too long (max {MAX_NAME_LENGTH} characters)")
    return trimmed


def validate_folder_name(name: object, *, allow_hidden: bool = False) -> str:
    """Return the trimmed folder name or raise ``ValidationError``.

    Leading dots are reserved for system folders unless ``allow_hidden``.
    """
    trimmed = _check_common(name, "Folder name")
    if not allow_hidden and trimmed.startswith("."):
        raise ValidationError("Folder name cannot start with a dot")
    return trimmed


def validate_file_name(name: object, *, require_extension: bool = True) -> str:
    """Return the trimmed file name or raise ``ValidationError``."""
    trimmed = _check_common(name, "File name")
    if require_extension:
        stem, dot, ext = trimmed.rpartition(".")
        if not dot or not stem or not ext:
            raise ValidationError("File name must have an extension")
    return trimmed


def validate_node_name(name: object, *, is_folder: bool) -> str:
    """Validate a rename target for either node kind.

    Renamed documents keep whatever extension the user typed, so the
    extension rule does not apply here.
    """
    if is_folder:
        return validate_folder_name(name)
    return validate_file_name(name, require_extension=False)


def validate_title(title: object) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Document title is required")
    return title.strip()


def document_file_name(title: str, default_extension: str = "md") -> str:
    """Derive a file name for a new document from its title.

    Titles that already look like file names (``intro.md``) are kept after
    validation; other titles are slugified and given ``default_extension``.
    """
    trimmed = validate_title(title)
    stem, dot, ext = trimmed.rpartition(".")
    if dot and stem and ext.isalnum() and not ext.isdigit():
        return validate_file_name(trimmed)
    slug = _SLUG_RE.sub("-", trimmed.lower()).strip("-")
    if not slug:
        raise ValidationError(f"Document title has no usable characters: {title!r}")
    return validate_file_name(f"{slug}.{default_extension}")


def upload_file_name(original_name: object) -> str:
    """Validate an uploaded file's name after dropping any client-side directories."""
    display = str(original_name or "")
    return validate_file_name(display.replace("\\", "/").rsplit("/", 1)[-1], require_extension=False)


__all__ = [
    "INVALID_CHARS",
    "INVALID_CHARS_MESSAGE",
    "MAX_NAME_LENGTH",
    "validate_folder_name",
    "validate_file_name",
    "validate_node_name",
    "validate_title",
    "document_file_name",
    "upload_file_name",
]

"""Document category detection from file names.

Well-known extensions map through a fixed table; anything else that Pygments
recognizes as a source language is classified as ``code``.
"""

from __future__ import annotations

from functools import lru_cache

from pygments.lexers import get_lexer_for_filename
from pygments.lexers.special import TextLexer
from pygments.util import ClassNotFound

CATEGORY_MARKDOWN = "markdown"
CATEGORY_IMAGE = "image"
CATEGORY_CODE = "code"
CATEGORY_PDF = "pdf"
CATEGORY_TEXT = "text"
CATEGORY_DATA = "data"
CATEGORY_OFFICE = "office"
CATEGORY_OTHER = "other"

_EXTENSION_CATEGORIES: dict[str, str] = {
    "md": CATEGORY_MARKDOWN,
    "markdown": CATEGORY_MARKDOWN,
    "pdf": CATEGORY_PDF,
    "txt": CATEGORY_TEXT,
    "log": CATEGORY_TEXT,
    "rst": CATEGORY_TEXT,
    "json": CATEGORY_DATA,
    "csv": CATEGORY_DATA,
    "tsv": CATEGORY_DATA,
    "xml": CATEGORY_DATA,
    "yaml": CATEGORY_DATA,
    "yml": CATEGORY_DATA,
    "toml": CATEGORY_DATA,
    "ini": CATEGORY_DATA,
    "cfg": CATEGORY_DATA,
    "conf": CATEGORY_DATA,
    "properties": CATEGORY_DATA,
    "dat": CATEGORY_DATA,
    "docx": CATEGORY_OFFICE,
    "xlsx": CATEGORY_OFFICE,
    "pptx": CATEGORY_OFFICE,
}
for _ext in ("png", "jpg", "jpeg", "gif", "svg", "webp", "bmp", "ico", "tif", "tiff"):
    _EXTENSION_CATEGORIES[_ext] = CATEGORY_IMAGE


def file_extension(name: str) -> str:
    """Return the lowercase extension without dot (``""`` for none or dotfiles)."""
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return ""
    return ext.lower()


@lru_cache(maxsize=512)
def _lexer_category(extension: str) -> str:
    try:
        lexer = get_lexer_for_filename(f"document.{extension}")
    except ClassNotFound:
        return CATEGORY_OTHER
    if isinstance(lexer, TextLexer):
        return CATEGORY_TEXT
    return CATEGORY_CODE


def category_for_name(name: str) -> str:
    """Classify a document name into one of the category constants."""
    extension = file_extension(name)
    if not extension:
        return CATEGORY_OTHER
    category = _EXTENSION_CATEGORIES.get(extension)
    if category is not None:
        return category
    return _lexer_category(extension)


__all__ = [
    "CATEGORY_MARKDOWN",
    "CATEGORY_IMAGE",
    "CATEGORY_CODE",
    "CATEGORY_PDF",
    "CATEGORY_TEXT",
    "CATEGORY_DATA",
    "CATEGORY_OFFICE",
    "CATEGORY_OTHER",
    "file_extension",
    "category_for_name",
]

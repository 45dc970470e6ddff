"""Document content store keyed by ``(space, path)``.

The tree engine treats content as opaque bytes/text; this store only provides
sandboxed reads and writes inside a space directory.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from .errors import ConflictError, NotFoundError
from .spaces import Space
from .tree_model.paths import normalize_path, resolve_within_root


class DocumentStore:
    """Read/write document bytes under each space root."""

    def path_for(self, space: Space, path: str) -> Path:
        return resolve_within_root(space.root, path)

    def exists(self, space: Space, path: str) -> bool:
        return self.path_for(space, path).exists()

    def read_bytes(self, space: Space, path: str) -> bytes:
        target = self.path_for(space, path)
        try:
            return target.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
            raise NotFoundError(f"document not found: {normalize_path(path)}") from exc

    def read_text(self, space: Space, path: str) -> str:
        return self.read_bytes(space, path).decode("utf-8", errors="replace")

    def write_bytes(self, space: Space, path: str, data: bytes, *, create_only: bool = False) -> Path:
        """Write ``data`` atomically (temp file + replace).

        With ``create_only`` an existing target raises ``ConflictError``; the
        check and the final link are done with ``os.link`` so two concurrent
        creators cannot both succeed.
        """
        target = self.path_for(space, path)
        if not target.parent.is_dir():
            raise NotFoundError(f"folder not found: {normalize_path(path).rpartition('/')[0]}")
        fd, tmp_name = tempfile.mkstemp(prefix=".docspace-", dir=target.parent)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            if create_only:
                try:
                    os.link(tmp_path, target)
                except FileExistsError as exc:
                    raise ConflictError(f"already exists: {normalize_path(path)}") from exc
            else:
                os.replace(tmp_path, target)
        finally:
            tmp_path.unlink(missing_ok=True)
        return target

    def write_text(self, space: Space, path: str, text: str, *, create_only: bool = False) -> Path:
        return self.write_bytes(space, path, text.encode("utf-8"), create_only=create_only)


__all__ = ["DocumentStore"]

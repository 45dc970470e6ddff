"""Space registry: maps space identity to its root directory.

Entries persist as ``spaces.json`` (``[{"id", "name", "path"}]``) under the
data directory.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path

from .errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MIN_SPACE_NAME = 1
MAX_SPACE_NAME = 50


@dataclass(frozen=True)
class Space:
    """One named document workspace backed by a directory."""

    id: int
    name: str
    root: Path

    def to_payload(self) -> dict[str, object]:
        return {"id": self.id, "name": self.name, "path": str(self.root)}


SpaceRef = int | str | Space


def _parse_entry(raw: object) -> Space | None:
    if not isinstance(raw, dict):
        return None
    space_id = raw.get("id")
    name = raw.get("name")
    path = raw.get("path")
    if isinstance(space_id, bool) or not isinstance(space_id, int):
        return None
    if not isinstance(name, str) or not name.strip():
        return None
    if not isinstance(path, str) or not path:
        return None
    return Space(id=space_id, name=name, root=Path(path).expanduser())


class SpaceRegistry:
    """Thread-safe space lookup backed by an optional JSON file."""

    def __init__(self, spaces_file: Path | None = None, documents_dir: Path | None = None) -> None:
        self._spaces_file = spaces_file
        self._documents_dir = documents_dir
        self._lock = threading.RLock()
        self._spaces: dict[int, Space] = {}
        if spaces_file is not None:
            self._load()

    def _load(self) -> None:
        assert self._spaces_file is not None
        try:
            data = json.loads(self._spaces_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, ValueError) as exc:
            logger.warning("could not read space registry %s: %s", self._spaces_file, exc)
            return
        if not isinstance(data, list):
            logger.warning("space registry %s is not a list, ignoring", self._spaces_file)
            return
        for raw in data:
            space = _parse_entry(raw)
            if space is None:
                logger.warning("skipping malformed space entry: %r", raw)
                continue
            self._spaces[space.id] = space

    def _save(self) -> None:
        if self._spaces_file is None:
            return
        payload = [
            {"id": space.id, "name": space.name, "path": str(space.root)}
            for space in sorted(self._spaces.values(), key=lambda item: item.id)
        ]
        self._spaces_file.parent.mkdir(parents=True, exist_ok=True)
        self._spaces_file.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    def list(self) -> list[Space]:
        with self._lock:
            return sorted(self._spaces.values(), key=lambda item: item.id)

    def add(self, name: str, root: Path | None = None) -> Space:
        """Register a space, creating its directory.

        Without ``root`` the space lives at ``<documents_dir>/<name>``.
        """
        trimmed = name.strip() if isinstance(name, str) else ""
        if not MIN_SPACE_NAME <= len(trimmed) <= MAX_SPACE_NAME:
            raise ValidationError(f"Space name must be {MIN_SPACE_NAME}-{MAX_SPACE_NAME} characters")
        if "/" in trimmed or "\\" in trimmed:
            raise ValidationError("Space name cannot contain path separators")
        with self._lock:
            if any(space.name == trimmed for space in self._spaces.values()):
                raise ConflictError(f"space already exists: {trimmed}")
            if root is None:
                if self._documents_dir is None:
                    raise ValidationError("a root directory is required for this registry")
                root = self._documents_dir / trimmed
            root = root.expanduser().resolve()
            root.mkdir(parents=True, exist_ok=True)
            space_id = max(self._spaces, default=0) + 1
            space = Space(id=space_id, name=trimmed, root=root)
            self._spaces[space_id] = space
            self._save()
        logger.info("registered space %s (%d) at %s", space.name, space.id, space.root)
        return space

    def remove(self, ref: SpaceRef) -> Space:
        """Unregister a space; its directory is left on disk."""
        with self._lock:
            space = self.get(ref)
            del self._spaces[space.id]
            self._save()
        return space

    def get(self, ref: SpaceRef) -> Space:
        """Resolve a space by id (int or numeric string), name, or instance.

        Raises ``NotFoundError`` for unknown spaces.
        """
        with self._lock:
            if isinstance(ref, Space):
                ref = ref.id
            if isinstance(ref, int) and not isinstance(ref, bool):
                space = self._spaces.get(ref)
                if space is not None:
                    return space
            elif isinstance(ref, str):
                stripped = ref.strip()
                if stripped.isdigit() and int(stripped) in self._spaces:
                    return self._spaces[int(stripped)]
                for space in self._spaces.values():
                    if space.name == stripped:
                        return space
        raise NotFoundError(f"Space not found: {ref!r}")


__all__ = ["Space", "SpaceRef", "SpaceRegistry"]

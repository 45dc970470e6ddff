"""Authoritative workspace operations against space directories.

Every mutation validates its input before touching the filesystem, runs under
a per-space lock, and publishes change events for connected clients. Results
are JSON-ready dicts in the wire shape the HTTP layer returns verbatim.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Any

from ..errors import ConflictError, NotFoundError, ValidationError
from ..spaces import Space, SpaceRef, SpaceRegistry
from ..store import DocumentStore
from ..tree_model.categories import category_for_name, file_extension
from ..tree_model.fs import build_subtree, is_hidden_name
from ..tree_model.paths import (
    ROOT_PATH,
    base_name,
    is_ancestor,
    join_path,
    normalize_path,
    parent_path,
    resolve_within_root,
)
from ..tree_model.types import DOCUMENT, FOLDER, DocumentNode, FolderNode, NodeKind, TreeNode, node_to_payload
from ..validation import (
    document_file_name,
    upload_file_name,
    validate_file_name,
    validate_folder_name,
    validate_node_name,
    validate_title,
)
from .events import SOURCE_API, ChangeHub, make_event

logger = logging.getLogger(__name__)

TEMPLATES_FOLDER = ".templates"
TEMPLATE_EXTENSION = ".md"


def _document_id(space: Space, path: str) -> str:
    return f"{space.id}:{path}"


class WorkspaceService:
    """Tree reads and CRUD mutations for every registered space."""

    def __init__(
        self,
        registry: SpaceRegistry,
        hub: ChangeHub | None = None,
        store: DocumentStore | None = None,
        *,
        show_hidden: bool = False,
    ) -> None:
        self.registry = registry
        self.hub = hub if hub is not None else ChangeHub()
        self.store = store if store is not None else DocumentStore()
        self.show_hidden = show_hidden
        self._locks_guard = threading.Lock()
        self._locks: dict[int, threading.RLock] = {}

    def _space_lock(self, space: Space) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(space.id)
            if lock is None:
                lock = threading.RLock()
                self._locks[space.id] = lock
            return lock

    def _publish(self, space: Space, kind: NodeKind, change: str, path: str) -> None:
        if not self.show_hidden and any(is_hidden_name(segment) for segment in path.split("/")):
            return
        self.hub.publish(make_event(space, kind, change, path, source=SOURCE_API))

    def _existing(self, space: Space, path: str) -> Path:
        target = resolve_within_root(space.root, path)
        if not os.path.lexists(target):
            raise NotFoundError(f"not found: {path}")
        return target

    def _folder_dir(self, space: Space, path: str) -> Path:
        """Resolve an existing folder, creating the space root on first use."""
        if path == ROOT_PATH:
            space.root.mkdir(parents=True, exist_ok=True)
            return space.root
        directory = resolve_within_root(space.root, path)
        if directory.is_symlink() or not directory.is_dir():
            raise NotFoundError(f"folder not found: {path}")
        return directory

    def _document_node(self, space: Space, path: str, target: Path) -> DocumentNode:
        name = base_name(path)
        try:
            st = target.stat()
            size: int | None = int(st.st_size)
            modified_at: int | None = int(st.st_mtime_ns)
        except OSError:
            size = None
            modified_at = None
        return DocumentNode(
            path=path,
            name=name,
            space_id=space.id,
            space_name=space.name,
            title=name,
            extension=file_extension(name),
            category=category_for_name(name),
            size=size,
            modified_at=modified_at,
        )

    def _node_at(self, space: Space, path: str) -> TreeNode:
        target = resolve_within_root(space.root, path)
        if target.is_dir() and not target.is_symlink():
            return build_subtree(
                space.root,
                path,
                space_id=space.id,
                space_name=space.name,
                show_hidden=self.show_hidden,
            )
        return self._document_node(space, path, target)

    # Reads

    def list_spaces(self) -> list[dict[str, Any]]:
        return [space.to_payload() for space in self.registry.list()]

    def get_tree(self, space_ref: SpaceRef, path: str = ROOT_PATH) -> dict[str, Any]:
        """Return the folder at ``path`` (root by default) with its full subtree.

        Hidden system folders are filtered out. Raises ``NotFoundError`` when
        ``path`` is not a visible folder.
        """
        space = self.registry.get(space_ref)
        folder = build_subtree(
            space.root,
            normalize_path(path),
            space_id=space.id,
            space_name=space.name,
            show_hidden=self.show_hidden,
        )
        return node_to_payload(folder)

    def list_templates(self, space_ref: SpaceRef) -> list[dict[str, Any]]:
        """List markdown templates stored in the space's ``.templates`` folder."""
        space = self.registry.get(space_ref)
        templates_dir = space.root / TEMPLATES_FOLDER
        if not templates_dir.is_dir():
            return []
        templates: list[dict[str, Any]] = []
        for entry in sorted(templates_dir.iterdir(), key=lambda item: item.name.casefold()):
            if not entry.is_file() or not entry.name.endswith(TEMPLATE_EXTENSION):
                continue
            template_id = entry.name[: -len(TEMPLATE_EXTENSION)]
            title = template_id
            try:
                first_line = entry.read_text(encoding="utf-8", errors="replace").split("\n", 1)[0]
            except OSError as exc:
                logger.warning("could not read template %s: %s", entry, exc)
                first_line = ""
            if first_line.startswith("# "):
                title = first_line[2:].strip() or template_id
            templates.append(
                {
                    "id": template_id,
                    "name": entry.name,
                    "title": title,
                    "path": join_path(TEMPLATES_FOLDER, entry.name),
                }
            )
        return templates

    def read_document(self, space_ref: SpaceRef, path: str) -> bytes:
        space = self.registry.get(space_ref)
        return self.store.read_bytes(space, normalize_path(path))

    # Mutations

    def create_folder(self, space_ref: SpaceRef, name: str, parent_path: str | None = ROOT_PATH) -> dict[str, Any]:
        """Create ``name`` inside ``parent_path``.

        Retrying with the same target reports ``ConflictError`` instead of
        creating a second folder.
        """
        folder_name = validate_folder_name(name)
        parent = normalize_path(parent_path)
        space = self.registry.get(space_ref)
        folder_path = join_path(parent, folder_name)
        with self._space_lock(space):
            self._folder_dir(space, parent)
            target = resolve_within_root(space.root, folder_path)
            try:
                target.mkdir()
            except FileExistsError as exc:
                raise ConflictError(f"A folder with that name already exists: {folder_path}") from exc
            except FileNotFoundError as exc:
                raise NotFoundError(f"folder not found: {parent}") from exc
            logger.info("created folder %s in space %s", folder_path, space.name)
            self._publish(space, FOLDER, "added", folder_path)
        folder = FolderNode(path=folder_path, name=folder_name, space_id=space.id, space_name=space.name)
        return {"success": True, "folder": node_to_payload(folder)}

    def _template_content(self, space: Space, template_id: str, title: str) -> str:
        template_name = template_id if template_id.endswith(TEMPLATE_EXTENSION) else template_id + TEMPLATE_EXTENSION
        validate_file_name(template_name)
        try:
            content = self.store.read_text(space, join_path(TEMPLATES_FOLDER, template_name))
        except NotFoundError as exc:
            raise NotFoundError(f"template not found: {template_id}") from exc
        return content.replace("{{title}}", title)

    def create_document(
        self,
        space_ref: SpaceRef,
        title: str,
        folder_path: str | None = ROOT_PATH,
        content: str | None = None,
        template_id: str | None = None,
    ) -> dict[str, Any]:
        """Create a document named after ``title`` inside ``folder_path``.

        Content defaults to the named template or a heading with the title.
        """
        clean_title = validate_title(title)
        file_name = document_file_name(clean_title)
        folder = normalize_path(folder_path)
        space = self.registry.get(space_ref)
        document_path = join_path(folder, file_name)
        with self._space_lock(space):
            self._folder_dir(space, folder)
            if content is None and template_id:
                content = self._template_content(space, template_id, clean_title)
            if content is None:
                content = f"# {clean_title}\n\n"
            target = self.store.write_text(space, document_path, content, create_only=True)
            logger.info("created document %s in space %s", document_path, space.name)
            self._publish(space, DOCUMENT, "added", document_path)
        node = self._document_node(space, document_path, target)
        return {
            "success": True,
            "documentId": _document_id(space, document_path),
            "path": document_path,
            "document": node_to_payload(node),
        }

    def save_document(self, space_ref: SpaceRef, path: str, content: bytes | str) -> dict[str, Any]:
        """Overwrite an existing document's content."""
        space = self.registry.get(space_ref)
        document_path = normalize_path(path)
        data = content.encode("utf-8") if isinstance(content, str) else content
        with self._space_lock(space):
            target = self._existing(space, document_path)
            if target.is_dir():
                raise ValidationError(f"not a document: {document_path}")
            self.store.write_bytes(space, document_path, data)
            self._publish(space, DOCUMENT, "changed", document_path)
        return {"success": True, "path": document_path}

    def upload(
        self,
        space_ref: SpaceRef,
        folder_path: str | None,
        files: list[tuple[str, bytes]],
    ) -> dict[str, Any]:
        """Store uploaded payloads in ``folder_path``; one result entry per file.

        A file whose name is invalid or already taken gets a failed entry and
        the rest still upload. ``success`` is true only when every file did.
        """
        if not files:
            raise ValidationError("no files to upload")
        folder = normalize_path(folder_path)
        space = self.registry.get(space_ref)
        results: list[dict[str, Any]] = []
        with self._space_lock(space):
            self._folder_dir(space, folder)
            for original_name, data in files:
                display = str(original_name or "")
                try:
                    name = upload_file_name(display)
                    document_path = join_path(folder, name)
                    target = self.store.write_bytes(space, document_path, data, create_only=True)
                except (ValidationError, ConflictError) as exc:
                    logger.info("upload of %r to %s rejected: %s", display, folder or "/", exc)
                    results.append({"name": display, "success": False, "error": exc.kind, "message": str(exc)})
                    continue
                self._publish(space, DOCUMENT, "added", document_path)
                results.append(
                    {
                        "name": name,
                        "success": True,
                        "path": document_path,
                        "document": node_to_payload(self._document_node(space, document_path, target)),
                    }
                )
        logger.info("uploaded %d/%d file(s) to %s in space %s",
                    sum(1 for item in results if item["success"]), len(results), folder or "/", space.name)
        return {"success": all(item["success"] for item in results), "results": results}

    def rename(self, space_ref: SpaceRef, old_path: str, new_name: str) -> dict[str, Any]:
        """Rename a folder or document in place (same parent)."""
        source_path = normalize_path(old_path)
        if source_path == ROOT_PATH:
            raise ValidationError("the space root cannot be renamed")
        space = self.registry.get(space_ref)
        with self._space_lock(space):
            source = self._existing(space, source_path)
            is_folder = source.is_dir() and not source.is_symlink()
            name = validate_node_name(new_name, is_folder=is_folder)
            new_path = join_path(parent_path(source_path), name)
            if new_path != source_path:
                target = resolve_within_root(space.root, new_path)
                if os.path.lexists(target) and not _same_entry(source, target):
                    raise ConflictError(f"A {'folder' if is_folder else 'document'} with that name already exists")
                try:
                    os.rename(source, target)
                except FileNotFoundError as exc:
                    raise NotFoundError(f"not found: {source_path}") from exc
                logger.info("renamed %s to %s in space %s", source_path, new_path, space.name)
                kind = FOLDER if is_folder else DOCUMENT
                self._publish(space, kind, "deleted", source_path)
                self._publish(space, kind, "added", new_path)
            node = self._node_at(space, new_path)
        return {"success": True, "oldPath": source_path, "newPath": new_path, "node": node_to_payload(node)}

    def delete(self, space_ref: SpaceRef, path: str) -> dict[str, Any]:
        """Delete a document or a folder with all its contents."""
        target_path = normalize_path(path)
        if target_path == ROOT_PATH:
            raise ValidationError("the space root cannot be deleted")
        space = self.registry.get(space_ref)
        with self._space_lock(space):
            target = self._existing(space, target_path)
            is_folder = target.is_dir() and not target.is_symlink()
            try:
                if is_folder:
                    shutil.rmtree(target)
                else:
                    target.unlink()
            except FileNotFoundError as exc:
                raise NotFoundError(f"not found: {target_path}") from exc
            logger.info("deleted %s %s in space %s", "folder" if is_folder else "document", target_path, space.name)
            self._publish(space, FOLDER if is_folder else DOCUMENT, "deleted", target_path)
        return {"success": True, "path": target_path}

    def move(self, space_ref: SpaceRef, source_path: str, target_folder: str | None) -> dict[str, Any]:
        """Move a node into another folder, keeping its name."""
        source_rel = normalize_path(source_path)
        target_rel = normalize_path(target_folder)
        if source_rel == ROOT_PATH:
            raise ValidationError("the space root cannot be moved")
        new_path = join_path(target_rel, base_name(source_rel))
        if new_path == source_rel:
            raise ValidationError("Source and destination are the same")
        space = self.registry.get(space_ref)
        with self._space_lock(space):
            source = self._existing(space, source_rel)
            is_folder = source.is_dir() and not source.is_symlink()
            if is_folder and is_ancestor(source_rel, target_rel):
                raise ValidationError("Cannot move a folder into itself or its subdirectories")
            self._folder_dir(space, target_rel)
            destination = resolve_within_root(space.root, new_path)
            if os.path.lexists(destination):
                raise ConflictError(f"already exists: {new_path}")
            try:
                os.rename(source, destination)
            except FileNotFoundError as exc:
                raise NotFoundError(f"not found: {source_rel}") from exc
            logger.info("moved %s to %s in space %s", source_rel, new_path, space.name)
            kind = FOLDER if is_folder else DOCUMENT
            self._publish(space, kind, "deleted", source_rel)
            self._publish(space, kind, "added", new_path)
        return {"success": True, "oldPath": source_rel, "newPath": new_path}


def _same_entry(source: Path, target: Path) -> bool:
    """True when ``target`` is ``source`` under a case-insensitive filesystem."""
    try:
        return os.path.samefile(source, target)
    except OSError:
        return False


__all__ = ["TEMPLATES_FOLDER", "WorkspaceService"]

"""Client session: one selected space, its tree cache, and reconciliation.

Every mutation and every push event ends in the same ``reconcile(path)``
routine: re-fetch the affected folder from the server and patch it into the
cache. Anything that cannot be patched falls back to a full ``refresh()``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from ..errors import DocspaceError, NotFoundError, SubtreeNotFoundError, TransportError, ValidationError
from ..server.events import FILE_CHANGED, ChangeEvent
from ..tree_model.paths import ROOT_PATH, base_name, is_ancestor, join_path, normalize_path, parent_path
from ..tree_model.lookup import count_nodes
from ..tree_model.types import FolderNode, node_from_payload
from ..validation import upload_file_name, validate_folder_name, validate_node_name, validate_title
from .cache import CacheChange, TreeCache
from .transport import Transport

logger = logging.getLogger(__name__)

Notify = Callable[[str, str], None]
PathCallback = Callable[[str], None]


def _folder_from_payload(payload: dict[str, Any]) -> FolderNode:
    node = node_from_payload(payload)
    if not isinstance(node, FolderNode):
        raise TransportError(f"expected a folder payload, got {node.kind}")
    return node


class WorkspaceSession:
    """Keeps a ``TreeCache`` in step with the server for one space at a time."""

    def __init__(
        self,
        transport: Transport,
        cache: TreeCache | None = None,
        *,
        notify: Notify | None = None,
        on_navigate_away: PathCallback | None = None,
        on_document_changed: PathCallback | None = None,
    ) -> None:
        self.transport = transport
        self.cache = cache if cache is not None else TreeCache()
        self.notify = notify
        self.on_navigate_away = on_navigate_away
        self.on_document_changed = on_document_changed
        self._lock = threading.RLock()
        self.space_id: int | None = None
        self.space_name: str = ""
        self.open_path: str | None = None
        self.stale = False

    # Notifications

    def _notify(self, level: str, message: str) -> None:
        if self.notify is not None:
            self.notify(level, message)

    def _navigate_away(self, path: str) -> None:
        logger.info("open document %s is gone, navigating away", path)
        self.open_path = None
        if self.on_navigate_away is not None:
            self.on_navigate_away(path)

    def _require_space(self) -> int:
        space_id = self.space_id
        if space_id is None:
            raise ValidationError("no space selected")
        return space_id

    # Loading

    def select_space(self, space_ref: int | str) -> FolderNode:
        """Switch to ``space_ref`` (id or name) and load its full tree.

        The previous space's cache is discarded before the new tree arrives.
        """
        spaces = self._call(self.transport.list_spaces)
        match = None
        for space in spaces:
            if space.get("id") == space_ref or space.get("name") == space_ref:
                match = space
                break
            if isinstance(space_ref, str) and space_ref.isdigit() and space.get("id") == int(space_ref):
                match = space
                break
        if match is None:
            raise NotFoundError(f"Space not found: {space_ref!r}")
        with self._lock:
            self.cache.clear()
            self.space_id = int(match["id"])
            self.space_name = str(match.get("name") or "")
            self.open_path = None
            self.stale = False
        logger.info("selected space %s (%d)", self.space_name, self.space_id)
        tree = self.refresh()
        assert tree is not None
        return tree

    def close(self) -> None:
        """Drop the selected space and its cached tree."""
        with self._lock:
            self.space_id = None
            self.space_name = ""
            self.open_path = None
            self.stale = False
            self.cache.clear()

    def refresh(self) -> FolderNode | None:
        """Replace the whole cache with a fresh server tree."""
        space_id = self.space_id
        if space_id is None:
            return None
        payload = self.transport.get_tree(space_id)
        tree = _folder_from_payload(payload)
        with self._lock:
            if self.space_id != space_id:
                logger.debug("discarding tree of space %d after a space switch", space_id)
                return self.cache.root
            self.cache.replace_all(tree)
            self.stale = False
            if self.open_path is not None and not self.cache.contains(self.open_path):
                self._navigate_away(self.open_path)
        logger.debug("refreshed space %s (%d folders, %d documents)", self.space_name, *count_nodes(tree))
        return tree

    def reconcile(self, path: str) -> CacheChange | None:
        """Re-fetch the folder at ``path`` and patch its children into the cache.

        Falls back to ``refresh()`` when the folder is no longer in the cache,
        no longer exists on the server, or the cache was marked stale.
        """
        folder_path = normalize_path(path)
        space_id = self._require_space()
        if self.cache.root is None or self.stale:
            self.refresh()
            return None
        try:
            fresh = _folder_from_payload(self.transport.get_tree(space_id, folder_path))
        except NotFoundError:
            logger.info("folder %r vanished on the server, refreshing", folder_path)
            self.refresh()
            return None
        with self._lock:
            if self.space_id != space_id:
                return None
            try:
                change = self.cache.replace_subtree(folder_path, fresh.children)
            except SubtreeNotFoundError:
                logger.info("folder %r not in cache, refreshing", folder_path)
                change = None
                fallback = True
            else:
                fallback = False
            if not fallback and self.open_path is not None and not self.cache.contains(self.open_path):
                self._navigate_away(self.open_path)
        if fallback:
            self.refresh()
        return change

    def _reconcile_all(self, *paths: str) -> None:
        for path in dict.fromkeys(paths):
            self.reconcile(path)

    def _reconcile_after(self, *paths: str) -> None:
        """Patch the cache after a mutation the server has already applied.

        A failed re-fetch must not make the mutation look failed. The cache
        is marked stale instead, and the next reconcile or push reconnect
        replaces it with a full refresh.
        """
        try:
            self._reconcile_all(*paths)
        except DocspaceError as exc:
            logger.warning("re-fetch after mutation failed, marking cache stale: %s", exc)
            self.stale = True
            self._notify("warning", f"Saved, but the tree could not be updated: {exc}")

    def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a transport call with the shared failure handling."""
        try:
            return func(*args, **kwargs)
        except NotFoundError as exc:
            self._notify("warning", str(exc))
            if self.space_id is not None:
                try:
                    self.refresh()
                except DocspaceError as refresh_exc:
                    logger.warning("refresh after not-found failed: %s", refresh_exc)
            raise
        except TransportError as exc:
            self._notify("error", f"Server unreachable: {exc}")
            raise
        except DocspaceError as exc:
            self._notify("warning", str(exc))
            raise

    # Documents

    def open_document(self, path: str) -> bytes:
        """Read a document and remember it as the open one."""
        space_id = self._require_space()
        document_path = normalize_path(path)
        data = self._call(self.transport.read_document, space_id, document_path)
        self.open_path = document_path
        return data

    def save_document(self, path: str, content: str) -> dict[str, Any]:
        space_id = self._require_space()
        return self._call(self.transport.save_document, space_id, normalize_path(path), content)

    def list_templates(self) -> list[dict[str, Any]]:
        return self._call(self.transport.list_templates, self._require_space())

    # Mutations

    def create_folder(self, name: str, parent: str = ROOT_PATH) -> dict[str, Any]:
        folder_name = validate_folder_name(name)
        parent_folder = normalize_path(parent)
        space_id = self._require_space()
        result = self._call(self.transport.create_folder, space_id, folder_name, parent_folder)
        self._reconcile_after(parent_folder)
        return result

    def create_document(
        self,
        title: str,
        folder: str = ROOT_PATH,
        *,
        content: str | None = None,
        template_id: str | None = None,
    ) -> dict[str, Any]:
        clean_title = validate_title(title)
        folder_path = normalize_path(folder)
        space_id = self._require_space()
        result = self._call(
            self.transport.create_document,
            space_id,
            clean_title,
            folder_path,
            content=content,
            template_id=template_id,
        )
        self._reconcile_after(folder_path)
        return result

    def upload(self, folder: str, files: list[tuple[str, bytes]]) -> dict[str, Any]:
        if not files:
            raise ValidationError("no files to upload")
        for name, _data in files:
            upload_file_name(name)
        folder_path = normalize_path(folder)
        space_id = self._require_space()
        result = self._call(self.transport.upload, space_id, folder_path, files)
        failed = [item for item in result.get("results", []) if not item.get("success")]
        if failed:
            names = ", ".join(str(item.get("name")) for item in failed)
            self._notify("warning", f"{len(failed)} file(s) not uploaded: {names}")
        self._reconcile_after(folder_path)
        return result

    def rename(self, path: str, new_name: str) -> dict[str, Any]:
        old_path = normalize_path(path)
        if old_path == ROOT_PATH:
            raise ValidationError("the space root cannot be renamed")
        node = self.cache.find(old_path)
        name = validate_node_name(new_name, is_folder=isinstance(node, FolderNode))
        space_id = self._require_space()
        result = self._call(self.transport.rename, space_id, old_path, name)
        new_path = str(result.get("newPath") or join_path(parent_path(old_path), name))
        self._remap_open_document(old_path, new_path)
        self._reconcile_after(parent_path(old_path), parent_path(new_path))
        return result

    def delete(self, path: str) -> dict[str, Any]:
        target = normalize_path(path)
        if target == ROOT_PATH:
            raise ValidationError("the space root cannot be deleted")
        space_id = self._require_space()
        result = self._call(self.transport.delete, space_id, target)
        if self.open_path is not None and is_ancestor(target, self.open_path):
            self._navigate_away(self.open_path)
        self._reconcile_after(parent_path(target))
        return result

    def move(self, path: str, target_folder: str) -> dict[str, Any]:
        source = normalize_path(path)
        destination = normalize_path(target_folder)
        if source == ROOT_PATH:
            raise ValidationError("the space root cannot be moved")
        if join_path(destination, base_name(source)) == source:
            raise ValidationError("Source and destination are the same")
        if isinstance(self.cache.find(source), FolderNode) and is_ancestor(source, destination):
            raise ValidationError("Cannot move a folder into itself or its subdirectories")
        space_id = self._require_space()
        result = self._call(self.transport.move, space_id, source, destination)
        new_path = str(result.get("newPath") or join_path(destination, base_name(source)))
        self._remap_open_document(source, new_path)
        self._reconcile_after(parent_path(source), destination)
        return result

    def _remap_open_document(self, old_path: str, new_path: str) -> None:
        open_path = self.open_path
        if open_path is None or not is_ancestor(old_path, open_path):
            return
        self.open_path = new_path + open_path[len(old_path):]
        logger.debug("open document moved from %s to %s", open_path, self.open_path)

    # Push events

    def handle_event(self, payload: dict[str, Any] | ChangeEvent) -> CacheChange | None:
        """Apply one pushed change event to the cache.

        Events for other spaces, or whose parent folder is not cached, are
        dropped. Duplicates converge because reconciliation is idempotent.
        """
        try:
            event = payload if isinstance(payload, ChangeEvent) else ChangeEvent.from_payload(payload)
        except ValueError as exc:
            logger.warning("ignoring malformed event: %s", exc)
            return None
        if self.space_id is None or event.space_id != self.space_id:
            logger.debug("ignoring %s for space %s", event.type, event.space_name)
            return None
        if event.type == FILE_CHANGED and event.path == self.open_path and self.on_document_changed is not None:
            self.on_document_changed(event.path)
        parent = event.parent_path
        if self.cache.find(parent) is None:
            logger.debug("dropping %s for %s, parent not cached", event.type, event.path)
            return None
        return self.reconcile(parent)


__all__ = ["WorkspaceSession"]

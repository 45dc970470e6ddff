"""Resolve which folder a user action applies to, and dispatch it.

``ROOT`` (the empty path) and ``None`` are different answers: ``ROOT`` means
"the space root", ``None`` means "no valid target, the action is disabled".
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import NotFoundError, ValidationError
from ..tree_model.paths import ROOT_PATH, normalize_path, parent_path
from ..tree_model.types import DocumentNode, FolderNode
from .cache import TreeCache
from .session import WorkspaceSession

logger = logging.getLogger(__name__)

ROOT = ROOT_PATH

NEW_FOLDER = "new-folder"
NEW_DOCUMENT = "new-document"
UPLOAD = "upload"
RENAME = "rename"
DELETE = "delete"
MOVE = "move"

CREATE_ACTIONS = frozenset({NEW_FOLDER, NEW_DOCUMENT, UPLOAD})
NODE_ACTIONS = frozenset({RENAME, DELETE, MOVE})
ACTIONS = CREATE_ACTIONS | NODE_ACTIONS


def create_target_for(cache: TreeCache, node_path: str | None) -> str | None:
    """Folder that a create action started from ``node_path`` writes into.

    ``None`` for ``node_path`` is a header action and targets ``ROOT``. A
    folder targets itself, a document its parent, and a path that is no
    longer cached has no target.
    """
    if cache.root is None:
        return None
    if node_path is None:
        return ROOT
    match cache.find(node_path):
        case FolderNode(path=path):
            return path
        case DocumentNode(path=path):
            return parent_path(path)
        case _:
            return None


def available_actions(cache: TreeCache, node_path: str | None) -> frozenset[str]:
    """Actions enabled for a node (or the header when ``node_path`` is None)."""
    if create_target_for(cache, node_path) is None:
        return frozenset()
    if node_path is None or normalize_path(node_path) == ROOT:
        return CREATE_ACTIONS
    return ACTIONS


class ActionTargeting:
    """Revalidates targets against the session's cache before each action."""

    def __init__(self, session: WorkspaceSession) -> None:
        self.session = session

    @property
    def cache(self) -> TreeCache:
        return self.session.cache

    def _stale(self, path: str) -> NotFoundError:
        logger.info("target %r is stale, refreshing", path)
        self.session.refresh()
        return NotFoundError(f"'{path}' no longer exists")

    def dispatch(self, action: str, node_path: str | None = None, **params: Any) -> Any:
        """Run ``action`` against ``node_path`` after checking it still exists.

        Parameters per action: ``name`` (new-folder), ``title`` plus optional
        ``content``/``template_id`` (new-document), ``files`` (upload),
        ``new_name`` (rename), ``target_folder`` (move).
        """
        if action not in ACTIONS:
            raise ValidationError(f"unknown action: {action}")
        target = create_target_for(self.cache, node_path)
        if target is None:
            if self.cache.root is None:
                raise ValidationError("no space selected")
            raise self._stale(str(node_path))
        if action not in available_actions(self.cache, node_path):
            raise ValidationError(f"{action} is not available for the space root")

        if action == NEW_FOLDER:
            return self.session.create_folder(params["name"], target)
        if action == NEW_DOCUMENT:
            return self.session.create_document(
                params["title"],
                target,
                content=params.get("content"),
                template_id=params.get("template_id"),
            )
        if action == UPLOAD:
            return self.session.upload(target, params["files"])

        assert node_path is not None
        if action == RENAME:
            return self.session.rename(node_path, params["new_name"])
        if action == DELETE:
            return self.session.delete(node_path)
        destination = normalize_path(params["target_folder"])
        if not isinstance(self.cache.find(destination), FolderNode):
            raise self._stale(destination)
        return self.session.move(node_path, destination)


__all__ = [
    "ACTIONS",
    "CREATE_ACTIONS",
    "DELETE",
    "MOVE",
    "NEW_DOCUMENT",
    "NEW_FOLDER",
    "NODE_ACTIONS",
    "RENAME",
    "ROOT",
    "UPLOAD",
    "ActionTargeting",
    "available_actions",
    "create_target_for",
]

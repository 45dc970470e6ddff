"""Authoritative side: workspace service, change hub, watcher, HTTP API."""

from __future__ import annotations

from .events import ChangeEvent, ChangeHub, Subscription, make_event
from .http import WorkspaceHTTPServer, make_server
from .service import WorkspaceService
from .watcher import SpaceWatcher

__all__ = [
    "ChangeEvent",
    "ChangeHub",
    "SpaceWatcher",
    "Subscription",
    "WorkspaceHTTPServer",
    "WorkspaceService",
    "make_event",
    "make_server",
]

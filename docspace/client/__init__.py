"""Client side of the tree engine: cache, session, transports, push, targeting."""

from __future__ import annotations

from .cache import CacheChange, TreeCache
from .push import PushListener, backoff_delay
from .session import WorkspaceSession
from .targeting import ROOT, ActionTargeting, available_actions, create_target_for
from .transport import HttpTransport, LocalTransport, Transport

__all__ = [
    "ROOT",
    "ActionTargeting",
    "CacheChange",
    "HttpTransport",
    "LocalTransport",
    "PushListener",
    "Transport",
    "TreeCache",
    "WorkspaceSession",
    "available_actions",
    "backoff_delay",
    "create_target_for",
]

"""Change events and the in-process one-to-many push hub.

Each subscriber owns a FIFO queue, so events for one path reach a subscriber
in publish order. There is no ordering across subscribers.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any

from ..spaces import Space
from ..tree_model.paths import base_name, normalize_path, parent_path
from ..tree_model.types import DOCUMENT, FOLDER, NodeKind

logger = logging.getLogger(__name__)

FILE_ADDED = "file:added"
FILE_CHANGED = "file:changed"
FILE_DELETED = "file:deleted"
FOLDER_ADDED = "folder:added"
FOLDER_DELETED = "folder:deleted"

EVENT_TYPES = frozenset({FILE_ADDED, FILE_CHANGED, FILE_DELETED, FOLDER_ADDED, FOLDER_DELETED})

SOURCE_API = "api"
SOURCE_WATCHER = "watcher"

_EVENT_BY_CHANGE: dict[tuple[NodeKind, str], str] = {
    (DOCUMENT, "added"): FILE_ADDED,
    (DOCUMENT, "changed"): FILE_CHANGED,
    (DOCUMENT, "deleted"): FILE_DELETED,
    (FOLDER, "added"): FOLDER_ADDED,
    (FOLDER, "deleted"): FOLDER_DELETED,
}


@dataclass(frozen=True)
class ChangeEvent:
    """One tree change in a space, as pushed to clients."""

    type: str
    space_id: int
    space_name: str
    path: str
    source: str = SOURCE_API

    @property
    def name(self) -> str:
        return base_name(self.path)

    @property
    def parent_path(self) -> str:
        return parent_path(self.path)

    @property
    def is_folder(self) -> bool:
        return self.type.startswith("folder:")

    def to_payload(self) -> dict[str, Any]:
        node_key = "folder" if self.is_folder else "file"
        return {
            "type": self.type,
            "space": {"id": self.space_id, "name": self.space_name},
            node_key: {
                "name": self.name,
                "path": self.path,
                "parentPath": self.parent_path,
            },
            "source": self.source,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ChangeEvent":
        """Parse a wire payload; raises ``ValueError`` when it is malformed."""
        event_type = payload.get("type")
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown event type: {event_type!r}")
        space = payload.get("space")
        node = payload.get("folder" if str(event_type).startswith("folder:") else "file")
        if not isinstance(space, dict) or not isinstance(node, dict):
            raise ValueError("event payload missing space or node")
        space_id = space.get("id")
        if isinstance(space_id, bool) or not isinstance(space_id, int):
            raise ValueError(f"invalid space id: {space_id!r}")
        path = node.get("path")
        if not isinstance(path, str) or not path:
            raise ValueError("event payload missing node path")
        return cls(
            type=str(event_type),
            space_id=space_id,
            space_name=str(space.get("name") or ""),
            path=normalize_path(path),
            source=str(payload.get("source") or SOURCE_API),
        )


def make_event(space: Space, kind: NodeKind, change: str, path: str, source: str = SOURCE_API) -> ChangeEvent:
    """Build an event from a node kind and ``added``/``changed``/``deleted``."""
    event_type = _EVENT_BY_CHANGE.get((kind, change))
    if event_type is None:
        raise ValueError(f"no event for {kind} {change}")
    return ChangeEvent(
        type=event_type,
        space_id=space.id,
        space_name=space.name,
        path=normalize_path(path),
        source=source,
    )


class Subscription:
    """A subscriber's bounded event queue.

    When the queue is full the oldest event is dropped and ``lagged`` is set;
    consumers treat a lagged subscription like a reconnect and re-sync.
    """

    def __init__(self, hub: "ChangeHub", max_size: int) -> None:
        self._hub = hub
        self._max_size = max_size
        self._events: deque[ChangeEvent] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self.lagged = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, event: ChangeEvent) -> None:
        with self._cond:
            if self._closed:
                return
            if len(self._events) >= self._max_size:
                self._events.popleft()
                if not self.lagged:
                    logger.warning("subscriber queue full, dropping oldest events")
                self.lagged = True
            self._events.append(event)
            self._cond.notify()

    def get(self, timeout: float | None = None) -> ChangeEvent | None:
        """Pop the next event, waiting up to ``timeout``; ``None`` on timeout or close."""
        with self._cond:
            if not self._events and not self._closed:
                self._cond.wait(timeout)
            if self._events:
                return self._events.popleft()
            return None

    def drain(self) -> list[ChangeEvent]:
        with self._cond:
            out = list(self._events)
            self._events.clear()
            return out

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()
        self._hub._discard(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()


class ChangeHub:
    """Fan-out of change events to every live subscription."""

    def __init__(self, max_queue_size: int = 1024) -> None:
        self._max_queue_size = max(1, max_queue_size)
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self._max_queue_size)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def _discard(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            targets = list(self._subscriptions)
        logger.debug("publish %s %s/%s to %d subscriber(s)", event.type, event.space_name, event.path, len(targets))
        for subscription in targets:
            subscription._push(event)

    def close(self) -> None:
        with self._lock:
            targets = list(self._subscriptions)
        for subscription in targets:
            subscription.close()


__all__ = [
    "FILE_ADDED",
    "FILE_CHANGED",
    "FILE_DELETED",
    "FOLDER_ADDED",
    "FOLDER_DELETED",
    "EVENT_TYPES",
    "SOURCE_API",
    "SOURCE_WATCHER",
    "ChangeEvent",
    "ChangeHub",
    "Subscription",
    "make_event",
]

"""Poll-based watcher that turns out-of-band filesystem changes into events.

Each poll builds a stat index per registered space, compares its signature
with the previous poll, and on a difference publishes one event per added,
changed, or deleted path. Changes made through the service are observed here
too; clients tolerate the duplicates because reconciliation is idempotent.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..spaces import Space, SpaceRegistry
from ..tree_model.watch import (
    IndexChange,
    IndexEntry,
    build_index_signature,
    build_path_stat_index,
    diff_path_indexes,
)
from .events import SOURCE_WATCHER, ChangeHub, make_event

logger = logging.getLogger(__name__)


@dataclass
class _SpaceWatchState:
    signature: str
    index: dict[str, IndexEntry]


class SpaceWatcher:
    """Background poller for every space in a registry."""

    def __init__(
        self,
        registry: SpaceRegistry,
        hub: ChangeHub,
        *,
        poll_seconds: float = 1.0,
        show_hidden: bool = False,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._hub = hub
        self._poll_seconds = poll_seconds
        self._show_hidden = show_hidden
        self._monotonic = monotonic
        self._states: dict[int, _SpaceWatchState] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def poll_space(self, space: Space) -> list[IndexChange]:
        """Scan one space and publish events for changes since the last poll.

        The first poll of a space only records a baseline.
        """
        index = build_path_stat_index(space.root, self._show_hidden)
        signature = build_index_signature(index)
        state = self._states.get(space.id)
        if state is None:
            self._states[space.id] = _SpaceWatchState(signature=signature, index=index)
            return []
        if signature == state.signature:
            return []

        changes = diff_path_indexes(state.index, index)
        self._states[space.id] = _SpaceWatchState(signature=signature, index=index)
        for change in changes:
            logger.info("%s %s %s in space %s", change.kind, change.change, change.path, space.name)
            self._hub.publish(make_event(space, change.kind, change.change, change.path, source=SOURCE_WATCHER))
        return changes

    def poll_once(self) -> list[IndexChange]:
        """Poll every registered space; forget state of removed spaces."""
        spaces = self._registry.list()
        live_ids = {space.id for space in spaces}
        for space_id in list(self._states):
            if space_id not in live_ids:
                del self._states[space_id]
        changes: list[IndexChange] = []
        for space in spaces:
            try:
                changes.extend(self.poll_space(space))
            except OSError as exc:
                logger.warning("watch poll failed for space %s: %s", space.name, exc)
        return changes

    def _run(self) -> None:
        logger.info("file watcher started, polling every %.2fs", self._poll_seconds)
        while not self._stop.is_set():
            started = self._monotonic()
            self.poll_once()
            elapsed = self._monotonic() - started
            self._stop.wait(max(0.0, self._poll_seconds - elapsed))
        logger.info("file watcher stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self.poll_once()
        self._thread = threading.Thread(target=self._run, name="docspace-watcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 2.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None


__all__ = ["SpaceWatcher"]

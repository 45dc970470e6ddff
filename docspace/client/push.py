"""Background consumer of the server's change event stream."""

from __future__ import annotations

import logging
import threading

from ..config import Settings
from ..errors import DocspaceError
from .session import WorkspaceSession

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base: float = 0.5, maximum: float = 30.0, factor: float = 2.0) -> float:
    """Delay before reconnect ``attempt`` (0-based), capped at ``maximum``."""
    return min(maximum, base * factor ** max(0, attempt))


class PushListener:
    """Feeds pushed events into a session and reconnects when the stream drops.

    Every successful (re)connect is followed by ``session.refresh()`` so
    events missed while disconnected cannot leave the cache stale.
    """

    def __init__(
        self,
        session: WorkspaceSession,
        *,
        base_delay: float = 0.5,
        max_delay: float = 30.0,
        factor: float = 2.0,
    ) -> None:
        self.session = session
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.factor = factor
        self.connected = threading.Event()
        self.connections = 0
        self._stop = threading.Event()
        self._stream_lock = threading.Lock()
        self._stream = None
        self._thread: threading.Thread | None = None

    @classmethod
    def from_settings(cls, session: WorkspaceSession, settings: Settings) -> "PushListener":
        return cls(session, base_delay=settings.reconnect_base_seconds, max_delay=settings.reconnect_max_seconds)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="docspace-push", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 2.0) -> None:
        self._stop.set()
        with self._stream_lock:
            stream = self._stream
        if stream is not None:
            stream.close()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        attempt = 0
        while not self._stop.is_set():
            try:
                stream = self.session.transport.open_events()
            except DocspaceError as exc:
                delay = backoff_delay(attempt, self.base_delay, self.max_delay, self.factor)
                logger.warning("event stream unavailable (%s), retrying in %.1fs", exc, delay)
                attempt += 1
                self._stop.wait(delay)
                continue

            with self._stream_lock:
                self._stream = stream
            attempt = 0
            self.connections += 1
            self.connected.set()
            logger.info("event stream connected")
            try:
                self.session.refresh()
                for payload in stream:
                    if self._stop.is_set():
                        break
                    try:
                        self.session.handle_event(payload)
                    except DocspaceError as exc:
                        logger.warning("could not apply %s: %s", payload.get("type"), exc)
            except DocspaceError as exc:
                if not self._stop.is_set():
                    logger.warning("event stream lost: %s", exc)
            finally:
                self.connected.clear()
                with self._stream_lock:
                    self._stream = None
                stream.close()

            if not self._stop.is_set():
                delay = backoff_delay(attempt, self.base_delay, self.max_delay, self.factor)
                attempt += 1
                self._stop.wait(delay)
        logger.info("event listener stopped")


__all__ = ["PushListener", "backoff_delay"]

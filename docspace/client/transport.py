"""Client transports: the calls a session makes against the server.

``LocalTransport`` talks to an in-process ``WorkspaceService``; ``HttpTransport``
talks to the JSON API with ``requests`` and maps error responses back to the
exception taxonomy. Both return wire-shaped dicts.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any, Protocol

import requests

from ..config import Settings
from ..errors import DocspaceError, TransportError, error_for_kind
from ..server.events import Subscription
from ..server.service import WorkspaceService

logger = logging.getLogger(__name__)

USER_AGENT = "docspace-client/0.1"
EVENT_READ_TIMEOUT = 60.0
LOCAL_EVENT_POLL_SECONDS = 0.5


class EventStream(Protocol):
    def __iter__(self) -> Iterator[dict[str, Any]]: ...

    def close(self) -> None: ...


class Transport(Protocol):
    """Operations a ``WorkspaceSession`` needs from the server."""

    def list_spaces(self) -> list[dict[str, Any]]: ...

    def get_tree(self, space_id: int, path: str = "") -> dict[str, Any]: ...

    def list_templates(self, space_id: int) -> list[dict[str, Any]]: ...

    def read_document(self, space_id: int, path: str) -> bytes: ...

    def save_document(self, space_id: int, path: str, content: str) -> dict[str, Any]: ...

    def create_folder(self, space_id: int, name: str, parent_path: str) -> dict[str, Any]: ...

    def create_document(
        self,
        space_id: int,
        title: str,
        folder_path: str,
        content: str | None = None,
        template_id: str | None = None,
    ) -> dict[str, Any]: ...

    def upload(self, space_id: int, folder_path: str, files: list[tuple[str, bytes]]) -> dict[str, Any]: ...

    def rename(self, space_id: int, old_path: str, new_name: str) -> dict[str, Any]: ...

    def delete(self, space_id: int, path: str) -> dict[str, Any]: ...

    def move(self, space_id: int, source_path: str, target_folder: str) -> dict[str, Any]: ...

    def open_events(self) -> EventStream: ...


class LocalEventStream:
    """Hub subscription exposed as an iterator of wire payloads.

    A lagged subscription ends with ``TransportError`` so the consumer
    reconnects and re-syncs.
    """

    def __init__(self, subscription: Subscription) -> None:
        self._subscription = subscription

    def __iter__(self) -> Iterator[dict[str, Any]]:
        subscription = self._subscription
        while not subscription.closed:
            if subscription.lagged:
                subscription.close()
                raise TransportError("event queue overflowed")
            event = subscription.get(timeout=LOCAL_EVENT_POLL_SECONDS)
            if event is not None:
                yield event.to_payload()

    def close(self) -> None:
        self._subscription.close()


class LocalTransport:
    """Calls a ``WorkspaceService`` in the same process."""

    def __init__(self, service: WorkspaceService) -> None:
        self.service = service

    def list_spaces(self) -> list[dict[str, Any]]:
        return self.service.list_spaces()

    def get_tree(self, space_id: int, path: str = "") -> dict[str, Any]:
        return self.service.get_tree(space_id, path)

    def list_templates(self, space_id: int) -> list[dict[str, Any]]:
        return self.service.list_templates(space_id)

    def read_document(self, space_id: int, path: str) -> bytes:
        return self.service.read_document(space_id, path)

    def save_document(self, space_id: int, path: str, content: str) -> dict[str, Any]:
        return self.service.save_document(space_id, path, content)

    def create_folder(self, space_id: int, name: str, parent_path: str) -> dict[str, Any]:
        return self.service.create_folder(space_id, name, parent_path)

    def create_document(
        self,
        space_id: int,
        title: str,
        folder_path: str,
        content: str | None = None,
        template_id: str | None = None,
    ) -> dict[str, Any]:
        return self.service.create_document(space_id, title, folder_path, content=content, template_id=template_id)

    def upload(self, space_id: int, folder_path: str, files: list[tuple[str, bytes]]) -> dict[str, Any]:
        return self.service.upload(space_id, folder_path, files)

    def rename(self, space_id: int, old_path: str, new_name: str) -> dict[str, Any]:
        return self.service.rename(space_id, old_path, new_name)

    def delete(self, space_id: int, path: str) -> dict[str, Any]:
        return self.service.delete(space_id, path)

    def move(self, space_id: int, source_path: str, target_folder: str) -> dict[str, Any]:
        return self.service.move(space_id, source_path, target_folder)

    def open_events(self) -> LocalEventStream:
        return LocalEventStream(self.service.hub.subscribe())


def _error_from_response(response: requests.Response) -> DocspaceError:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        message = str(body.get("message") or body["error"])
        return error_for_kind(body["error"], message)
    return TransportError(f"HTTP {response.status_code} from {response.url}")


def iter_sse_events(lines: Iterator[str]) -> Iterator[tuple[str, str]]:
    """Parse server-sent event lines into ``(event, data)`` pairs.

    Comment lines (``:``) are keepalives and are skipped.
    """
    event_type = "message"
    data_lines: list[str] = []
    for line in lines:
        if line == "":
            if data_lines:
                yield event_type, "\n".join(data_lines)
            event_type = "message"
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event_type = value
        elif field == "data":
            data_lines.append(value)


class HttpEventStream:
    """Iterator over payloads from ``GET /api/events``."""

    def __init__(self, response: requests.Response) -> None:
        self._response = response
        if response.encoding is None:
            response.encoding = "utf-8"

    def __iter__(self) -> Iterator[dict[str, Any]]:
        try:
            lines = self._response.iter_lines(decode_unicode=True)
            for event_type, data in iter_sse_events(line or "" for line in lines):
                try:
                    payload = json.loads(data)
                except ValueError:
                    logger.warning("dropping malformed %s event: %r", event_type, data[:200])
                    continue
                if isinstance(payload, dict):
                    yield payload
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"event stream interrupted: {exc}") from exc
        except AttributeError as exc:
            # requests raises this when the stream is closed from another thread.
            raise TransportError("event stream closed") from exc
        raise TransportError("event stream ended")

    def close(self) -> None:
        self._response.close()


class HttpTransport:
    """JSON API client built on a ``requests.Session``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = session if session is not None else requests.Session()
        self._http.headers.setdefault("User-Agent", USER_AGENT)

    @classmethod
    def from_settings(cls, settings: Settings, *, session: requests.Session | None = None) -> "HttpTransport":
        """Client for the server at ``settings.base_url``."""
        return cls(settings.base_url, timeout=settings.request_timeout_seconds, session=session)

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        url = self._url(path)
        logger.debug("%s %s", method, url)
        try:
            response = self._http.request(method, url, **kwargs)
        except requests.exceptions.Timeout as exc:
            logger.warning("%s %s timed out after %ss", method, url, self.timeout)
            raise TransportError(f"request timed out: {method} {path}") from exc
        except requests.exceptions.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(f"request failed: {exc}") from exc
        if response.status_code >= 400:
            raise _error_from_response(response)
        return response

    def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._send(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"malformed JSON from {method} {path}") from exc

    def close(self) -> None:
        self._http.close()

    def list_spaces(self) -> list[dict[str, Any]]:
        return self._json("GET", "/api/spaces")

    def get_tree(self, space_id: int, path: str = "") -> dict[str, Any]:
        params = {"path": path} if path else None
        return self._json("GET", f"/api/spaces/{space_id}/tree", params=params)

    def list_templates(self, space_id: int) -> list[dict[str, Any]]:
        return self._json("GET", f"/api/spaces/{space_id}/templates")

    def read_document(self, space_id: int, path: str) -> bytes:
        return self._send("GET", f"/api/spaces/{space_id}/content", params={"path": path}).content

    def save_document(self, space_id: int, path: str, content: str) -> dict[str, Any]:
        body = {"spaceId": space_id, "path": path, "content": content}
        return self._json("PUT", "/api/documents/content", json=body)

    def create_folder(self, space_id: int, name: str, parent_path: str) -> dict[str, Any]:
        body = {"spaceId": space_id, "name": name, "parentPath": parent_path}
        return self._json("POST", "/api/folders", json=body)

    def create_document(
        self,
        space_id: int,
        title: str,
        folder_path: str,
        content: str | None = None,
        template_id: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"spaceId": space_id, "title": title, "folderPath": folder_path}
        if content is not None:
            body["content"] = content
        if template_id:
            body["templateId"] = template_id
        return self._json("POST", "/api/documents", json=body)

    def upload(self, space_id: int, folder_path: str, files: list[tuple[str, bytes]]) -> dict[str, Any]:
        form = {"spaceId": str(space_id), "folderPath": folder_path}
        parts = [("files", (name, data, "application/octet-stream")) for name, data in files]
        return self._json("POST", "/api/documents/upload", data=form, files=parts)

    def rename(self, space_id: int, old_path: str, new_name: str) -> dict[str, Any]:
        body = {"spaceId": space_id, "oldPath": old_path, "newName": new_name}
        return self._json("PUT", "/api/rename", json=body)

    def delete(self, space_id: int, path: str) -> dict[str, Any]:
        return self._json("DELETE", "/api/nodes", json={"spaceId": space_id, "path": path})

    def move(self, space_id: int, source_path: str, target_folder: str) -> dict[str, Any]:
        body = {"spaceId": space_id, "sourcePath": source_path, "targetPath": target_folder}
        return self._json("POST", "/api/move", json=body)

    def open_events(self) -> HttpEventStream:
        response = self._send(
            "GET",
            "/api/events",
            stream=True,
            timeout=(self.timeout, EVENT_READ_TIMEOUT),
            headers={"Accept": "text/event-stream"},
        )
        return HttpEventStream(response)


__all__ = [
    "EventStream",
    "HttpEventStream",
    "HttpTransport",
    "LocalEventStream",
    "LocalTransport",
    "Transport",
    "iter_sse_events",
]

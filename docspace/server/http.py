"""JSON HTTP API and server-sent event stream built on http.server."""

from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Callable
from email.parser import BytesParser
from email.policy import HTTP
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

from ..errors import (
    AccessDeniedError,
    ConflictError,
    DocspaceError,
    NotFoundError,
    ValidationError,
)
from .events import Subscription
from .service import WorkspaceService

logger = logging.getLogger(__name__)

API_PREFIX = "/api"
EVENT_KEEPALIVE_SECONDS = 15.0
MAX_BODY_BYTES = 64 * 1024 * 1024

_STATUS_BY_ERROR: tuple[tuple[type[DocspaceError], int], ...] = (
    (ValidationError, 400),
    (AccessDeniedError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
)


def status_for_error(exc: DocspaceError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def encode_event(event_type: str, payload: dict[str, Any]) -> bytes:
    """Frame one server-sent event."""
    data = json.dumps(payload, ensure_ascii=False)
    return f"event: {event_type}\ndata: {data}\n\n".encode("utf-8")


def parse_multipart(content_type: str, body: bytes) -> tuple[dict[str, str], list[tuple[str, bytes]]]:
    """Split a ``multipart/form-data`` body into form fields and uploaded files.

    Returns ``(fields, files)`` where files are ``(original_name, data)``.
    """
    message = BytesParser(policy=HTTP).parsebytes(
        b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n" + body
    )
    if not message.is_multipart():
        raise ValidationError("expected multipart/form-data body")
    fields: dict[str, str] = {}
    files: list[tuple[str, bytes]] = []
    for part in message.iter_parts():
        field_name = part.get_param("name", header="content-disposition")
        filename = part.get_filename()
        data = part.get_payload(decode=True) or b""
        if filename is not None:
            files.append((filename, data))
        elif isinstance(field_name, str):
            fields[field_name] = data.decode("utf-8", errors="replace")
    return fields, files


def _space_ref(body: dict[str, Any]) -> int | str:
    space_ref = body.get("spaceId")
    if space_ref is None or space_ref == "":
        space_ref = body.get("spaceName")
    if isinstance(space_ref, bool) or not isinstance(space_ref, (int, str)) or space_ref == "":
        raise ValidationError("spaceId or spaceName is required")
    return space_ref


def _optional_str(body: dict[str, Any], key: str) -> str | None:
    value = body.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


class WorkspaceHTTPServer(ThreadingHTTPServer):
    """Threading server that also ends open event streams on shutdown."""

    daemon_threads = True

    def __init__(self, address: tuple[str, int], service: WorkspaceService) -> None:
        self.service = service
        self.stopping = threading.Event()
        self._streams_lock = threading.Lock()
        self._streams: set[Subscription] = set()
        super().__init__(address, WorkspaceRequestHandler)

    def open_stream(self) -> Subscription:
        subscription = self.service.hub.subscribe()
        with self._streams_lock:
            self._streams.add(subscription)
        return subscription

    def close_stream(self, subscription: Subscription) -> None:
        subscription.close()
        with self._streams_lock:
            self._streams.discard(subscription)

    def shutdown(self) -> None:
        self.stopping.set()
        with self._streams_lock:
            streams = list(self._streams)
        for subscription in streams:
            subscription.close()
        super().shutdown()


Route = tuple[str, re.Pattern[str], str]

ROUTES: tuple[Route, ...] = (
    ("GET", re.compile(r"^/api/spaces$"), "_get_spaces"),
    ("GET", re.compile(r"^/api/spaces/(?P<space>[^/]+)/tree$"), "_get_tree"),
    ("GET", re.compile(r"^/api/spaces/(?P<space>[^/]+)/templates$"), "_get_templates"),
    ("GET", re.compile(r"^/api/spaces/(?P<space>[^/]+)/content$"), "_get_content"),
    ("GET", re.compile(r"^/api/events$"), "_get_events"),
    ("POST", re.compile(r"^/api/folders$"), "_post_folder"),
    ("POST", re.compile(r"^/api/documents$"), "_post_document"),
    ("POST", re.compile(r"^/api/documents/upload$"), "_post_upload"),
    ("PUT", re.compile(r"^/api/documents/content$"), "_put_content"),
    ("PUT", re.compile(r"^/api/rename$"), "_put_rename"),
    ("DELETE", re.compile(r"^/api/nodes$"), "_delete_node"),
    ("POST", re.compile(r"^/api/move$"), "_post_move"),
)


class WorkspaceRequestHandler(BaseHTTPRequestHandler):
    """Routes JSON API calls to the workspace service."""

    server: WorkspaceHTTPServer
    server_version = "docspace/0.1"

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    @property
    def service(self) -> WorkspaceService:
        return self.server.service

    def _send(self, status: int, body: bytes, content_type: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_json(self, status: int, payload: object) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self._send(status, body, "application/json; charset=utf-8")

    def _send_error_json(self, status: int, kind: str, message: str) -> None:
        self._send_json(status, {"success": False, "error": kind, "message": message})

    def _read_body(self) -> bytes:
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError as exc:
            raise ValidationError("invalid Content-Length") from exc
        if length < 0 or length > MAX_BODY_BYTES:
            raise ValidationError("request body too large")
        return self.rfile.read(length) if length else b""

    def _read_json(self) -> dict[str, Any]:
        raw = self._read_body()
        if not raw:
            return {}
        try:
            body = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise ValidationError(f"malformed JSON body: {exc}") from exc
        if not isinstance(body, dict):
            raise ValidationError("JSON body must be an object")
        return body

    def _dispatch(self, method: str) -> None:
        parsed = urlparse(self.path)
        path = parsed.path.rstrip("/") or "/"
        self.query = parse_qs(parsed.query, keep_blank_values=True)
        allowed: list[str] = []
        for route_method, pattern, handler_name in ROUTES:
            match = pattern.match(path)
            if match is None:
                continue
            if route_method != method:
                allowed.append(route_method)
                continue
            handler: Callable[..., None] = getattr(self, handler_name)
            params = {key: unquote(value) for key, value in match.groupdict().items()}
            self._run(handler, params)
            return
        if allowed:
            self.send_response(405)
            self.send_header("Allow", ", ".join(sorted(set(allowed))))
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        self._send_error_json(404, "not_found", f"no route for {method} {path}")

    def _run(self, handler: Callable[..., None], params: dict[str, str]) -> None:
        try:
            handler(**params)
        except DocspaceError as exc:
            status = status_for_error(exc)
            if status >= 500:
                logger.error("%s %s failed: %s", self.command, self.path, exc)
            else:
                logger.info("%s %s rejected (%d): %s", self.command, self.path, status, exc)
            self._send_error_json(status, exc.kind, str(exc))
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("client went away during %s %s", self.command, self.path)
        except OSError as exc:
            logger.exception("%s %s hit an I/O error", self.command, self.path)
            self._send_error_json(500, "transport", f"I/O error: {exc}")

    def _query_value(self, key: str, default: str = "") -> str:
        values = self.query.get(key)
        return values[0] if values else default

    def do_GET(self):
        self._dispatch("GET")

    def do_POST(self):
        self._dispatch("POST")

    def do_PUT(self):
        self._dispatch("PUT")

    def do_DELETE(self):
        self._dispatch("DELETE")

    # Handlers

    def _get_spaces(self) -> None:
        self._send_json(200, self.service.list_spaces())

    def _get_tree(self, space: str) -> None:
        path = self._query_value("path")
        self._send_json(200, self.service.get_tree(space, path))

    def _get_templates(self, space: str) -> None:
        self._send_json(200, self.service.list_templates(space))

    def _get_content(self, space: str) -> None:
        data = self.service.read_document(space, self._query_value("path"))
        self._send(200, data, "application/octet-stream")

    def _post_folder(self) -> None:
        body = self._read_json()
        result = self.service.create_folder(
            _space_ref(body),
            body.get("name"),  # type: ignore[arg-type]
            _optional_str(body, "parentPath"),
        )
        self._send_json(200, result)

    def _post_document(self) -> None:
        body = self._read_json()
        result = self.service.create_document(
            _space_ref(body),
            body.get("title"),  # type: ignore[arg-type]
            _optional_str(body, "folderPath"),
            content=_optional_str(body, "content"),
            template_id=_optional_str(body, "templateId"),
        )
        self._send_json(200, result)

    def _post_upload(self) -> None:
        content_type = self.headers.get("Content-Type", "")
        if not content_type.startswith("multipart/form-data"):
            raise ValidationError("upload requires multipart/form-data")
        fields, files = parse_multipart(content_type, self._read_body())
        result = self.service.upload(_space_ref(fields), fields.get("folderPath"), files)
        self._send_json(200, result)

    def _put_content(self) -> None:
        body = self._read_json()
        content = _optional_str(body, "content")
        result = self.service.save_document(_space_ref(body), body.get("path") or "", content or "")
        self._send_json(200, result)

    def _put_rename(self) -> None:
        body = self._read_json()
        result = self.service.rename(
            _space_ref(body),
            body.get("oldPath") or "",
            body.get("newName"),  # type: ignore[arg-type]
        )
        self._send_json(200, result)

    def _delete_node(self) -> None:
        body = self._read_json()
        if not body:
            body = {key: values[0] for key, values in self.query.items() if values}
        result = self.service.delete(_space_ref(body), body.get("path") or "")
        self._send_json(200, result)

    def _post_move(self) -> None:
        body = self._read_json()
        result = self.service.move(
            _space_ref(body),
            body.get("sourcePath") or "",
            _optional_str(body, "targetPath"),
        )
        self._send_json(200, result)

    def _get_events(self) -> None:
        """Stream change events until the client disconnects or the server stops."""
        subscription = self.server.open_stream()
        try:
            self.send_response(200)
            self.send_header("Content-Type", "text/event-stream")
            self.send_header("Cache-Control", "no-cache")
            self.send_header("Connection", "close")
            self.end_headers()
            self.wfile.write(b": connected\n\n")
            self.wfile.flush()
            while not self.server.stopping.is_set() and not subscription.closed:
                if subscription.lagged:
                    logger.warning("event stream for %s lagged, closing so the client re-syncs", self.address_string())
                    break
                event = subscription.get(timeout=EVENT_KEEPALIVE_SECONDS)
                if event is None:
                    self.wfile.write(b": keepalive\n\n")
                else:
                    self.wfile.write(encode_event(event.type, event.to_payload()))
                self.wfile.flush()
        finally:
            self.server.close_stream(subscription)
        self.close_connection = True


def make_server(service: WorkspaceService, host: str = "127.0.0.1", port: int = 8080) -> WorkspaceHTTPServer:
    """Create the HTTP server for ``service``; port ``0`` picks a free port."""
    return WorkspaceHTTPServer((host, port), service)


__all__ = [
    "API_PREFIX",
    "ROUTES",
    "WorkspaceHTTPServer",
    "WorkspaceRequestHandler",
    "encode_event",
    "make_server",
    "parse_multipart",
    "status_for_error",
]

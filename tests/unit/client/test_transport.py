"""Tests for transport error mapping and server-sent event parsing."""

from __future__ import annotations

import json
import unittest
from pathlib import Path
from unittest import mock

import requests

from docspace.client.transport import HttpTransport, LocalEventStream, iter_sse_events
from docspace.config import Settings
from docspace.errors import ConflictError, NotFoundError, TransportError, ValidationError
from docspace.server.events import ChangeHub, make_event
from docspace.spaces import Space


def _response(status: int, body: object, url: str = "http://test/api") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.url = url
    response._content = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    response.headers["Content-Type"] = "application/json"
    return response


class HttpTransportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.http = requests.Session()
        self.addCleanup(self.http.close)
        self.transport = HttpTransport("http://test/", timeout=3.0, session=self.http)

    def test_requests_use_base_url_and_timeout(self) -> None:
        with mock.patch.object(self.http, "request", return_value=_response(200, [{"id": 1, "name": "Docs"}])) as request:
            spaces = self.transport.list_spaces()

        self.assertEqual(spaces, [{"id": 1, "name": "Docs"}])
        request.assert_called_once_with("GET", "http://test/api/spaces", timeout=3.0)

    def test_from_settings_uses_configured_address_and_timeout(self) -> None:
        settings = Settings(host="10.0.0.5", port=9100, request_timeout_seconds=2.5)
        transport = HttpTransport.from_settings(settings, session=self.http)

        with mock.patch.object(self.http, "request", return_value=_response(200, [])) as request:
            transport.list_spaces()

        request.assert_called_once_with("GET", "http://10.0.0.5:9100/api/spaces", timeout=2.5)

    def test_mutation_bodies(self) -> None:
        with mock.patch.object(self.http, "request", return_value=_response(200, {"success": True})) as request:
            self.transport.create_folder(1, "Notes", "Guides")
            self.transport.move(1, "a.md", "Guides")

        first, second = request.call_args_list
        self.assertEqual(first.args, ("POST", "http://test/api/folders"))
        self.assertEqual(first.kwargs["json"], {"spaceId": 1, "name": "Notes", "parentPath": "Guides"})
        self.assertEqual(second.kwargs["json"], {"spaceId": 1, "sourcePath": "a.md", "targetPath": "Guides"})

    def test_error_bodies_map_back_to_exceptions(self) -> None:
        cases = [
            (400, "validation", ValidationError),
            (404, "not_found", NotFoundError),
            (409, "conflict", ConflictError),
            (500, "mystery", TransportError),
        ]
        for status, kind, expected in cases:
            with self.subTest(kind=kind):
                body = {"success": False, "error": kind, "message": f"{kind} happened"}
                with mock.patch.object(self.http, "request", return_value=_response(status, body)):
                    with self.assertRaises(expected) as ctx:
                        self.transport.get_tree(1)
                self.assertEqual(str(ctx.exception), f"{kind} happened")

    def test_non_json_error_is_transport_error(self) -> None:
        with mock.patch.object(self.http, "request", return_value=_response(502, b"<html>bad gateway</html>")):
            with self.assertRaises(TransportError):
                self.transport.list_spaces()

    def test_timeouts_and_connection_failures(self) -> None:
        for exc in (requests.exceptions.Timeout("slow"), requests.exceptions.ConnectionError("refused")):
            with self.subTest(exc=type(exc).__name__):
                with mock.patch.object(self.http, "request", side_effect=exc):
                    with self.assertRaises(TransportError):
                        self.transport.delete(1, "a.md")


class ServerSentEventParsingTests(unittest.TestCase):
    def test_events_comments_and_multiline_data(self) -> None:
        lines = [
            ": connected",
            "",
            "event: file:added",
            'data: {"a":',
            "data: 1}",
            "",
            ": keepalive",
            "",
            "data: plain",
            "",
        ]

        self.assertEqual(
            list(iter_sse_events(iter(lines))),
            [("file:added", '{"a":\n1}'), ("message", "plain")],
        )


class LocalEventStreamTests(unittest.TestCase):
    def test_lagged_subscription_raises_transport_error(self) -> None:
        hub = ChangeHub(max_queue_size=1)
        stream = LocalEventStream(hub.subscribe())
        space = Space(id=1, name="Docs", root=Path("/tmp/docs"))
        hub.publish(make_event(space, "document", "added", "a.md"))
        hub.publish(make_event(space, "document", "added", "b.md"))

        with self.assertRaises(TransportError):
            next(iter(stream))
        self.assertEqual(hub.subscriber_count, 0)

    def test_close_ends_iteration(self) -> None:
        hub = ChangeHub()
        stream = LocalEventStream(hub.subscribe())
        stream.close()

        self.assertEqual(list(stream), [])


if __name__ == "__main__":
    unittest.main()

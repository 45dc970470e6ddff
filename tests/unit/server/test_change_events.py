"""Tests for change event payloads and the in-process push hub."""

from __future__ import annotations

import threading
import unittest
from pathlib import Path

from docspace.server.events import (
    FILE_ADDED,
    FOLDER_DELETED,
    SOURCE_WATCHER,
    ChangeEvent,
    ChangeHub,
    make_event,
)
from docspace.spaces import Space

SPACE = Space(id=3, name="Docs", root=Path("/tmp/docs"))


class ChangeEventTests(unittest.TestCase):
    def test_payload_shape_for_files_and_folders(self) -> None:
        file_event = make_event(SPACE, "document", "added", "Guides/intro.md")
        folder_event = make_event(SPACE, "folder", "deleted", "Old", source=SOURCE_WATCHER)

        self.assertEqual(
            file_event.to_payload(),
            {
                "type": "file:added",
                "space": {"id": 3, "name": "Docs"},
                "file": {"name": "intro.md", "path": "Guides/intro.md", "parentPath": "Guides"},
                "source": "api",
            },
        )
        folder_payload = folder_event.to_payload()
        self.assertEqual(folder_payload["type"], FOLDER_DELETED)
        self.assertEqual(folder_payload["folder"]["parentPath"], "")
        self.assertEqual(ChangeEvent.from_payload(folder_payload), folder_event)

    def test_folder_changes_have_no_event(self) -> None:
        with self.assertRaises(ValueError):
            make_event(SPACE, "folder", "changed", "Guides")

    def test_malformed_payloads_are_rejected(self) -> None:
        bad_payloads = [
            {"type": "file:renamed"},
            {"type": FILE_ADDED, "space": {"id": 1}},
            {"type": FILE_ADDED, "space": {"id": "1"}, "file": {"path": "a.md"}},
            {"type": FILE_ADDED, "space": {"id": 1}, "file": {"path": ""}},
        ]
        for payload in bad_payloads:
            with self.subTest(payload=payload):
                with self.assertRaises(ValueError):
                    ChangeEvent.from_payload(payload)


class ChangeHubTests(unittest.TestCase):
    def test_every_subscriber_gets_events_in_order(self) -> None:
        hub = ChangeHub()
        first = hub.subscribe()
        second = hub.subscribe()
        events = [make_event(SPACE, "document", "added", f"{idx}.md") for idx in range(3)]

        for event in events:
            hub.publish(event)

        self.assertEqual(first.drain(), events)
        self.assertEqual([second.get(timeout=0) for _ in range(3)], events)
        self.assertEqual(hub.subscriber_count, 2)

    def test_overflow_drops_oldest_and_marks_lagged(self) -> None:
        hub = ChangeHub(max_queue_size=2)
        subscription = hub.subscribe()
        events = [make_event(SPACE, "document", "added", f"{idx}.md") for idx in range(3)]

        for event in events:
            hub.publish(event)

        self.assertTrue(subscription.lagged)
        self.assertEqual(subscription.drain(), events[1:])

    def test_get_times_out_and_close_wakes_waiters(self) -> None:
        hub = ChangeHub()
        subscription = hub.subscribe()
        self.assertIsNone(subscription.get(timeout=0.01))

        results: list[object] = []
        waiter = threading.Thread(target=lambda: results.append(subscription.get(timeout=5)))
        waiter.start()
        subscription.close()
        waiter.join(2)

        self.assertFalse(waiter.is_alive())
        self.assertEqual(results, [None])
        self.assertEqual(hub.subscriber_count, 0)

    def test_closed_subscription_receives_nothing(self) -> None:
        hub = ChangeHub()
        with hub.subscribe() as subscription:
            pass
        hub.publish(make_event(SPACE, "document", "added", "a.md"))

        self.assertTrue(subscription.closed)
        self.assertEqual(subscription.drain(), [])

    def test_hub_close_closes_all(self) -> None:
        hub = ChangeHub()
        subscriptions = [hub.subscribe(), hub.subscribe()]

        hub.close()

        self.assertTrue(all(subscription.closed for subscription in subscriptions))


if __name__ == "__main__":
    unittest.main()

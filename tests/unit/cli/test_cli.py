"""CLI command and argument behavior tests.

Verifies how ``docspace.cli.main`` manages spaces, prints trees, and resolves
serve and watch options. Prevents regressions in command-line entrypoint ergonomics.
"""

from __future__ import annotations

import argparse
import io
import sys
import tempfile
import threading
import time
import unittest
from pathlib import Path
from unittest import mock

from docspace import cli
from docspace.client.transport import LocalTransport
from docspace.config import Settings
from docspace.server.events import ChangeHub
from docspace.server.service import WorkspaceService
from docspace.spaces import SpaceRegistry
from docspace.tree_model.types import DocumentNode, FolderNode


def _wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class CliSpacesTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.data_dir = Path(self._tmp.name).resolve()
        self.settings = Settings(data_dir=self.data_dir)

    def _main(self, *argv: str) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with mock.patch.object(sys, "stdout", stdout), mock.patch.object(sys, "stderr", stderr):
            code = cli.main(list(argv), settings=self.settings)
        return code, stdout.getvalue(), stderr.getvalue()

    def test_spaces_add_then_list_round_trips_through_registry_file(self) -> None:
        code, out, _err = self._main("spaces", "add", "Docs")

        self.assertEqual(code, 0)
        root = self.data_dir / "documents" / "Docs"
        self.assertEqual(out, f"1\tDocs\t{root}\n")
        self.assertTrue(root.is_dir())
        self.assertTrue((self.data_dir / "spaces.json").is_file())

        code, out, _err = self._main("spaces", "list")
        self.assertEqual((code, out), (0, f"1\tDocs\t{root}\n"))

    def test_spaces_add_duplicate_name_fails_with_message(self) -> None:
        self._main("spaces", "add", "Docs")

        code, out, err = self._main("spaces", "add", "Docs")

        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertIn("docspace: space already exists: Docs", err)

    def test_tree_prints_ordered_indented_rows_without_hidden_folders(self) -> None:
        self._main("spaces", "add", "Docs")
        root = self.data_dir / "documents" / "Docs"
        (root / "Guides").mkdir()
        (root / "Guides" / "intro.md").write_text("# Intro\n", encoding="utf-8")
        (root / "readme.md").write_text("# Readme\n", encoding="utf-8")
        (root / ".templates").mkdir()

        code, out, _err = self._main("tree", "Docs")

        self.assertEqual(code, 0)
        self.assertEqual(out, "Docs/\n  Guides/\n    intro.md\n  readme.md\n")

        code, out, _err = self._main("tree", "1", "--hidden")
        self.assertEqual(code, 0)
        self.assertIn("  .templates/\n", out)

    def test_tree_for_unknown_space_returns_error_code(self) -> None:
        code, out, err = self._main("tree", "Nope")

        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertTrue(err.startswith("docspace: Space not found"))

    def test_spaces_remove_unregisters_but_keeps_files(self) -> None:
        self._main("spaces", "add", "Docs")
        root = self.data_dir / "documents" / "Docs"

        code, out, _err = self._main("spaces", "remove", "Docs")

        self.assertEqual(code, 0)
        self.assertEqual(out, f"removed Docs (1), files kept at {root}\n")
        self.assertTrue(root.is_dir())
        self.assertEqual(self._main("spaces", "list")[1], "")
        self.assertEqual(self._main("spaces", "remove", "Docs")[0], 1)

    def test_data_dir_flag_overrides_settings(self) -> None:
        with tempfile.TemporaryDirectory() as other:
            other_dir = Path(other).resolve()
            code, out, _err = self._main("--data-dir", str(other_dir), "spaces", "add", "Notes")

            self.assertEqual(code, 0)
            self.assertIn(str(other_dir / "documents" / "Notes"), out)
            self.assertFalse((self.data_dir / "spaces.json").exists())


class CliServeTests(unittest.TestCase):
    def test_serve_applies_host_and_port_flags(self) -> None:
        with mock.patch("docspace.cli.serve") as serve:
            code = cli.main(
                ["serve", "--host", "0.0.0.0", "--port", "0", "--no-watch"],
                settings=Settings(port=9000),
            )

        self.assertEqual(code, 0)
        serve.assert_called_once()
        resolved = serve.call_args.args[0]
        self.assertEqual((resolved.host, resolved.port), ("0.0.0.0", 0))
        self.assertEqual(serve.call_args.kwargs, {"watch": False})

    def test_serve_keeps_configured_port_without_flag(self) -> None:
        with mock.patch("docspace.cli.serve") as serve:
            cli.main(["serve"], settings=Settings(port=9000))

        self.assertEqual(serve.call_args.args[0].port, 9000)
        self.assertEqual(serve.call_args.kwargs, {"watch": True})

    def test_port_type_rejects_out_of_range_values(self) -> None:
        self.assertEqual(cli._port("8080"), 8080)
        for bad in ("-1", "65536", "http"):
            with self.subTest(value=bad):
                with self.assertRaises(argparse.ArgumentTypeError):
                    cli._port(bad)


class CliWatchTests(unittest.TestCase):
    def test_watch_command_applies_address_flags(self) -> None:
        with mock.patch("docspace.cli.watch") as watch:
            code = cli.main(["watch", "Docs", "--port", "9100"], settings=Settings(host="10.0.0.5"))

        self.assertEqual(code, 0)
        resolved, space = watch.call_args.args
        self.assertEqual((resolved.base_url, space), ("http://10.0.0.5:9100", "Docs"))

    def test_watch_prints_tree_then_reprints_after_a_change(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            registry = SpaceRegistry(None, Path(tmp))
            space = registry.add("Docs")
            (space.root / "readme.md").write_text("# Readme\n", encoding="utf-8")
            service = WorkspaceService(registry, ChangeHub())
            settings = Settings(reconnect_base_seconds=0.01, reconnect_max_seconds=0.1)
            stop = threading.Event()
            stdout = io.StringIO()

            with mock.patch.object(sys, "stdout", stdout):
                thread = threading.Thread(
                    target=cli.watch,
                    args=(settings, "Docs"),
                    kwargs={"transport": LocalTransport(service), "stop": stop},
                    daemon=True,
                )
                thread.start()
                try:
                    self.assertTrue(_wait_until(lambda: service.hub.subscriber_count == 1))
                    service.create_folder("Docs", "Notes", "")
                    self.assertTrue(_wait_until(lambda: "  Notes/\n" in stdout.getvalue()))
                finally:
                    stop.set()
                    thread.join(5)

        self.assertFalse(thread.is_alive())
        self.assertTrue(stdout.getvalue().startswith("Docs/\n  readme.md\n"))


class RenderTreeLinesTests(unittest.TestCase):
    def test_render_tree_lines_indents_by_depth(self) -> None:
        intro = DocumentNode(path="Guides/intro.md", name="intro.md", space_id=1, space_name="Docs")
        guides = FolderNode(path="Guides", name="Guides", space_id=1, space_name="Docs", children=(intro,))
        readme = DocumentNode(path="readme.md", name="readme.md", space_id=1, space_name="Docs")
        root = FolderNode(path="", name="Docs", space_id=1, space_name="Docs", children=(guides, readme))

        self.assertEqual(cli.render_tree_lines(root), ["Guides/", "  intro.md", "readme.md"])

    def test_render_tree_lines_for_empty_root_is_empty(self) -> None:
        root = FolderNode(path="", name="Docs", space_id=1, space_name="Docs")

        self.assertEqual(cli.render_tree_lines(root), [])


if __name__ == "__main__":
    unittest.main()

"""Tests for stat indexes, signatures, and index diffs used by the watcher."""

from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path

from docspace.tree_model import (
    IndexChange,
    IndexEntry,
    build_index_signature,
    build_path_stat_index,
    diff_path_indexes,
)


class StatIndexTests(unittest.TestCase):
    def test_index_lists_visible_paths_with_kinds(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "Guides").mkdir()
            (root / "Guides" / "intro.md").write_text("hello", encoding="utf-8")
            (root / ".templates").mkdir()
            (root / ".templates" / "t.md").write_text("t", encoding="utf-8")

            index = build_path_stat_index(root)

            self.assertEqual(set(index), {"Guides", "Guides/intro.md"})
            self.assertEqual(index["Guides"].kind, "folder")
            self.assertEqual(index["Guides/intro.md"].size, 5)
            self.assertIn(".templates/t.md", build_path_stat_index(root, show_hidden=True))

    def test_signature_changes_when_file_metadata_changes(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            target = root / "a.md"
            target.write_text("one", encoding="utf-8")
            before = build_index_signature(build_path_stat_index(root))
            self.assertEqual(before, build_index_signature(build_path_stat_index(root)))

            target.write_text("three", encoding="utf-8")
            st = target.stat()
            os.utime(target, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000))

            self.assertNotEqual(before, build_index_signature(build_path_stat_index(root)))

    def test_missing_root_is_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual(build_path_stat_index(Path(tmp) / "nope"), {})
        self.assertEqual(build_index_signature({}), build_index_signature({}))


class DiffTests(unittest.TestCase):
    def test_added_changed_and_deleted(self) -> None:
        previous = {
            "a.md": IndexEntry("document", 1, 1),
            "b.md": IndexEntry("document", 1, 1),
        }
        current = {
            "a.md": IndexEntry("document", 2, 1),
            "c.md": IndexEntry("document", 1, 1),
        }

        changes = diff_path_indexes(previous, current)

        self.assertEqual(
            changes,
            [
                IndexChange("deleted", "document", "b.md"),
                IndexChange("changed", "document", "a.md"),
                IndexChange("added", "document", "c.md"),
            ],
        )

    def test_folder_deletion_folds_descendants(self) -> None:
        previous = {
            "A": IndexEntry("folder", 0, 0),
            "A/x.md": IndexEntry("document", 1, 1),
            "A/sub": IndexEntry("folder", 0, 0),
            "A/sub/y.md": IndexEntry("document", 1, 1),
            "A-sibling.md": IndexEntry("document", 1, 1),
        }
        current = {"A-sibling.md": IndexEntry("document", 1, 1)}

        changes = diff_path_indexes(previous, current)

        self.assertEqual(changes, [IndexChange("deleted", "folder", "A")])
        self.assertEqual(changes[0].parent_path, "")

    def test_kind_flip_is_delete_then_add(self) -> None:
        previous = {"thing": IndexEntry("document", 1, 1)}
        current = {"thing": IndexEntry("folder", 0, 0)}

        self.assertEqual(
            diff_path_indexes(previous, current),
            [IndexChange("deleted", "document", "thing"), IndexChange("added", "folder", "thing")],
        )

    def test_folder_mtime_is_not_a_change(self) -> None:
        index = {"A": IndexEntry("folder", 0, 0)}
        self.assertEqual(diff_path_indexes(index, dict(index)), [])


if __name__ == "__main__":
    unittest.main()

"""Tests for building canonical space trees from directories.

Covers folder-first case-insensitive ordering, hidden system folders,
missing roots, symlinked directories, and subtree rescans.
"""

from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from docspace.errors import NotFoundError
from docspace.tree_model import (
    DocumentNode,
    FolderNode,
    build_path_index,
    build_space_tree,
    build_subtree,
    iter_nodes,
    list_directory_children,
    sort_nodes,
)


def _assert_canonical_order(test: unittest.TestCase, folder: FolderNode) -> None:
    test.assertEqual(folder.children, sort_nodes(folder.children))
    for child in folder.children:
        if isinstance(child, FolderNode):
            _assert_canonical_order(test, child)


class SpaceTreeBuildTests(unittest.TestCase):
    def test_folders_sort_before_documents_case_insensitively(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "zeta").mkdir()
            (root / "Alpha").mkdir()
            (root / "b.md").write_text("b", encoding="utf-8")
            (root / "A.md").write_text("a", encoding="utf-8")
            (root / "alpha").mkdir(exist_ok=True)

            tree = build_space_tree(root, space_id=1, space_name="Docs")

            names = [child.name for child in tree.children]
            folder_count = sum(1 for child in tree.children if isinstance(child, FolderNode))
            self.assertTrue(all(isinstance(child, FolderNode) for child in tree.children[:folder_count]))
            self.assertTrue(all(isinstance(child, DocumentNode) for child in tree.children[folder_count:]))
            self.assertEqual(names[-2:], ["A.md", "b.md"])
            self.assertEqual(names[folder_count - 1], "zeta")

    def test_ordering_holds_at_every_level(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            for rel in ("Guides/zz.md", "Guides/Api/index.md", "Guides/aa.txt", "notes/B.md", "notes/a.md"):
                target = root / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(rel, encoding="utf-8")

            tree = build_space_tree(root, space_id=1, space_name="Docs")

            _assert_canonical_order(self, tree)
            guides = next(child for child in tree.children if child.name == "Guides")
            assert isinstance(guides, FolderNode)
            self.assertEqual([child.name for child in guides.children], ["Api", "aa.txt", "zz.md"])

    def test_paths_are_unique_and_relative_to_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "Guides" / "deep").mkdir(parents=True)
            (root / "Guides" / "deep" / "x.md").write_text("x", encoding="utf-8")
            (root / "readme.md").write_text("r", encoding="utf-8")

            tree = build_space_tree(root, space_id=7, space_name="Docs")
            index = build_path_index(tree)

            self.assertEqual(set(index), {"", "Guides", "Guides/deep", "Guides/deep/x.md", "readme.md"})
            self.assertTrue(all(node.space_id == 7 for node in iter_nodes(tree)))
            document = index["Guides/deep/x.md"]
            assert isinstance(document, DocumentNode)
            self.assertEqual(document.extension, "md")
            self.assertEqual(document.category, "markdown")
            self.assertEqual(document.size, 1)

    def test_hidden_system_folders_are_skipped_unless_requested(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / ".templates").mkdir()
            (root / ".templates" / "meeting.md").write_text("# Meeting\n", encoding="utf-8")
            (root / "visible.md").write_text("v", encoding="utf-8")

            tree = build_space_tree(root, space_name="Docs")
            self.assertEqual([child.name for child in tree.children], ["visible.md"])

            with_hidden = build_space_tree(root, space_name="Docs", show_hidden=True)
            self.assertEqual([child.name for child in with_hidden.children], [".templates", "visible.md"])

    def test_missing_root_yields_empty_tree(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            tree = build_space_tree(Path(tmp) / "not-created", space_id=3, space_name="Empty")

        self.assertEqual(tree.path, "")
        self.assertEqual(tree.name, "Empty")
        self.assertEqual(tree.children, ())

    def test_symlinked_directories_are_not_followed(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "real").mkdir()
            (root / "real" / "inside.md").write_text("i", encoding="utf-8")
            try:
                os.symlink(root, root / "real" / "loop", target_is_directory=True)
            except (OSError, NotImplementedError):
                self.skipTest("symlinks unavailable")

            tree = build_space_tree(root)
            index = build_path_index(tree)

            self.assertIsInstance(index["real/loop"], DocumentNode)
            self.assertNotIn("real/loop/real", index)

    def test_build_subtree_returns_fresh_children_of_one_folder(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "Guides").mkdir()
            (root / "Guides" / "intro.md").write_text("i", encoding="utf-8")

            subtree = build_subtree(root, "Guides", space_id=1, space_name="Docs")

            self.assertEqual(subtree.path, "Guides")
            self.assertEqual([child.path for child in subtree.children], ["Guides/intro.md"])

    def test_build_subtree_rejects_missing_hidden_and_document_paths(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / ".templates").mkdir()
            (root / "file.md").write_text("f", encoding="utf-8")

            for path in ("missing", ".templates", "file.md"):
                with self.subTest(path=path):
                    with self.assertRaises(NotFoundError):
                        build_subtree(root, path)

            self.assertEqual(build_subtree(root, ".templates", show_hidden=True).path, ".templates")

    def test_list_directory_children_reports_scan_error_for_missing_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            children, error = list_directory_children(Path(tmp) / "gone")

        self.assertEqual(children, [])
        self.assertIsInstance(error, OSError)

    def test_unreadable_folder_is_empty_and_siblings_still_scan(self) -> None:
        real_scandir = os.scandir

        def scandir(path):
            if Path(path).name == "Locked":
                raise PermissionError(13, "Permission denied", str(path))
            return real_scandir(path)

        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "Locked").mkdir()
            (root / "Locked" / "secret.md").write_text("s", encoding="utf-8")
            (root / "Open").mkdir()
            (root / "Open" / "a.md").write_text("a", encoding="utf-8")
            (root / "Open" / "Nested").mkdir()
            (root / "Open" / "Nested" / "b.md").write_text("b", encoding="utf-8")
            (root / "readme.md").write_text("r", encoding="utf-8")

            with mock.patch("docspace.tree_model.fs.os.scandir", side_effect=scandir):
                tree = build_space_tree(root)

        index = build_path_index(tree)
        self.assertEqual(index["Locked"].children, ())
        self.assertNotIn("Locked/secret.md", index)
        self.assertEqual(
            [node.path for node in iter_nodes(index["Open"])],
            ["Open", "Open/Nested", "Open/Nested/b.md", "Open/a.md"],
        )
        self.assertIn("readme.md", index)


if __name__ == "__main__":
    unittest.main()

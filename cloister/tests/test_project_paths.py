import os
import tempfile
import unittest
from unittest.mock import patch

from cloister import project_paths
from cloister.project_paths import project_display_name, resolve_project_path


class ResolveProjectPathTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = tmpdir.name

    def _mkdirs(self, *relative: str) -> None:
        for rel in relative:
            os.makedirs(os.path.join(self.root, rel), exist_ok=True)

    def test_plain_path_resolves_exactly(self) -> None:
        self._mkdirs("Users/x/code/demo")
        self.assertEqual(
            resolve_project_path("-Users-x-code-demo", root=self.root),
            os.path.join(self.root, "Users", "x", "code", "demo"),
        )

    def test_hyphenated_directory_is_found_by_probing(self) -> None:
        self._mkdirs("Users/x/code/my-project")
        self.assertEqual(
            resolve_project_path("-Users-x-code-my-project", root=self.root),
            os.path.join(self.root, "Users", "x", "code", "my-project"),
        )

    def test_longest_existing_run_wins(self) -> None:
        self._mkdirs("Users/x/code/my-project", "Users/x/code/my")
        self.assertEqual(
            resolve_project_path("-Users-x-code-my-project", root=self.root),
            os.path.join(self.root, "Users", "x", "code", "my-project"),
        )

    def test_missing_directories_fall_back_to_verbatim_remainder(self) -> None:
        self._mkdirs("Users/x")
        self.assertEqual(
            resolve_project_path("-Users-x-deleted-app-v2", root=self.root),
            os.path.join(self.root, "Users", "x", "deleted-app-v2"),
        )

    def test_filesystem_root_default(self) -> None:
        existing = {"/Users", "/Users/x", "/Users/x/code", "/Users/x/code/demo"}
        with patch.object(project_paths.os.path, "isdir", side_effect=lambda p: p in existing):
            self.assertEqual(resolve_project_path("-Users-x-code-demo"), "/Users/x/code/demo")


class ProjectDisplayNameTests(unittest.TestCase):
    def test_uses_last_path_segment(self) -> None:
        self.assertEqual(project_display_name("/Users/x/code/demo"), "demo")

    def test_falls_back_to_encoded_code_suffix(self) -> None:
        self.assertEqual(project_display_name("/", "-Users-x-code-my-app"), "my-app")

    def test_returns_path_when_nothing_better(self) -> None:
        self.assertEqual(project_display_name("/"), "/")


if __name__ == "__main__":
    unittest.main()

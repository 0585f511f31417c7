"""Tests for workspace containment."""

import os

from toolgate.workspace import (
    display_path,
    is_strictly_within,
    relative_to_workspace,
    resolve_in_workspace,
)

ROOT = os.path.abspath(os.path.join(os.sep, "ws", "project"))


class TestIsStrictlyWithin:
    """Tests for is_strictly_within."""

    def test_child_is_inside(self):
        assert is_strictly_within(ROOT, os.path.join(ROOT, "out.md"))

    def test_nested_relative_is_inside(self):
        assert is_strictly_within(ROOT, os.path.join("src", "main.py"))

    def test_root_itself_is_rejected(self):
        assert not is_strictly_within(ROOT, ROOT)
        assert not is_strictly_within(ROOT, ".")

    def test_escape_is_rejected(self):
        assert not is_strictly_within(ROOT, os.path.join(ROOT, "..", "escape.txt"))
        assert not is_strictly_within(ROOT, "..")

    def test_sibling_with_common_prefix_is_rejected(self):
        assert not is_strictly_within(ROOT, ROOT + "-other" + os.sep + "file")

    def test_dotdot_inside_path_that_stays_inside(self):
        assert is_strictly_within(ROOT, os.path.join(ROOT, "a", "..", "b"))


class TestResolve:
    """Tests for path resolution helpers."""

    def test_relative_resolves_against_root(self):
        assert resolve_in_workspace(ROOT, "sub") == os.path.join(ROOT, "sub")

    def test_relative_to_workspace(self):
        assert relative_to_workspace(ROOT, os.path.join(ROOT, "a", "b.txt")) == os.path.join("a", "b.txt")

    def test_display_path_outside_is_absolute(self):
        outside = os.path.abspath(os.path.join(os.sep, "elsewhere", "x"))
        assert display_path(ROOT, outside) == outside

"""Tests for workspace path containment."""

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from picocode.errors import ConfigError, PathEscape
from picocode.sandbox import PathSandbox, resolve_path


ROOT = Path(os.path.abspath(os.sep)) / "work" / "ws"


class TestResolvePath:
    def test_parent_escape_fails(self):
        with pytest.raises(PathEscape):
            resolve_path(ROOT, "../x")

    def test_round_trip_inside_root_succeeds(self):
        assert resolve_path(ROOT, "./a/../a") == ROOT / "a"

    def test_transient_escape_fails_even_if_it_comes_back(self):
        with pytest.raises(PathEscape):
            resolve_path(ROOT, "a/../../a")

    def test_deep_transient_escape_fails(self):
        with pytest.raises(PathEscape):
            resolve_path(ROOT, "a/b/../../../ws/a")

    @pytest.mark.parametrize("candidate", ["", ".", "./", "a/.."])
    def test_root_itself(self, candidate):
        assert resolve_path(ROOT, candidate) == ROOT

    def test_nested_normalisation(self):
        assert resolve_path(ROOT, "a/./b//c/") == ROOT / "a" / "b" / "c"

    def test_nonexistent_target_is_fine(self):
        # Nothing touches the filesystem
        assert resolve_path(ROOT, "new/dir/file.txt") == ROOT / "new" / "dir" / "file.txt"

    def test_absolute_inside_root(self):
        assert resolve_path(ROOT, str(ROOT / "src" / "main.py")) == ROOT / "src" / "main.py"

    def test_absolute_root(self):
        assert resolve_path(ROOT, str(ROOT)) == ROOT

    def test_absolute_outside_root(self):
        with pytest.raises(PathEscape):
            resolve_path(ROOT, str(ROOT.parent / "other" / "file"))

    def test_absolute_sibling_with_common_prefix(self):
        with pytest.raises(PathEscape):
            resolve_path(ROOT, str(ROOT.parent / "ws-evil" / "file"))

    def test_absolute_escape_after_root_prefix(self):
        with pytest.raises(PathEscape):
            resolve_path(ROOT, str(ROOT) + "/../ws/a")

    def test_result_always_under_root_or_rejected(self):
        candidates = [
            "a", "a/b", "../a", "./../a", "a/../b", "a/../..", "..", "a/b/../../c",
            "a/b/../../../c", "././x", "x/./y/../z", "/etc/passwd", str(ROOT / "q"),
        ]
        for candidate in candidates:
            try:
                resolved = resolve_path(ROOT, candidate)
            except PathEscape:
                continue
            assert resolved == ROOT or ROOT in resolved.parents
            assert "." not in resolved.parts and ".." not in resolved.parts


class TestPathSandbox:
    def test_requires_absolute_root(self):
        with pytest.raises(ConfigError):
            PathSandbox("relative/root")

    def test_root_is_normalised(self):
        sandbox = PathSandbox(str(ROOT) + "/./sub/..")
        assert sandbox.root == ROOT

    def test_resolve_uses_root(self, tmp_path):
        sandbox = PathSandbox(str(tmp_path))
        assert sandbox.resolve("a.txt") == tmp_path / "a.txt"

    def test_contains(self):
        sandbox = PathSandbox(str(ROOT))
        assert sandbox.contains(ROOT)
        assert sandbox.contains(ROOT / "a" / "b")
        assert not sandbox.contains(ROOT.parent / "ws-evil")
        assert not sandbox.contains(ROOT / ".." / "other")

    def test_relative(self):
        sandbox = PathSandbox(str(ROOT))
        assert sandbox.relative(ROOT) == "."
        assert sandbox.relative(ROOT / "a" / "b.txt") == "a/b.txt"

"""Tests for layers/cache_key.py module.

Tests cache key computation and deterministic file hashing.
"""

import pytest

from buildpack_engine.execution.mock import mock
from buildpack_engine.execution.runner import ExecutionError
from buildpack_engine.layers.cache_key import (
    command_output_key,
    compute_cache_key,
    hash_files,
)
from buildpack_engine.testing import make_context, write_files


class TestComputeCacheKey:
    """Tests for compute_cache_key."""

    def test_format(self):
        """Keys should be prefixed sha256 hex digests."""
        key = compute_cache_key(version="1.2.3")
        assert key.startswith("sha256:")
        assert len(key) == len("sha256:") + 64

    def test_deterministic_regardless_of_argument_order(self):
        """The same inputs should always give the same key."""
        assert compute_cache_key(a=1, b=[1, 2]) == compute_cache_key(b=[1, 2], a=1)

    def test_inputs_change_key(self):
        """Different inputs should give different keys."""
        assert compute_cache_key(version="1") != compute_cache_key(version="2")
        assert compute_cache_key(version="1") != compute_cache_key(release="1")


class TestHashFiles:
    """Tests for hash_files."""

    def test_same_tree_same_hash(self, tmp_path):
        """Identical trees should hash identically."""
        for name in ("one", "two"):
            write_files(tmp_path / name, {"go.mod": "module x", "cmd/main.go": "package main"})

        assert hash_files(tmp_path / "one") == hash_files(tmp_path / "two")

    def test_content_change_changes_hash(self, tmp_path):
        """Changing a file's content should change the hash."""
        write_files(tmp_path, {"pom.xml": "<project/>"})
        before = hash_files(tmp_path, ("pom.xml",))

        write_files(tmp_path, {"pom.xml": "<project><x/></project>"})
        assert hash_files(tmp_path, ("pom.xml",)) != before

    def test_patterns_limit_inputs(self, tmp_path):
        """Files outside the patterns should not affect the hash."""
        write_files(tmp_path, {"yarn.lock": "lock", "README.md": "a"})
        before = hash_files(tmp_path, ("yarn.lock",))

        write_files(tmp_path, {"README.md": "b"})
        assert hash_files(tmp_path, ("yarn.lock",)) == before

    def test_mode_change_changes_hash(self, tmp_path):
        """The permission bits should be part of the hash."""
        write_files(tmp_path, {"mvnw": "#!/bin/sh"})
        before = hash_files(tmp_path)

        (tmp_path / "mvnw").chmod(0o755)
        assert hash_files(tmp_path) != before

    def test_missing_root(self, tmp_path):
        """A missing directory should hash like an empty one."""
        empty = tmp_path / "empty"
        empty.mkdir()
        assert hash_files(tmp_path / "absent") == hash_files(empty)


class TestCommandOutputKey:
    """Tests for command_output_key."""

    def test_returns_trimmed_output(self, tmp_path):
        """Tool output should be stripped."""
        ctx = make_context(tmp_path, mocks=[mock(r"^node --version$", stdout="v18.2.0\n")])

        assert command_output_key(ctx, ["node", "--version"]) == "v18.2.0"

    def test_tool_failure_propagates(self, tmp_path):
        """A failing tool should raise ExecutionError."""
        ctx = make_context(tmp_path, mocks=[mock(r"^node", exit_code=127)])

        with pytest.raises(ExecutionError):
            command_output_key(ctx, ["node", "--version"])

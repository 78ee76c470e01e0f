"""Tests for testing.py helpers."""

import pytest

from buildpack_engine.context import new_context
from buildpack_engine.execution.mock import mock
from buildpack_engine.execution.runner import SubprocessExecutor
from buildpack_engine.testing import BuildRunResult, make_context, write_files


class TestBuildRunResult:
    """Tests for BuildRunResult."""

    def test_executor_requires_mock(self, tmp_path):
        """A real executor is reported with TypeError."""
        ctx = new_context(
            app_root=tmp_path, env={}, executor=SubprocessExecutor(), layers_dir=tmp_path / "l"
        )
        result = BuildRunResult(context=ctx, outcome=None)

        with pytest.raises(TypeError, match="MockExecutor"):
            result.executor

    def test_command_executed(self, tmp_path):
        """Recorded commands are visible through the result."""
        ctx = make_context(tmp_path, mocks=[mock(r"^go version")])
        ctx.exec(["go", "version"])

        result = BuildRunResult(context=ctx, outcome=None)

        assert result.command_executed("go version")
        assert not result.command_executed("go build")


class TestMakeContext:
    """Tests for make_context/write_files."""

    def test_layers_dir_is_per_app(self, tmp_path):
        """The default layers directory sits beside the app, not shared."""
        first = make_context(tmp_path / "one")
        second = make_context(tmp_path / "two")

        assert first.layers.root != second.layers.root
        assert first.layers.root == tmp_path / "one-layers"

    def test_write_files_creates_parents(self, tmp_path):
        """Nested paths are created."""
        write_files(tmp_path, {"a/b/c.txt": "x"})

        assert (tmp_path / "a" / "b" / "c.txt").read_text() == "x"

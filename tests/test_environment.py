"""Tests for environment.py module.

Tests overlay operations, ordering and serialization.
"""

import os

import pytest

from buildpack_engine.environment import EnvEntry, EnvironmentOverlay
from buildpack_engine.types import EnvOp


class TestEnvironmentOverlay:
    """Tests for EnvironmentOverlay.apply."""

    def test_override_replaces(self):
        """Override should replace an existing value."""
        overlay = EnvironmentOverlay()
        overlay.override("GOPATH", "/layers/go")

        assert overlay.apply({"GOPATH": "/tmp"}) == {"GOPATH": "/layers/go"}

    def test_default_only_when_unset(self):
        """Default should not replace a value that is already set."""
        overlay = EnvironmentOverlay()
        overlay.default("NODE_ENV", "production")

        assert overlay.apply({})["NODE_ENV"] == "production"
        assert overlay.apply({"NODE_ENV": "development"})["NODE_ENV"] == "development"

    def test_default_sees_earlier_entries(self):
        """Default is judged at apply time, after earlier entries."""
        overlay = EnvironmentOverlay()
        overlay.override("A", "first")
        overlay.default("A", "second")

        assert overlay.apply({})["A"] == "first"

    def test_prepend_and_append(self):
        """Prepend and append should join with the delimiter."""
        overlay = EnvironmentOverlay()
        overlay.prepend("PATH", "/layers/bin")
        overlay.append("PATH", "/opt/tail")

        result = overlay.apply({"PATH": "/usr/bin"})
        assert result["PATH"] == os.pathsep.join(["/layers/bin", "/usr/bin", "/opt/tail"])

    def test_prepend_to_unset_variable(self):
        """Prepending to an unset variable should not add a dangling delimiter."""
        overlay = EnvironmentOverlay()
        overlay.prepend("PATH", "/layers/bin")

        assert overlay.apply({})["PATH"] == "/layers/bin"

    def test_custom_delimiter(self):
        """A custom delimiter should be used for joining."""
        overlay = EnvironmentOverlay()
        overlay.append("JAVA_OPTS", "-Xmx1g", delimiter=" ")

        assert overlay.apply({"JAVA_OPTS": "-Xms1g"})["JAVA_OPTS"] == "-Xms1g -Xmx1g"

    def test_apply_does_not_modify_base(self):
        """apply should return a new dictionary."""
        base = {"PATH": "/usr/bin"}
        overlay = EnvironmentOverlay()
        overlay.override("PATH", "/bin")

        overlay.apply(base)
        assert base == {"PATH": "/usr/bin"}

    @pytest.mark.parametrize("name", ["", "A=B"])
    def test_invalid_variable_name(self, name):
        """Empty names and names containing '=' should be rejected."""
        with pytest.raises(ValueError, match="Invalid environment variable name"):
            EnvironmentOverlay().override(name, "x")

    def test_extend_preserves_order(self):
        """extend should append entries after the existing ones."""
        first = EnvironmentOverlay()
        first.override("A", "1")
        second = EnvironmentOverlay()
        second.override("A", "2")

        first.extend(second)
        assert len(first) == 2
        assert first.apply({})["A"] == "2"


class TestSerialization:
    """Tests for to_list/from_list."""

    def test_to_list(self):
        """Entries should serialize in order with their op names."""
        overlay = EnvironmentOverlay()
        overlay.prepend("PATH", "/layers/bin")
        overlay.default("PORT", "8080")

        assert overlay.to_list() == [
            {"variable": "PATH", "op": "prepend", "value": "/layers/bin", "delimiter": os.pathsep},
            {"variable": "PORT", "op": "default", "value": "8080", "delimiter": os.pathsep},
        ]

    def test_from_list_rebuilds_entries(self):
        """from_list should rebuild equivalent entries."""
        overlay = EnvironmentOverlay.from_list(
            [{"variable": "A", "op": "override", "value": "x"}]
        )

        assert list(overlay) == [EnvEntry("A", EnvOp.OVERRIDE, "x")]

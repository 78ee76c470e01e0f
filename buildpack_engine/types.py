"""Shared type definitions for buildpack_engine.

This module contains enums shared across subpackages to avoid circular
imports.
"""

from enum import Enum


class DetectStatus(str, Enum):
    """Outcome of a buildpack's detect step."""

    PASS = "pass"
    SKIP = "skip"
    ERROR = "error"


class BuildPhase(str, Enum):
    """Lifecycle phase a failure happened in."""

    DETECT = "detect"
    BUILD = "build"
    EXPORT = "export"


class EnvOp(str, Enum):
    """Operation applied by an environment overlay entry."""

    OVERRIDE = "override"
    PREPEND = "prepend"
    APPEND = "append"
    DEFAULT = "default"


class InvocationOutcome(str, Enum):
    """Outcome of one external process invocation."""

    OK = "ok"
    FAILED = "failed"
    TIMEOUT = "timeout"
    ERROR = "error"


__all__ = [
    "BuildPhase",
    "DetectStatus",
    "EnvOp",
    "InvocationOutcome",
]

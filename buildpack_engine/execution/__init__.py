"""Process execution module.

This module handles:
- Running external tools with captured output (runner)
- Rule-based substitution of process execution for tests (mock)
"""

from buildpack_engine.execution.mock import MockExecutor, MockRule
from buildpack_engine.execution.runner import (
    ExecResult,
    ExecutionError,
    Executor,
    SubprocessExecutor,
)

__all__ = [
    "ExecResult",
    "ExecutionError",
    "Executor",
    "MockExecutor",
    "MockRule",
    "SubprocessExecutor",
]

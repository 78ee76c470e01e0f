"""Rule-matching executor substitute for tests.

Invocations are matched against registered rules in registration order;
the first rule whose pattern matches the shell-quoted command line wins.
An invocation that matches no rule fails the test.
"""

from __future__ import annotations

import re
import shlex
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from buildpack_engine.execution.runner import Executor


class UnexpectedCommandError(AssertionError):
    """Raised when a command matches no registered mock rule."""

    def __init__(self, command: str, code: str = "unexpected_command") -> None:
        super().__init__(f"No mock rule matches command: {command}")
        self.command = command
        self.code = code


@dataclass
class MockRule:
    """Canned response for commands matching a regular expression.

    Attributes:
        pattern: Regular expression searched in the command line.
        stdout: Canned standard output.
        stderr: Canned standard error.
        exit_code: Canned exit code.
        timeout: Simulate the process exceeding its timeout.
    """

    pattern: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    timeout: bool = False
    _regex: re.Pattern[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._regex = re.compile(self.pattern)

    def matches(self, command: str) -> bool:
        return self._regex.search(command) is not None


def mock(
    pattern: str,
    stdout: str = "",
    stderr: str = "",
    exit_code: int = 0,
) -> MockRule:
    """Shorthand for MockRule(pattern, ...)."""
    return MockRule(pattern, stdout=stdout, stderr=stderr, exit_code=exit_code)


class MockExecutor(Executor):
    """Executor that answers from an ordered list of rules."""

    def __init__(
        self,
        rules: list[MockRule] | None = None,
        default_timeout: float | None = None,
    ) -> None:
        super().__init__(default_timeout=default_timeout)
        self.rules: list[MockRule] = list(rules or [])

    def add(self, rule: MockRule) -> None:
        self.rules.append(rule)

    def _spawn(
        self,
        args: list[str],
        cwd: Path | None,
        env: Mapping[str, str] | None,
        timeout: float | None,
    ) -> tuple[str, str, int]:
        command = shlex.join(args)
        for rule in self.rules:
            if rule.matches(command):
                if rule.timeout:
                    raise subprocess.TimeoutExpired(
                        args, timeout or 0, output=rule.stdout, stderr=rule.stderr
                    )
                return rule.stdout, rule.stderr, rule.exit_code
        raise UnexpectedCommandError(command)

    @property
    def commands(self) -> list[str]:
        """Command lines of every recorded invocation, in order."""
        return [record.command for record in self.invocations]

    def command_executed(self, command: str) -> bool:
        """Check whether any recorded command line contains `command`."""
        return any(command in recorded for recorded in self.commands)


__all__ = ["MockExecutor", "MockRule", "UnexpectedCommandError", "mock"]

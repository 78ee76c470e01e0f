"""External process execution for buildpacks.

This module handles:
- Running external tools and capturing stdout/stderr
- Enforcing per-invocation timeouts (the child is killed on expiry)
- Raising ExecutionError on non-zero exit unless the caller opts out
- Recording every invocation for diagnostics

Executor is the interface; SubprocessExecutor spawns real processes and
MockExecutor (see execution/mock.py) answers from registered rules.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from buildpack_engine.types import InvocationOutcome

logger = logging.getLogger(__name__)

DEFAULT_TAIL_LINES = 20


class ExecutionError(Exception):
    """Raised when an external process fails, times out, or cannot start."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr_tail: str = "",
        command: str = "",
        code: str = "exec_failed",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        self.command = command
        self.code = code


def tail_lines(text: str, lines: int = DEFAULT_TAIL_LINES) -> str:
    """Return the last `lines` non-trailing lines of text."""
    if not text:
        return ""
    return "\n".join(text.rstrip("\n").splitlines()[-lines:])


@dataclass(frozen=True)
class ExecResult:
    """Captured result of one external process invocation.

    Attributes:
        command: Shell-quoted command line.
        stdout: Captured standard output.
        stderr: Captured standard error.
        exit_code: Process exit code.
        duration: Wall-clock duration in seconds.
    """

    command: str
    stdout: str
    stderr: str
    exit_code: int
    duration: float

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def stderr_tail(self) -> str:
        return tail_lines(self.stderr)


@dataclass(frozen=True)
class InvocationRecord:
    """Diagnostic record of one invocation, kept regardless of outcome."""

    command: str
    cwd: str | None
    duration: float
    exit_code: int | None
    outcome: InvocationOutcome
    owner: str | None = None
    stderr_tail: str = ""


class Executor(ABC):
    """Runs external commands on behalf of buildpacks.

    Subclasses implement `_spawn`; recording, logging, and error mapping
    live here so every implementation behaves the same way.
    """

    def __init__(
        self,
        default_timeout: float | None = None,
        tail_size: int = DEFAULT_TAIL_LINES,
    ) -> None:
        self.default_timeout = default_timeout
        self.tail_size = tail_size
        self.invocations: list[InvocationRecord] = []

    @abstractmethod
    def _spawn(
        self,
        args: list[str],
        cwd: Path | None,
        env: Mapping[str, str] | None,
        timeout: float | None,
    ) -> tuple[str, str, int]:
        """Run a command and return (stdout, stderr, exit_code).

        Raises:
            subprocess.TimeoutExpired: If the timeout elapsed.
            OSError: If the process could not be started.
            ValueError: If the output could not be decoded.
        """

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        ignore_nonzero: bool = False,
        expect_failure: bool = False,
        timeout: float | None = None,
        owner: str | None = None,
    ) -> ExecResult:
        """Run an external command.

        Args:
            args: Command and arguments.
            cwd: Working directory override.
            env: Complete environment for the child (None inherits).
            ignore_nonzero: Return the result instead of raising on non-zero exit.
            expect_failure: Suppress the default error log on failure.
            timeout: Timeout in seconds (defaults to the executor's default).
            owner: Buildpack that issued the command, for diagnostics.

        Returns:
            ExecResult with captured output.

        Raises:
            ExecutionError: On non-zero exit (unless ignored), timeout,
                or failure to start the process.
        """
        argv = [str(a) for a in args]
        if not argv:
            raise ValueError("Cannot run an empty command")

        cmd_str = shlex.join(argv)
        effective_timeout = timeout if timeout is not None else self.default_timeout
        cwd_str = str(cwd) if cwd is not None else None
        logger.info("Running: %s", cmd_str)
        logger.debug("Working directory: %s", cwd_str or "(inherited)")

        started = time.monotonic()
        try:
            stdout, stderr, exit_code = self._spawn(argv, cwd, env, effective_timeout)
        except subprocess.TimeoutExpired as e:
            duration = time.monotonic() - started
            stderr_tail = tail_lines(_as_text(e.stderr), self.tail_size)
            self._record(
                cmd_str, cwd_str, duration, None, InvocationOutcome.TIMEOUT, owner, stderr_tail
            )
            message = f"Command timed out after {effective_timeout} seconds: {cmd_str}"
            if not expect_failure:
                logger.error(message)
            raise ExecutionError(
                message,
                exit_code=-1,
                stderr_tail=stderr_tail,
                command=cmd_str,
                code="timeout",
            ) from e
        except (OSError, ValueError) as e:
            # Spawn failures and output that cannot be decoded
            duration = time.monotonic() - started
            self._record(cmd_str, cwd_str, duration, None, InvocationOutcome.ERROR, owner, "")
            message = f"Failed to execute {cmd_str}: {e}"
            if not expect_failure:
                logger.error(message)
            raise ExecutionError(
                message,
                exit_code=None,
                command=cmd_str,
                code="execution_error",
            ) from e

        duration = time.monotonic() - started
        stderr_tail = tail_lines(stderr, self.tail_size)
        outcome = InvocationOutcome.OK if exit_code == 0 else InvocationOutcome.FAILED
        self._record(cmd_str, cwd_str, duration, exit_code, outcome, owner, stderr_tail)

        result = ExecResult(
            command=cmd_str,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration=duration,
        )

        if exit_code != 0 and not ignore_nonzero:
            message = f"Command {cmd_str!r} failed with exit code {exit_code}"
            if not expect_failure:
                logger.error("%s\n%s", message, stderr_tail)
            raise ExecutionError(
                message,
                exit_code=exit_code,
                stderr_tail=stderr_tail,
                command=cmd_str,
            )

        return result

    def _record(
        self,
        command: str,
        cwd: str | None,
        duration: float,
        exit_code: int | None,
        outcome: InvocationOutcome,
        owner: str | None,
        stderr_tail: str,
    ) -> None:
        record = InvocationRecord(
            command=command,
            cwd=cwd,
            duration=duration,
            exit_code=exit_code,
            outcome=outcome,
            owner=owner,
            stderr_tail=stderr_tail,
        )
        self.invocations.append(record)
        logger.debug(
            "Invocation finished: %s (outcome=%s, exit=%s, %.2fs)",
            command,
            outcome.value,
            exit_code,
            duration,
        )

    def last_invocation(self, owner: str | None = None) -> InvocationRecord | None:
        """Return the most recent invocation, optionally for one buildpack."""
        for record in reversed(self.invocations):
            if owner is None or record.owner == owner:
                return record
        return None


class SubprocessExecutor(Executor):
    """Executor that spawns real processes with subprocess."""

    def _spawn(
        self,
        args: list[str],
        cwd: Path | None,
        env: Mapping[str, str] | None,
        timeout: float | None,
    ) -> tuple[str, str, int]:
        # subprocess.run kills the child before re-raising TimeoutExpired
        completed = subprocess.run(
            args,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
        return completed.stdout, completed.stderr, completed.returncode


def _as_text(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


__all__ = [
    "DEFAULT_TAIL_LINES",
    "ExecResult",
    "ExecutionError",
    "Executor",
    "InvocationRecord",
    "SubprocessExecutor",
    "tail_lines",
]

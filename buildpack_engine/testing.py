"""Helpers for testing buildpacks without real tool execution.

run_detect() lays out files in a temporary application root and runs one
buildpack's detect step. run_build() runs one build step against a
MockExecutor so every external command must be answered by a rule.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from buildpack_engine.buildpack import Buildpack, BuildOutcome
from buildpack_engine.config import Settings
from buildpack_engine.context import BuildContext, new_context
from buildpack_engine.execution.mock import MockExecutor, MockRule
from buildpack_engine.plan.models import DetectResult, PlanEntry


def write_files(root: Path, files: Mapping[str, str]) -> None:
    """Create files (with parent directories) under root."""
    for rel_path, content in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def make_context(
    app_dir: Path,
    layers_dir: Path | None = None,
    env: Mapping[str, str] | None = None,
    mocks: list[MockRule] | None = None,
) -> BuildContext:
    """Create a context backed by a MockExecutor and an isolated environment."""
    layers_root = (
        layers_dir if layers_dir is not None else app_dir.with_name(f"{app_dir.name}-layers")
    )
    settings = Settings(app_dir=app_dir, layers_dir=layers_root)
    return new_context(
        app_root=app_dir,
        env=dict(env or {}),
        executor=MockExecutor(mocks),
        layers_dir=layers_root,
        settings=settings,
    )


def run_detect(
    buildpack: Buildpack,
    app_dir: Path,
    files: Mapping[str, str] | None = None,
    env: Mapping[str, str] | None = None,
    mocks: list[MockRule] | None = None,
) -> DetectResult:
    """Write files into app_dir and run the buildpack's detect step."""
    app_dir.mkdir(parents=True, exist_ok=True)
    write_files(app_dir, files or {})
    ctx = make_context(app_dir, env=env, mocks=mocks)
    return buildpack.detect(ctx.scoped(buildpack.name))


@dataclass
class BuildRunResult:
    """Outcome of run_build()."""

    context: BuildContext
    outcome: BuildOutcome | None

    @property
    def executor(self) -> MockExecutor:
        executor = self.context.executor
        if not isinstance(executor, MockExecutor):
            raise TypeError(f"expected a MockExecutor, got {type(executor).__name__}")
        return executor

    def command_executed(self, command: str) -> bool:
        return self.executor.command_executed(command)

    @property
    def env(self) -> dict[str, str]:
        """Environment as seen after the buildpack's overlay is applied."""
        return self.context.effective_env()


def run_build(
    buildpack: Buildpack,
    app_dir: Path,
    layers_dir: Path | None = None,
    env: Mapping[str, str] | None = None,
    mocks: list[MockRule] | None = None,
    entry: PlanEntry | None = None,
) -> BuildRunResult:
    """Run one buildpack's build step against mocked commands.

    Layer records are flushed afterwards, as the orchestrator does after a
    successful step. Exceptions from the build step propagate.
    """
    ctx = make_context(app_dir, layers_dir=layers_dir, env=env, mocks=mocks)
    scoped = ctx.scoped(buildpack.name)
    outcome = buildpack.build(scoped, entry or PlanEntry(buildpack.name))
    ctx.layers.flush(buildpack.name)
    return BuildRunResult(context=scoped, outcome=outcome)


__all__ = [
    "BuildRunResult",
    "make_context",
    "run_build",
    "run_detect",
    "write_files",
]

"""Build orchestration.

This module provides the high-level lifecycle API:
- detect(): run detection and resolve the build plan
- build(): run each active buildpack's build step in plan order
- run_lifecycle(): both, in one call

A failing build step stops the build immediately. Layers written so far
stay on disk so a fixed failure can resume from partial progress.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from buildpack_engine.environment import EnvironmentOverlay
from buildpack_engine.execution.mock import UnexpectedCommandError
from buildpack_engine.execution.runner import Executor
from buildpack_engine.layers.models import LayerSummary
from buildpack_engine.lifecycle.manifest import generate_manifest, write_manifest
from buildpack_engine.plan.models import BuildPlan
from buildpack_engine.plan.negotiator import negotiate
from buildpack_engine.types import BuildPhase

if TYPE_CHECKING:
    from buildpack_engine.buildpack import Buildpack
    from buildpack_engine.context import BuildContext

logger = logging.getLogger(__name__)


class BuildError(Exception):
    """Raised when a buildpack's build step fails."""

    def __init__(
        self,
        buildpack: str,
        message: str,
        phase: BuildPhase = BuildPhase.BUILD,
        stderr_tail: str = "",
        code: str = "build_failed",
    ) -> None:
        super().__init__(message)
        self.buildpack = buildpack
        self.message = message
        self.phase = phase
        self.stderr_tail = stderr_tail
        self.code = code

    def __str__(self) -> str:
        text = f"{self.buildpack} failed during {self.phase.value}: {self.message}"
        if self.stderr_tail:
            text += f"\n--- stderr (last lines) ---\n{self.stderr_tail}"
        return text


@dataclass
class BuildReport:
    """Result of a successful build.

    Attributes:
        plan: The plan that was executed.
        layers: Layers retained after pruning.
        environment: Merged environment overlay.
        processes: Declared processes by type.
        manifest_path: Path of the written manifest.
        manifest: Manifest contents.
    """

    plan: BuildPlan
    layers: list[LayerSummary] = field(default_factory=list)
    environment: EnvironmentOverlay = field(default_factory=EnvironmentOverlay)
    processes: dict[str, str] = field(default_factory=dict)
    manifest_path: Path | None = None
    manifest: dict[str, Any] = field(default_factory=dict)


def _last_stderr_tail(executor: Executor, buildpack: str, start: int) -> str:
    for record in reversed(executor.invocations[start:]):
        if record.owner == buildpack:
            return record.stderr_tail
    return ""


def detect(
    buildpacks: Sequence[Buildpack],
    ctx: BuildContext,
    roots: Sequence[str] | None = None,
) -> BuildPlan:
    """Run the detect phase.

    Raises:
        DetectionError: If any buildpack errors or the plan cannot be resolved.
        PlanConflictError: On a conflicting exclusive provision.
    """
    return negotiate(buildpacks, ctx, roots)


def build(
    buildpacks: Sequence[Buildpack],
    ctx: BuildContext,
    plan: BuildPlan,
) -> BuildReport:
    """Run the build phase for every active buildpack in plan order.

    Each buildpack gets its own scoped context and plan entry. After a
    buildpack succeeds its environment entries become visible to the ones
    after it and its layer records are persisted. When all succeed, unused
    layers are pruned and the manifest is written.

    Args:
        buildpacks: Registered buildpacks.
        ctx: Unscoped invocation context.
        plan: Resolved plan.

    Returns:
        BuildReport.

    Raises:
        BuildError: On the first failing build step.
        UnexpectedCommandError: If a MockExecutor has no rule for a command.
    """
    registry = {bp.name: bp for bp in buildpacks}
    missing = [name for name in plan.order if name not in registry]
    if missing:
        raise ValueError(f"Plan references unregistered buildpacks: {', '.join(missing)}")

    processes: dict[str, str] = {}

    # Exports of this build only; the caller's context is left as it was
    exported = EnvironmentOverlay()
    exported.extend(ctx.exported)
    ctx = replace(ctx, exported=exported)

    for name in plan.order:
        buildpack = registry[name]
        scoped = ctx.scoped(name)
        start = len(ctx.executor.invocations)
        logger.info("===> Building %s", name)

        try:
            outcome = buildpack.build(scoped, plan.entry(name))
        except BuildError as e:
            if not e.stderr_tail:
                e.stderr_tail = _last_stderr_tail(ctx.executor, name, start)
            logger.error("%s", e)
            raise
        except UnexpectedCommandError:
            raise
        except Exception as e:
            error = BuildError(
                name,
                f"{type(e).__name__}: {e}",
                stderr_tail=_last_stderr_tail(ctx.executor, name, start),
            )
            logger.error("%s", error)
            raise error from e

        if outcome is not None:
            scoped.overlay.extend(outcome.env)
            processes.update(outcome.processes)

        ctx.exported.extend(scoped.overlay)
        ctx.layers.flush(name)
        logger.info("Finished %s", name)

    retained = ctx.layers.finalize(plan.order)
    manifest = generate_manifest(
        layers=retained,
        environment=ctx.exported,
        buildpacks=plan.order,
        processes=processes,
        extra_metadata={"warnings": plan.warnings} if plan.warnings else None,
    )
    manifest_path = write_manifest(manifest, ctx.layers.root / ctx.settings.manifest_name)

    return BuildReport(
        plan=plan,
        layers=retained,
        environment=ctx.exported,
        processes=processes,
        manifest_path=manifest_path,
        manifest=manifest,
    )


def run_lifecycle(
    buildpacks: Sequence[Buildpack],
    ctx: BuildContext,
    roots: Sequence[str] | None = None,
) -> BuildReport:
    """Detect, resolve, and build in one call."""
    plan = detect(buildpacks, ctx, roots)
    return build(buildpacks, ctx, plan)


__all__ = ["BuildError", "BuildReport", "build", "detect", "run_lifecycle"]

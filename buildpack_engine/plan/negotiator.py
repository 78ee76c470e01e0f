"""Detect phase.

Runs detect on every registered buildpack, in registration order, and
hands the collected results to the resolver.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from buildpack_engine.execution.mock import UnexpectedCommandError
from buildpack_engine.plan.models import BuildPlan, DetectRecord, DetectResult
from buildpack_engine.plan.resolver import resolve_plan

if TYPE_CHECKING:
    from buildpack_engine.buildpack import Buildpack
    from buildpack_engine.context import BuildContext

logger = logging.getLogger(__name__)


def run_detect(
    buildpacks: Sequence[Buildpack],
    ctx: BuildContext,
) -> list[DetectRecord]:
    """Run detect for every buildpack.

    An exception raised by detect is recorded as an ERROR result carrying
    the exception message. UnexpectedCommandError from a MockExecutor
    propagates unchanged so the calling test fails.

    Args:
        buildpacks: Registered buildpacks in registration order.
        ctx: Unscoped invocation context.

    Returns:
        One DetectRecord per buildpack.
    """
    records: list[DetectRecord] = []
    for buildpack in buildpacks:
        scoped = ctx.scoped(buildpack.name)
        try:
            result = buildpack.detect(scoped)
        except UnexpectedCommandError:
            raise
        except Exception as e:
            logger.exception("Detect raised in %s", buildpack.name)
            result = DetectResult.error(f"{type(e).__name__}: {e}")

        if not isinstance(result, DetectResult):
            result = DetectResult.error(
                f"detect returned {type(result).__name__}, expected DetectResult"
            )

        logger.info(
            "Detect %s: %s%s",
            buildpack.name,
            result.status.value,
            f" ({result.diagnostic})" if result.diagnostic else "",
        )
        records.append(DetectRecord(buildpack.name, result, buildpack.required))
    return records


def negotiate(
    buildpacks: Sequence[Buildpack],
    ctx: BuildContext,
    roots: Sequence[str] | None = None,
) -> BuildPlan:
    """Run detection and resolve the build plan.

    Args:
        buildpacks: Registered buildpacks in registration order.
        ctx: Unscoped invocation context.
        roots: Platform roots (defaults to settings.platform_roots).

    Returns:
        Resolved BuildPlan.

    Raises:
        DetectionError: See resolve_plan.
        PlanConflictError: See resolve_plan.
    """
    records = run_detect(buildpacks, ctx)
    if roots is None:
        roots = ctx.settings.platform_roots
    return resolve_plan(records, roots)


__all__ = ["negotiate", "run_detect"]

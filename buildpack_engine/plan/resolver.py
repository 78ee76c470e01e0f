"""Build plan resolution.

This module handles:
- Selecting the buildpacks that satisfy each required provision
- Computing the transitive closure from the platform roots
- Detecting provision conflicts and requirement cycles

Resolution only depends on the set of detect results: the same results
always produce the same plan, and for conflict-free sets the active
buildpacks and their requirements do not depend on registration order.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Sequence

from buildpack_engine.plan.models import (
    PLATFORM,
    BuildPlan,
    DetectRecord,
    PlanEntry,
    PlanRequirement,
    Provide,
    Require,
)
from buildpack_engine.types import DetectStatus

logger = logging.getLogger(__name__)


class DetectionError(Exception):
    """Raised when detection fails; no build step may run."""

    def __init__(
        self,
        buildpack: str,
        diagnostic: str,
        code: str = "detection_error",
    ) -> None:
        super().__init__(f"{buildpack} failed detection: {diagnostic}")
        self.buildpack = buildpack
        self.diagnostic = diagnostic
        self.phase = "detect"
        self.code = code


class PlanConflictError(Exception):
    """Raised when an exclusive provision conflicts with another."""

    def __init__(
        self,
        name: str,
        buildpacks: Sequence[str],
        code: str = "plan_conflict",
    ) -> None:
        super().__init__(
            f"Conflicting exclusive provision {name!r} from {', '.join(buildpacks)}"
        )
        self.name = name
        self.buildpacks = list(buildpacks)
        self.code = code


def select_providers(
    records: Sequence[DetectRecord],
) -> tuple[dict[str, list[tuple[str, Provide]]], list[str]]:
    """Select the buildpacks that satisfy each provision name.

    The first registered provider defines the provision; later providers
    with identical metadata also satisfy it. A later provider with different
    metadata is dropped with a warning, unless either side is exclusive, in
    which case the conflict is fatal.

    Args:
        records: PASS records in registration order.

    Returns:
        Tuple of (name -> [(buildpack, provide)], warnings).

    Raises:
        PlanConflictError: On a conflict involving an exclusive provision.
    """
    providers: dict[str, list[tuple[str, Provide]]] = {}
    warnings: list[str] = []

    for record in records:
        for provide in record.result.provides:
            selected = providers.get(provide.name)
            if selected is None:
                providers[provide.name] = [(record.buildpack, provide)]
                continue

            first_buildpack, first = selected[0]
            if any(bp == record.buildpack for bp, _ in selected):
                continue
            if first.metadata == provide.metadata:
                selected.append((record.buildpack, provide))
                continue
            if first.exclusive or provide.exclusive:
                raise PlanConflictError(provide.name, [first_buildpack, record.buildpack])

            message = (
                f"{record.buildpack} provides {provide.name!r} with metadata "
                f"conflicting with {first_buildpack}; using {first_buildpack}"
            )
            logger.warning(message)
            warnings.append(message)

    return providers, warnings


def find_cycle(edges: dict[str, set[str]]) -> list[str] | None:
    """Return one requirement cycle as a path, or None if acyclic."""
    visiting: set[str] = set()
    done: set[str] = set()
    stack: list[str] = []

    def visit(node: str) -> list[str] | None:
        visiting.add(node)
        stack.append(node)
        for nxt in sorted(edges.get(node, ())):
            if nxt in visiting:
                return stack[stack.index(nxt) :] + [nxt]
            if nxt not in done:
                cycle = visit(nxt)
                if cycle:
                    return cycle
        stack.pop()
        visiting.discard(node)
        done.add(node)
        return None

    for node in sorted(edges):
        if node not in done:
            cycle = visit(node)
            if cycle:
                return cycle
    return None


def resolve_plan(
    records: Sequence[DetectRecord],
    roots: Iterable[str] = ("web-process",),
) -> BuildPlan:
    """Resolve a build plan from detect results.

    Args:
        records: One record per registered buildpack, in registration order.
        roots: Provision names the platform always requires.

    Returns:
        BuildPlan with the active buildpacks in build order.

    Raises:
        DetectionError: On a detect ERROR, a required buildpack that did not
            pass, an unsatisfied requirement, or a requirement cycle.
        PlanConflictError: On a conflicting exclusive provision.
    """
    seen: set[str] = set()
    for record in records:
        if record.buildpack in seen:
            raise ValueError(f"Buildpack registered twice: {record.buildpack}")
        seen.add(record.buildpack)

    for record in records:
        if record.result.status is DetectStatus.ERROR:
            raise DetectionError(record.buildpack, record.result.diagnostic)

    for record in records:
        if record.required and not record.result.passed_detection:
            raise DetectionError(
                record.buildpack,
                f"required buildpack did not pass detection ({record.result.diagnostic})",
            )

    passed = [r for r in records if r.result.passed_detection]
    by_name = {r.buildpack: r for r in passed}
    providers, warnings = select_providers(passed)

    active: set[str] = set()
    requirements: dict[str, list[PlanRequirement]] = {}
    queue: deque[tuple[Require, str]] = deque(
        (Require(root), PLATFORM) for root in roots
    )

    def activate(buildpack: str) -> None:
        if buildpack in active:
            return
        active.add(buildpack)
        requirements.setdefault(buildpack, [])
        for require in by_name[buildpack].result.requires:
            queue.append((require, buildpack))

    for record in passed:
        if record.required:
            activate(record.buildpack)

    while queue:
        require, required_by = queue.popleft()
        satisfiers = providers.get(require.name)
        if not satisfiers:
            raise DetectionError(
                required_by,
                f"no buildpack provides {require.name!r} required by {required_by}",
            )
        for buildpack, _ in satisfiers:
            requirement = PlanRequirement(require.name, required_by, dict(require.metadata))
            requirements.setdefault(buildpack, [])
            if requirement not in requirements[buildpack]:
                requirements[buildpack].append(requirement)
            activate(buildpack)

    edges: dict[str, set[str]] = {bp: set() for bp in active}
    for buildpack in active:
        for require in by_name[buildpack].result.requires:
            for provider, _ in providers.get(require.name, []):
                if provider != buildpack:
                    edges[buildpack].add(provider)

    cycle = find_cycle(edges)
    if cycle:
        raise DetectionError(cycle[0], "requirement cycle: " + " -> ".join(cycle))

    order = [r.buildpack for r in records if r.buildpack in active]
    position = {bp: i for i, bp in enumerate(order)}
    for buildpack in order:
        for provider in sorted(edges[buildpack]):
            if position[provider] > position[buildpack]:
                message = f"{buildpack} is registered before its provider {provider}"
                logger.warning(message)
                warnings.append(message)

    plan = BuildPlan(records=list(records), warnings=warnings, order=order)
    for buildpack in order:
        selected = [
            provide
            for provide in by_name[buildpack].result.provides
            if any(bp == buildpack for bp, _ in providers.get(provide.name, []))
        ]
        plan.entries[buildpack] = PlanEntry(
            buildpack=buildpack,
            requirements=sorted(
                requirements.get(buildpack, []), key=lambda r: (r.name, r.required_by)
            ),
            provides=selected,
        )

    logger.info("Resolved build plan: %s", ", ".join(order) or "(empty)")
    return plan


__all__ = [
    "DetectionError",
    "PlanConflictError",
    "find_cycle",
    "resolve_plan",
    "select_providers",
]

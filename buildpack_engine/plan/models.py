"""Detection results and build plan types.

A buildpack's detect step returns a DetectResult declaring what it
provides and what it requires. The resolver turns the results of every
registered buildpack into a BuildPlan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from buildpack_engine.types import DetectStatus

# Name used as `required_by` for requirements the platform itself declares
PLATFORM = "platform"


@dataclass(frozen=True)
class Provide:
    """A named capability a buildpack can supply.

    Attributes:
        name: Provision name (e.g. "runtime", "web-process").
        metadata: Details of what is provided; compared to detect conflicts.
        exclusive: Any conflicting provision of the same name is fatal.
    """

    name: str
    metadata: dict[str, Any] = field(default_factory=dict)
    exclusive: bool = False


@dataclass(frozen=True)
class Require:
    """A named capability a buildpack needs from another buildpack."""

    name: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class DetectResult:
    """Outcome of one buildpack's detect step.

    Attributes:
        status: PASS, SKIP, or ERROR.
        provides: Provisions declared on PASS.
        requires: Requirements declared on PASS.
        diagnostic: Reason for SKIP or ERROR.
    """

    status: DetectStatus
    provides: list[Provide] = field(default_factory=list)
    requires: list[Require] = field(default_factory=list)
    diagnostic: str = ""

    @classmethod
    def passed(
        cls,
        provides: list[Provide] | None = None,
        requires: list[Require] | None = None,
        diagnostic: str = "",
    ) -> DetectResult:
        return cls(DetectStatus.PASS, list(provides or []), list(requires or []), diagnostic)

    @classmethod
    def skip(cls, reason: str) -> DetectResult:
        return cls(DetectStatus.SKIP, diagnostic=reason)

    @classmethod
    def error(cls, diagnostic: str) -> DetectResult:
        return cls(DetectStatus.ERROR, diagnostic=diagnostic)

    @property
    def passed_detection(self) -> bool:
        return self.status is DetectStatus.PASS


@dataclass
class DetectRecord:
    """A DetectResult tagged with the buildpack that produced it."""

    buildpack: str
    result: DetectResult
    required: bool = False


@dataclass(frozen=True)
class PlanRequirement:
    """A requirement a buildpack must satisfy in this build."""

    name: str
    required_by: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PlanEntry:
    """The portion of the plan handed to one buildpack's build step.

    Attributes:
        buildpack: Buildpack name.
        requirements: Requirements targeting this buildpack's provisions,
            sorted by (name, required_by).
        provides: Provisions selected from this buildpack.
    """

    buildpack: str
    requirements: list[PlanRequirement] = field(default_factory=list)
    provides: list[Provide] = field(default_factory=list)

    def requirements_for(self, name: str) -> list[PlanRequirement]:
        return [r for r in self.requirements if r.name == name]

    def merged_metadata(self, name: str) -> dict[str, Any]:
        """Merge the metadata of every requirement for `name`, in order."""
        merged: dict[str, Any] = {}
        for requirement in self.requirements_for(name):
            merged.update(requirement.metadata)
        return merged


@dataclass
class BuildPlan:
    """Resolved set of active buildpacks.

    Attributes:
        entries: Plan entry per active buildpack.
        order: Build order (registration order over active buildpacks).
        warnings: Non-fatal conflicts and ordering notes.
        records: Detect results of every registered buildpack.
    """

    entries: dict[str, PlanEntry] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    records: list[DetectRecord] = field(default_factory=list)

    def is_active(self, buildpack: str) -> bool:
        return buildpack in self.entries

    def entry(self, buildpack: str) -> PlanEntry:
        return self.entries[buildpack]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "order": list(self.order),
            "entries": {
                name: {
                    "requirements": [
                        {
                            "name": r.name,
                            "required_by": r.required_by,
                            "metadata": r.metadata,
                        }
                        for r in entry.requirements
                    ],
                    "provides": [p.name for p in entry.provides],
                }
                for name, entry in self.entries.items()
            },
            "warnings": list(self.warnings),
            "detect": {
                rec.buildpack: {
                    "status": rec.result.status.value,
                    "diagnostic": rec.result.diagnostic,
                }
                for rec in self.records
            },
        }


__all__ = [
    "PLATFORM",
    "BuildPlan",
    "DetectRecord",
    "DetectResult",
    "PlanEntry",
    "PlanRequirement",
    "Provide",
    "Require",
]

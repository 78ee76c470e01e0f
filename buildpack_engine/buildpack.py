"""Buildpack contract.

A buildpack decides in `detect` whether it applies to a source tree and,
when the plan selects it, contributes layers and environment in `build`.
Both steps act only through the BuildContext they are given.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from buildpack_engine.environment import EnvironmentOverlay

if TYPE_CHECKING:
    from buildpack_engine.context import BuildContext
    from buildpack_engine.plan.models import DetectResult, PlanEntry


@dataclass
class BuildOutcome:
    """What a successful build step contributes beyond its layers.

    Attributes:
        processes: Process type to command line (e.g. "web").
        env: Extra environment entries, applied after the context overlay.
    """

    processes: dict[str, str] = field(default_factory=dict)
    env: EnvironmentOverlay = field(default_factory=EnvironmentOverlay)


class Buildpack(ABC):
    """Base class for buildpacks.

    Subclasses set `name` and implement detect() and build(). A buildpack
    with `required = True` takes part in every build it passes detection
    for; a required buildpack that does not pass fails detection.
    """

    name: str = ""
    required: bool = False

    @abstractmethod
    def detect(self, ctx: BuildContext) -> DetectResult:
        """Decide whether and how this buildpack participates."""

    @abstractmethod
    def build(self, ctx: BuildContext, entry: PlanEntry) -> BuildOutcome | None:
        """Run the build step.

        Raises:
            Exception: Any exception is fatal to the whole build.
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


__all__ = ["BuildOutcome", "Buildpack"]

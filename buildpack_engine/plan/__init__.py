"""Detection and build plan negotiation module.

This module handles:
- Running every buildpack's detect step (negotiator)
- Resolving provisions and requirements into a plan (resolver)
"""

from buildpack_engine.plan.models import (
    BuildPlan,
    DetectResult,
    PlanEntry,
    PlanRequirement,
    Provide,
    Require,
)
from buildpack_engine.plan.resolver import DetectionError, PlanConflictError

__all__ = [
    "BuildPlan",
    "DetectResult",
    "DetectionError",
    "PlanConflictError",
    "PlanEntry",
    "PlanRequirement",
    "Provide",
    "Require",
]

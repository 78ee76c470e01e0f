"""Tests for plan/resolver.py module.

Tests transitive closure, conflict handling, cycles and build order.
"""

import itertools
import logging

import pytest

from buildpack_engine.plan.models import (
    PLATFORM,
    DetectRecord,
    DetectResult,
    PlanRequirement,
    Provide,
    Require,
)
from buildpack_engine.plan.resolver import (
    DetectionError,
    PlanConflictError,
    find_cycle,
    resolve_plan,
)


def passed(name, provides=(), requires=(), required=False):
    """Build a PASS record."""
    return DetectRecord(
        name,
        DetectResult.passed(
            provides=[p if isinstance(p, Provide) else Provide(p) for p in provides],
            requires=[r if isinstance(r, Require) else Require(r) for r in requires],
        ),
        required=required,
    )


def skipped(name, required=False):
    """Build a SKIP record."""
    return DetectRecord(name, DetectResult.skip("not applicable"), required=required)


class TestResolvePlan:
    """Tests for the basic closure."""

    def test_runtime_and_web_process(self):
        """A provides runtime, B requires runtime and provides web-process."""
        records = [
            passed("A", provides=["runtime"]),
            passed("B", provides=["web-process"], requires=["runtime"]),
        ]

        plan = resolve_plan(records, ["web-process"])

        assert plan.order == ["A", "B"]
        assert plan.is_active("A") and plan.is_active("B")
        assert plan.entry("A").requirements == [PlanRequirement("runtime", "B")]
        assert plan.entry("B").requirements == [PlanRequirement("web-process", PLATFORM)]
        assert plan.warnings == []

    def test_unreachable_buildpack_inactive(self):
        """A passing buildpack nobody needs should not be active."""
        records = [
            passed("A", provides=["web-process"]),
            passed("extra", provides=["tooling"]),
        ]

        plan = resolve_plan(records, ["web-process"])

        assert plan.order == ["A"]
        assert not plan.is_active("extra")

    def test_skipped_buildpack_ignored(self):
        """Skipped buildpacks never provide anything."""
        records = [skipped("A"), passed("B", provides=["web-process"])]

        assert resolve_plan(records, ["web-process"]).order == ["B"]

    def test_requirement_metadata_reaches_provider(self):
        """Requirement metadata should be available to the provider's build."""
        records = [
            passed("go", provides=["go"]),
            passed(
                "app",
                provides=["web-process"],
                requires=[Require("go", {"version": "1.21"})],
            ),
        ]

        plan = resolve_plan(records, ["web-process"])

        assert plan.entry("go").merged_metadata("go") == {"version": "1.21"}

    def test_identical_metadata_providers_all_active(self):
        """Providers with identical metadata should all satisfy the name."""
        records = [
            passed("first", provides=[Provide("runtime", {"v": "1"})]),
            passed("second", provides=[Provide("runtime", {"v": "1"})]),
            passed("app", provides=["web-process"], requires=["runtime"]),
        ]

        plan = resolve_plan(records, ["web-process"])

        assert plan.order == ["first", "second", "app"]

    def test_order_independent_when_conflict_free(self):
        """Active set and requirements should not depend on registration order."""
        records = [
            passed("runtime", provides=["runtime"]),
            passed("deps", provides=["deps"], requires=["runtime"]),
            passed("app", provides=["web-process"], requires=["runtime", "deps"]),
            passed("unused", provides=["other"]),
        ]
        baseline = resolve_plan(records, ["web-process"])

        for perm in itertools.permutations(records):
            plan = resolve_plan(list(perm), ["web-process"])
            assert set(plan.order) == set(baseline.order)
            for name in plan.order:
                assert plan.entry(name).requirements == baseline.entry(name).requirements
            # Build order follows registration order
            assert plan.order == [r.buildpack for r in perm if r.buildpack in plan.entries]

    def test_deterministic(self):
        """The same results should always produce the same plan."""
        records = [
            passed("A", provides=["runtime"]),
            passed("B", provides=["web-process"], requires=["runtime"]),
        ]

        assert resolve_plan(records).to_dict() == resolve_plan(records).to_dict()

    def test_duplicate_registration(self):
        """Registering the same buildpack twice is a programming error."""
        with pytest.raises(ValueError, match="registered twice"):
            resolve_plan([passed("A"), passed("A")])


class TestResolveErrors:
    """Tests for detection errors."""

    def test_detect_error_is_fatal(self):
        """Any ERROR result should fail detection."""
        records = [
            passed("A", provides=["web-process"]),
            DetectRecord("B", DetectResult.error("bad config")),
        ]

        with pytest.raises(DetectionError) as exc_info:
            resolve_plan(records, ["web-process"])

        assert exc_info.value.buildpack == "B"
        assert exc_info.value.code == "detection_error"
        assert "bad config" in str(exc_info.value)

    def test_unprovided_root(self):
        """A root nobody provides should fail detection."""
        with pytest.raises(DetectionError, match="no buildpack provides 'web-process'"):
            resolve_plan([skipped("A")], ["web-process"])

    def test_unmet_requirement(self):
        """A requirement nobody provides should fail detection."""
        records = [passed("B", provides=["web-process"], requires=["runtime"])]

        with pytest.raises(DetectionError) as exc_info:
            resolve_plan(records, ["web-process"])

        assert exc_info.value.buildpack == "B"

    def test_cycle(self):
        """A requirement cycle among active buildpacks should fail detection."""
        records = [
            passed("A", provides=["a"], requires=["b"]),
            passed("B", provides=["b", "web-process"], requires=["a"]),
        ]

        with pytest.raises(DetectionError, match="requirement cycle"):
            resolve_plan(records, ["web-process"])

    def test_self_requirement_is_not_a_cycle(self):
        """A buildpack requiring its own provision is allowed."""
        records = [passed("A", provides=["web-process", "x"], requires=["x"])]

        assert resolve_plan(records, ["web-process"]).order == ["A"]


class TestRequiredBuildpacks:
    """Tests for buildpacks marked required."""

    def test_required_is_active_when_passing(self):
        """A required buildpack should be active even if nobody needs it."""
        records = [
            passed("utils", provides=["archive"], required=True),
            passed("app", provides=["web-process"]),
        ]

        assert resolve_plan(records, ["web-process"]).order == ["utils", "app"]

    def test_required_requirements_seed_closure(self):
        """Requirements of a required buildpack should be resolved too."""
        records = [
            passed("tool", provides=["tool"]),
            passed("utils", requires=["tool"], required=True),
            passed("app", provides=["web-process"]),
        ]

        plan = resolve_plan(records, ["web-process"])

        assert plan.order == ["tool", "utils", "app"]

    def test_required_not_passing(self):
        """A required buildpack that skips should fail detection."""
        records = [skipped("utils", required=True), passed("app", provides=["web-process"])]

        with pytest.raises(DetectionError, match="required buildpack"):
            resolve_plan(records, ["web-process"])


class TestConflicts:
    """Tests for conflicting provisions."""

    def test_exclusive_conflict(self):
        """Two exclusive runtime provisions with different metadata conflict."""
        records = [
            passed("A", provides=[Provide("runtime", {"v": "1"}, exclusive=True)]),
            passed("B", provides=[Provide("runtime", {"v": "2"}, exclusive=True)]),
            passed("app", provides=["web-process"], requires=["runtime"]),
        ]

        with pytest.raises(PlanConflictError) as exc_info:
            resolve_plan(records, ["web-process"])

        assert exc_info.value.name == "runtime"
        assert exc_info.value.buildpacks == ["A", "B"]
        assert exc_info.value.code == "plan_conflict"

    def test_exclusive_on_one_side_is_enough(self):
        """One exclusive provision is enough to make the conflict fatal."""
        records = [
            passed("A", provides=[Provide("runtime", {"v": "1"})]),
            passed("B", provides=[Provide("runtime", {"v": "2"}, exclusive=True)]),
        ]

        with pytest.raises(PlanConflictError):
            resolve_plan(records, [])

    def test_non_exclusive_first_wins_with_warning(self, caplog):
        """Without exclusivity the first registered provider wins."""
        records = [
            passed("A", provides=[Provide("runtime", {"v": "1"})]),
            passed("B", provides=[Provide("runtime", {"v": "2"})]),
            passed("app", provides=["web-process"], requires=["runtime"]),
        ]

        with caplog.at_level(logging.WARNING):
            plan = resolve_plan(records, ["web-process"])

        assert plan.order == ["A", "app"]
        assert len(plan.warnings) == 1
        assert "using A" in plan.warnings[0]
        assert "conflicting" in caplog.text

    def test_provider_after_consumer_warns(self):
        """A buildpack registered before its provider is logged as a warning."""
        records = [
            passed("app", provides=["web-process"], requires=["runtime"]),
            passed("runtime", provides=["runtime"]),
        ]

        plan = resolve_plan(records, ["web-process"])

        assert plan.order == ["app", "runtime"]
        assert any("before its provider runtime" in w for w in plan.warnings)


class TestFindCycle:
    """Tests for find_cycle."""

    def test_acyclic(self):
        """A DAG has no cycle."""
        assert find_cycle({"a": {"b"}, "b": {"c"}, "c": set()}) is None

    def test_cycle_path(self):
        """A cycle should be returned as a closed path."""
        cycle = find_cycle({"a": {"b"}, "b": {"c"}, "c": {"a"}})
        assert cycle == ["a", "b", "c", "a"]

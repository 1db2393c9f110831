"""Unit tests for dependency graph validation and wave planning."""

from stepflow.services.pipeline.graph import (
    dependency_map,
    plan_waves,
    transitive_dependencies,
    transitive_dependents,
    validate_steps,
)
from tests.utils import make_step

# ─── validate_steps ─────────────────────────────────────────────────────────


class TestValidateSteps:
    """Tests for validate_steps."""

    def test_valid_diamond(self):
        steps = [
            make_step("install"),
            make_step("lint", "install"),
            make_step("test", "install"),
            make_step("build", "lint", "test"),
        ]
        result = validate_steps(steps)
        assert result.valid
        assert result.errors == []

    def test_empty_pipeline_is_valid(self):
        assert validate_steps([]).valid

    def test_two_step_cycle(self):
        """A cycle is reported with the path that closes it."""
        result = validate_steps([make_step("A", "B"), make_step("B", "A")])
        assert not result.valid
        assert result.errors == ["Circular dependency detected: A -> B -> A"]

    def test_self_dependency_is_a_cycle(self):
        result = validate_steps([make_step("a", "a")])
        assert result.errors == ["Circular dependency detected: a -> a"]

    def test_unknown_dependency(self):
        result = validate_steps([make_step("a"), make_step("b", "ghost")])
        assert result.errors == ["Step 'b' depends on unknown step 'ghost'"]

    def test_duplicate_reported_once(self):
        result = validate_steps([make_step("a"), make_step("a"), make_step("a")])
        assert result.errors == ["Duplicate step ID: 'a'"]

    def test_all_problems_reported_in_order(self):
        """Duplicates come first, then unknown references, then cycles."""
        steps = [
            make_step("x", "y"),
            make_step("y", "x"),
            make_step("x"),
            make_step("z", "missing"),
        ]
        result = validate_steps(steps)
        assert not result.valid
        assert result.errors[0] == "Duplicate step ID: 'x'"
        assert result.errors[1] == "Step 'z' depends on unknown step 'missing'"
        assert result.errors[2].startswith("Circular dependency detected:")
        assert len(result.errors) == 3

    def test_disabled_steps_still_validated(self):
        result = validate_steps([make_step("a", "b", enabled=False)])
        assert not result.valid


# ─── plan_waves ─────────────────────────────────────────────────────────────


class TestPlanWaves:
    """Tests for plan_waves."""

    def test_three_waves(self):
        steps = [
            make_step("install"),
            make_step("lint", "install"),
            make_step("test", "install"),
            make_step("build", "lint", "test"),
        ]
        assert plan_waves(steps) == [["install"], ["lint", "test"], ["build"]]

    def test_independent_steps_share_first_wave(self):
        steps = [make_step("c"), make_step("a"), make_step("b")]
        assert plan_waves(steps) == [["c", "a", "b"]]

    def test_declaration_order_inside_wave(self):
        """Order inside a wave follows declaration, not dependency order."""
        steps = [
            make_step("root"),
            make_step("zeta", "root"),
            make_step("alpha", "root"),
        ]
        assert plan_waves(steps) == [["root"], ["zeta", "alpha"]]

    def test_wave_waits_for_slowest_dependency(self):
        steps = [
            make_step("a"),
            make_step("b", "a"),
            make_step("c", "b"),
            make_step("d", "a", "c"),
        ]
        assert plan_waves(steps) == [["a"], ["b"], ["c"], ["d"]]

    def test_every_step_planned_once(self):
        steps = [make_step(str(i), *[str(j) for j in range(i)]) for i in range(6)]
        waves = plan_waves(steps)
        flat = [step_id for wave in waves for step_id in wave]
        assert sorted(flat) == sorted(s.id for s in steps)
        assert len(flat) == len(set(flat))

    def test_empty(self):
        assert plan_waves([]) == []

    def test_cycle_stops_planning(self):
        steps = [make_step("a"), make_step("b", "c"), make_step("c", "b")]
        assert plan_waves(steps) == [["a"]]


# ─── Traversal helpers ──────────────────────────────────────────────────────


class TestTraversal:
    """Tests for the transitive dependency helpers."""

    steps = [
        make_step("install"),
        make_step("lint", "install"),
        make_step("test", "install"),
        make_step("build", "lint", "test"),
        make_step("deploy", "build"),
        make_step("docs"),
    ]

    def test_dependents_in_declaration_order(self):
        assert transitive_dependents(self.steps, "install") == ["lint", "test", "build", "deploy"]
        assert transitive_dependents(self.steps, "test") == ["build", "deploy"]
        assert transitive_dependents(self.steps, "docs") == []

    def test_dependencies(self):
        assert transitive_dependencies(self.steps, "build") == ["install", "lint", "test"]
        assert transitive_dependencies(self.steps, "install") == []

    def test_dependency_map_keeps_first_declaration(self):
        deps = dependency_map([make_step("a", "x"), make_step("a", "y")])
        assert deps == {"a": ["x"]}

"""Tests for mapping design rows onto the graph and repairing them."""

import pytest

from buildspace.core.models import ErrorKind, Overrides, TalentGraph
from buildspace.design.classifier import classify_nodes
from buildspace.design.factorial import generate_fractional_factorial
from buildspace.design.factors import identify_factors
from buildspace.design.repair import design_row_to_build, validate_selection


def _graph(nodes, **kwargs) -> TalentGraph:
    return TalentGraph.model_validate({"nodes": nodes, **kwargs})


def _repair(graph, row, budget, overrides=None, **kwargs):
    classification = classify_nodes(graph, budget, overrides)
    factors = identify_factors(graph, classification)
    return design_row_to_build(row, factors, classification, graph, budget, **kwargs)


def _all_builds(graph, budget, overrides=None):
    classification = classify_nodes(graph, budget, overrides)
    factors = identify_factors(graph, classification)
    design = generate_fractional_factorial(len(factors))
    return [
        design_row_to_build(row, factors, classification, graph, budget, row_index=i)
        for i, row in enumerate(design.matrix)
    ]


def _assert_invariants(graph, build):
    """Budget, connectivity and gate invariants of a feasible build."""
    selected = set(build.selected)
    assert build.points_spent == build.budget
    for node_id in build.selected:
        node = graph.node(node_id)
        if not (node.is_root or node.is_free or not node.prerequisites):
            assert any(p in selected for p in node.prerequisites), node_id
        if node.gate_threshold is not None:
            earlier = sum(
                graph.node(i).points_for(build.ranks[i])
                for i in selected
                if graph.node(i).gate_tier < node.gate_threshold
            )
            assert earlier >= node.gate_threshold, node_id


class TestDiamond:
    """Repair on the diamond graph (R -> A, B -> C)."""

    def test_orphan_pulls_in_prerequisite(self, diamond_graph):
        # Factors are A, B, C; only C is switched on
        build = _repair(diamond_graph, (0, 0, 1), 2)
        assert build.feasible
        assert build.selected == ("R", "A", "C")
        assert build.points_spent == 2

    def test_under_budget_fills_by_priority(self, diamond_graph):
        build = _repair(diamond_graph, (0, 0, 0), 2)
        assert build.feasible
        assert build.selected == ("R", "A", "B")

    def test_over_budget_strips_deepest_first(self, diamond_graph):
        build = _repair(diamond_graph, (1, 1, 1), 1)
        assert build.feasible
        assert build.selected == ("R", "A")

    def test_every_row_yields_one_build(self, diamond_graph):
        builds = _all_builds(diamond_graph, 2)
        assert len(builds) == 4
        assert [b.row_index for b in builds] == [0, 1, 2, 3]
        for build in builds:
            assert build.feasible
            _assert_invariants(diamond_graph, build)

    def test_row_length_mismatch(self, diamond_graph):
        with pytest.raises(ValueError, match="3 factors"):
            _repair(diamond_graph, (0, 1), 2)

    def test_deterministic(self, diamond_graph):
        first = [b.model_dump_json() for b in _all_builds(diamond_graph, 2)]
        second = [b.model_dump_json() for b in _all_builds(diamond_graph, 2)]
        assert first == second


class TestGates:
    """Gate repair by equal-cost swaps."""

    def test_gate_swap(self, gated_graph):
        # Factors: T1a, T1b, T1c, G, G2; row turns on G and G2 only
        build = _repair(gated_graph, (0, 0, 0, 1, 1), 3)
        assert build.feasible, build.errors
        assert build.selected == ("R", "T1a", "T1b", "G")
        _assert_invariants(gated_graph, build)

    def test_zero_swaps_leaves_violation(self, gated_graph):
        build = _repair(gated_graph, (0, 0, 0, 1, 1), 3, max_gate_swaps=0)
        assert not build.feasible
        assert {e.code for e in build.errors} == {"gate_violation"}
        assert {e.node_id for e in build.errors} == {"G", "G2"}

    def test_unfixable_gate(self):
        graph = _graph(
            [
                {"id": "R", "is_root": True, "is_free": True},
                {"id": "T", "prerequisites": ["R"]},
                {"id": "G", "prerequisites": ["T"], "gate_threshold": 3},
            ]
        )
        build = _repair(graph, (1, 1), 2)
        assert not build.feasible
        assert build.points_spent == 2
        assert any(e.code == "gate_violation" for e in build.errors)
        assert all(e.kind == ErrorKind.INFEASIBLE_BUILD for e in build.errors)

    def test_all_rows_satisfy_invariants_when_feasible(self, gated_graph):
        for build in _all_builds(gated_graph, 3):
            if build.feasible:
                _assert_invariants(gated_graph, build)


class TestInfeasible:
    """Infeasible builds are recorded, never raised."""

    def test_unreachable_required_node(self):
        graph = _graph(
            [
                {"id": "R", "is_root": True, "is_free": True},
                {"id": "A", "prerequisites": ["R"]},
                {"id": "Y"},
                {"id": "Z", "prerequisites": ["Y"]},
            ]
        )
        build = _repair(graph, (0,), 2, Overrides(require=["Z"]))
        assert not build.feasible
        kinds = {e.kind for e in build.errors}
        assert ErrorKind.UNREACHABLE_REPAIR_TARGET in kinds
        unreachable = [e for e in build.errors if e.code == "unreachable"]
        assert unreachable[0].node_id == "Z"
        # The orphaned duplicate of the same node is not reported twice
        assert not any(e.code == "orphaned_node" for e in build.errors)

    def test_locked_over_budget(self, diamond_graph):
        build = _repair(diamond_graph, (), 1, Overrides(require=["A", "B", "C"]))
        assert not build.feasible
        assert build.points_spent == 3
        assert [e.code for e in build.errors] == ["over_budget"]

    def test_under_budget_with_nothing_to_add(self, diamond_graph):
        build = _repair(diamond_graph, (1, 1, 1), 5)
        assert not build.feasible
        assert build.points_spent == 3
        assert [e.code for e in build.errors] == ["under_budget"]


class TestRanksAndChoices:
    """Multi-rank and choice factors."""

    def test_rank_two_implies_rank_one(self, branched_graph):
        # Factors: A, M_r1, M_r2, X, D
        build = _repair(branched_graph, (0, 0, 1, 0, 0), 4)
        assert build.ranks["M"] == 2
        assert build.feasible

    def test_choice_level_picks_entry(self, branched_graph):
        build = _repair(branched_graph, (0, 0, 0, 1, 0), 4)
        assert "X" in build.selected
        assert build.choices["X"] == 1
        assert "A" in build.selected

    def test_signature(self, branched_graph):
        build = _repair(branched_graph, (0, 0, 0, 1, 0), 4)
        assert "X:1:c1" in build.signature()
        assert build.signature() == sorted(build.signature())


class TestValidateSelection:
    """Tests for validate_selection."""

    def test_valid(self, diamond_graph):
        assert validate_selection(diamond_graph, ["R", "A", "C"], {"R": 1, "A": 1, "C": 1}, 2) == []

    def test_reports_each_violation(self, gated_graph):
        errors = validate_selection(
            gated_graph, ["R", "G", "ghost"], {"R": 1, "G": 1}, 3
        )
        codes = {e.code for e in errors}
        assert codes == {"unknown_node", "under_budget", "orphaned_node", "gate_violation"}


class TestRemovalRules:
    """Over-budget removal skips candidates that would break the build."""

    def test_sole_prerequisite_is_kept(self):
        # Removal order is A, B, C; A alone unlocks C
        graph = _graph(
            [
                {"id": "R", "is_root": True, "is_free": True, "pos_x": 0, "pos_y": 0},
                {"id": "A", "prerequisites": ["R"], "pos_x": 0, "pos_y": 3},
                {"id": "B", "prerequisites": ["R"], "pos_x": 0, "pos_y": 2},
                {"id": "C", "prerequisites": ["A"], "pos_x": 0, "pos_y": 1},
            ]
        )
        build = _repair(graph, (1, 1, 1), 2)
        assert build.feasible, build.errors
        assert build.selected == ("R", "A", "C")

    def test_removal_never_breaks_another_gate(self):
        # T2 sorts last, but dropping it starves G's gate; P goes instead
        graph = _graph(
            [
                {"id": "R", "is_root": True, "is_free": True, "pos_x": 0, "pos_y": 0},
                {"id": "T1", "prerequisites": ["R"], "pos_x": 0, "pos_y": 1},
                {"id": "T2", "prerequisites": ["R"], "pos_x": 0, "pos_y": 9},
                {"id": "G", "prerequisites": ["T1"], "gate_threshold": 2, "pos_x": 0, "pos_y": 2},
                {"id": "P", "prerequisites": ["T1"], "gate_threshold": 2, "pos_x": 1, "pos_y": 2},
            ]
        )
        build = _repair(graph, (1, 1), 3, Overrides(require=["G"]))
        assert build.feasible, build.errors
        assert build.selected == ("R", "T1", "T2", "G")
        _assert_invariants(graph, build)


class TestRequiredGate:
    """A required gated node is repaired around, never dropped."""

    @pytest.fixture
    def graph(self):
        return _graph(
            [
                {"id": "R", "is_root": True, "is_free": True},
                {"id": "A", "prerequisites": ["R"]},
                {"id": "B", "prerequisites": ["R"]},
                {"id": "D", "prerequisites": ["A"], "gate_threshold": 2},
                {"id": "E", "prerequisites": ["D"], "gate_threshold": 2},
            ]
        )

    def test_swap_makes_required_gate_feasible(self, graph):
        # Factors are B, E; E is traded for B to open D's gate
        build = _repair(graph, (0, 1), 3, Overrides(require=["D"]))
        assert build.feasible, build.errors
        assert build.selected == ("R", "A", "B", "D")
        _assert_invariants(graph, build)

    def test_no_swap_available_reports_gate_violation(self, graph):
        build = _repair(graph, (0, 0), 2, Overrides(require=["D"]))
        assert not build.feasible
        assert build.selected == ("R", "A", "D")
        violations = [e for e in build.errors if e.code == "gate_violation"]
        assert [e.node_id for e in violations] == ["D"]


class TestSingleEntryChoice:
    """A choice node with one allowed entry takes it at every level."""

    def test_both_levels_pick_allowed_entry(self):
        graph = _graph(
            [
                {"id": "R", "is_root": True, "is_free": True},
                {
                    "id": "X",
                    "kind": "choice",
                    "entries": [{"name": "Bad"}, {"name": "Good"}],
                    "prerequisites": ["R"],
                },
            ]
        )
        for row in [(0,), (1,)]:
            build = _repair(graph, row, 1, Overrides(exclude=["Bad"]))
            assert build.feasible, build.errors
            assert build.choices["X"] == 1

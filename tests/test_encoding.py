"""Tests for the encoder hand-off."""

from buildspace.core.models import Build, CompositeBuild, Selection
from buildspace.encoding import (
    build_to_selections,
    encode_build,
    encode_builds,
    full_node_order,
)


def _composite(branch=None, choices=None, feasible=True) -> CompositeBuild:
    build = Build(
        row_index=0,
        selected=("R", "M", "X"),
        ranks={"R": 1, "M": 2, "X": 1},
        choices={"X": 1},
        points_spent=3,
        budget=3,
        feasible=feasible,
    )
    return CompositeBuild(
        name=f"{branch or 'main'}_{feasible}",
        build=build,
        branch=branch,
        branch_choices=choices or {},
        fingerprint="fp",
    )


def _join_encoder(node_order, selections):
    return "|".join(
        f"{i}={s.rank}" + (f"/{s.choice_index}" if s.choice_index is not None else "")
        for i, s in selections.items()
    )


class TestFullNodeOrder:
    """Tests for full_node_order."""

    def test_main_then_branches(self, branched_graph):
        assert full_node_order(branched_graph) == [
            "R", "A", "M", "X", "D", "H1", "H2", "K1",
        ]

    def test_explicit_order_wins(self, branched_graph):
        graph = branched_graph.model_copy(update={"node_order": ["K1", "R"]})
        assert full_node_order(graph) == ["K1", "R"]


class TestBuildToSelections:
    """Tests for build_to_selections."""

    def test_main_build_only(self, branched_graph):
        selections = build_to_selections(_composite(), branched_graph)
        assert list(selections) == ["R", "M", "X"]
        assert selections["M"] == Selection(rank=2)
        assert selections["X"].choice_index == 1

    def test_branch_nodes_at_max_rank(self, branched_graph):
        selections = build_to_selections(
            _composite(branch="Sky", choices={"H1": 1}), branched_graph
        )
        assert list(selections) == ["R", "M", "X", "H1", "H2"]
        assert selections["H1"] == Selection(rank=1, choice_index=1)
        assert selections["H2"].choice_index is None


class TestEncode:
    """Tests for encode_build / encode_builds."""

    def test_encode_build(self, branched_graph):
        encoded = encode_build(_composite(branch="Earth", choices={"K1": 2}), branched_graph, _join_encoder)
        assert encoded == "R=1|M=2|X=1/1|K1=1/2"

    def test_encoder_receives_full_order(self, branched_graph):
        seen = []

        def encoder(node_order, selections):
            seen.append(node_order)
            return "x"

        encode_build(_composite(), branched_graph, encoder)
        assert seen == [full_node_order(branched_graph)]

    def test_encode_builds_skips_infeasible(self, branched_graph):
        composites = [_composite(), _composite(branch="Sky", choices={"H1": 0}, feasible=False)]
        encoded = encode_builds(composites, branched_graph, _join_encoder)
        assert list(encoded) == ["main_True"]

        encoded = encode_builds(
            composites, branched_graph, _join_encoder, feasible_only=False
        )
        assert len(encoded) == 2

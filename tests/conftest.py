"""Shared graph fixtures."""

import pytest

from buildspace.core.models import TalentGraph


def make_graph(nodes, **kwargs) -> TalentGraph:
    return TalentGraph.model_validate({"nodes": nodes, **kwargs})


@pytest.fixture
def diamond_graph() -> TalentGraph:
    """Free root R, two children A and B, and C requiring A or B."""
    return make_graph(
        [
            {"id": "R", "is_root": True, "is_free": True},
            {"id": "A", "prerequisites": ["R"]},
            {"id": "B", "prerequisites": ["R"]},
            {"id": "C", "prerequisites": ["A", "B"]},
        ],
        meta={"name": "diamond"},
        budget=2,
    )


@pytest.fixture
def gated_graph() -> TalentGraph:
    """Three tier-0 nodes under a free root, then a gated chain G -> G2."""
    return make_graph(
        [
            {"id": "R", "is_root": True, "is_free": True},
            {"id": "T1a", "prerequisites": ["R"]},
            {"id": "T1b", "prerequisites": ["R"]},
            {"id": "T1c", "prerequisites": ["R"]},
            {"id": "G", "prerequisites": ["T1a"], "gate_threshold": 2},
            {"id": "G2", "prerequisites": ["G"], "gate_threshold": 2},
        ],
        meta={"name": "gated"},
        budget=3,
    )


@pytest.fixture
def branched_graph() -> TalentGraph:
    """Main graph with two branches and two pinned profiles."""
    return make_graph(
        [
            {"id": "R", "name": "Root", "is_root": True, "is_free": True},
            {"id": "A", "name": "Alpha Strike", "prerequisites": ["R"]},
            {
                "id": "M",
                "name": "Momentum",
                "kind": "multi_rank",
                "max_ranks": 2,
                "prerequisites": ["R"],
            },
            {
                "id": "X",
                "name": "Crossroads",
                "kind": "choice",
                "entries": ["Left Path", "Right Path"],
                "prerequisites": ["A"],
            },
            {"id": "D", "name": "Deep Cut", "prerequisites": ["X", "M"]},
        ],
        branches=[
            {
                "name": "Sky",
                "nodes": [
                    {
                        "id": "H1",
                        "name": "Sky Gift",
                        "kind": "choice",
                        "entries": ["Wind", "Storm"],
                    },
                    {"id": "H2", "name": "Sky Core"},
                ],
            },
            {
                "name": "Earth",
                "nodes": [
                    {
                        "id": "K1",
                        "name": "Earth Gift",
                        "kind": "choice",
                        "entries": ["Stone", "Sand", "Clay"],
                    },
                ],
            },
        ],
        profiles=[
            {"name": "deep", "require": ["Deep Cut", "Right Path"]},
            {
                "name": "light momentum",
                "require": [{"name": "Momentum", "max_rank": 1}],
                "lock_branch_choices": {"K1": 2},
            },
        ],
        meta={"name": "branched"},
        budget=4,
    )

"""Pinned profile builds.

A profile pins a handful of required names (optionally below their maximum
rank) and excludes others; everything else is left to the repair engine, run
with an empty design row, to connect and fill up to the budget.
"""

import logging
from collections.abc import Iterable

from ..core.models import Build, CompositeBuild, Overrides, Profile, TalentGraph
from .classifier import classify_nodes
from .priority import PriorityOrder
from .repair import DEFAULT_MAX_GATE_SWAPS, design_row_to_build
from .variants import cross_with_branches

logger = logging.getLogger(__name__)


def build_pinned(
    profile: Profile,
    graph: TalentGraph,
    budget: int,
    overrides: Overrides | None = None,
    *,
    priority: PriorityOrder | None = None,
    max_gate_swaps: int = DEFAULT_MAX_GATE_SWAPS,
) -> Build:
    """Repair one profile into a build.

    Run-level `overrides` apply first; the profile's directives are layered on
    top of them.
    """
    merged = (overrides or Overrides()).merged(profile.to_overrides())
    classification = classify_nodes(graph, budget, merged)
    return design_row_to_build(
        (),
        (),
        classification,
        graph,
        budget,
        priority=priority,
        max_gate_swaps=max_gate_swaps,
        profile=profile.name,
    )


def pin_profiles(
    profiles: Iterable[Profile],
    graph: TalentGraph,
    budget: int,
    overrides: Overrides | None = None,
    *,
    priority: PriorityOrder | None = None,
    max_gate_swaps: int = DEFAULT_MAX_GATE_SWAPS,
    seen: set[str] | None = None,
) -> list[CompositeBuild]:
    """Repair each profile and cross it with every branch variant.

    `seen` is shared across profiles, so two profiles that repair to the same
    build only emit it once.
    """
    overrides = overrides or Overrides()
    priority = priority or PriorityOrder(graph)
    seen = set() if seen is None else seen
    pinned: list[CompositeBuild] = []

    for profile in profiles:
        build = build_pinned(
            profile,
            graph,
            budget,
            overrides,
            priority=priority,
            max_gate_swaps=max_gate_swaps,
        )
        if not build.feasible:
            logger.warning(
                "Pinned profile '%s' is infeasible: %s",
                profile.name,
                "; ".join(e.message for e in build.errors),
            )
        locks = {**overrides.lock_branch_choices, **profile.lock_branch_choices}
        unlocks = [*overrides.unlock_branch_choices, *profile.unlock_branch_choices]
        pinned.extend(
            cross_with_branches(
                [build],
                graph.branches,
                lock_choices=locks,
                unlock_choices=unlocks,
                seen=seen,
            )
        )

    return pinned


def generate_pinned_builds(
    graph: TalentGraph,
    budget: int,
    overrides: Overrides | None = None,
    *,
    priority: PriorityOrder | None = None,
    max_gate_swaps: int = DEFAULT_MAX_GATE_SWAPS,
    seen: set[str] | None = None,
) -> list[CompositeBuild]:
    """One pinned build per graph profile, crossed with every branch variant."""
    if not graph.profiles:
        return []
    return pin_profiles(
        graph.profiles,
        graph,
        budget,
        overrides,
        priority=priority,
        max_gate_swaps=max_gate_swaps,
        seen=seen,
    )

"""Cluster-based roster builds.

Talent clusters group names into a core and an extended set. A roster
template picks, per cluster, how much of it to take and how many ranks of the
apex root to buy:

- cluster taken at "core": core names required, extended names excluded
- cluster taken at "full": core and extended names required
- cluster not listed: every name excluded
- apex_rank > 0: the apex root required, capped at that rank; 0 excludes it

Each template becomes a Profile and goes through the pinned-build path.
"""

import logging

from ..core.models import (
    ClusterDepth,
    CompositeBuild,
    Overrides,
    Profile,
    ProfileRequirement,
    RosterTemplate,
    TalentGraph,
)
from .pinned import pin_profiles
from .priority import PriorityOrder
from .repair import DEFAULT_MAX_GATE_SWAPS

logger = logging.getLogger(__name__)


def roster_profile(template: RosterTemplate, graph: TalentGraph) -> Profile:
    """Translate a roster template into require / exclude directives."""
    require: list[ProfileRequirement] = []
    exclude: list[str] = []

    for cluster_name, cluster in graph.talent_clusters.items():
        depth = template.include.get(cluster_name)
        if depth is None:
            exclude.extend(cluster.core)
            exclude.extend(cluster.extended)
            continue
        require.extend(ProfileRequirement(name=name) for name in cluster.core)
        if depth == ClusterDepth.FULL:
            require.extend(ProfileRequirement(name=name) for name in cluster.extended)
        else:
            exclude.extend(cluster.extended)

    apex = graph.apex_root()
    if apex is not None:
        if template.apex_rank > 0:
            require.append(
                ProfileRequirement(name=apex.name, max_rank=template.apex_rank)
            )
        else:
            exclude.append(apex.name)

    return Profile(name=template.name, require=require, exclude=exclude)


def generate_roster(
    graph: TalentGraph,
    budget: int,
    overrides: Overrides | None = None,
    *,
    priority: PriorityOrder | None = None,
    max_gate_swaps: int = DEFAULT_MAX_GATE_SWAPS,
    seen: set[str] | None = None,
) -> list[CompositeBuild]:
    """One build per roster template, crossed with every branch variant.

    Templates share one fingerprint set, so templates that repair to the same
    build are emitted once.
    """
    if not graph.roster_templates:
        return []
    profiles = [roster_profile(t, graph) for t in graph.roster_templates]
    logger.debug("Roster: %d templates", len(profiles))
    return pin_profiles(
        profiles,
        graph,
        budget,
        overrides,
        priority=priority,
        max_gate_swaps=max_gate_swaps,
        seen=seen,
    )

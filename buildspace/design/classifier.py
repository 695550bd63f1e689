"""Node classification: locked, factor and excluded partitions.

Locked nodes are always taken (free nodes, true roots, required names and the
prerequisite paths that connect required names to the graph). Factor nodes are
the free decision points the design varies. Excluded nodes are reachable but
default to skip; the repair engine only falls back to them when nothing else
can spend the budget.
"""

import logging

from ..core.models import Classification, Node, NodeKind, Overrides, TalentGraph
from ..utils.graphs import backward_path, reachable_from

logger = logging.getLogger(__name__)


def is_apex_root(node: Node) -> bool:
    """A multi-rank root is an optional investment, not a mandatory anchor."""
    return node.is_root and node.max_ranks > 1


def effective_exclusions(graph: TalentGraph, overrides: Overrides) -> frozenset[str]:
    """Base exclusion names, minus `include`, plus `exclude`."""
    names = set(graph.excluded_names)
    names.difference_update(overrides.include)
    names.update(overrides.exclude)
    return frozenset(names)


def is_excluded_node(node: Node, exclusions: frozenset[str]) -> bool:
    """A choice node is excluded only when every one of its entries is."""
    if node.kind == NodeKind.CHOICE:
        if node.name in exclusions:
            return True
        return all(e.name in exclusions for e in node.entries)
    return node.name in exclusions


def preferred_choice(node: Node, exclusions: frozenset[str], required: set[str]) -> int:
    """Entry index to take when a choice node is selected outside the design."""
    for i, entry in enumerate(node.entries):
        if entry.name in required:
            return i
    for i, entry in enumerate(node.entries):
        if entry.name not in exclusions:
            return i
    return 0


def classify_nodes(
    graph: TalentGraph,
    budget: int,
    overrides: Overrides | None = None,
) -> Classification:
    """Partition graph nodes into locked, factor and excluded sets.

    Args:
        graph: The graph description
        budget: Target point budget (logged against the locked spend)
        overrides: require / exclude / include directives and rank caps

    Returns:
        Classification (pure function of its inputs)
    """
    overrides = overrides or Overrides()
    locked: set[str] = set()
    locked_ranks: dict[str, int] = {}

    for node in graph.nodes:
        if node.is_free:
            locked.add(node.id)
            locked_ranks[node.id] = node.max_ranks
        elif node.is_root and not is_apex_root(node):
            locked.add(node.id)
            locked_ranks[node.id] = node.max_ranks

    root_ids = [n.id for n in graph.roots()]
    reachable = reachable_from(root_ids, graph.successors)

    required = set(overrides.require) | set(graph.required_names)
    matches: dict[str, list[str]] = {}
    for name in sorted(required):
        for node in graph.find_by_name(name):
            matches.setdefault(node.id, []).append(name)

    for node_id in sorted(matches, key=graph.index_of):
        if node_id in locked:
            continue
        node = graph.node(node_id)
        rank = node.max_ranks
        for name in matches[node_id]:
            if name in overrides.rank_caps:
                rank = max(1, min(rank, overrides.rank_caps[name]))
        locked.add(node.id)
        locked_ranks[node.id] = rank

    # Required nodes pull in a prerequisite path back to the locked set
    changed = True
    while changed:
        changed = False
        for node_id in sorted(locked, key=graph.index_of):
            node = graph.node(node_id)
            if node.is_root or node.is_free or not node.prerequisites:
                continue
            if any(p in locked for p in node.prerequisites):
                continue
            for prereq in node.prerequisites:
                path = backward_path(
                    prereq,
                    lambda i: graph.node(i).prerequisites,
                    lambda i: i in locked or graph.node(i).is_root,
                )
                if path is None:
                    continue
                for path_id in path:
                    if path_id not in locked:
                        locked.add(path_id)
                        locked_ranks[path_id] = graph.node(path_id).max_ranks
                        changed = True
                break

    exclusions = effective_exclusions(graph, overrides)
    unknown = graph.unknown_names(
        [
            *required,
            *graph.excluded_names,
            *overrides.exclude,
            *overrides.include,
            *overrides.rank_caps,
        ]
    )
    if unknown:
        logger.warning(
            "Names matching no node or entry are ignored: %s", ", ".join(unknown)
        )

    factors: list[str] = []
    excluded: set[str] = set()
    unreachable: set[str] = set()
    for node in graph.nodes:
        if node.id in locked:
            continue
        if node.id not in reachable:
            unreachable.add(node.id)
            continue
        if is_excluded_node(node, exclusions):
            excluded.add(node.id)
            continue
        factors.append(node.id)

    preferred = {
        node.id: preferred_choice(node, exclusions, required)
        for node in graph.nodes
        if node.kind == NodeKind.CHOICE
    }

    locked_points = sum(
        graph.node(i).points_for(r) for i, r in locked_ranks.items()
    )
    if locked_points > budget:
        logger.warning(
            "Locked nodes spend %d points, over the %d point budget",
            locked_points,
            budget,
        )
    logger.debug(
        "Classified %d nodes: %d locked (%d pts), %d factors, %d excluded, %d unreachable",
        len(graph.nodes),
        len(locked),
        locked_points,
        len(factors),
        len(excluded),
        len(unreachable),
    )

    return Classification(
        locked=frozenset(locked),
        locked_ranks=locked_ranks,
        factors=tuple(factors),
        excluded=frozenset(excluded),
        unreachable=frozenset(unreachable),
        preferred_choices=preferred,
        exclusions=exclusions,
        unknown_names=tuple(unknown),
    )

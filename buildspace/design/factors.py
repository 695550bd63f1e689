"""Map factor nodes to independent binary design factors."""

from ..core.models import Classification, Factor, FactorType, Node, NodeKind, TalentGraph
from .classifier import is_apex_root


def _choice_entries(node: Node, exclusions: frozenset[str]) -> tuple[int, int]:
    """The two entries a choice factor toggles between.

    Nodes with more than two entries are restricted to their first two
    non-excluded entries. A single allowed entry is pinned at both levels.
    """
    allowed = [i for i, e in enumerate(node.entries) if e.name not in exclusions]
    if len(allowed) == 1:
        return (allowed[0], allowed[0])
    if not allowed:
        return (0, 1)
    return (allowed[0], allowed[1])


def factors_for_node(node: Node, exclusions: frozenset[str], start: int) -> list[Factor]:
    """Expand one node into its 1-2 factors, indexed from `start`."""
    if node.kind == NodeKind.CHOICE:
        return [
            Factor(
                index=start,
                node_id=node.id,
                name=node.name,
                type=FactorType.CHOICE,
                entries=_choice_entries(node, exclusions),
            )
        ]
    if node.kind == NodeKind.MULTI_RANK:
        if node.max_ranks == 2 and not is_apex_root(node):
            return [
                Factor(
                    index=start,
                    node_id=node.id,
                    name=f"{node.name}_r1",
                    type=FactorType.RANK_1,
                ),
                Factor(
                    index=start + 1,
                    node_id=node.id,
                    name=f"{node.name}_r2",
                    type=FactorType.RANK_2,
                ),
            ]
        # Apex roots and deeper multi-rank nodes are all-or-nothing
        return [
            Factor(index=start, node_id=node.id, name=node.name, type=FactorType.BINARY)
        ]
    if node.kind == NodeKind.SIMPLE:
        return [
            Factor(index=start, node_id=node.id, name=node.name, type=FactorType.BINARY)
        ]
    raise ValueError(f"Unhandled node kind: {node.kind!r}")


def identify_factors(graph: TalentGraph, classification: Classification) -> list[Factor]:
    """Expand the classified factor nodes into design factors, in source order."""
    factors: list[Factor] = []
    for node_id in classification.factors:
        node = graph.node(node_id)
        factors.extend(
            factors_for_node(node, classification.exclusions, start=len(factors))
        )
    return factors

"""Hand-off from composite builds to an external build-string encoder.

The encoder itself lives outside this package. It receives the full node
ordering and an ordered {node_id: Selection} mapping, and returns an opaque
string that is never inspected here.
"""

from collections.abc import Iterable
from typing import Protocol

from .core.models import CompositeBuild, Selection, TalentGraph


class BuildEncoder(Protocol):
    """Callable that turns selections into a build string.

    Args:
        node_order: Every node id the encoder knows, in encoding order
        selections: Selected node id -> Selection, in node_order order
    """

    def __call__(
        self, node_order: list[str], selections: dict[str, Selection]
    ) -> str: ...


def full_node_order(graph: TalentGraph) -> list[str]:
    """Node ordering expected by the encoder.

    An explicit graph.node_order wins. Otherwise main-graph nodes come first,
    followed by every branch's nodes, each in source order.
    """
    if graph.node_order:
        return list(graph.node_order)
    order = [n.id for n in graph.nodes]
    seen = set(order)
    for branch in graph.branches:
        for node in branch.nodes:
            if node.id not in seen:
                seen.add(node.id)
                order.append(node.id)
    return order


def build_to_selections(
    composite: CompositeBuild, graph: TalentGraph
) -> dict[str, Selection]:
    """Selections for the main build plus its branch variant.

    Branch nodes are taken at their maximum rank; branch choice nodes carry
    the variant's entry index.
    """
    raw: dict[str, Selection] = {}
    build = composite.build
    for node_id in build.selected:
        raw[node_id] = Selection(
            rank=build.ranks.get(node_id, 1),
            choice_index=build.choices.get(node_id),
        )

    branch = graph.branch(composite.branch) if composite.branch else None
    if branch is not None:
        for node in branch.nodes:
            raw[node.id] = Selection(
                rank=node.max_ranks,
                choice_index=composite.branch_choices.get(node.id),
            )

    order = full_node_order(graph)
    position = {node_id: i for i, node_id in enumerate(order)}
    return {
        node_id: raw[node_id]
        for node_id in sorted(raw, key=lambda i: (position.get(i, len(order)), i))
    }


def encode_build(
    composite: CompositeBuild, graph: TalentGraph, encoder: BuildEncoder
) -> str:
    return encoder(full_node_order(graph), build_to_selections(composite, graph))


def encode_builds(
    composites: Iterable[CompositeBuild],
    graph: TalentGraph,
    encoder: BuildEncoder,
    *,
    feasible_only: bool = True,
) -> dict[str, str]:
    """Encode composites keyed by composite name.

    Infeasible composites are skipped unless feasible_only is False.
    """
    order = full_node_order(graph)
    encoded: dict[str, str] = {}
    for composite in composites:
        if feasible_only and not composite.feasible:
            continue
        encoded[composite.name] = encoder(order, build_to_selections(composite, graph))
    return encoded

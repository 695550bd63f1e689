"""The single total order used by every repair pass.

Graphs that carry a 2D layout on every node are ordered by position:
`(pos_y, pos_x, source_index)`, i.e. top-to-bottom then left-to-right.
Graphs without a complete layout are ordered by `(depth, source_index)`,
where depth is the longest prerequisite chain from a root.

Additions take the smallest key first (shallowest-and-leftmost, with
non-excluded nodes ahead of excluded ones); removals take the largest key
first (deepest-and-rightmost). The trailing source index makes the order
total, so repair never depends on set iteration order.
"""

from collections.abc import Collection, Iterable

from ..core.models import TalentGraph


class PriorityOrder:
    """Precomputed priority keys for every node of a graph."""

    def __init__(self, graph: TalentGraph):
        self.uses_layout = graph.has_layout()
        self._keys: dict[str, tuple] = {}
        if self.uses_layout:
            for i, node in enumerate(graph.nodes):
                self._keys[node.id] = (node.pos_y, node.pos_x, i)
        else:
            depths = graph.depths()
            for i, node in enumerate(graph.nodes):
                self._keys[node.id] = (depths.get(node.id, 0), i)

    def key(self, node_id: str) -> tuple:
        return self._keys[node_id]

    def addition_key(self, node_id: str, excluded: Collection[str]) -> tuple:
        return (node_id in excluded, self._keys[node_id])

    def for_addition(
        self, node_ids: Iterable[str], excluded: Collection[str] = ()
    ) -> list[str]:
        """Highest priority first: non-excluded, then shallowest-and-leftmost."""
        return sorted(node_ids, key=lambda i: self.addition_key(i, excluded))

    def for_removal(self, node_ids: Iterable[str]) -> list[str]:
        """Lowest priority first: deepest-and-rightmost."""
        return sorted(node_ids, key=self.key, reverse=True)

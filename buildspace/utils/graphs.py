"""Graph utilities: cycle detection, depth layering and BFS path search.

Pure functions over plain id collections; no buildspace model imports.
"""

from collections import deque
from collections.abc import Callable, Iterable, Mapping

import networkx as nx


class CircularDependencyError(Exception):
    """Raised when prerequisite links form a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Prerequisite cycle: {' -> '.join(cycle)}")


def build_digraph(
    node_ids: Iterable[str], prerequisites: Mapping[str, Iterable[str]]
) -> "nx.DiGraph":
    """Directed graph with edges prerequisite -> dependent.

    Prerequisites that name no known node are ignored.
    """
    G = nx.DiGraph()
    ids = list(node_ids)
    G.add_nodes_from(ids)
    known = set(ids)
    for node_id in ids:
        for prereq in prerequisites.get(node_id, ()):
            if prereq in known:
                G.add_edge(prereq, node_id)
    return G


def topological_depths(
    node_ids: Iterable[str], prerequisites: Mapping[str, Iterable[str]]
) -> dict[str, int]:
    """Longest-chain depth of every node (sources are depth 0).

    Raises:
        CircularDependencyError: If the prerequisite links are cyclic.
    """
    G = build_digraph(node_ids, prerequisites)
    try:
        generations = list(nx.topological_generations(G))
    except nx.NetworkXUnfeasible:
        cycle = [u for u, _ in nx.find_cycle(G)]
        raise CircularDependencyError([*cycle, cycle[0]]) from None

    depths: dict[str, int] = {}
    for depth, layer in enumerate(generations):
        for node_id in layer:
            depths[node_id] = depth
    return depths


def reachable_from(
    start_ids: Iterable[str], successors: Callable[[str], Iterable[str]]
) -> set[str]:
    """Forward BFS from `start_ids`, inclusive."""
    start = list(start_ids)
    visited = set(start)
    queue = deque(start)
    while queue:
        current = queue.popleft()
        for nxt in successors(current):
            if nxt not in visited:
                visited.add(nxt)
                queue.append(nxt)
    return visited


def backward_path(
    target: str,
    prerequisites: Callable[[str], Iterable[str]],
    is_anchor: Callable[[str], bool],
) -> list[str] | None:
    """Shortest prerequisite chain from an anchor node down to `target`.

    Walks prerequisite edges backwards from `target` until it meets a node for
    which `is_anchor` holds (typically: already selected, or a root). Returns
    the path ordered anchor-first and ending at `target`, `[target]` when the
    target is itself an anchor, or None when no anchor is reachable.
    Neighbours are expanded in declaration order, so the result is deterministic.
    """
    if is_anchor(target):
        return [target]

    visited = {target}
    parent_of: dict[str, str] = {}
    queue = deque([target])

    while queue:
        current = queue.popleft()
        for prev in prerequisites(current):
            if prev in visited:
                continue
            visited.add(prev)
            parent_of[prev] = current

            if is_anchor(prev):
                path = [prev]
                cur = prev
                while cur != target:
                    cur = parent_of[cur]
                    path.append(cur)
                return path
            queue.append(prev)

    return None

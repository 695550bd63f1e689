"""Map design rows onto the graph and repair them into exact-budget builds.

Repair runs in five fixed-point passes over a private working selection:

1. Apply factor settings (rank-2 implies rank-1).
2. Connectivity repair: give every orphaned node a selected prerequisite by
   adding the shortest prerequisite path back to the selection or a root.
3. Over budget: strip single ranks from the lowest-priority removable nodes,
   never orphaning a descendant or breaking another node's gate.
4. Under budget: add single ranks to the highest-priority available nodes,
   non-excluded nodes first.
5. Gate repair: swap ranks from post-gate nodes to pre-gate nodes while a
   gate is still violated.

Every pass is bounded by graph size and budget, and every choice between
candidates goes through PriorityOrder, so the same input always yields the
same Build.
"""

import logging
from collections.abc import Sequence

from ..core.models import (
    Build,
    BuildError,
    Classification,
    ErrorKind,
    Factor,
    FactorType,
    Node,
    NodeKind,
    TalentGraph,
)
from ..utils.graphs import backward_path
from .priority import PriorityOrder

logger = logging.getLogger(__name__)

DEFAULT_MAX_GATE_SWAPS = 10


# =============================================================================
# Structural validation
# =============================================================================


def gate_points(
    graph: TalentGraph,
    selected: set[str],
    ranks: dict[str, int],
    threshold: int,
    skip: str | None = None,
) -> int:
    """Points on selected nodes whose gate tier is strictly below `threshold`."""
    total = 0
    for node_id in selected:
        if node_id == skip:
            continue
        node = graph.get(node_id)
        if node is None or node.gate_tier >= threshold:
            continue
        total += node.points_for(ranks.get(node_id, node.max_ranks))
    return total


def validate_selection(
    graph: TalentGraph,
    selected: Sequence[str],
    ranks: dict[str, int],
    budget: int,
) -> list[BuildError]:
    """Check budget, connectivity and gate invariants of a selection.

    Returns:
        One BuildError per violated invariant (empty when the selection is valid)
    """
    chosen = set(selected)
    errors: list[BuildError] = []

    points = 0
    for node_id in selected:
        node = graph.get(node_id)
        if node is None:
            errors.append(
                BuildError(
                    kind=ErrorKind.INFEASIBLE_BUILD,
                    code="unknown_node",
                    message=f"Unknown node ID: {node_id}",
                    node_id=node_id,
                )
            )
            continue
        points += node.points_for(ranks.get(node_id, node.max_ranks))

    if points > budget:
        errors.append(
            BuildError(
                kind=ErrorKind.INFEASIBLE_BUILD,
                code="over_budget",
                message=f"Over budget: {points}/{budget} points",
            )
        )
    elif points < budget:
        errors.append(
            BuildError(
                kind=ErrorKind.INFEASIBLE_BUILD,
                code="under_budget",
                message=f"Under budget: {points}/{budget} points",
            )
        )

    for node_id in selected:
        node = graph.get(node_id)
        if node is None or node.is_root or node.is_free or not node.prerequisites:
            continue
        if not any(p in chosen for p in node.prerequisites):
            errors.append(
                BuildError(
                    kind=ErrorKind.INFEASIBLE_BUILD,
                    code="orphaned_node",
                    message=f"Node '{node.name}' ({node_id}) has no selected prerequisite",
                    node_id=node_id,
                )
            )

    for node_id in selected:
        node = graph.get(node_id)
        if node is None or node.gate_threshold is None:
            continue
        before = gate_points(graph, chosen, ranks, node.gate_threshold)
        if before < node.gate_threshold:
            errors.append(
                BuildError(
                    kind=ErrorKind.INFEASIBLE_BUILD,
                    code="gate_violation",
                    message=(
                        f"Node '{node.name}' requires {node.gate_threshold} points, "
                        f"only {before} spent in earlier tiers"
                    ),
                    node_id=node_id,
                )
            )

    return errors


# =============================================================================
# Working selection
# =============================================================================


class _WorkingBuild:
    """Mutable selection owned by a single repair call."""

    def __init__(
        self,
        graph: TalentGraph,
        classification: Classification,
        budget: int,
        priority: PriorityOrder,
    ):
        self.graph = graph
        self.classification = classification
        self.budget = budget
        self.priority = priority
        self.selected: set[str] = set(classification.locked)
        self.ranks: dict[str, int] = dict(classification.locked_ranks)
        self.choices: dict[str, int] = {}
        self.errors: list[BuildError] = []
        for node_id in self.selected:
            self._default_choice(node_id)

    # ── Queries ──

    def points(self) -> int:
        return sum(
            self.graph.node(i).points_for(self.ranks[i]) for i in self.selected
        )

    def passes_gate(self, node: Node) -> bool:
        if node.gate_threshold is None:
            return True
        before = gate_points(self.graph, self.selected, self.ranks, node.gate_threshold)
        return before >= node.gate_threshold

    def prerequisites_met(self, node: Node) -> bool:
        return not node.prerequisites or any(
            p in self.selected for p in node.prerequisites
        )

    def is_orphan(self, node: Node) -> bool:
        if node.is_root or node.is_free:
            return False
        return not self.prerequisites_met(node)

    def would_orphan(self, node_id: str) -> bool:
        """Removing `node_id` leaves a selected successor with no prerequisite."""
        for next_id in self.graph.successors(node_id):
            if next_id not in self.selected:
                continue
            next_node = self.graph.node(next_id)
            if next_node.is_root or next_node.is_free:
                continue
            if not any(
                p != node_id and p in self.selected for p in next_node.prerequisites
            ):
                return True
        return False

    def would_break_gate(self, node_id: str, points: int) -> bool:
        """Dropping `points` from `node_id` pushes another gated node below its gate."""
        node = self.graph.node(node_id)
        for other_id in self.selected:
            if other_id == node_id:
                continue
            other = self.graph.node(other_id)
            if other.gate_threshold is None or node.gate_tier >= other.gate_threshold:
                continue
            before = gate_points(
                self.graph, self.selected, self.ranks, other.gate_threshold
            )
            if before - points < other.gate_threshold:
                return True
        return False

    def removable(self) -> list[str]:
        locked = self.classification.locked
        return [
            i
            for i in self.selected
            if i not in locked
            and not self.graph.node(i).is_free
            and self.graph.node(i).cost > 0
        ]

    def can_remove_rank(self, node_id: str) -> bool:
        node = self.graph.node(node_id)
        if self.ranks[node_id] == 1 and self.would_orphan(node_id):
            return False
        return not self.would_break_gate(node_id, node.cost)

    def can_add_rank(self, node: Node) -> bool:
        """One more rank of `node` is legal (budget is checked by the caller)."""
        if node.is_free or node.cost == 0 or node.id in self.classification.locked:
            return False
        if node.id in self.classification.unreachable:
            return False
        if node.id in self.selected:
            return self.ranks[node.id] < node.max_ranks
        if node.is_root:
            return False
        return self.prerequisites_met(node) and self.passes_gate(node)

    # ── Mutations ──

    def _default_choice(self, node_id: str) -> None:
        if self.graph.node(node_id).kind == NodeKind.CHOICE:
            self.choices.setdefault(
                node_id, self.classification.preferred_choices.get(node_id, 0)
            )

    def select(self, node_id: str, rank: int) -> None:
        self.selected.add(node_id)
        self.ranks[node_id] = max(self.ranks.get(node_id, 0), rank)
        self._default_choice(node_id)

    def add_rank(self, node_id: str) -> None:
        if node_id in self.selected:
            self.ranks[node_id] += 1
        else:
            self.select(node_id, 1)

    def remove_rank(self, node_id: str) -> None:
        if self.ranks[node_id] > 1:
            self.ranks[node_id] -= 1
            return
        self.selected.discard(node_id)
        del self.ranks[node_id]
        self.choices.pop(node_id, None)

    def snapshot(self) -> tuple[set[str], dict[str, int], dict[str, int]]:
        return set(self.selected), dict(self.ranks), dict(self.choices)

    def restore(self, state: tuple[set[str], dict[str, int], dict[str, int]]) -> None:
        self.selected, self.ranks, self.choices = (
            set(state[0]),
            dict(state[1]),
            dict(state[2]),
        )

    def record(self, kind: ErrorKind, code: str, message: str, node_id: str | None = None) -> None:
        self.errors.append(
            BuildError(kind=kind, code=code, message=message, node_id=node_id)
        )


# =============================================================================
# Repair passes
# =============================================================================


def _apply_factors(
    work: _WorkingBuild, row: Sequence[int], factors: Sequence[Factor]
) -> None:
    for factor, level in zip(factors, row):
        node = work.graph.node(factor.node_id)
        if factor.type == FactorType.BINARY:
            if level:
                work.select(node.id, node.max_ranks)
        elif factor.type == FactorType.CHOICE:
            # Choice nodes are always taken; the level picks the entry
            work.select(node.id, node.max_ranks)
            work.choices[node.id] = factor.entries[level] if factor.entries else level
        elif factor.type == FactorType.RANK_1:
            if level:
                work.select(node.id, 1)
        elif factor.type == FactorType.RANK_2:
            # Rank 2 carries rank 1 with it
            if level:
                work.select(node.id, 2)
        else:
            raise ValueError(f"Unhandled factor type: {factor.type!r}")


def _repair_connectivity(work: _WorkingBuild) -> None:
    graph = work.graph
    unreachable: set[str] = set()

    changed = True
    while changed:
        changed = False
        for node_id in work.priority.for_addition(work.selected):
            node = graph.node(node_id)
            if node_id in unreachable or not work.is_orphan(node):
                continue

            path = None
            for prereq in node.prerequisites:
                path = backward_path(
                    prereq,
                    lambda i: graph.node(i).prerequisites,
                    lambda i: i in work.selected or graph.node(i).is_root,
                )
                if path is not None:
                    break

            if path is None:
                unreachable.add(node_id)
                work.record(
                    ErrorKind.UNREACHABLE_REPAIR_TARGET,
                    "unreachable",
                    f"No prerequisite path reaches node '{node.name}' ({node_id})",
                    node_id,
                )
                continue

            for path_id in path:
                if path_id not in work.selected:
                    work.select(path_id, graph.node(path_id).max_ranks)
                    changed = True


def _reduce_to_budget(work: _WorkingBuild) -> None:
    points = work.points()
    while points > work.budget:
        for node_id in work.priority.for_removal(work.removable()):
            if not work.can_remove_rank(node_id):
                continue
            work.remove_rank(node_id)
            points -= work.graph.node(node_id).cost
            break
        else:
            work.record(
                ErrorKind.INFEASIBLE_BUILD,
                "over_budget",
                f"Over budget: {points}/{work.budget} points with no legal removal",
            )
            return


def _fill_to_budget(work: _WorkingBuild) -> None:
    points = work.points()
    while points < work.budget:
        candidates = [
            node.id
            for node in work.graph.nodes
            if points + node.cost <= work.budget and work.can_add_rank(node)
        ]
        if not candidates:
            return
        best = work.priority.for_addition(candidates, work.classification.excluded)[0]
        work.add_rank(best)
        points += work.graph.node(best).cost


def _first_gate_violation(work: _WorkingBuild) -> Node | None:
    for node_id in work.priority.for_addition(work.selected):
        node = work.graph.node(node_id)
        if not work.passes_gate(node):
            return node
    return None


def _repair_gates(work: _WorkingBuild, max_swaps: int) -> None:
    graph = work.graph
    for _ in range(max_swaps):
        violated = _first_gate_violation(work)
        if violated is None:
            return
        threshold = violated.gate_threshold

        post_gate = [
            i
            for i in work.priority.for_removal(work.removable())
            if graph.node(i).gate_tier >= threshold and work.can_remove_rank(i)
        ]

        swapped = False
        for rem_id in post_gate:
            cost = graph.node(rem_id).cost
            state = work.snapshot()
            work.remove_rank(rem_id)
            addable = [
                node.id
                for node in graph.nodes
                if node.id != rem_id
                and node.cost == cost
                and node.gate_tier < threshold
                and work.can_add_rank(node)
            ]
            if not addable:
                work.restore(state)
                continue
            add_id = work.priority.for_addition(addable, work.classification.excluded)[0]
            work.add_rank(add_id)
            logger.debug(
                "Gate swap for %s: moved %d pts from %s to %s",
                violated.id,
                cost,
                rem_id,
                add_id,
            )
            swapped = True
            break

        if not swapped:
            return


# =============================================================================
# Public entry point
# =============================================================================


def design_row_to_build(
    row: Sequence[int],
    factors: Sequence[Factor],
    classification: Classification,
    graph: TalentGraph,
    budget: int,
    *,
    priority: PriorityOrder | None = None,
    max_gate_swaps: int = DEFAULT_MAX_GATE_SWAPS,
    row_index: int | None = None,
    profile: str | None = None,
) -> Build:
    """Map one design row onto the graph and repair it.

    Args:
        row: 0/1 level per factor
        factors: Factors the row's columns refer to
        classification: Locked / excluded partition for this run
        graph: Graph description
        budget: Exact point budget
        priority: Precomputed priority order (built from graph if omitted)
        max_gate_swaps: Upper bound on gate-repair swaps
        row_index: Design row this build came from
        profile: Pinned profile this build came from

    Returns:
        Build, feasible iff it spends exactly `budget` with no recorded errors
    """
    if len(row) != len(factors):
        raise ValueError(
            f"Design row has {len(row)} levels for {len(factors)} factors"
        )

    priority = priority or PriorityOrder(graph)
    work = _WorkingBuild(graph, classification, budget, priority)

    _apply_factors(work, row, factors)
    _repair_connectivity(work)
    _reduce_to_budget(work)
    _fill_to_budget(work)
    _repair_gates(work, max_gate_swaps)

    ordered = sorted(work.selected, key=graph.index_of)
    ranks = {i: work.ranks[i] for i in ordered}
    choices = {i: work.choices[i] for i in ordered if i in work.choices}

    errors = list(work.errors)
    seen = {(e.code, e.node_id) for e in errors}
    # Unreachable nodes are already reported; skip their orphan duplicate
    seen.update(("orphaned_node", e.node_id) for e in errors if e.code == "unreachable")
    for issue in validate_selection(graph, ordered, ranks, budget):
        if (issue.code, issue.node_id) not in seen:
            errors.append(issue)
            seen.add((issue.code, issue.node_id))

    points = work.points()
    build = Build(
        row_index=row_index,
        profile=profile,
        factor_settings=tuple(int(v) for v in row),
        selected=tuple(ordered),
        ranks=ranks,
        choices=choices,
        points_spent=points,
        budget=budget,
        feasible=points == budget and not errors,
        errors=tuple(errors),
    )
    if errors:
        logger.debug(
            "Row %s infeasible (%d/%d pts): %s",
            row_index,
            points,
            budget,
            "; ".join(e.message for e in errors),
        )
    return build

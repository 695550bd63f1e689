"""Build generation orchestrator.

Runs the whole pipeline for one graph and budget:
classify -> identify factors -> fractional factorial design -> repair every
row -> cross with branch variants -> pinned profile builds.
"""

import logging
import multiprocessing as mp
from collections.abc import Sequence
from concurrent.futures import ProcessPoolExecutor, as_completed

from ..config import BuildspaceConfig, get_config
from ..core.models import (
    Build,
    Classification,
    DesignReport,
    Factor,
    FactorType,
    GenerationResult,
    Overrides,
    StructuralInputError,
    TalentGraph,
)
from ..utils.callbacks import ItemProgressCallback
from .classifier import classify_nodes
from .factorial import design_quality, generate_fractional_factorial
from .factors import identify_factors
from .pinned import generate_pinned_builds
from .roster import generate_roster
from .priority import PriorityOrder
from .repair import design_row_to_build
from .variants import cross_with_branches

logger = logging.getLogger(__name__)


# =============================================================================
# Parallel row repair
# =============================================================================

_ROW_WORKER_STATE: dict | None = None


def _init_row_worker(
    graph: TalentGraph,
    factors: list[Factor],
    classification: Classification,
    budget: int,
    max_gate_swaps: int,
) -> None:
    """Initialize process-local state for row-repair workers."""
    global _ROW_WORKER_STATE
    _ROW_WORKER_STATE = {
        "graph": graph,
        "factors": factors,
        "classification": classification,
        "budget": budget,
        "max_gate_swaps": max_gate_swaps,
        "priority": PriorityOrder(graph),
    }


def _repair_row_task(task: tuple[int, tuple[int, ...]]) -> tuple[int, Build]:
    """Repair one design row in a worker process."""
    row_index, row = task
    if _ROW_WORKER_STATE is None:
        raise RuntimeError("Row worker not initialized")
    state = _ROW_WORKER_STATE
    build = design_row_to_build(
        row,
        state["factors"],
        state["classification"],
        state["graph"],
        state["budget"],
        priority=state["priority"],
        max_gate_swaps=state["max_gate_swaps"],
        row_index=row_index,
    )
    return row_index, build


def _repair_rows_serial(
    matrix: Sequence[Sequence[int]],
    factors: list[Factor],
    classification: Classification,
    graph: TalentGraph,
    budget: int,
    priority: PriorityOrder,
    max_gate_swaps: int,
    on_progress: ItemProgressCallback | None = None,
) -> list[Build]:
    builds: list[Build] = []
    total = len(matrix)
    for row_index, row in enumerate(matrix):
        builds.append(
            design_row_to_build(
                row,
                factors,
                classification,
                graph,
                budget,
                priority=priority,
                max_gate_swaps=max_gate_swaps,
                row_index=row_index,
            )
        )
        if on_progress:
            on_progress(row_index + 1, total)
    return builds


def _repair_rows_parallel(
    matrix: Sequence[Sequence[int]],
    factors: list[Factor],
    classification: Classification,
    graph: TalentGraph,
    budget: int,
    priority: PriorityOrder,
    max_gate_swaps: int,
    workers: int,
    on_progress: ItemProgressCallback | None = None,
) -> list[Build]:
    """Repair rows in a process pool, reassembled in row order."""
    total = len(matrix)
    results: dict[int, Build] = {}

    try:
        ctx = mp.get_context("spawn")
        with ProcessPoolExecutor(
            max_workers=workers,
            mp_context=ctx,
            initializer=_init_row_worker,
            initargs=(graph, factors, classification, budget, max_gate_swaps),
        ) as ex:
            futures = [
                ex.submit(_repair_row_task, (i, tuple(row)))
                for i, row in enumerate(matrix)
            ]
            for fut in as_completed(futures):
                row_index, build = fut.result()
                results[row_index] = build
                if on_progress:
                    on_progress(len(results), total)
    except Exception as e:
        logger.warning("Parallel row repair failed (%s). Falling back to serial.", e)
        return _repair_rows_serial(
            matrix,
            factors,
            classification,
            graph,
            budget,
            priority,
            max_gate_swaps,
            on_progress,
        )

    return [results[i] for i in range(total)]


# =============================================================================
# Quality of the repaired design
# =============================================================================


def observed_matrix(builds: Sequence[Build], factors: Sequence[Factor]) -> list[list[int]]:
    """Factor levels actually realised by each repaired build."""
    matrix: list[list[int]] = []
    for build in builds:
        row: list[int] = []
        for factor in factors:
            rank = build.ranks.get(factor.node_id, 0)
            if factor.type == FactorType.RANK_2:
                row.append(int(rank >= 2))
            elif factor.type == FactorType.CHOICE:
                second = factor.entries[1] if factor.entries else 1
                row.append(int(build.choices.get(factor.node_id) == second))
            else:
                row.append(int(rank >= 1))
        matrix.append(row)
    return matrix


# =============================================================================
# Orchestration
# =============================================================================


def generate_builds(
    graph: TalentGraph,
    budget: int | None = None,
    overrides: Overrides | None = None,
    *,
    config: BuildspaceConfig | None = None,
    on_progress: ItemProgressCallback | None = None,
) -> GenerationResult:
    """Generate a covering set of builds for one graph and budget.

    Args:
        graph: Graph description
        budget: Exact point budget (falls back to graph.budget, then the
            configured default)
        overrides: Per-run include/exclude/require, rank caps and choice locks
        config: Settings for repair and parallelism (global config if omitted)
        on_progress: Called as (rows_done, total_rows) during row repair

    Returns:
        GenerationResult with one Build per design row, composites, pinned
        profile builds and roster builds

    Raises:
        StructuralInputError: If the graph, budget, required names or choice
            locks are invalid
    """
    config = config or get_config()
    overrides = overrides or Overrides()

    graph.check_structure()
    if budget is None:
        budget = graph.budget if graph.budget is not None else config.defaults.budget
    if budget is None:
        raise StructuralInputError("No budget given", ["budget is required"])
    if budget < 0:
        raise StructuralInputError("Invalid budget", [f"budget {budget} is negative"])
    graph.check_required(overrides.require)
    if overrides.lock_branch_choices:
        graph.check_choice_locks(overrides.lock_branch_choices)
    for profile in graph.profiles:
        if profile.lock_branch_choices:
            graph.check_choice_locks(profile.lock_branch_choices)

    logger.info("Generating builds for %s at budget %d", graph.summary(), budget)

    classification = classify_nodes(graph, budget, overrides)
    factors = identify_factors(graph, classification)
    design = generate_fractional_factorial(len(factors))
    logger.info(
        "Design: %d factors -> %d rows (%d base columns)",
        design.k,
        design.n_rows,
        design.base_size,
    )

    priority = PriorityOrder(graph)
    max_gate_swaps = config.repair.max_gate_swaps
    workers = config.generation.max_workers
    if workers > 1 and design.n_rows >= config.generation.parallel_min_rows:
        logger.info("Repairing %d rows with %d workers", design.n_rows, workers)
        builds = _repair_rows_parallel(
            design.matrix,
            factors,
            classification,
            graph,
            budget,
            priority,
            max_gate_swaps,
            workers,
            on_progress,
        )
    else:
        builds = _repair_rows_serial(
            design.matrix,
            factors,
            classification,
            graph,
            budget,
            priority,
            max_gate_swaps,
            on_progress,
        )

    report = DesignReport(
        k=design.k,
        n_rows=design.n_rows,
        base_size=design.base_size,
        generators=list(design.generators),
        quality=design_quality(design.matrix),
        repaired_quality=design_quality(observed_matrix(builds, factors)),
    )

    composites = cross_with_branches(
        builds,
        graph.branches,
        lock_choices=overrides.lock_branch_choices,
        unlock_choices=overrides.unlock_branch_choices,
    )
    # Pinned and roster builds are each deduplicated among themselves only
    pinned = generate_pinned_builds(
        graph,
        budget,
        overrides,
        priority=priority,
        max_gate_swaps=max_gate_swaps,
    )
    roster = generate_roster(
        graph,
        budget,
        overrides,
        priority=priority,
        max_gate_swaps=max_gate_swaps,
    )

    feasible = sum(1 for b in builds if b.feasible)
    logger.info(
        "Generated %d builds (%d feasible), %d composites, %d pinned, %d roster",
        len(builds),
        feasible,
        len(composites),
        len(pinned),
        len(roster),
    )

    return GenerationResult(
        graph_name=graph.meta.name,
        budget=budget,
        classification=classification,
        factors=factors,
        report=report,
        builds=builds,
        composites=composites,
        pinned=pinned,
        roster=roster,
    )

"""Cross builds with branch variants and drop duplicate composites.

Branches are mutually exclusive subgraphs (one is taken per build). Only their
choice nodes vary, so each branch contributes one variant per combination of
unlocked choice entries. No repair happens here: a composite is exactly as
feasible as the build it wraps.
"""

import logging
import re
from collections.abc import Collection, Iterable, Mapping

from ..core.models import Branch, Build, CompositeBuild

logger = logging.getLogger(__name__)


def branch_choice_combos(
    branch: Branch,
    locks: Mapping[str, int] | None = None,
    unlocks: Collection[str] = (),
) -> list[dict[str, int]]:
    """Every assignment of the branch's choice nodes to an entry index.

    Branch-level `choice_locks` apply first, then `locks`; node ids in
    `unlocks` are freed again. A fully locked branch yields one combination.
    """
    effective = {**branch.choice_locks, **(locks or {})}
    for node_id in unlocks:
        effective.pop(node_id, None)

    combos: list[dict[str, int]] = [{}]
    for choice in branch.choice_nodes():
        locked_idx = effective.get(choice.id)
        if locked_idx is not None:
            combos = [{**combo, choice.id: locked_idx} for combo in combos]
        else:
            combos = [
                {**combo, choice.id: idx}
                for combo in combos
                for idx in range(len(choice.entries))
            ]
    return combos


def composite_fingerprint(
    build: Build, branch: str | None, choices: Mapping[str, int]
) -> str:
    """Canonical identity of a build crossed with one branch variant."""
    choice_str = ",".join(f"{k}:c{v}" for k, v in sorted(choices.items()))
    return f"main[{','.join(build.signature())}]branch[{branch or ''}|{choice_str}]"


def _slug(text: str) -> str:
    return re.sub(r"\s+", "", text)


def composite_name(
    build: Build, branch: Branch | None, choices: Mapping[str, int]
) -> str:
    parts: list[str] = []
    if build.profile:
        parts.extend(["pin", _slug(build.profile)])
    if branch is not None:
        parts.append(_slug(branch.name))
    if build.row_index is not None:
        parts.append(f"d{build.row_index}")

    desc = ""
    if branch is not None and choices:
        by_id = {n.id: n for n in branch.nodes}
        desc = "_".join(
            _slug(by_id[node_id].entries[idx].name)
            for node_id, idx in choices.items()
            if node_id in by_id and idx < len(by_id[node_id].entries)
        )
    parts.append(desc or "default")
    return "_".join(parts)


def cross_with_branches(
    builds: Iterable[Build],
    branches: Iterable[Branch],
    *,
    lock_choices: Mapping[str, int] | None = None,
    unlock_choices: Collection[str] = (),
    seen: set[str] | None = None,
) -> list[CompositeBuild]:
    """Cross every build with every branch variant, dropping repeats.

    Args:
        builds: Repaired builds (feasible or not)
        branches: Branch subgraphs; with none, each build is wrapped once
        lock_choices: Extra {choice node id -> entry index} locks
        unlock_choices: Choice node ids to free from any lock
        seen: Fingerprints already emitted (shared across calls to dedupe
            several batches against each other)

    Returns:
        Composite builds with unique fingerprints, branch-major order
    """
    builds = list(builds)
    branches = list(branches)
    seen = set() if seen is None else seen
    composites: list[CompositeBuild] = []
    dropped = 0

    variants: list[tuple[Branch | None, list[dict[str, int]]]]
    if branches:
        variants = [
            (b, branch_choice_combos(b, lock_choices, unlock_choices))
            for b in branches
        ]
    else:
        variants = [(None, [{}])]

    for branch, combos in variants:
        branch_name = branch.name if branch is not None else None
        branch_nodes = tuple(n.id for n in branch.nodes) if branch is not None else ()
        for build in builds:
            for combo in combos:
                fingerprint = composite_fingerprint(build, branch_name, combo)
                if fingerprint in seen:
                    dropped += 1
                    continue
                seen.add(fingerprint)
                composites.append(
                    CompositeBuild(
                        name=composite_name(build, branch, combo),
                        build=build,
                        branch=branch_name,
                        branch_nodes=branch_nodes,
                        branch_choices=combo,
                        fingerprint=fingerprint,
                    )
                )

    if dropped:
        logger.info("Dropped %d duplicate composite builds", dropped)
    return composites

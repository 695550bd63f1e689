"""Design and build models for buildspace.

This module contains everything produced by a generation run:
- Classification: locked / factor / excluded partition of the graph
- Factors: FactorType, Factor
- Design: FactorialDesign, DesignQuality, DesignReport
- Builds: ErrorKind, BuildError, Build, CompositeBuild
- Encoding: Selection
- Results: GenerationResult with JSON output
"""

import json
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Classification
# =============================================================================


class Classification(BaseModel):
    """Partition of graph nodes computed once per run and never re-derived."""

    model_config = ConfigDict(frozen=True)

    locked: frozenset[str]
    locked_ranks: dict[str, int]
    factors: tuple[str, ...] = Field(description="Factor node ids, source order")
    excluded: frozenset[str]
    unreachable: frozenset[str] = frozenset()
    preferred_choices: dict[str, int] = Field(default_factory=dict)
    exclusions: frozenset[str] = Field(
        default=frozenset(), description="Effective exclusion names"
    )
    unknown_names: tuple[str, ...] = Field(
        default=(), description="Directive names that matched no node or entry"
    )

    def summary(self) -> dict[str, Any]:
        return {
            "locked": sorted(self.locked),
            "factors": list(self.factors),
            "excluded": sorted(self.excluded),
            "unreachable": sorted(self.unreachable),
            "unknown_names": list(self.unknown_names),
        }


# =============================================================================
# Factors
# =============================================================================


class FactorType(str, Enum):
    BINARY = "binary"
    RANK_1 = "rank_1"
    RANK_2 = "rank_2"
    CHOICE = "choice"


class Factor(BaseModel):
    """One independent binary decision derived from a node."""

    model_config = ConfigDict(frozen=True)

    index: int
    node_id: str
    name: str
    type: FactorType
    entries: tuple[int, int] | None = Field(
        default=None, description="Entry indices for levels 0 and 1 (CHOICE only)"
    )


# =============================================================================
# Design
# =============================================================================


class FactorialDesign(BaseModel):
    """Two-level design matrix over K factors."""

    model_config = ConfigDict(frozen=True)

    k: int
    base_size: int
    n_rows: int
    matrix: tuple[tuple[int, ...], ...]
    generators: tuple[tuple[int, int], ...] = ()


class DesignQuality(BaseModel):
    """Balance, orthogonality and pairwise coverage of a 0/1 matrix."""

    balance: float = Field(description="Mean |proportion of 1s - 0.5| per column")
    balanced: bool
    max_correlation: float
    orthogonal: bool
    pair_coverage: float


class DesignReport(BaseModel):
    k: int
    n_rows: int
    base_size: int
    generators: list[tuple[int, int]]
    quality: DesignQuality
    repaired_quality: DesignQuality | None = None


# =============================================================================
# Builds
# =============================================================================


class ErrorKind(str, Enum):
    INFEASIBLE_BUILD = "infeasible_build"
    UNREACHABLE_REPAIR_TARGET = "unreachable_repair_target"


class BuildError(BaseModel):
    """A recorded (non-fatal) reason a build is not feasible."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    code: str
    message: str
    node_id: str | None = None


class Build(BaseModel):
    """The mapped-and-repaired result of one design row (or pinned profile).

    Value object: produced once by the repair engine, never mutated.
    """

    model_config = ConfigDict(frozen=True)

    row_index: int | None = None
    profile: str | None = None
    factor_settings: tuple[int, ...] = ()
    selected: tuple[str, ...]
    ranks: dict[str, int]
    choices: dict[str, int] = Field(default_factory=dict)
    points_spent: int
    budget: int
    feasible: bool
    errors: tuple[BuildError, ...] = ()

    def signature(self) -> list[str]:
        """Sorted `id:rank[:cN]` parts identifying the selection."""
        parts = []
        for node_id in sorted(self.selected):
            part = f"{node_id}:{self.ranks.get(node_id, 1)}"
            if node_id in self.choices:
                part += f":c{self.choices[node_id]}"
            parts.append(part)
        return parts


class CompositeBuild(BaseModel):
    """A build crossed with one branch-variant assignment."""

    model_config = ConfigDict(frozen=True)

    name: str
    build: Build
    branch: str | None = None
    branch_nodes: tuple[str, ...] = ()
    branch_choices: dict[str, int] = Field(default_factory=dict)
    fingerprint: str

    @property
    def feasible(self) -> bool:
        return self.build.feasible


class Selection(BaseModel):
    """Per-node selection handed to the external encoder."""

    model_config = ConfigDict(frozen=True)

    rank: int
    choice_index: int | None = None


# =============================================================================
# Results
# =============================================================================


class GenerationResult(BaseModel):
    """Everything produced by one generation run."""

    graph_name: str
    budget: int
    classification: Classification
    factors: list[Factor]
    report: DesignReport
    builds: list[Build] = Field(description="One build per design row")
    composites: list[CompositeBuild] = Field(default_factory=list)
    pinned: list[CompositeBuild] = Field(default_factory=list)
    roster: list[CompositeBuild] = Field(default_factory=list)

    @property
    def feasible_builds(self) -> list[Build]:
        return [b for b in self.builds if b.feasible]

    def to_dict(self) -> dict[str, Any]:
        return {
            "meta": {
                "graph": self.graph_name,
                "budget": self.budget,
                "build_count": len(self.builds),
                "feasible_count": len(self.feasible_builds),
                "composite_count": len(self.composites),
                "pinned_count": len(self.pinned),
                "roster_count": len(self.roster),
            },
            "classification": self.classification.summary(),
            "factors": [f.model_dump(mode="json") for f in self.factors],
            "design": self.report.model_dump(mode="json"),
            "builds": [b.model_dump(mode="json") for b in self.builds],
            "composites": [c.model_dump(mode="json") for c in self.composites],
            "pinned": [c.model_dump(mode="json") for c in self.pinned],
            "roster": [c.model_dump(mode="json") for c in self.roster],
        }

    def save_json(self, path: Path | str) -> None:
        """Save result to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

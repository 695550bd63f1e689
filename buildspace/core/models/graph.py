"""Graph description models and YAML I/O for buildspace.

A TalentGraph is the complete input to a generation run: the selectable nodes
with their prerequisite and gate constraints, the mutually exclusive branch
subgraphs that get crossed with every build, and the default exclusion and
requirement name lists.

This module contains:
- Nodes: NodeKind, ChoiceEntry, Node
- Branches: Branch
- Directives: Overrides, ProfileRequirement, Profile
- Rosters: TalentCluster, ClusterDepth, RosterTemplate
- Graph: GraphMeta, TalentGraph with YAML I/O and structural checks
"""

from collections.abc import Iterable
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, PrivateAttr, field_validator

from ...utils.graphs import CircularDependencyError, topological_depths


class StructuralInputError(Exception):
    """Raised when a graph description is malformed.

    Generation never starts on a malformed graph, since no partial result
    built from it could be trusted.
    """

    def __init__(self, message: str, issues: list[str] | None = None):
        self.summary = message
        self.issues = issues or []
        if self.issues:
            message = f"{message}: " + "; ".join(self.issues)
        super().__init__(message)


def _coerce_id(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value))
    return value


# =============================================================================
# Nodes
# =============================================================================


class NodeKind(str, Enum):
    """Closed set of node kinds."""

    SIMPLE = "simple"
    MULTI_RANK = "multi_rank"
    CHOICE = "choice"


class ChoiceEntry(BaseModel):
    """One named option of a CHOICE node."""

    name: str
    entry_id: str | None = None

    @field_validator("entry_id", mode="before")
    @classmethod
    def _entry_id_to_str(cls, v):
        return _coerce_id(v)


class Node(BaseModel):
    """One vertex of the prerequisite DAG."""

    id: str
    name: str = ""
    cost: int = Field(default=1, description="Points per rank")
    max_ranks: int = 1
    kind: NodeKind = NodeKind.SIMPLE
    prerequisites: list[str] = Field(
        default_factory=list,
        description="OR semantics: at least one must be selected",
    )
    gate_threshold: int | None = Field(
        default=None,
        description="Points required in strictly lower gate tiers",
    )
    is_root: bool = False
    is_free: bool = False
    entries: list[ChoiceEntry] = Field(default_factory=list)
    pos_x: float | None = None
    pos_y: float | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v):
        return _coerce_id(v)

    @field_validator("prerequisites", mode="before")
    @classmethod
    def _prereqs_to_str(cls, v):
        if v is None:
            return []
        return [_coerce_id(p) for p in v]

    @field_validator("entries", mode="before")
    @classmethod
    def _entries_from_names(cls, v):
        if v is None:
            return []
        return [{"name": e} if isinstance(e, str) else e for e in v]

    def model_post_init(self, __context: Any) -> None:
        if not self.name:
            self.name = self.id

    @property
    def gate_tier(self) -> int:
        return self.gate_threshold or 0

    @property
    def names(self) -> list[str]:
        """Node name followed by its entry names."""
        return [self.name, *(e.name for e in self.entries)]

    def points_for(self, rank: int) -> int:
        """Points spent by this node at the given rank."""
        if self.is_free:
            return 0
        return self.cost * rank


# =============================================================================
# Branches and directives
# =============================================================================


class Branch(BaseModel):
    """A mutually exclusive subgraph crossed with every build.

    Only the CHOICE nodes of a branch vary; the rest of its nodes are taken
    whole whenever the branch is taken.
    """

    name: str
    nodes: list[Node] = Field(default_factory=list)
    choice_locks: dict[str, int] = Field(
        default_factory=dict, description="Choice node id -> locked entry index"
    )

    @field_validator("choice_locks", mode="before")
    @classmethod
    def _lock_keys_to_str(cls, v):
        if v is None:
            return {}
        return {_coerce_id(k): val for k, val in v.items()}

    def choice_nodes(self) -> list[Node]:
        return [n for n in self.nodes if n.kind == NodeKind.CHOICE]


class Overrides(BaseModel):
    """Classification override directives, all keyed by node or entry name."""

    require: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    include: list[str] = Field(default_factory=list)
    rank_caps: dict[str, int] = Field(
        default_factory=dict, description="Required name -> rank to lock at"
    )
    lock_branch_choices: dict[str, int] = Field(default_factory=dict)
    unlock_branch_choices: list[str] = Field(default_factory=list)

    @field_validator("lock_branch_choices", mode="before")
    @classmethod
    def _lock_keys_to_str(cls, v):
        if v is None:
            return {}
        return {_coerce_id(k): val for k, val in v.items()}

    @field_validator("unlock_branch_choices", mode="before")
    @classmethod
    def _unlocks_to_str(cls, v):
        if v is None:
            return []
        return [_coerce_id(x) for x in v]

    def merged(self, other: "Overrides") -> "Overrides":
        """Combine two directive sets; `other` wins on conflicting locks."""
        return Overrides(
            require=[*self.require, *other.require],
            exclude=[*self.exclude, *other.exclude],
            include=[*self.include, *other.include],
            rank_caps={**self.rank_caps, **other.rank_caps},
            lock_branch_choices={
                **self.lock_branch_choices,
                **other.lock_branch_choices,
            },
            unlock_branch_choices=[
                *self.unlock_branch_choices,
                *other.unlock_branch_choices,
            ],
        )


class ProfileRequirement(BaseModel):
    """A required name, optionally locked below its maximum rank."""

    name: str
    max_rank: int | None = None


class Profile(BaseModel):
    """A pinned build profile: required/excluded names, rest filled by repair."""

    name: str
    require: list[ProfileRequirement] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    include: list[str] = Field(default_factory=list)
    lock_branch_choices: dict[str, int] = Field(default_factory=dict)
    unlock_branch_choices: list[str] = Field(default_factory=list)

    @field_validator("require", mode="before")
    @classmethod
    def _requirements_from_names(cls, v):
        if v is None:
            return []
        return [{"name": r} if isinstance(r, str) else r for r in v]

    @field_validator("lock_branch_choices", mode="before")
    @classmethod
    def _lock_keys_to_str(cls, v):
        if v is None:
            return {}
        return {_coerce_id(k): val for k, val in v.items()}

    @field_validator("unlock_branch_choices", mode="before")
    @classmethod
    def _unlocks_to_str(cls, v):
        if v is None:
            return []
        return [_coerce_id(x) for x in v]

    def to_overrides(self) -> Overrides:
        names = [r.name for r in self.require]
        return Overrides(
            require=names,
            exclude=list(self.exclude),
            # Required names are never excluded
            include=[*self.include, *names],
            rank_caps={r.name: r.max_rank for r in self.require if r.max_rank},
            lock_branch_choices=self.lock_branch_choices,
            unlock_branch_choices=self.unlock_branch_choices,
        )


# =============================================================================
# Roster templates
# =============================================================================


class TalentCluster(BaseModel):
    """A named group of talents, taken either at its core or in full."""

    core: list[str] = Field(default_factory=list)
    extended: list[str] = Field(default_factory=list)


class ClusterDepth(str, Enum):
    CORE = "core"
    FULL = "full"


class RosterTemplate(BaseModel):
    """One roster entry: which clusters to take, and how deep to invest in the apex.

    Clusters missing from `include` are excluded outright.
    """

    name: str
    include: dict[str, ClusterDepth] = Field(default_factory=dict)
    apex_rank: int = Field(default=0, description="0 excludes the apex root")


# =============================================================================
# Graph
# =============================================================================


class GraphMeta(BaseModel):
    name: str = "graph"
    description: str | None = None


class TalentGraph(BaseModel):
    """Complete graph description for a generation run."""

    meta: GraphMeta = Field(default_factory=GraphMeta)
    budget: int | None = None
    nodes: list[Node]
    branches: list[Branch] = Field(default_factory=list)
    excluded_names: list[str] = Field(default_factory=list)
    required_names: list[str] = Field(default_factory=list)
    profiles: list[Profile] = Field(default_factory=list)
    talent_clusters: dict[str, TalentCluster] = Field(default_factory=dict)
    roster_templates: list[RosterTemplate] = Field(default_factory=list)
    node_order: list[str] = Field(
        default_factory=list,
        description="Full node ordering expected by the external encoder",
    )

    _by_id: dict[str, Node] = PrivateAttr(default_factory=dict)
    _index: dict[str, int] = PrivateAttr(default_factory=dict)
    _successors: dict[str, list[str]] = PrivateAttr(default_factory=dict)

    @field_validator("node_order", mode="before")
    @classmethod
    def _order_to_str(cls, v):
        if v is None:
            return []
        return [_coerce_id(x) for x in v]

    def model_post_init(self, __context: Any) -> None:
        self._by_id = {}
        self._index = {}
        for i, node in enumerate(self.nodes):
            self._by_id.setdefault(node.id, node)
            self._index.setdefault(node.id, i)
        self._successors = {node.id: [] for node in self.nodes}
        for node in self.nodes:
            for prereq in node.prerequisites:
                if prereq in self._successors and node.id not in self._successors[prereq]:
                    self._successors[prereq].append(node.id)

    # ── Lookup ──

    def get(self, node_id: str) -> Node | None:
        return self._by_id.get(node_id)

    def node(self, node_id: str) -> Node:
        return self._by_id[node_id]

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._by_id

    def index_of(self, node_id: str) -> int:
        """Source-order position of a node."""
        return self._index[node_id]

    def successors(self, node_id: str) -> list[str]:
        return self._successors.get(node_id, [])

    def roots(self) -> list[Node]:
        return [n for n in self.nodes if n.is_root]

    def find_by_name(self, name: str) -> list[Node]:
        """Nodes whose name, or any entry name, matches."""
        return [n for n in self.nodes if name in n.names]

    def known_names(self) -> set[str]:
        """Every node and entry name, main graph and branches."""
        names: set[str] = set()
        for node in [*self.nodes, *(n for b in self.branches for n in b.nodes)]:
            names.update(node.names)
        return names

    def unknown_names(self, names: Iterable[str]) -> list[str]:
        """Names that match no node or entry, sorted and deduplicated."""
        known = self.known_names()
        return sorted({name for name in names if name not in known})

    def apex_root(self) -> Node | None:
        """The first multi-rank root, if any."""
        for node in self.nodes:
            if node.is_root and node.max_ranks > 1:
                return node
        return None

    def branch(self, name: str) -> Branch | None:
        for branch in self.branches:
            if branch.name == name:
                return branch
        return None

    def depths(self) -> dict[str, int]:
        """Longest prerequisite chain from a root, per node."""
        return topological_depths(
            [n.id for n in self.nodes],
            {n.id: n.prerequisites for n in self.nodes},
        )

    def has_layout(self) -> bool:
        return bool(self.nodes) and all(
            n.pos_x is not None and n.pos_y is not None for n in self.nodes
        )

    # ── Validation ──

    def structural_issues(self) -> list[str]:
        """List every structural defect of the graph (empty if well-formed)."""
        issues: list[str] = []
        seen: set[str] = set()

        all_nodes = [*self.nodes, *(n for b in self.branches for n in b.nodes)]
        for node in all_nodes:
            if node.id in seen:
                issues.append(f"Duplicate node id: {node.id}")
            seen.add(node.id)
            if node.cost < 0:
                issues.append(f"Node {node.id} has negative cost {node.cost}")
            if node.max_ranks < 1:
                issues.append(f"Node {node.id} has max_ranks {node.max_ranks} < 1")
            if node.kind == NodeKind.CHOICE and len(node.entries) < 2:
                issues.append(
                    f"Choice node {node.id} has {len(node.entries)} entries (needs 2+)"
                )
            if node.gate_threshold is not None and node.gate_threshold < 0:
                issues.append(f"Node {node.id} has negative gate threshold")

        for node in self.nodes:
            for prereq in node.prerequisites:
                if prereq not in self._by_id:
                    issues.append(
                        f"Node {node.id} has dangling prerequisite {prereq}"
                    )

        for branch in self.branches:
            branch_ids = {n.id for n in branch.nodes}
            for node_id, idx in branch.choice_locks.items():
                issues.extend(_lock_issues(branch, node_id, idx, branch_ids))

        issues.extend(self.roster_issues())
        issues.extend(self.name_issues())

        if not issues:
            try:
                self.depths()
            except CircularDependencyError as e:
                issues.append(str(e))

        return issues

    def roster_issues(self) -> list[str]:
        issues: list[str] = []
        apex = self.apex_root()
        for template in self.roster_templates:
            for cluster_name in template.include:
                if cluster_name not in self.talent_clusters:
                    issues.append(
                        f"Roster template '{template.name}' includes unknown "
                        f"cluster '{cluster_name}'"
                    )
            if template.apex_rank < 0:
                issues.append(
                    f"Roster template '{template.name}' has negative apex_rank"
                )
            elif template.apex_rank > 0:
                if apex is None:
                    issues.append(
                        f"Roster template '{template.name}' sets apex_rank "
                        "but the graph has no multi-rank root"
                    )
                elif template.apex_rank > apex.max_ranks:
                    issues.append(
                        f"Roster template '{template.name}' sets apex_rank "
                        f"{template.apex_rank} above {apex.id}'s {apex.max_ranks} ranks"
                    )
        return issues

    def name_issues(self) -> list[str]:
        """Required names (graph, profiles, clusters) that match no node or entry."""
        issues = [
            f"Required name matches no node or entry: {name!r}"
            for name in self.unknown_names(self.required_names)
        ]
        for profile in self.profiles:
            for name in self.unknown_names(r.name for r in profile.require):
                issues.append(f"Profile '{profile.name}' requires unknown name {name!r}")
        for cluster_name, cluster in self.talent_clusters.items():
            for name in self.unknown_names([*cluster.core, *cluster.extended]):
                issues.append(f"Cluster '{cluster_name}' names unknown talent {name!r}")
        return issues

    def check_required(self, names: Iterable[str]) -> None:
        """Raise StructuralInputError if a required name matches nothing."""
        unknown = self.unknown_names(names)
        if unknown:
            raise StructuralInputError(
                "Unknown required names",
                [f"Required name matches no node or entry: {n!r}" for n in unknown],
            )

    def check_structure(self) -> None:
        """Raise StructuralInputError if the graph is malformed."""
        issues = self.structural_issues()
        if issues:
            raise StructuralInputError(
                f"Graph '{self.meta.name}' is malformed", issues
            )

    def check_choice_locks(self, locks: dict[str, int]) -> None:
        """Raise StructuralInputError for locks that name no valid branch entry."""
        issues: list[str] = []
        for node_id, idx in locks.items():
            owner = next(
                (b for b in self.branches if any(n.id == node_id for n in b.nodes)),
                None,
            )
            if owner is None:
                issues.append(f"Choice lock targets unknown branch node {node_id}")
                continue
            issues.extend(
                _lock_issues(owner, node_id, idx, {n.id for n in owner.nodes})
            )
        if issues:
            raise StructuralInputError("Invalid branch choice locks", issues)

    # ── YAML I/O ──

    def to_yaml(self, path: Path | str) -> None:
        """Save graph to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json", exclude_none=True)

        with open(path, "w") as f:
            yaml.dump(
                data, f, default_flow_style=False, sort_keys=False, allow_unicode=True
            )

    @classmethod
    def from_yaml(cls, path: Path | str) -> "TalentGraph":
        """Load graph from YAML (or JSON, which is a YAML subset)."""
        path = Path(path)

        with open(path) as f:
            data = yaml.safe_load(f)

        return cls.model_validate(data)

    def summary(self) -> str:
        kinds: dict[str, int] = {}
        for node in self.nodes:
            kinds[node.kind.value] = kinds.get(node.kind.value, 0) + 1
        kind_str = ", ".join(f"{k}={v}" for k, v in sorted(kinds.items()))
        return (
            f"{self.meta.name}: {len(self.nodes)} nodes ({kind_str}), "
            f"{len(self.branches)} branches, {len(self.profiles)} profiles"
        )


def _lock_issues(
    branch: Branch, node_id: str, idx: int, branch_ids: set[str]
) -> list[str]:
    if node_id not in branch_ids:
        return [f"Branch '{branch.name}' locks unknown node {node_id}"]
    node = next(n for n in branch.nodes if n.id == node_id)
    if node.kind != NodeKind.CHOICE:
        return [f"Branch '{branch.name}' locks non-choice node {node_id}"]
    if not 0 <= idx < len(node.entries):
        return [
            f"Branch '{branch.name}' locks node {node_id} to entry {idx} "
            f"(has {len(node.entries)})"
        ]
    return []

"""All Pydantic models for buildspace, organized by domain.

This package centralizes all model definitions:
- graph.py: Graph description, branches, override directives, profiles
- build.py: Classification, factors, designs, builds and run results
"""

# Graph description (input)
from .graph import (
    StructuralInputError,
    NodeKind,
    ChoiceEntry,
    Node,
    Branch,
    Overrides,
    ProfileRequirement,
    Profile,
    TalentCluster,
    ClusterDepth,
    RosterTemplate,
    GraphMeta,
    TalentGraph,
)

# Generation output
from .build import (
    Classification,
    FactorType,
    Factor,
    FactorialDesign,
    DesignQuality,
    DesignReport,
    ErrorKind,
    BuildError,
    Build,
    CompositeBuild,
    Selection,
    GenerationResult,
)

__all__ = [
    # Graph
    "StructuralInputError",
    "NodeKind",
    "ChoiceEntry",
    "Node",
    "Branch",
    "Overrides",
    "ProfileRequirement",
    "Profile",
    "TalentCluster",
    "ClusterDepth",
    "RosterTemplate",
    "GraphMeta",
    "TalentGraph",
    # Output
    "Classification",
    "FactorType",
    "Factor",
    "FactorialDesign",
    "DesignQuality",
    "DesignReport",
    "ErrorKind",
    "BuildError",
    "Build",
    "CompositeBuild",
    "Selection",
    "GenerationResult",
]

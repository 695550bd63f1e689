"""buildspace: covering sets of point-budget builds for prerequisite graphs.

Typical use:
    from buildspace import TalentGraph, generate_builds

    graph = TalentGraph.from_yaml("tree.yaml")
    result = generate_builds(graph, budget=34)
    result.save_json("builds.json")
"""

__version__ = "0.1.0"

from .config import BuildspaceConfig, configure, get_config, reset_config
from .core.models import (
    Build,
    CompositeBuild,
    GenerationResult,
    Overrides,
    StructuralInputError,
    TalentGraph,
)
from .design import generate_builds, generate_pinned_builds, generate_roster
from .encoding import BuildEncoder, build_to_selections, encode_builds

__all__ = [
    "__version__",
    "BuildspaceConfig",
    "configure",
    "get_config",
    "reset_config",
    "Build",
    "CompositeBuild",
    "GenerationResult",
    "Overrides",
    "StructuralInputError",
    "TalentGraph",
    "generate_builds",
    "generate_pinned_builds",
    "generate_roster",
    "BuildEncoder",
    "build_to_selections",
    "encode_builds",
]

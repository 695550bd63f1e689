"""Pure utility functions for buildspace.

This module contains pure functions with ZERO dependencies on buildspace models
or other buildspace modules. These are foundational utilities that can be
imported from anywhere without circular import risk.

Modules:
- graphs: Cycle detection, depth layering and BFS path search
- callbacks: Progress callback protocols
"""

from .graphs import (
    CircularDependencyError,
    backward_path,
    build_digraph,
    reachable_from,
    topological_depths,
)
from .callbacks import ItemProgressCallback

__all__ = [
    "CircularDependencyError",
    "backward_path",
    "build_digraph",
    "reachable_from",
    "topological_depths",
    "ItemProgressCallback",
]

"""Build design: classification, factorial design, repair and variants.

Pipeline:
1. classify_nodes: split the graph into locked / factor / excluded nodes
2. identify_factors: one or two two-level factors per free node
3. generate_fractional_factorial: 2^b-row design over the factors
4. design_row_to_build: repair each row into an exact-budget build
5. cross_with_branches: cross builds with branch choice variants

Pinned profiles and roster templates reuse steps 1, 4 and 5 with an empty
design row.
"""

from .classifier import classify_nodes, effective_exclusions
from .factors import factors_for_node, identify_factors
from .factorial import base_column_count, design_quality, generate_fractional_factorial
from .priority import PriorityOrder
from .repair import DEFAULT_MAX_GATE_SWAPS, design_row_to_build, validate_selection
from .variants import branch_choice_combos, composite_fingerprint, cross_with_branches
from .pinned import build_pinned, generate_pinned_builds, pin_profiles
from .roster import generate_roster, roster_profile
from .generator import generate_builds, observed_matrix

__all__ = [
    "classify_nodes",
    "effective_exclusions",
    "factors_for_node",
    "identify_factors",
    "base_column_count",
    "design_quality",
    "generate_fractional_factorial",
    "PriorityOrder",
    "DEFAULT_MAX_GATE_SWAPS",
    "design_row_to_build",
    "validate_selection",
    "branch_choice_combos",
    "composite_fingerprint",
    "cross_with_branches",
    "build_pinned",
    "generate_pinned_builds",
    "pin_profiles",
    "generate_roster",
    "roster_profile",
    "generate_builds",
    "observed_matrix",
]

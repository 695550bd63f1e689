"""Two-level fractional factorial designs and design-quality metrics.

The design uses b base columns forming a full 2^b factorial, and defines every
further column as the XOR of a distinct pair of base columns. The smallest b
with b + C(b, 2) >= K supplies enough pairs for K factors, so a design over K
factors has 2^b rows. Every pair of columns in such a design shows all four
level combinations, which is what the pairwise coverage metric checks.
"""

import logging
from itertools import combinations
from math import comb

import numpy as np

from ..core.models import DesignQuality, FactorialDesign

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = 0.1
ORTHOGONAL_MAX_CORRELATION = 0.3


def base_column_count(k: int) -> int:
    """Smallest b such that b + C(b, 2) >= k."""
    if k <= 0:
        return 0
    b = 1
    while b + comb(b, 2) < k:
        b += 1
    return b


def generate_fractional_factorial(k: int) -> FactorialDesign:
    """Generate a 2^b-row two-level design over k factors.

    Args:
        k: Number of factors

    Returns:
        FactorialDesign whose matrix has 2^b rows and k columns of 0/1.
        k == 0 yields a single empty row.
    """
    if k <= 0:
        return FactorialDesign(k=0, base_size=0, n_rows=1, matrix=((),), generators=())

    b = base_column_count(k)
    n_rows = 1 << b

    # Row r, base column c = bit c of r
    rows = np.arange(n_rows)[:, None]
    base = (rows >> np.arange(b)[None, :]) & 1

    columns = [base[:, c] for c in range(min(k, b))]
    generators: list[tuple[int, int]] = []
    for i, j in combinations(range(b), 2):
        if len(columns) >= k:
            break
        generators.append((i, j))
        columns.append(base[:, i] ^ base[:, j])

    matrix = np.stack(columns, axis=1).astype(int)
    logger.debug(
        "Design: %d rows for %d factors (%d base + %d generators)",
        n_rows,
        k,
        b,
        len(generators),
    )

    return FactorialDesign(
        k=k,
        base_size=b,
        n_rows=n_rows,
        matrix=tuple(tuple(int(v) for v in row) for row in matrix),
        generators=tuple(generators),
    )


def design_quality(matrix) -> DesignQuality:
    """Balance, orthogonality and pairwise coverage of a 0/1 matrix.

    Zero-variance columns count as uncorrelated with everything.
    """
    arr = np.asarray(matrix, dtype=float)
    if arr.ndim != 2 or arr.shape[0] == 0 or arr.shape[1] == 0:
        return DesignQuality(
            balance=0.0,
            balanced=True,
            max_correlation=0.0,
            orthogonal=True,
            pair_coverage=1.0,
        )

    n_rows, k = arr.shape
    balance = float(np.mean(np.abs(arr.mean(axis=0) - 0.5)))

    centered = arr - arr.mean(axis=0)
    norms = np.sqrt((centered**2).sum(axis=0))
    max_corr = 0.0
    for i, j in combinations(range(k), 2):
        den = norms[i] * norms[j]
        if den <= 0:
            continue
        corr = abs(float(centered[:, i] @ centered[:, j]) / den)
        max_corr = max(max_corr, corr)

    total_pairs = 0
    complete = 0
    levels = arr.astype(int)
    for i, j in combinations(range(k), 2):
        total_pairs += 1
        seen = {(int(a), int(b)) for a, b in zip(levels[:, i], levels[:, j])}
        if len(seen) == 4:
            complete += 1

    return DesignQuality(
        balance=balance,
        balanced=balance < BALANCE_TOLERANCE,
        max_correlation=max_corr,
        orthogonal=max_corr < ORTHOGONAL_MAX_CORRELATION,
        pair_coverage=complete / total_pairs if total_pairs else 1.0,
    )

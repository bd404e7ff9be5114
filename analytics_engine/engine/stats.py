"""
Statistics Primitives

Pure functions shared by every analyzer. An undefined statistic (mean of
nothing, sample deviation of one value) is ``None``, never ``NaN`` or ``0``.
"""

import math
from typing import List, Optional, Sequence

import numpy as np
from scipy import stats


def _present(values: Sequence[Optional[float]]) -> List[float]:
    return [float(v) for v in values if v is not None]


def mean(values: Sequence[Optional[float]]) -> Optional[float]:
    """Arithmetic mean of the non-null values"""
    data = _present(values)
    if not data:
        return None
    # Shifted by the first sample so a constant run comes back exactly
    shift = data[0]
    return shift + math.fsum(v - shift for v in data) / len(data)


def stddev(values: Sequence[Optional[float]], sample: bool = True) -> Optional[float]:
    """
    Standard deviation of the non-null values.

    Sample deviation (n - 1) needs two values, population deviation one;
    otherwise the result is None.
    """
    data = _present(values)
    n = len(data)
    if n < (2 if sample else 1):
        return None
    center = mean(data)
    squares = math.fsum((v - center) ** 2 for v in data)
    return math.sqrt(squares / (n - 1 if sample else n))


def percentile(values: Sequence[Optional[float]], p: float) -> Optional[float]:
    """
    Continuous percentile with linear interpolation between closest ranks.

    Args:
        values: Sample values, nulls ignored
        p: Fraction in [0, 1] (0.5 is the median)
    """
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"Percentile must be within [0, 1], got {p}")
    data = _present(values)
    if not data:
        return None
    return float(np.percentile(np.asarray(data), p * 100.0))


def median(values: Sequence[Optional[float]]) -> Optional[float]:
    return percentile(values, 0.5)


def rank(values: Sequence[float], descending: bool = False) -> List[int]:
    """Competition rank (ties share a rank, the next rank skips)"""
    if not values:
        return []
    data = np.asarray(values, dtype=float)
    ranks = stats.rankdata(-data if descending else data, method="min")
    return [int(r) for r in ranks]


def percent_rank(values: Sequence[float], descending: bool = False) -> List[float]:
    """(rank - 1) / (n - 1); a single value has percent rank 0"""
    ranks = rank(values, descending=descending)
    n = len(ranks)
    if n <= 1:
        return [0.0] * n
    return [(r - 1) / (n - 1) for r in ranks]


def ntile(values_sorted: Sequence, n: int) -> List[int]:
    """
    Split an ordered sequence into ``n`` groups as evenly as possible.

    Lower-numbered groups take the remainder rows, so group sizes differ by
    at most one. Returns the 1-based group index of each input position.
    """
    if n < 1:
        raise ValueError(f"Group count must be at least 1, got {n}")

    base, extra = divmod(len(values_sorted), n)
    groups: List[int] = []
    for group in range(1, n + 1):
        size = base + 1 if group <= extra else base
        groups.extend([group] * size)
    return groups

"""
Analytical Computation Engine

Statistics primitives, the partitioned window engine and calendar windows
that every analyzer builds on.
"""
from .stats import mean, median, ntile, percent_rank, percentile, rank, stddev
from .window import Frame, WindowFunction, WindowSpec, apply_window, compute_window

__all__ = [
    "Frame",
    "WindowFunction",
    "WindowSpec",
    "apply_window",
    "compute_window",
    "mean",
    "median",
    "ntile",
    "percent_rank",
    "percentile",
    "rank",
    "stddev",
]

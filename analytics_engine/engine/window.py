"""
Partitioned Window Engine

Generic window-function evaluation: partition a sequence of records by key,
order each partition (ties keep their original position), and evaluate an
aggregate or ranking function over a row frame that never crosses a
partition boundary.

Two entry points:
- ``compute_window``: over any sequence with key/value extractors
- ``apply_window``: over a polars DataFrame, appending the result column
  without reordering the frame
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, Tuple

import polars as pl

from . import stats


class WindowFunction(str, Enum):
    """Window functions supported by the engine"""
    SUM = "sum"
    AVG = "avg"
    STDDEV = "stddev"  # sample standard deviation
    COUNT = "count"
    FIRST_VALUE = "first_value"
    LAST_VALUE = "last_value"
    RANK = "rank"
    PERCENT_RANK = "percent_rank"
    ROW_NUMBER = "row_number"


RANKING_FUNCTIONS = {WindowFunction.RANK, WindowFunction.PERCENT_RANK, WindowFunction.ROW_NUMBER}


@dataclass(frozen=True)
class Frame:
    """
    Row frame relative to the current row.

    ``preceding``/``following`` are row offsets; ``None`` means unbounded.
    The default frame is UNBOUNDED PRECEDING .. CURRENT ROW.
    """
    preceding: Optional[int] = None
    following: Optional[int] = 0

    def __post_init__(self):
        for bound in (self.preceding, self.following):
            if bound is not None and bound < 0:
                raise ValueError(f"Frame offsets must be non-negative, got {bound}")

    @classmethod
    def unbounded_preceding(cls) -> "Frame":
        return cls(preceding=None, following=0)

    @classmethod
    def rows_preceding(cls, rows: int) -> "Frame":
        """``rows`` PRECEDING .. CURRENT ROW"""
        return cls(preceding=rows, following=0)

    @classmethod
    def entire_partition(cls) -> "Frame":
        return cls(preceding=None, following=None)

    @property
    def is_running(self) -> bool:
        return self.preceding is None and self.following == 0

    def bounds(self, position: int, size: int) -> Tuple[int, int]:
        """Half-open [start, stop) slice of the partition for ``position``"""
        start = 0 if self.preceding is None else max(0, position - self.preceding)
        stop = size if self.following is None else min(size, position + self.following + 1)
        return start, stop


@dataclass(frozen=True)
class WindowSpec:
    """Column-based window definition for ``apply_window``"""
    partition_by: Tuple[str, ...] = ()
    order_by: Tuple[str, ...] = ()
    descending: bool = False
    frame: Frame = Frame()


def partition_positions(
    records: Sequence[Any],
    partition_key: Optional[Callable[[Any], Hashable]] = None,
    order_key: Optional[Callable[[Any], Any]] = None,
    descending: bool = False,
) -> List[List[int]]:
    """
    Group record positions by partition key and order each group.

    Partitions are returned in first-seen order. Sorting is stable, so rows
    with equal order keys keep their original relative position (also when
    ``descending``).
    """
    partitions: Dict[Hashable, List[int]] = {}
    for position in range(len(records)):
        key = partition_key(records[position]) if partition_key else None
        partitions.setdefault(key, []).append(position)

    if order_key is None:
        return list(partitions.values())
    return [
        sorted(members, key=lambda i: order_key(records[i]), reverse=descending)
        for members in partitions.values()
    ]


def _total(values: List[Any]) -> Any:
    if all(isinstance(v, int) for v in values):
        return sum(values)
    return math.fsum(values)


def _reduce(function: WindowFunction, window: List[Any]) -> Any:
    if function == WindowFunction.FIRST_VALUE:
        return window[0]
    if function == WindowFunction.LAST_VALUE:
        return window[-1]

    present = [v for v in window if v is not None]
    if function == WindowFunction.COUNT:
        return len(present)
    if function == WindowFunction.SUM:
        return _total(present) if present else None
    if function == WindowFunction.AVG:
        return stats.mean(present)
    if function == WindowFunction.STDDEV:
        return stats.stddev(present)
    raise ValueError(f"Not an aggregate window function: {function}")


def _aggregate_partition(function: WindowFunction, values: List[Any], frame: Frame) -> List[Any]:
    size = len(values)

    if frame.is_running and function in (WindowFunction.SUM, WindowFunction.COUNT):
        results = []
        total: Any = 0
        count = 0
        for value in values:
            if value is not None:
                total += value
                count += 1
            if function == WindowFunction.COUNT:
                results.append(count)
            else:
                results.append(total if count else None)
        return results

    results = []
    for position in range(size):
        start, stop = frame.bounds(position, size)
        results.append(_reduce(function, values[start:stop]))
    return results


def _rank_partition(function: WindowFunction, keys: List[Any]) -> List[Any]:
    size = len(keys)
    results = []
    current = 0
    for position, key in enumerate(keys):
        if function == WindowFunction.ROW_NUMBER:
            results.append(position + 1)
            continue

        if position == 0 or key != keys[position - 1]:
            current = position + 1

        if function == WindowFunction.RANK:
            results.append(current)
        else:
            results.append((current - 1) / (size - 1) if size > 1 else 0.0)
    return results


def compute_window(
    records: Sequence[Any],
    function: WindowFunction,
    value: Optional[Callable[[Any], Any]] = None,
    partition_key: Optional[Callable[[Any], Hashable]] = None,
    order_key: Optional[Callable[[Any], Any]] = None,
    frame: Frame = Frame(),
    descending: bool = False,
) -> List[Any]:
    """
    Evaluate a window function for every record.

    Args:
        records: Input records (any indexable sequence)
        function: Aggregate or ranking function
        value: Extracts the aggregated value (not needed for ranking)
        partition_key: Extracts the partition key; None = one partition
        order_key: Extracts the ordering key; ranking ties are equal keys
        frame: Row frame for aggregates; ignored by ranking functions
        descending: Order partitions by descending key

    Returns:
        One result per record, aligned with the input order. Aggregates
        over frames without enough non-null values are None.
    """
    function = WindowFunction(function)
    if function not in RANKING_FUNCTIONS and value is None:
        raise ValueError(f"{function.value} needs a value extractor")

    results: List[Any] = [None] * len(records)
    for members in partition_positions(records, partition_key, order_key, descending):
        if function in RANKING_FUNCTIONS:
            keys = [order_key(records[i]) if order_key else None for i in members]
            scores = _rank_partition(function, keys)
        else:
            scores = _aggregate_partition(function, [value(records[i]) for i in members], frame)

        for position, score in zip(members, scores):
            results[position] = score
    return results


def _result_dtype(function: WindowFunction, source: Optional[pl.DataType]) -> pl.DataType:
    if function in (WindowFunction.RANK, WindowFunction.ROW_NUMBER, WindowFunction.COUNT):
        return pl.Int64
    if function in (WindowFunction.FIRST_VALUE, WindowFunction.LAST_VALUE):
        return source
    if function == WindowFunction.SUM and source is not None and source.is_integer():
        return pl.Int64
    return pl.Float64


def apply_window(
    df: pl.DataFrame,
    spec: WindowSpec,
    function: WindowFunction,
    column: Optional[str] = None,
    alias: Optional[str] = None,
) -> pl.DataFrame:
    """
    Append a window-function column to a DataFrame.

    Order columns must be non-null. Row order of ``df`` is preserved.

    Example:
        spec = WindowSpec(partition_by=("product_id",), order_by=("sale_date",),
                          frame=Frame.rows_preceding(6))
        df = apply_window(df, spec, WindowFunction.AVG, "revenue", "revenue_7day_ma")
    """
    function = WindowFunction(function)
    alias = alias or f"{column or 'row'}_{function.value}"

    partition_keys = df.select(list(spec.partition_by)).rows() if spec.partition_by else None
    order_keys = df.select(list(spec.order_by)).rows() if spec.order_by else None
    values = df[column].to_list() if column else None

    results = compute_window(
        range(df.height),
        function,
        value=values.__getitem__ if values is not None else None,
        partition_key=partition_keys.__getitem__ if partition_keys is not None else None,
        order_key=order_keys.__getitem__ if order_keys is not None else None,
        frame=spec.frame,
        descending=spec.descending,
    )

    dtype = _result_dtype(function, df[column].dtype if column else None)
    return df.with_columns(pl.Series(alias, results, dtype=dtype))

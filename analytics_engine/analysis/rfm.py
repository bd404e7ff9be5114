"""
RFM Customer Segmentation

Scores every customer with an order in the trailing window on Recency,
Frequency and Monetary value (quantile bands 1-5) and assigns a named
segment from an ordered rule table.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import polars as pl

from analytics_engine.data import EntityType, SnapshotProvider
from analytics_engine.engine import stats
from analytics_engine.engine.periods import trailing_days
from .base import Analyzer, percentage, round_or_none


@dataclass(frozen=True)
class Band:
    """Inclusive score band"""
    low: int = 1
    high: int = 5

    def __contains__(self, score: int) -> bool:
        return self.low <= score <= self.high


@dataclass(frozen=True)
class SegmentRule:
    segment: str
    recency: Band
    frequency: Band
    monetary: Band

    def matches(self, r: int, f: int, m: int) -> bool:
        return r in self.recency and f in self.frequency and m in self.monetary


DEFAULT_SEGMENT = "Others"

# Evaluated top to bottom, first match wins. "Cannot Lose Them" must stay
# ahead of "At Risk", whose bands contain it.
SEGMENT_RULES: Tuple[SegmentRule, ...] = (
    SegmentRule("Champions", Band(4, 5), Band(4, 5), Band(4, 5)),
    SegmentRule("Loyal Customers", Band(3, 5), Band(3, 5), Band(3, 5)),
    SegmentRule("Potential Loyalists", Band(3, 5), Band(1, 5), Band(2, 5)),
    SegmentRule("New Customers", Band(4, 5), Band(1, 2), Band(1, 2)),
    SegmentRule("Cannot Lose Them", Band(1, 2), Band(4, 5), Band(4, 5)),
    SegmentRule("At Risk", Band(1, 2), Band(3, 5), Band(3, 5)),
    SegmentRule("Hibernating", Band(1, 2), Band(1, 2), Band(1, 2)),
)


def classify_segment(r: int, f: int, m: int) -> str:
    """Name the segment for an R/F/M score triple"""
    for rule in SEGMENT_RULES:
        if rule.matches(r, f, m):
            return rule.segment
    return DEFAULT_SEGMENT


def rfm_score(r: int, f: int, m: int) -> int:
    """Composite score 100*R + 10*F + M"""
    return 100 * r + 10 * f + m


@dataclass(frozen=True)
class RfmRecord:
    user_id: int
    recency_days: int
    frequency: int
    monetary: float
    r_score: int
    f_score: int
    m_score: int
    rfm_score: int
    segment: str


@dataclass(frozen=True)
class RfmSegmentSummary:
    segment: str
    num_customers: int
    avg_recency_days: float
    avg_frequency: float
    avg_monetary: float
    total_revenue: float
    pct_of_customers: Optional[float]
    pct_of_revenue: Optional[float]


def _bands(
    customers: Sequence[dict],
    sort_key: Callable[[dict], tuple],
    bins: int,
) -> Dict[int, int]:
    ordered = sorted(customers, key=sort_key)
    groups = stats.ntile(ordered, bins)
    return {customer["user_id"]: group for customer, group in zip(ordered, groups)}


class RfmAnalyzer(Analyzer):
    """
    RFM segmentation over ``rfm_window_days``.

    Recency is banded so the most recent buyers land in band 5; frequency
    and monetary are banded ascending. Ties in any metric are ordered by
    user id so the banding is deterministic.
    """

    name = "rfm_segmentation"

    def analyze(self, snapshot: SnapshotProvider, as_of: date) -> List[RfmRecord]:
        start, end = trailing_days(as_of, self.config.rfm_window_days)
        orders = snapshot.records_in_range(EntityType.ORDER, start, end)
        if orders.is_empty():
            self._log_empty(start, end)
            return []

        customers = (
            orders.group_by("user_id")
            .agg([
                pl.col("order_at").max().alias("last_order_at"),
                pl.col("order_id").n_unique().alias("frequency"),
                pl.col("total_amount").sum().alias("monetary"),
            ])
            .with_columns(
                (pl.lit(as_of) - pl.col("last_order_at").dt.date()).dt.total_days().alias("recency_days")
            )
            .sort("user_id")
            .to_dicts()
        )

        bins = self.config.rfm_bins
        r_bands = _bands(customers, lambda c: (-c["recency_days"], c["user_id"]), bins)
        f_bands = _bands(customers, lambda c: (c["frequency"], c["user_id"]), bins)
        m_bands = _bands(customers, lambda c: (c["monetary"], c["user_id"]), bins)

        rows = []
        for customer in customers:
            user_id = customer["user_id"]
            r, f, m = r_bands[user_id], f_bands[user_id], m_bands[user_id]
            rows.append(RfmRecord(
                user_id=user_id,
                recency_days=customer["recency_days"],
                frequency=customer["frequency"],
                monetary=round(customer["monetary"], 2),
                r_score=r,
                f_score=f,
                m_score=m,
                rfm_score=rfm_score(r, f, m),
                segment=classify_segment(r, f, m),
            ))

        self._log_done(len(rows), start, end)
        return rows

    def segment_summary(self, snapshot: SnapshotProvider, as_of: date) -> List[RfmSegmentSummary]:
        return summarize_segments(self.analyze(snapshot, as_of))


def summarize_segments(records: Sequence[RfmRecord]) -> List[RfmSegmentSummary]:
    """Aggregate RFM records per segment, highest average spend first"""
    members: Dict[str, List[RfmRecord]] = defaultdict(list)
    for record in records:
        members[record.segment].append(record)

    total_customers = len(records)
    total_revenue = math.fsum(r.monetary for r in records)

    summaries = []
    for segment, group in members.items():
        revenue = math.fsum(r.monetary for r in group)
        summaries.append(RfmSegmentSummary(
            segment=segment,
            num_customers=len(group),
            avg_recency_days=round_or_none(stats.mean([r.recency_days for r in group]), 1),
            avg_frequency=round_or_none(stats.mean([r.frequency for r in group]), 1),
            avg_monetary=round_or_none(stats.mean([r.monetary for r in group])),
            total_revenue=round(revenue, 2),
            pct_of_customers=percentage(len(group), total_customers),
            pct_of_revenue=percentage(revenue, total_revenue),
        ))

    summaries.sort(key=lambda s: (-s.avg_monetary, s.segment))
    return summaries

"""
Cohort Retention Analysis

Groups users by signup month and tracks, for every later calendar month,
how many of them ordered, how often and for how much.
"""

from dataclasses import dataclass
from datetime import date
from typing import List

import polars as pl
import structlog

from analytics_engine.data import EntityType, SnapshotProvider
from analytics_engine.engine import Frame, WindowFunction, WindowSpec, apply_window
from analytics_engine.engine.periods import trailing_days
from .base import Analyzer, percentage, round_or_none

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CohortRow:
    """Activity of one signup cohort in one month since signup"""
    cohort_month: date
    cohort_size: int
    months_since_signup: int
    active_users: int
    retention_rate: float  # percent of the cohort active in the month
    total_orders: int
    total_revenue: float
    revenue_per_active_user: float
    cumulative_revenue: float


class CohortRetentionAnalyzer(Analyzer):
    """
    Monthly signup-cohort retention.

    Only users who signed up within ``cohort_lookback_days`` are cohorted,
    and only orders placed on or after a user's own signup count. Months in
    which no cohort member ordered produce no row.
    """

    name = "cohort_retention"

    def analyze(self, snapshot: SnapshotProvider, as_of: date) -> List[CohortRow]:
        start, end = trailing_days(as_of, self.config.cohort_lookback_days)

        users = snapshot.records_in_range(EntityType.USER, start, end)
        if users.is_empty():
            self._log_empty(start, end)
            return []

        cohorts = users.select([
            "user_id",
            "signup_at",
            pl.col("signup_at").dt.truncate("1mo").dt.date().alias("cohort_month"),
        ])
        sizes = cohorts.group_by("cohort_month").agg(
            pl.col("user_id").n_unique().alias("cohort_size")
        )

        orders = snapshot.records_in_range(EntityType.ORDER, start, end)
        activity = (
            orders.join(cohorts, on="user_id", how="inner")
            .filter(pl.col("order_at") >= pl.col("signup_at"))
            .with_columns(pl.col("order_at").dt.truncate("1mo").dt.date().alias("activity_month"))
            .with_columns(
                (
                    (pl.col("activity_month").dt.year() - pl.col("cohort_month").dt.year()) * 12
                    + (pl.col("activity_month").dt.month() - pl.col("cohort_month").dt.month())
                ).cast(pl.Int64).alias("months_since_signup")
            )
        )

        monthly = (
            activity.group_by(["cohort_month", "months_since_signup"])
            .agg([
                pl.col("user_id").n_unique().alias("active_users"),
                pl.col("order_id").n_unique().alias("total_orders"),
                pl.col("total_amount").sum().alias("total_revenue"),
            ])
            .join(sizes, on="cohort_month", how="inner")
            .filter(pl.col("months_since_signup") >= 0)
            .sort(["cohort_month", "months_since_signup"])
        )

        monthly = apply_window(
            monthly,
            WindowSpec(
                partition_by=("cohort_month",),
                order_by=("months_since_signup",),
                frame=Frame.unbounded_preceding(),
            ),
            WindowFunction.SUM,
            "total_revenue",
            "cumulative_revenue",
        )

        rows = []
        for record in monthly.iter_rows(named=True):
            if record["cohort_size"] == 0:
                logger.warning(
                    "Data integrity warning: empty cohort excluded",
                    cohort_month=record["cohort_month"].isoformat(),
                )
                continue

            rows.append(CohortRow(
                cohort_month=record["cohort_month"],
                cohort_size=record["cohort_size"],
                months_since_signup=record["months_since_signup"],
                active_users=record["active_users"],
                retention_rate=percentage(record["active_users"], record["cohort_size"]),
                total_orders=record["total_orders"],
                total_revenue=round(record["total_revenue"], 2),
                revenue_per_active_user=round(record["total_revenue"] / record["active_users"], 2),
                cumulative_revenue=round_or_none(record["cumulative_revenue"]),
            ))

        self._log_done(len(rows), start, end)
        return rows

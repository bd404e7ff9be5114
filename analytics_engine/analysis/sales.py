"""
Daily Sales Aggregation

Order-level sales rolled up per calendar day, and headline totals over a
trailing window.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional

import polars as pl

from analytics_engine.data import EntityType, SnapshotProvider
from analytics_engine.engine.periods import trailing_days
from .base import Analyzer, percentage, ratio, round_or_none


@dataclass(frozen=True)
class DailySales:
    sale_date: date
    num_orders: int
    daily_revenue: float
    unique_customers: int
    new_customer_revenue: float


@dataclass(frozen=True)
class SalesSummary:
    """Sales totals over [period_start, period_end]"""
    period_start: date
    period_end: date
    total_revenue: float
    total_orders: int
    unique_customers: int
    avg_order_value: Optional[float]
    new_customer_revenue_pct: Optional[float]


def daily_sales_frame(orders: pl.DataFrame) -> pl.DataFrame:
    """One row per day with at least one order, ordered by date"""
    return (
        orders.with_columns(pl.col("order_at").dt.date().alias("sale_date"))
        .group_by("sale_date")
        .agg([
            pl.col("order_id").n_unique().alias("num_orders"),
            pl.col("total_amount").sum().alias("daily_revenue"),
            pl.col("user_id").n_unique().alias("unique_customers"),
            pl.col("total_amount").filter(pl.col("is_new_customer")).sum().alias("new_customer_revenue"),
        ])
        .with_columns(pl.col("num_orders").cast(pl.Int64), pl.col("unique_customers").cast(pl.Int64))
        .sort("sale_date")
    )


class SalesAnalyzer(Analyzer):
    """Daily sales and window totals; ``days`` defaults to ``dashboard_window_days``"""

    name = "daily_sales"

    def daily(self, snapshot: SnapshotProvider, as_of: date, days: Optional[int] = None) -> List[DailySales]:
        start, end = trailing_days(as_of, days or self.config.dashboard_window_days)
        orders = snapshot.records_in_range(EntityType.ORDER, start, end)
        if orders.is_empty():
            self._log_empty(start, end)
            return []

        rows = [
            DailySales(
                sale_date=record["sale_date"],
                num_orders=record["num_orders"],
                daily_revenue=round(record["daily_revenue"], 2),
                unique_customers=record["unique_customers"],
                new_customer_revenue=round(record["new_customer_revenue"], 2),
            )
            for record in daily_sales_frame(orders).iter_rows(named=True)
        ]
        self._log_done(len(rows), start, end)
        return rows

    def summary(self, snapshot: SnapshotProvider, as_of: date, days: Optional[int] = None) -> SalesSummary:
        days = days or self.config.dashboard_window_days
        start, end = trailing_days(as_of, days)
        orders = snapshot.records_in_range(EntityType.ORDER, start, end)
        if orders.is_empty():
            self._log_empty(start, end)

        revenue = orders["total_amount"].sum() or 0.0
        new_revenue = orders.filter(pl.col("is_new_customer"))["total_amount"].sum() or 0.0
        total_orders = orders["order_id"].n_unique()

        return SalesSummary(
            period_start=as_of - timedelta(days=days),
            period_end=as_of,
            total_revenue=round(revenue, 2),
            total_orders=total_orders,
            unique_customers=orders["user_id"].n_unique(),
            avg_order_value=round_or_none(ratio(revenue, total_orders)),
            new_customer_revenue_pct=percentage(new_revenue, revenue),
        )

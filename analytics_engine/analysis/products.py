"""
Product Performance Analysis

Daily product sales over a trailing window with moving averages, running
totals and same-day category ranking, rolled up to per-product totals and
classified against the product's category.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple

import polars as pl

from analytics_engine.data import EntityType, SnapshotProvider
from analytics_engine.engine import Frame, WindowFunction, WindowSpec, apply_window, stats
from analytics_engine.engine.periods import Window, trailing_days
from .base import Analyzer, percentage, round_or_none


class PerformanceCategory(str, Enum):
    """Product revenue relative to its category"""
    TOP_PERFORMER = "Top Performer"
    AVERAGE = "Average"
    UNDERPERFORMING = "Underperforming"


@dataclass(frozen=True)
class ProductDailyStat:
    """One product's sales on one day"""
    product_id: int
    product_name: str
    category_id: int
    category_name: Optional[str]
    sale_date: date
    units_sold: int
    revenue: float
    profit: float
    units_sold_7day_ma: float
    revenue_7day_ma: float
    cumulative_units: int
    cumulative_revenue: float
    category_revenue_rank: int
    category_percent_rank: float


@dataclass(frozen=True)
class ProductPerformance:
    """
    Per-product rollup over the whole window.

    The ``_90days`` field names are fixed report columns and name the default
    ``product_window_days``; the totals always span the configured window.
    """
    product_id: int
    product_name: str
    category_id: int
    category_name: Optional[str]
    total_units_90days: int
    total_revenue_90days: float
    total_profit_90days: float
    profit_margin: Optional[float]
    avg_7day_moving_units: Optional[float]
    days_with_sales: int
    best_category_rank: int
    category_median_revenue: Optional[float]
    category_avg_revenue: Optional[float]
    category_revenue_stddev: Optional[float]
    performance_category: PerformanceCategory


@dataclass(frozen=True)
class CategoryRevenueStats:
    median: Optional[float]
    mean: Optional[float]
    stddev: Optional[float]

    def classify(self, revenue: float) -> PerformanceCategory:
        """Compare a revenue figure with mean +/- one standard deviation"""
        if self.mean is None or self.stddev is None:
            return PerformanceCategory.AVERAGE
        if revenue > self.mean + self.stddev:
            return PerformanceCategory.TOP_PERFORMER
        if revenue < self.mean - self.stddev:
            return PerformanceCategory.UNDERPERFORMING
        return PerformanceCategory.AVERAGE


class ProductPerformanceAnalyzer(Analyzer):
    """
    Product performance over ``product_window_days``.

    Example:
        analyzer = ProductPerformanceAnalyzer()
        daily = analyzer.daily_stats(snapshot, date(2024, 6, 30))
        rollup = analyzer.analyze(snapshot, date(2024, 6, 30))
    """

    name = "product_performance"

    def _window(self, as_of: date) -> Window:
        return trailing_days(as_of, self.config.product_window_days)

    def _daily_frame(self, snapshot: SnapshotProvider, as_of: date) -> pl.DataFrame:
        start, end = self._window(as_of)

        orders = snapshot.records_in_range(EntityType.ORDER, start, end).select(["order_id", "order_at"])
        items = snapshot.records_in_range(EntityType.ORDER_ITEM, start, end)
        products = snapshot.records(EntityType.PRODUCT).select([
            "product_id",
            pl.col("name").alias("product_name"),
            "category_id",
            "cost",
        ])
        categories = snapshot.records(EntityType.CATEGORY).select([
            "category_id",
            pl.col("name").alias("category_name"),
        ])

        daily = (
            items.join(orders, on="order_id", how="inner")
            .join(products, on="product_id", how="inner")
            .join(categories, on="category_id", how="left")
            .with_columns([
                pl.col("order_at").dt.date().alias("sale_date"),
                (pl.col("quantity") * pl.col("unit_price")).alias("line_revenue"),
                (pl.col("quantity") * pl.col("cost")).alias("line_cost"),
            ])
            .group_by(["product_id", "product_name", "category_id", "category_name", "sale_date"])
            .agg([
                pl.col("quantity").sum().alias("units_sold"),
                pl.col("line_revenue").sum().alias("revenue"),
                pl.col("line_cost").sum().alias("cost"),
            ])
            .with_columns((pl.col("revenue") - pl.col("cost")).alias("profit"))
            .sort(["product_id", "sale_date"])
        )
        if daily.is_empty():
            return daily

        moving = WindowSpec(
            partition_by=("product_id",),
            order_by=("sale_date",),
            frame=Frame.rows_preceding(self.config.moving_average_rows - 1),
        )
        running = WindowSpec(partition_by=("product_id",), order_by=("sale_date",))
        same_day = WindowSpec(
            partition_by=("category_id", "sale_date"),
            order_by=("revenue",),
            descending=True,
        )

        daily = apply_window(daily, moving, WindowFunction.AVG, "units_sold", "units_sold_7day_ma")
        daily = apply_window(daily, moving, WindowFunction.AVG, "revenue", "revenue_7day_ma")
        daily = apply_window(daily, running, WindowFunction.SUM, "units_sold", "cumulative_units")
        daily = apply_window(daily, running, WindowFunction.SUM, "revenue", "cumulative_revenue")
        daily = apply_window(daily, same_day, WindowFunction.RANK, alias="category_revenue_rank")
        daily = apply_window(daily, same_day, WindowFunction.PERCENT_RANK, alias="category_percent_rank")
        return daily

    def daily_stats(self, snapshot: SnapshotProvider, as_of: date) -> List[ProductDailyStat]:
        """Per-product daily rows ordered by product then date"""
        start, end = self._window(as_of)
        daily = self._daily_frame(snapshot, as_of)
        if daily.is_empty():
            self._log_empty(start, end)
            return []

        rows = [
            ProductDailyStat(
                product_id=record["product_id"],
                product_name=record["product_name"],
                category_id=record["category_id"],
                category_name=record["category_name"],
                sale_date=record["sale_date"],
                units_sold=record["units_sold"],
                revenue=round(record["revenue"], 2),
                profit=round(record["profit"], 2),
                units_sold_7day_ma=round(record["units_sold_7day_ma"], 2),
                revenue_7day_ma=round(record["revenue_7day_ma"], 2),
                cumulative_units=record["cumulative_units"],
                cumulative_revenue=round(record["cumulative_revenue"], 2),
                category_revenue_rank=record["category_revenue_rank"],
                category_percent_rank=round(record["category_percent_rank"], 4),
            )
            for record in daily.iter_rows(named=True)
        ]
        self._log_done(len(rows), start, end)
        return rows

    def analyze(self, snapshot: SnapshotProvider, as_of: date) -> List[ProductPerformance]:
        """Per-product rollup ordered by total profit descending"""
        start, end = self._window(as_of)
        daily = self._daily_frame(snapshot, as_of)
        if daily.is_empty():
            self._log_empty(start, end)
            return []

        by_product: Dict[int, List[dict]] = defaultdict(list)
        by_category: Dict[int, List[float]] = defaultdict(list)
        for record in daily.iter_rows(named=True):
            by_product[record["product_id"]].append(record)
            by_category[record["category_id"]].append(record["revenue"])

        category_stats = {
            category_id: CategoryRevenueStats(
                median=stats.median(revenues),
                mean=stats.mean(revenues),
                stddev=stats.stddev(revenues),
            )
            for category_id, revenues in by_category.items()
        }

        rows = []
        for product_id, days in by_product.items():
            first = days[0]
            revenue = math.fsum(d["revenue"] for d in days)
            profit = math.fsum(d["profit"] for d in days)
            category = category_stats[first["category_id"]]

            rows.append(ProductPerformance(
                product_id=product_id,
                product_name=first["product_name"],
                category_id=first["category_id"],
                category_name=first["category_name"],
                total_units_90days=sum(d["units_sold"] for d in days),
                total_revenue_90days=round(revenue, 2),
                total_profit_90days=round(profit, 2),
                profit_margin=percentage(profit, revenue),
                avg_7day_moving_units=round_or_none(stats.mean([d["units_sold_7day_ma"] for d in days])),
                days_with_sales=len(days),
                best_category_rank=min(d["category_revenue_rank"] for d in days),
                category_median_revenue=round_or_none(category.median),
                category_avg_revenue=round_or_none(category.mean),
                category_revenue_stddev=round_or_none(category.stddev),
                performance_category=category.classify(revenue),
            ))

        rows.sort(key=_profit_order)
        self._log_done(len(rows), start, end)
        return rows


def _profit_order(row: ProductPerformance) -> Tuple[float, int]:
    return -row.total_profit_90days, row.product_id

"""
Category x Month Revenue Pivot

Category revenue laid out over fixed month-of-year columns, with an annual
total and recent-versus-prior six month growth.
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

import polars as pl

from analytics_engine.data import EntityType, SnapshotProvider
from analytics_engine.engine.periods import calendar_months, month_start, shift_months
from .base import Analyzer

MONTH_COLUMNS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
GROWTH_MONTHS = 6


@dataclass(frozen=True)
class CategoryMonthRevenue:
    category_id: int
    category_name: str
    jan: float
    feb: float
    mar: float
    apr: float
    may: float
    jun: float
    jul: float
    aug: float
    sep: float
    oct: float
    nov: float
    dec: float
    annual_revenue: float
    six_month_growth_pct: Optional[float]


def growth_pct(recent: float, prior: float) -> Optional[float]:
    """Percent change of ``recent`` over ``prior``; None for a zero base"""
    if not prior:
        return None
    return round(100.0 * (recent / prior - 1.0), 2)


class RevenuePivotAnalyzer(Analyzer):
    """
    Revenue pivot over the last ``pivot_months`` calendar months.

    Each month-of-year column holds exactly one calendar month, so with the
    default twelve months the column for the month after ``as_of``'s holds
    the previous year's figure. Growth compares the latest six calendar
    months with the remaining earlier ones.
    """

    name = "category_month_pivot"

    def analyze(self, snapshot: SnapshotProvider, as_of: date) -> List[CategoryMonthRevenue]:
        start, end = calendar_months(as_of, self.config.pivot_months)
        items = snapshot.records_in_range(EntityType.ORDER_ITEM, start, end)
        if items.is_empty():
            self._log_empty(start, end)
            return []

        orders = snapshot.records_in_range(EntityType.ORDER, start, end).select(["order_id", "order_at"])
        products = snapshot.records(EntityType.PRODUCT).select(["product_id", "category_id"])
        categories = snapshot.records(EntityType.CATEGORY).select([
            "category_id",
            pl.col("name").alias("category_name"),
        ])

        monthly = (
            items.join(orders, on="order_id", how="inner")
            .join(products, on="product_id", how="inner")
            .join(categories, on="category_id", how="left")
            .with_columns(pl.col("order_at").dt.truncate("1mo").dt.date().alias("month"))
            .group_by(["category_id", "category_name", "month"])
            .agg((pl.col("quantity") * pl.col("unit_price")).sum().alias("revenue"))
        )

        recent_from = shift_months(month_start(as_of), -(GROWTH_MONTHS - 1))
        pivot: Dict[int, dict] = {}
        for record in monthly.iter_rows(named=True):
            row = pivot.setdefault(record["category_id"], {
                "category_name": record["category_name"],
                "months": dict.fromkeys(MONTH_COLUMNS, 0.0),
                "recent": 0.0,
                "prior": 0.0,
            })
            row["months"][MONTH_COLUMNS[record["month"].month - 1]] += record["revenue"]
            row["recent" if record["month"] >= recent_from else "prior"] += record["revenue"]

        rows = []
        for category_id, row in pivot.items():
            months = {column: round(value, 2) for column, value in row["months"].items()}
            rows.append(CategoryMonthRevenue(
                category_id=category_id,
                category_name=row["category_name"],
                annual_revenue=round(sum(row["months"].values()), 2),
                six_month_growth_pct=growth_pct(row["recent"], row["prior"]),
                **months,
            ))

        rows.sort(key=lambda r: (-r.annual_revenue, r.category_name or ""))
        self._log_done(len(rows), start, end)
        return rows

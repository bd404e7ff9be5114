"""
Executive Dashboard

Headline label/value pairs composed from the other analyzers over the
dashboard window. Every value can be recomputed from those analyzers'
outputs; this module only selects and formats.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

import polars as pl

from analytics_engine.data import EntityType, SnapshotProvider
from analytics_engine.engine import stats
from analytics_engine.engine.periods import trailing_days
from .base import Analyzer, percentage, round_or_none
from .journey import JourneyAnalyzer
from .products import ProductPerformanceAnalyzer
from .sales import SalesAnalyzer

NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class UserMetrics:
    total_active_users: int
    new_users: int
    avg_customer_value: Optional[float]
    median_customer_value: Optional[float]


@dataclass(frozen=True)
class DashboardMetric:
    metric_name: str
    metric_value: str


def format_currency(value: Optional[float]) -> str:
    return NOT_AVAILABLE if value is None else f"${value:,.2f}"


def format_count(value: Optional[int]) -> str:
    return NOT_AVAILABLE if value is None else f"{value:,}"


def format_percent(value: Optional[float]) -> str:
    return NOT_AVAILABLE if value is None else f"{value:.2f}%"


class UserMetricsAnalyzer(Analyzer):
    """
    Active users are those with activity in the last ``active_user_days``;
    customer value figures are over their lifetime values.
    """

    name = "user_metrics"

    def analyze(self, snapshot: SnapshotProvider, as_of: date) -> UserMetrics:
        active_start, end = trailing_days(as_of, self.config.active_user_days)
        new_start, _ = trailing_days(as_of, self.config.dashboard_window_days)

        users = snapshot.records(EntityType.USER)
        active = users.filter(
            (pl.col("last_activity_at") >= active_start) & (pl.col("last_activity_at") < end)
        )
        new_users = snapshot.records_in_range(EntityType.USER, new_start, end)
        values = active["lifetime_value"].to_list()

        return UserMetrics(
            total_active_users=active.height,
            new_users=new_users.height,
            avg_customer_value=round_or_none(stats.mean(values)),
            median_customer_value=round_or_none(stats.median(values)),
        )


class DashboardAssembler(Analyzer):
    """
    Fixed-order executive summary over ``dashboard_window_days``.

    Sales, product and funnel figures all use the dashboard window; user
    activity uses ``active_user_days``.
    """

    name = "executive_dashboard"

    def analyze(self, snapshot: SnapshotProvider, as_of: date) -> List[DashboardMetric]:
        days = self.config.dashboard_window_days
        window = self.config.model_copy(update={"product_window_days": days, "journey_window_days": days})

        sales = SalesAnalyzer(window).summary(snapshot, as_of, days)
        users = UserMetricsAnalyzer(window).analyze(snapshot, as_of)
        products = ProductPerformanceAnalyzer(window).analyze(snapshot, as_of)
        funnel = JourneyAnalyzer(window).funnel(snapshot, as_of)

        # the rollup ran over the dashboard window, so its *_90days totals span ``days``
        top = max(products, key=lambda p: (p.total_revenue_90days, -p.product_id), default=None)

        metrics = [
            DashboardMetric("Period", f"{sales.period_start.isoformat()} to {sales.period_end.isoformat()}"),
            DashboardMetric(f"Total Revenue ({days}d)", format_currency(sales.total_revenue)),
            DashboardMetric(f"Total Orders ({days}d)", format_count(sales.total_orders)),
            DashboardMetric(f"Unique Customers ({days}d)", format_count(sales.unique_customers)),
            DashboardMetric("Average Order Value", format_currency(sales.avg_order_value)),
            DashboardMetric("New Customer Revenue %", format_percent(sales.new_customer_revenue_pct)),
            DashboardMetric("Total Active Users", format_count(users.total_active_users)),
            DashboardMetric(f"New Users ({days}d)", format_count(users.new_users)),
            DashboardMetric("Average Customer Value", format_currency(users.avg_customer_value)),
            DashboardMetric("Median Customer Value", format_currency(users.median_customer_value)),
            DashboardMetric(f"Top Product ({days}d)", top.product_name if top else NOT_AVAILABLE),
            DashboardMetric("Top Product Margin", format_percent(top.profit_margin if top else None)),
        ]
        for stage in funnel:
            metrics.append(DashboardMetric(f"Funnel: {stage.funnel_stage}", format_percent(stage.pct_previous)))

        overall = percentage(funnel[-1].users, funnel[0].users) if funnel else None
        metrics.append(DashboardMetric("Overall Conversion Rate", format_percent(overall)))

        start, end = trailing_days(as_of, days)
        self._log_done(len(metrics), start, end)
        return metrics

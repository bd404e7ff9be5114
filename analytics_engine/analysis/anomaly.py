"""
Sales Anomaly Detection

Rolling z-score detection over daily order counts and revenue:
- Daily buckets over a trailing window (days with orders)
- Trailing rolling mean and sample standard deviation per metric
- A day is anomalous when either metric's |z| exceeds the threshold

The oldest days of the window only seed the rolling baseline; reporting
is limited to the most recent ``anomaly_report_days``.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import List, Optional

import polars as pl
import structlog

from analytics_engine.data import EntityType, SnapshotProvider
from analytics_engine.engine import Frame, WindowFunction, WindowSpec, apply_window
from analytics_engine.engine.periods import trailing_days
from .base import Analyzer, round_or_none
from .sales import daily_sales_frame

logger = structlog.get_logger(__name__)


class AnomalyType(str, Enum):
    """Types of anomalies detected"""
    SPIKE = "spike"  # Above the rolling mean
    DROP = "drop"  # Below the rolling mean


class AnomalySeverity(str, Enum):
    """Severity levels for anomalies"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


@dataclass(frozen=True)
class DailySalesStat:
    """Daily sales with rolling baseline and anomaly flags"""
    sale_date: date
    num_orders: int
    daily_revenue: float
    unique_customers: int
    avg_orders_30d: Optional[float]
    stddev_orders_30d: Optional[float]
    avg_revenue_30d: Optional[float]
    stddev_revenue_30d: Optional[float]
    orders_z_score: Optional[float]
    revenue_z_score: Optional[float]
    is_anomaly: bool
    anomaly_type: Optional[AnomalyType]
    severity: Optional[AnomalySeverity]

    @property
    def is_critical(self) -> bool:
        return self.severity in [AnomalySeverity.CRITICAL, AnomalySeverity.HIGH]


def z_score(value: float, mean: Optional[float], stddev: Optional[float]) -> Optional[float]:
    """Standard score; None when the deviation is undefined or zero"""
    if mean is None or not stddev:
        return None
    return (value - mean) / stddev


class AnomalyDetector(Analyzer):
    """
    Daily sales anomaly detector.

    Severity scales with the larger |z|: above twice the threshold is
    critical, above 1.5x is high, otherwise medium.

    Example:
        detector = AnomalyDetector()
        flagged = [d for d in detector.analyze(snapshot, as_of) if d.is_anomaly]
    """

    name = "sales_anomalies"

    @property
    def z_threshold(self) -> float:
        return self.config.anomaly_z_threshold

    def _severity(self, z: float) -> AnomalySeverity:
        magnitude = abs(z)
        if magnitude > 2 * self.z_threshold:
            return AnomalySeverity.CRITICAL
        if magnitude > 1.5 * self.z_threshold:
            return AnomalySeverity.HIGH
        return AnomalySeverity.MEDIUM

    def analyze(self, snapshot: SnapshotProvider, as_of: date) -> List[DailySalesStat]:
        start, end = trailing_days(as_of, self.config.anomaly_window_days)
        orders = snapshot.records_in_range(EntityType.ORDER, start, end)
        if orders.is_empty():
            self._log_empty(start, end)
            return []

        baseline = WindowSpec(
            order_by=("sale_date",),
            frame=Frame.rows_preceding(self.config.anomaly_baseline_rows - 1),
        )
        daily = daily_sales_frame(orders)
        daily = apply_window(daily, baseline, WindowFunction.AVG, "num_orders", "avg_orders_30d")
        daily = apply_window(daily, baseline, WindowFunction.STDDEV, "num_orders", "stddev_orders_30d")
        daily = apply_window(daily, baseline, WindowFunction.AVG, "daily_revenue", "avg_revenue_30d")
        daily = apply_window(daily, baseline, WindowFunction.STDDEV, "daily_revenue", "stddev_revenue_30d")

        report_from = as_of - timedelta(days=self.config.anomaly_report_days)
        daily = daily.filter(pl.col("sale_date") > report_from)

        rows = []
        for record in daily.iter_rows(named=True):
            orders_z = z_score(record["num_orders"], record["avg_orders_30d"], record["stddev_orders_30d"])
            revenue_z = z_score(record["daily_revenue"], record["avg_revenue_30d"], record["stddev_revenue_30d"])

            flagged = [z for z in (orders_z, revenue_z) if z is not None and abs(z) > self.z_threshold]
            dominant = max(flagged, key=abs) if flagged else None

            rows.append(DailySalesStat(
                sale_date=record["sale_date"],
                num_orders=record["num_orders"],
                daily_revenue=round(record["daily_revenue"], 2),
                unique_customers=record["unique_customers"],
                avg_orders_30d=round_or_none(record["avg_orders_30d"]),
                stddev_orders_30d=round_or_none(record["stddev_orders_30d"]),
                avg_revenue_30d=round_or_none(record["avg_revenue_30d"]),
                stddev_revenue_30d=round_or_none(record["stddev_revenue_30d"]),
                orders_z_score=round_or_none(orders_z),
                revenue_z_score=round_or_none(revenue_z),
                is_anomaly=dominant is not None,
                anomaly_type=None if dominant is None else (AnomalyType.SPIKE if dominant > 0 else AnomalyType.DROP),
                severity=None if dominant is None else self._severity(dominant),
            ))

        anomalies = [r for r in rows if r.is_anomaly]
        if anomalies:
            logger.warning(
                "Sales anomalies detected",
                count=len(anomalies),
                critical=sum(1 for r in anomalies if r.severity == AnomalySeverity.CRITICAL),
            )

        rows.sort(key=lambda r: (r.is_anomaly, r.sale_date), reverse=True)
        self._log_done(len(rows), start, end)
        return rows

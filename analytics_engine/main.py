"""
Report Driver

Runs a selection of analyzers over one snapshot and serializes the results.

Usage:
    analytics-engine --snapshot-dir ./data/snapshot --as-of 2024-06-30
    analytics-engine --format csv --report rfm_segments --report funnel --output rfm.json
"""

import argparse
import json
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from analytics_engine.analysis import (
    AnomalyDetector,
    CategoryHierarchyAnalyzer,
    CohortRetentionAnalyzer,
    DashboardAssembler,
    JourneyAnalyzer,
    MarketBasketAnalyzer,
    ProductPerformanceAnalyzer,
    RevenuePivotAnalyzer,
    RfmAnalyzer,
    SalesAnalyzer,
    UserMetricsAnalyzer,
    to_records,
)
from analytics_engine.config import AnalyticsSettings, get_settings
from analytics_engine.config.logging import configure_logging
from analytics_engine.data import FileFormat, SnapshotProvider, load_snapshot
from analytics_engine.quality import DataIntegrityError

logger = structlog.get_logger(__name__)

Report = Callable[[AnalyticsSettings, SnapshotProvider, date], List[Any]]

# Report name -> runner; the order here is the output order
REPORTS: Dict[str, Report] = {
    "cohort_retention": lambda c, s, d: CohortRetentionAnalyzer(c).analyze(s, d),
    "product_daily": lambda c, s, d: ProductPerformanceAnalyzer(c).daily_stats(s, d),
    "product_performance": lambda c, s, d: ProductPerformanceAnalyzer(c).analyze(s, d),
    "rfm_segments": lambda c, s, d: RfmAnalyzer(c).analyze(s, d),
    "rfm_summary": lambda c, s, d: RfmAnalyzer(c).segment_summary(s, d),
    "market_basket": lambda c, s, d: MarketBasketAnalyzer(c).analyze(s, d),
    "category_hierarchy": lambda c, s, d: CategoryHierarchyAnalyzer(c).analyze(s, d),
    "conversion_paths": lambda c, s, d: JourneyAnalyzer(c).conversion_paths(s, d),
    "touch_attribution": lambda c, s, d: JourneyAnalyzer(c).attribution(s, d),
    "funnel": lambda c, s, d: JourneyAnalyzer(c).funnel(s, d),
    "daily_sales": lambda c, s, d: SalesAnalyzer(c).daily(s, d),
    "sales_anomalies": lambda c, s, d: AnomalyDetector(c).analyze(s, d),
    "category_month_pivot": lambda c, s, d: RevenuePivotAnalyzer(c).analyze(s, d),
    "user_metrics": lambda c, s, d: [UserMetricsAnalyzer(c).analyze(s, d)],
    "executive_dashboard": lambda c, s, d: DashboardAssembler(c).analyze(s, d),
}


class ReportRunner:
    """
    Fans analyzers out over a thread pool.

    Analyzers share nothing but the read-only snapshot. Results are
    collected in report order; the first analyzer failure propagates and
    no partial result set is returned.

    Example:
        runner = ReportRunner()
        results = runner.run(snapshot, date(2024, 6, 30), ["funnel"])
    """

    def __init__(self, config: Optional[AnalyticsSettings] = None):
        self.config = config or get_settings().analytics

    def run(
        self,
        snapshot: SnapshotProvider,
        as_of: date,
        reports: Optional[Sequence[str]] = None,
    ) -> Dict[str, List[Dict[str, Any]]]:
        selected = list(REPORTS) if not reports else list(dict.fromkeys(reports))
        unknown = [name for name in selected if name not in REPORTS]
        if unknown:
            raise ValueError(f"Unknown reports: {unknown}")

        logger.info("Running reports", reports=selected, as_of=as_of.isoformat())

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = {
                name: executor.submit(REPORTS[name], self.config, snapshot, as_of)
                for name in selected
            }
            return {name: to_records(futures[name].result()) for name in selected}


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="E-Commerce Analytics Engine")
    parser.add_argument(
        "--snapshot-dir",
        default=settings.data_lake.snapshot_path,
        help=f"Directory of entity files (default: {settings.data_lake.snapshot_path})",
    )
    parser.add_argument(
        "--format",
        choices=[f.value for f in FileFormat],
        default=settings.data_lake.default_format,
        help="Snapshot file format",
    )
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=date.today(),
        help="Analysis date, YYYY-MM-DD (default: today)",
    )
    parser.add_argument(
        "--report",
        action="append",
        choices=list(REPORTS),
        help="Report to run; repeat for several (default: all)",
    )
    parser.add_argument(
        "--output",
        default="-",
        help="Output JSON file (default: stdout)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override log level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)

    try:
        snapshot = load_snapshot(args.snapshot_dir, FileFormat(args.format))
        results = ReportRunner().run(snapshot, args.as_of, args.report)
    except DataIntegrityError as e:
        logger.error("Snapshot failed integrity checks", entity=e.entity, check=e.check, error=str(e))
        return 1

    payload = json.dumps(
        {"as_of": args.as_of.isoformat(), "reports": results},
        indent=2,
        default=str,
    )
    if args.output == "-":
        sys.stdout.write(payload + "\n")
    else:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
        logger.info("Reports written", path=args.output, reports=len(results))
    return 0


if __name__ == "__main__":
    sys.exit(main())

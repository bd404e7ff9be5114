"""
E-Commerce Analytics Engine
Analysis Module

Purpose-built analyzers over a snapshot: cohorts, products, RFM, market
basket, category hierarchy, journeys, sales anomalies, pivot and dashboard.
"""
from .anomaly import AnomalyDetector, AnomalySeverity, AnomalyType, DailySalesStat
from .base import Analyzer, to_records
from .basket import MarketBasketAnalyzer, ProductPair
from .cohort import CohortRetentionAnalyzer, CohortRow
from .dashboard import DashboardAssembler, DashboardMetric, UserMetrics, UserMetricsAnalyzer
from .hierarchy import CategoryHierarchyAnalyzer, CategoryNode, CategoryTree
from .journey import (
    FUNNEL_STAGES,
    ConversionPath,
    FunnelStage,
    JourneyAnalyzer,
    TouchAttribution,
)
from .pivot import CategoryMonthRevenue, RevenuePivotAnalyzer
from .products import PerformanceCategory, ProductDailyStat, ProductPerformance, ProductPerformanceAnalyzer
from .rfm import RfmAnalyzer, RfmRecord, RfmSegmentSummary, classify_segment, rfm_score
from .sales import DailySales, SalesAnalyzer, SalesSummary

__all__ = [
    "Analyzer",
    "AnomalyDetector",
    "AnomalySeverity",
    "AnomalyType",
    "CategoryHierarchyAnalyzer",
    "CategoryMonthRevenue",
    "CategoryNode",
    "CategoryTree",
    "CohortRetentionAnalyzer",
    "CohortRow",
    "ConversionPath",
    "DailySales",
    "DailySalesStat",
    "DashboardAssembler",
    "DashboardMetric",
    "FUNNEL_STAGES",
    "FunnelStage",
    "JourneyAnalyzer",
    "MarketBasketAnalyzer",
    "PerformanceCategory",
    "ProductDailyStat",
    "ProductPair",
    "ProductPerformance",
    "ProductPerformanceAnalyzer",
    "RevenuePivotAnalyzer",
    "RfmAnalyzer",
    "RfmRecord",
    "RfmSegmentSummary",
    "SalesAnalyzer",
    "SalesSummary",
    "TouchAttribution",
    "UserMetrics",
    "UserMetricsAnalyzer",
    "classify_segment",
    "rfm_score",
    "to_records",
]

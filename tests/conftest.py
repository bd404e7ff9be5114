"""
Test Suite Configuration
"""
from datetime import date
from typing import Callable, List

import pytest

from analytics_engine.config import AnalyticsSettings
from analytics_engine.data import Category, DataFrameSnapshot, Product


@pytest.fixture
def analytics_settings() -> AnalyticsSettings:
    """Analyzer settings with the documented defaults"""
    return AnalyticsSettings(
        cohort_lookback_days=365,
        product_window_days=90,
        moving_average_rows=7,
        rfm_window_days=365,
        rfm_bins=5,
        basket_window_days=90,
        basket_min_support=10,
        basket_top_n=20,
        rollup_window_months=12,
        journey_window_days=30,
        journey_min_path_count=5,
        journey_top_n=20,
        attribution_window_minutes=10,
        anomaly_window_days=90,
        anomaly_baseline_rows=30,
        anomaly_report_days=60,
        anomaly_z_threshold=2.0,
        pivot_months=12,
        dashboard_window_days=30,
        active_user_days=90,
        max_workers=2,
    )


@pytest.fixture
def as_of() -> date:
    """Fixed analysis date"""
    return date(2024, 6, 30)


@pytest.fixture
def categories() -> List[Category]:
    """Two-level category forest"""
    return [
        Category(category_id=1, name="Electronics"),
        Category(category_id=2, name="Phones", parent_id=1),
        Category(category_id=3, name="Laptops", parent_id=1),
        Category(category_id=4, name="Home"),
        Category(category_id=5, name="Kitchen", parent_id=4),
    ]


@pytest.fixture
def products() -> List[Product]:
    """Catalog spread over the leaf categories"""
    return [
        Product(product_id=10, name="Phone X", category_id=2, cost=300.0, price=500.0),
        Product(product_id=11, name="Phone Case", category_id=2, cost=5.0, price=20.0),
        Product(product_id=20, name="Laptop Pro", category_id=3, cost=800.0, price=1200.0),
        Product(product_id=30, name="Blender", category_id=5, cost=40.0, price=80.0),
        Product(product_id=31, name="Toaster", category_id=5, cost=15.0, price=35.0),
    ]


@pytest.fixture
def make_snapshot(categories, products) -> Callable[..., DataFrameSnapshot]:
    """Build a validated snapshot over the default catalog"""
    def build(**records) -> DataFrameSnapshot:
        records.setdefault("categories", categories)
        records.setdefault("products", products)
        return DataFrameSnapshot.from_records(**records)

    return build

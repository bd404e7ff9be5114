"""
Market Basket Analysis

Mines product pairs bought in the same order and scores each pair by lift:
observed co-occurrence relative to what independent purchases would give.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import date
from itertools import combinations
from typing import Dict, List, Optional, Tuple

import polars as pl

from analytics_engine.data import EntityType, SnapshotProvider
from analytics_engine.engine.periods import trailing_days
from .base import Analyzer, percentage

Pair = Tuple[int, int]


@dataclass(frozen=True)
class ProductPair:
    """Two products bought together; product_1_id < product_2_id"""
    product_1_id: int
    product_1_name: str
    product_2_id: int
    product_2_name: str
    times_purchased_together: int
    product_1_purchases: int
    product_2_purchases: int
    pct_of_product1_orders: float
    pct_of_product2_orders: float
    lift: float


def lift(together: int, total_orders: int, count_1: int, count_2: int) -> Optional[float]:
    """(together * total) / (count_1 * count_2), rounded to 4 places"""
    if not count_1 or not count_2:
        return None
    return round(together * total_orders / (count_1 * count_2), 4)


def count_baskets(baskets: Dict[int, List[int]]) -> Tuple[Counter, Counter]:
    """
    Count product and pair occurrences over order baskets.

    Each basket contributes at most once per product and once per
    canonical (lower id first) pair.
    """
    product_counts: Counter = Counter()
    pair_counts: Counter = Counter()
    for products in baskets.values():
        distinct = sorted(set(products))
        product_counts.update(distinct)
        if len(distinct) >= 2:
            pair_counts.update(combinations(distinct, 2))
    return product_counts, pair_counts


class MarketBasketAnalyzer(Analyzer):
    """Frequently-bought-together pairs over ``basket_window_days``"""

    name = "market_basket"

    def analyze(self, snapshot: SnapshotProvider, as_of: date) -> List[ProductPair]:
        start, end = trailing_days(as_of, self.config.basket_window_days)
        items = snapshot.records_in_range(EntityType.ORDER_ITEM, start, end)
        if items.is_empty():
            self._log_empty(start, end)
            return []

        grouped = items.group_by("order_id").agg(pl.col("product_id").unique())
        baskets = dict(zip(grouped["order_id"].to_list(), grouped["product_id"].to_list()))
        # every order in the window, including those without items
        total_orders = snapshot.records_in_range(EntityType.ORDER, start, end)["order_id"].n_unique()

        product_counts, pair_counts = count_baskets(baskets)
        names = dict(
            snapshot.records(EntityType.PRODUCT).select(["product_id", "name"]).iter_rows()
        )

        rows = []
        for (first, second), together in pair_counts.items():
            if together < self.config.basket_min_support:
                continue
            count_1, count_2 = product_counts[first], product_counts[second]
            rows.append(ProductPair(
                product_1_id=first,
                product_1_name=names.get(first),
                product_2_id=second,
                product_2_name=names.get(second),
                times_purchased_together=together,
                product_1_purchases=count_1,
                product_2_purchases=count_2,
                pct_of_product1_orders=percentage(together, count_1),
                pct_of_product2_orders=percentage(together, count_2),
                lift=lift(together, total_orders, count_1, count_2),
            ))

        rows.sort(key=lambda p: (-p.lift, -p.times_purchased_together, p.product_1_id, p.product_2_id))
        rows = rows[: self.config.basket_top_n]

        self._log_done(len(rows), start, end)
        return rows

"""
Category Hierarchy Rollup

Builds the category tree from parent references and reports, per node, its
depth, root-to-node path and sales. Direct figures count only products
assigned to the category itself; subtree figures add every descendant.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import polars as pl

from analytics_engine.data import EntityType, SnapshotProvider
from analytics_engine.engine.periods import trailing_months
from analytics_engine.quality.errors import DataIntegrityError
from .base import Analyzer

INDENT = "    "


class _Mark(Enum):
    VISITING = 1
    VISITED = 2


@dataclass(frozen=True)
class CategoryNode:
    category_id: int
    name: str
    parent_id: Optional[int]
    level: int
    path: Tuple[int, ...]
    display_name: str
    num_products: int
    total_revenue: float
    total_units: int
    subtree_products: int
    subtree_revenue: float
    subtree_units: int


class CategoryTree:
    """
    Category forest stored as an arena: nodes are list positions, parent
    and child links are positions too.

    Construction fails with DataIntegrityError on a parent cycle or a parent
    id that is not in the category set.

    Example:
        tree = CategoryTree([(1, "Electronics", None), (2, "Phones", 1)])
        for position, level, path in tree.walk():
            ...
    """

    def __init__(self, categories: Sequence[Tuple[int, str, Optional[int]]]):
        self.ids: List[int] = [c[0] for c in categories]
        self.names: List[str] = [c[1] for c in categories]
        self.index: Dict[int, int] = {cid: pos for pos, cid in enumerate(self.ids)}

        dangling = [c[0] for c in categories if c[2] is not None and c[2] not in self.index]
        if dangling:
            raise DataIntegrityError(
                EntityType.CATEGORY.value, "parent category not found", dangling, check="tree"
            )

        self.parents: List[Optional[int]] = [
            None if c[2] is None else self.index[c[2]] for c in categories
        ]
        self.children: List[List[int]] = [[] for _ in categories]
        for position, parent in enumerate(self.parents):
            if parent is not None:
                self.children[parent].append(position)
        for members in self.children:
            members.sort(key=self.ids.__getitem__)

        self._check_acyclic()

    @classmethod
    def from_frame(cls, categories: pl.DataFrame) -> "CategoryTree":
        return cls(list(categories.select(["category_id", "name", "parent_id"]).iter_rows()))

    def _check_acyclic(self) -> None:
        marks: Dict[int, _Mark] = {}
        for start in range(len(self.ids)):
            chain = []
            node = start
            while node is not None and marks.get(node) != _Mark.VISITED:
                if marks.get(node) == _Mark.VISITING:
                    cycle = [self.ids[p] for p in chain[chain.index(node):]]
                    raise DataIntegrityError(
                        EntityType.CATEGORY.value, "cycle in parent references", cycle, check="tree"
                    )
                marks[node] = _Mark.VISITING
                chain.append(node)
                node = self.parents[node]
            for position in chain:
                marks[position] = _Mark.VISITED

    @property
    def roots(self) -> List[int]:
        return sorted(
            (p for p, parent in enumerate(self.parents) if parent is None),
            key=self.ids.__getitem__,
        )

    def walk(self) -> Iterator[Tuple[int, int, Tuple[int, ...]]]:
        """Depth-first preorder of (position, level, path), children by id"""
        stack = [(root, 1, (self.ids[root],)) for root in reversed(self.roots)]
        while stack:
            position, level, path = stack.pop()
            yield position, level, path
            for child in reversed(self.children[position]):
                stack.append((child, level + 1, path + (self.ids[child],)))


class CategoryHierarchyAnalyzer(Analyzer):
    """Category tree with trailing ``rollup_window_months`` sales"""

    name = "category_hierarchy"

    def analyze(self, snapshot: SnapshotProvider, as_of: date) -> List[CategoryNode]:
        start, end = trailing_months(as_of, self.config.rollup_window_months)
        categories = snapshot.records(EntityType.CATEGORY)
        if categories.is_empty():
            self._log_empty(start, end)
            return []

        tree = CategoryTree.from_frame(categories)
        products = snapshot.records(EntityType.PRODUCT)

        product_counts = dict(
            products.group_by("category_id").agg(pl.len().alias("n")).iter_rows()
        )
        sales = (
            snapshot.records_in_range(EntityType.ORDER_ITEM, start, end)
            .join(products.select(["product_id", "category_id"]), on="product_id", how="inner")
            .group_by("category_id")
            .agg([
                (pl.col("quantity") * pl.col("unit_price")).sum().alias("revenue"),
                pl.col("quantity").sum().alias("units"),
            ])
        )
        revenue = dict(sales.select(["category_id", "revenue"]).iter_rows())
        units = dict(sales.select(["category_id", "units"]).iter_rows())

        order = list(tree.walk())
        direct_products = [product_counts.get(cid, 0) for cid in tree.ids]
        direct_revenue = [revenue.get(cid, 0.0) for cid in tree.ids]
        direct_units = [units.get(cid, 0) for cid in tree.ids]

        subtree_products = list(direct_products)
        subtree_revenue = list(direct_revenue)
        subtree_units = list(direct_units)
        for position, _, _ in reversed(order):
            parent = tree.parents[position]
            if parent is not None:
                subtree_products[parent] += subtree_products[position]
                subtree_revenue[parent] += subtree_revenue[position]
                subtree_units[parent] += subtree_units[position]

        rows = []
        for position, level, path in order:
            parent = tree.parents[position]
            rows.append(CategoryNode(
                category_id=tree.ids[position],
                name=tree.names[position],
                parent_id=None if parent is None else tree.ids[parent],
                level=level,
                path=path,
                display_name=INDENT * (level - 1) + tree.names[position],
                num_products=direct_products[position],
                total_revenue=round(direct_revenue[position], 2),
                total_units=direct_units[position],
                subtree_products=subtree_products[position],
                subtree_revenue=round(subtree_revenue[position], 2),
                subtree_units=subtree_units[position],
            ))

        rows.sort(key=lambda node: node.path)
        self._log_done(len(rows), start, end)
        return rows

"""
Snapshot Providers

The engine never owns persistence. Analyzers pull read-only entity frames
from a SnapshotProvider, which guarantees unique identifiers and resolvable
references (or fails with DataIntegrityError before any analysis runs).
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Mapping, Optional, Sequence

import polars as pl
import structlog

from analytics_engine.quality.errors import DataIntegrityError
from analytics_engine.quality.validators import (
    create_categories_validator,
    create_events_validator,
    create_order_items_validator,
    create_orders_validator,
    create_products_validator,
    create_users_validator,
)
from .entities import (
    OPTIONAL_COLUMNS,
    SCHEMAS,
    TIMESTAMP_COLUMNS,
    Category,
    EntityType,
    Event,
    Order,
    OrderItem,
    Product,
    User,
    empty_frame,
    records_to_frame,
    with_payload_columns,
)

logger = structlog.get_logger(__name__)


class SnapshotProvider(ABC):
    """
    Read-only access to one consistent snapshot of the entities.

    Time-bounded reads are half-open ``[start, end)``; ``None`` leaves a
    bound open. Order items are bounded through their parent order.
    Categories and products are not time-bounded.
    """

    @abstractmethod
    def records(self, entity: EntityType) -> pl.DataFrame:
        """All records of an entity type"""

    def records_in_range(
        self,
        entity: EntityType,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> pl.DataFrame:
        """Records whose timestamp falls in [start, end)"""
        if entity == EntityType.ORDER_ITEM:
            orders = self.records_in_range(EntityType.ORDER, start, end).select("order_id")
            return self.records(EntityType.ORDER_ITEM).join(orders, on="order_id", how="semi")

        df = self.records(entity)
        column = TIMESTAMP_COLUMNS.get(entity)
        if column is None:
            return df

        if start is not None:
            df = df.filter(pl.col(column) >= start)
        if end is not None:
            df = df.filter(pl.col(column) < end)
        return df

    def records_since(self, entity: EntityType, since: datetime) -> pl.DataFrame:
        """Records timestamped at or after ``since``"""
        return self.records_in_range(entity, since, None)


def _conform_column(name: str, source: pl.DataType, target: pl.DataType) -> pl.Expr:
    """
    Cast one source column to its schema type.

    JSON sources carry timestamps as ISO strings, which are parsed rather
    than cast. Structured payloads (JSON objects read from JSONL or
    parquet) are re-encoded as JSON text so their keys survive.
    """
    column = pl.col(name)
    if isinstance(target, pl.Datetime) and source == pl.Utf8:
        return column.str.to_datetime(time_unit=target.time_unit).cast(target)
    if isinstance(source, pl.Struct) and target == pl.Utf8:
        return column.struct.json_encode().alias(name)
    return column.cast(target)


class DataFrameSnapshot(SnapshotProvider):
    """
    In-memory snapshot over polars DataFrames.

    Frames are conformed to the entity schemas and validated on
    construction. Missing entity frames are treated as empty.

    Example:
        snapshot = DataFrameSnapshot.from_records(
            categories=[Category(category_id=1, name="Electronics")],
            products=[...],
        )
        orders = snapshot.records_since(EntityType.ORDER, start)
    """

    def __init__(
        self,
        frames: Mapping[EntityType, pl.DataFrame],
        validate: bool = True,
    ):
        self._frames: Dict[EntityType, pl.DataFrame] = {}
        for entity in EntityType:
            df = frames.get(entity)
            self._frames[entity] = empty_frame(entity) if df is None else self._conform(entity, df)

        self._frames[EntityType.EVENT] = with_payload_columns(self._frames[EntityType.EVENT])

        if validate:
            self.validate()

        logger.debug(
            "Snapshot loaded",
            **{entity.value: df.height for entity, df in self._frames.items()},
        )

    @classmethod
    def from_records(
        cls,
        categories: Sequence[Category] = (),
        products: Sequence[Product] = (),
        users: Sequence[User] = (),
        orders: Sequence[Order] = (),
        order_items: Sequence[OrderItem] = (),
        events: Sequence[Event] = (),
        validate: bool = True,
    ) -> "DataFrameSnapshot":
        """Build a snapshot from entity records"""
        frames = {
            EntityType.CATEGORY: records_to_frame(EntityType.CATEGORY, categories),
            EntityType.PRODUCT: records_to_frame(EntityType.PRODUCT, products),
            EntityType.USER: records_to_frame(EntityType.USER, users),
            EntityType.ORDER: records_to_frame(EntityType.ORDER, orders),
            EntityType.ORDER_ITEM: records_to_frame(EntityType.ORDER_ITEM, order_items),
            EntityType.EVENT: records_to_frame(EntityType.EVENT, events),
        }
        return cls(frames, validate=validate)

    @staticmethod
    def _conform(entity: EntityType, df: pl.DataFrame) -> pl.DataFrame:
        """Select and cast the schema columns, filling optional ones"""
        schema = SCHEMAS[entity]
        defaults = OPTIONAL_COLUMNS[entity]
        missing = [c for c in schema if c not in df.columns and c not in defaults]
        if missing:
            raise DataIntegrityError(entity.value, f"missing required columns {missing}")

        columns = []
        for name, dtype in schema.items():
            if name in df.columns:
                columns.append(_conform_column(name, df.schema[name], dtype))
            else:
                columns.append(pl.lit(defaults[name], dtype=dtype).alias(name))
        return df.select(columns)

    def validate(self) -> None:
        """Run the integrity suites, raising DataIntegrityError on failure"""
        categories = self._frames[EntityType.CATEGORY]
        products = self._frames[EntityType.PRODUCT]
        users = self._frames[EntityType.USER]
        orders = self._frames[EntityType.ORDER]

        suites = [
            (EntityType.CATEGORY, create_categories_validator(categories)),
            (EntityType.PRODUCT, create_products_validator(categories)),
            (EntityType.USER, create_users_validator()),
            (EntityType.ORDER, create_orders_validator(users)),
            (EntityType.ORDER_ITEM, create_order_items_validator(orders, products)),
            (EntityType.EVENT, create_events_validator(users)),
        ]
        for entity, validator in suites:
            validator.validate(self._frames[entity]).raise_for_errors()

    def records(self, entity: EntityType) -> pl.DataFrame:
        return self._frames[entity]

"""
Snapshot Entities

Record models for the six entities the engine reads, and the fixed polars
schema each one is conformed to before analysis:

- Category: product category tree node (root = null parent)
- Product: catalog entry with cost and price
- User: customer account with signup and activity timestamps
- Order: order header with monetary totals
- OrderItem: one product line within an order
- Event: clickstream / behavioural event with a JSON payload
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import polars as pl
from pydantic import BaseModel, ConfigDict, Field


class EntityType(str, Enum):
    """Entity types exposed by a snapshot provider"""
    CATEGORY = "categories"
    PRODUCT = "products"
    USER = "users"
    ORDER = "orders"
    ORDER_ITEM = "order_items"
    EVENT = "events"


class Category(BaseModel):
    """Category tree node"""
    model_config = ConfigDict(frozen=True)

    category_id: int
    name: str
    parent_id: Optional[int] = None
    description: Optional[str] = None


class Product(BaseModel):
    """Catalog product"""
    model_config = ConfigDict(frozen=True)

    product_id: int
    name: str
    category_id: int
    cost: float
    price: float
    inventory_count: int = 0
    is_active: bool = True
    sku: Optional[str] = None


class User(BaseModel):
    """Customer account"""
    model_config = ConfigDict(frozen=True)

    user_id: int
    signup_at: datetime
    last_activity_at: Optional[datetime] = None
    lifetime_value: float = 0.0
    is_active: bool = True


class Order(BaseModel):
    """Order header"""
    model_config = ConfigDict(frozen=True)

    order_id: int
    user_id: int
    order_at: datetime
    status: str = "pending"
    subtotal: float = 0.0
    tax: float = 0.0
    shipping_cost: float = 0.0
    total_amount: float = 0.0
    is_new_customer: bool = False


class OrderItem(BaseModel):
    """Order line"""
    model_config = ConfigDict(frozen=True)

    order_item_id: int
    order_id: int
    product_id: int
    quantity: int
    unit_price: float
    discount: float = 0.0
    tax_amount: float = 0.0


class Event(BaseModel):
    """User event; anonymous sessions carry no user_id"""
    model_config = ConfigDict(frozen=True)

    event_id: int
    user_id: Optional[int] = None
    session_id: str
    event_type: str
    event_at: datetime
    page_url: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# SCHEMAS
# =============================================================================

SCHEMAS: Dict[EntityType, Dict[str, pl.DataType]] = {
    EntityType.CATEGORY: {
        "category_id": pl.Int64,
        "name": pl.Utf8,
        "parent_id": pl.Int64,
        "description": pl.Utf8,
    },
    EntityType.PRODUCT: {
        "product_id": pl.Int64,
        "name": pl.Utf8,
        "category_id": pl.Int64,
        "cost": pl.Float64,
        "price": pl.Float64,
        "inventory_count": pl.Int64,
        "is_active": pl.Boolean,
        "sku": pl.Utf8,
    },
    EntityType.USER: {
        "user_id": pl.Int64,
        "signup_at": pl.Datetime("us"),
        "last_activity_at": pl.Datetime("us"),
        "lifetime_value": pl.Float64,
        "is_active": pl.Boolean,
    },
    EntityType.ORDER: {
        "order_id": pl.Int64,
        "user_id": pl.Int64,
        "order_at": pl.Datetime("us"),
        "status": pl.Utf8,
        "subtotal": pl.Float64,
        "tax": pl.Float64,
        "shipping_cost": pl.Float64,
        "total_amount": pl.Float64,
        "is_new_customer": pl.Boolean,
    },
    EntityType.ORDER_ITEM: {
        "order_item_id": pl.Int64,
        "order_id": pl.Int64,
        "product_id": pl.Int64,
        "quantity": pl.Int64,
        "unit_price": pl.Float64,
        "discount": pl.Float64,
        "tax_amount": pl.Float64,
    },
    EntityType.EVENT: {
        "event_id": pl.Int64,
        "user_id": pl.Int64,
        "session_id": pl.Utf8,
        "event_type": pl.Utf8,
        "event_at": pl.Datetime("us"),
        "page_url": pl.Utf8,
        "event_data": pl.Utf8,
    },
}

# Columns that may be absent from source files, with the value they default to
OPTIONAL_COLUMNS: Dict[EntityType, Dict[str, Any]] = {
    EntityType.CATEGORY: {"parent_id": None, "description": None},
    EntityType.PRODUCT: {"inventory_count": 0, "is_active": True, "sku": None},
    EntityType.USER: {"last_activity_at": None, "lifetime_value": 0.0, "is_active": True},
    EntityType.ORDER: {
        "status": "pending",
        "subtotal": 0.0,
        "tax": 0.0,
        "shipping_cost": 0.0,
        "is_new_customer": False,
    },
    EntityType.ORDER_ITEM: {"discount": 0.0, "tax_amount": 0.0},
    EntityType.EVENT: {"user_id": None, "page_url": None, "event_data": None},
}

# Column each time-bounded read filters on
TIMESTAMP_COLUMNS: Dict[EntityType, str] = {
    EntityType.USER: "signup_at",
    EntityType.ORDER: "order_at",
    EntityType.EVENT: "event_at",
}

ENTITY_MODELS = {
    EntityType.CATEGORY: Category,
    EntityType.PRODUCT: Product,
    EntityType.USER: User,
    EntityType.ORDER: Order,
    EntityType.ORDER_ITEM: OrderItem,
    EntityType.EVENT: Event,
}


def empty_frame(entity: EntityType) -> pl.DataFrame:
    """Empty DataFrame carrying the entity schema"""
    return pl.DataFrame(schema=SCHEMAS[entity])


def records_to_frame(entity: EntityType, records: Sequence[BaseModel]) -> pl.DataFrame:
    """Build a schema-conformed DataFrame from entity records"""
    schema = SCHEMAS[entity]
    rows: List[Dict[str, Any]] = []
    for record in records:
        row = record.model_dump()
        if entity == EntityType.EVENT:
            payload = row.pop("payload")
            row["event_data"] = json.dumps(payload, sort_keys=True) if payload else None
        rows.append(row)

    columns = {name: [row.get(name) for row in rows] for name in schema}
    return pl.DataFrame(columns, schema=schema)


def with_payload_columns(events_df: pl.DataFrame) -> pl.DataFrame:
    """Extract traffic source, device and product reference from event JSON"""
    return events_df.with_columns([
        pl.col("event_data").str.json_path_match("$.source").alias("traffic_source"),
        pl.col("event_data").str.json_path_match("$.device_type").alias("device_type"),
        pl.col("event_data")
        .str.json_path_match("$.product_id")
        .cast(pl.Int64, strict=False)
        .alias("payload_product_id"),
    ])

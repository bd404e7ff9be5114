"""
Snapshot Data Module
"""
from .entities import Category, EntityType, Event, Order, OrderItem, Product, User
from .loader import FileFormat, load_snapshot
from .snapshot import DataFrameSnapshot, SnapshotProvider

__all__ = [
    "Category",
    "DataFrameSnapshot",
    "EntityType",
    "Event",
    "FileFormat",
    "Order",
    "OrderItem",
    "Product",
    "SnapshotProvider",
    "User",
    "load_snapshot",
]

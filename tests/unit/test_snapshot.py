"""
Unit Tests - Snapshot Access
"""
from datetime import datetime

import polars as pl
import pytest

from analytics_engine.data import (
    DataFrameSnapshot,
    EntityType,
    Event,
    FileFormat,
    Order,
    OrderItem,
    User,
    load_snapshot,
)
from analytics_engine.quality import DataIntegrityError


@pytest.fixture
def users():
    return [
        User(user_id=1, signup_at=datetime(2024, 1, 5, 9, 0)),
        User(user_id=2, signup_at=datetime(2024, 3, 1, 0, 0)),
    ]


@pytest.fixture
def orders():
    return [
        Order(order_id=100, user_id=1, order_at=datetime(2024, 5, 31, 23, 59), total_amount=20.0),
        Order(order_id=101, user_id=2, order_at=datetime(2024, 6, 1, 0, 0), total_amount=35.0),
        Order(order_id=102, user_id=2, order_at=datetime(2024, 6, 15, 8, 30), total_amount=80.0),
    ]


@pytest.fixture
def order_items():
    return [
        OrderItem(order_item_id=1, order_id=100, product_id=11, quantity=1, unit_price=20.0),
        OrderItem(order_item_id=2, order_id=101, product_id=31, quantity=1, unit_price=35.0),
        OrderItem(order_item_id=3, order_id=102, product_id=30, quantity=1, unit_price=80.0),
    ]


class TestDataFrameSnapshot:
    """Tests for the in-memory snapshot provider"""

    def test_records_in_range_is_half_open(self, make_snapshot, users, orders):
        """Test range reads exclude the end bound"""
        snapshot = make_snapshot(users=users, orders=orders)

        june = snapshot.records_in_range(EntityType.ORDER, datetime(2024, 6, 1), datetime(2024, 6, 15, 8, 30))

        assert june["order_id"].to_list() == [101]

    def test_records_since(self, make_snapshot, users, orders):
        """Test open-ended range reads"""
        snapshot = make_snapshot(users=users, orders=orders)

        recent = snapshot.records_since(EntityType.ORDER, datetime(2024, 6, 1))

        assert sorted(recent["order_id"].to_list()) == [101, 102]

    def test_order_items_bounded_by_parent_order(self, make_snapshot, users, orders, order_items):
        """Test order items are bounded by their order"""
        snapshot = make_snapshot(users=users, orders=orders, order_items=order_items)

        items = snapshot.records_in_range(EntityType.ORDER_ITEM, datetime(2024, 6, 1), None)

        assert sorted(items["order_item_id"].to_list()) == [2, 3]

    def test_catalog_is_not_time_bounded(self, make_snapshot):
        """Test catalog reads ignore time bounds"""
        snapshot = make_snapshot()

        products = snapshot.records_in_range(EntityType.PRODUCT, datetime(2030, 1, 1), datetime(2030, 2, 1))

        assert products.height == 5

    def test_missing_entities_are_empty(self, make_snapshot):
        """Test missing entities give typed empty frames"""
        snapshot = make_snapshot()

        assert snapshot.records(EntityType.ORDER).is_empty()
        assert snapshot.records(EntityType.ORDER)["order_at"].dtype == pl.Datetime("us")

    def test_event_payload_columns(self, make_snapshot, users):
        """Test event payload fields are extracted"""
        events = [
            Event(
                event_id=1,
                user_id=1,
                session_id="s1",
                event_type="product_view",
                event_at=datetime(2024, 6, 1, 10, 0),
                payload={"source": "email", "device_type": "mobile", "product_id": 10},
            ),
            Event(event_id=2, session_id="s2", event_type="product_view", event_at=datetime(2024, 6, 1, 11, 0)),
        ]
        snapshot = make_snapshot(users=users, events=events)

        df = snapshot.records(EntityType.EVENT).sort("event_id")

        assert df["traffic_source"].to_list() == ["email", None]
        assert df["device_type"].to_list() == ["mobile", None]
        assert df["payload_product_id"].to_list() == [10, None]
        assert df["user_id"].to_list() == [1, None]

    def test_duplicate_ids_raise(self, make_snapshot):
        """Test duplicate identifiers"""
        users = [
            User(user_id=1, signup_at=datetime(2024, 1, 1)),
            User(user_id=1, signup_at=datetime(2024, 2, 1)),
        ]

        with pytest.raises(DataIntegrityError) as exc_info:
            make_snapshot(users=users)

        assert exc_info.value.entity == "users"
        assert exc_info.value.offending_ids == [1]

    def test_dangling_reference_raises(self, make_snapshot, users):
        """Test dangling references"""
        orders = [Order(order_id=100, user_id=99, order_at=datetime(2024, 6, 1), total_amount=5.0)]

        with pytest.raises(DataIntegrityError) as exc_info:
            make_snapshot(users=users, orders=orders)

        assert exc_info.value.entity == "orders"
        assert exc_info.value.offending_ids == [100]

    def test_negative_money_raises(self, make_snapshot, users):
        """Test negative amounts"""
        orders = [Order(order_id=100, user_id=1, order_at=datetime(2024, 6, 1), total_amount=-5.0)]

        with pytest.raises(DataIntegrityError):
            make_snapshot(users=users, orders=orders)

    def test_validation_can_be_skipped(self, make_snapshot, users):
        """Test snapshot without validation"""
        orders = [Order(order_id=100, user_id=99, order_at=datetime(2024, 6, 1), total_amount=5.0)]

        snapshot = make_snapshot(users=users, orders=orders, validate=False)

        assert snapshot.records(EntityType.ORDER).height == 1

    def test_missing_required_column_raises(self):
        """Test missing required column"""
        frames = {EntityType.USER: pl.DataFrame({"user_id": [1]})}

        with pytest.raises(DataIntegrityError, match="signup_at"):
            DataFrameSnapshot(frames)

    def test_optional_columns_are_filled(self):
        """Test optional columns get defaults"""
        frames = {
            EntityType.USER: pl.DataFrame({"user_id": [1], "signup_at": [datetime(2024, 1, 1)]}),
        }

        users = DataFrameSnapshot(frames).records(EntityType.USER)

        assert users["lifetime_value"].to_list() == [0.0]
        assert users["is_active"].to_list() == [True]
        assert users["last_activity_at"].to_list() == [None]

    def test_string_timestamps_are_parsed(self):
        """Test ISO timestamp strings are parsed into the datetime schema"""
        frames = {
            EntityType.USER: pl.DataFrame({"user_id": [1], "signup_at": ["2024-01-05T09:30:00"]}),
        }

        users = DataFrameSnapshot(frames).records(EntityType.USER)

        assert users["signup_at"].dtype == pl.Datetime("us")
        assert users["signup_at"].to_list() == [datetime(2024, 1, 5, 9, 30)]

    def test_structured_payload_keeps_keys(self):
        """Test a struct event payload is re-encoded so its fields can be extracted"""
        frames = {
            EntityType.USER: pl.DataFrame({"user_id": [1], "signup_at": [datetime(2024, 1, 1)]}),
            EntityType.EVENT: pl.DataFrame({
                "event_id": [1],
                "user_id": [1],
                "session_id": ["s1"],
                "event_type": ["product_view"],
                "event_at": [datetime(2024, 6, 1, 10, 0)],
                "event_data": [{"source": "google", "device_type": "desktop"}],
            }),
        }

        events = DataFrameSnapshot(frames).records(EntityType.EVENT)

        assert events["event_data"].dtype == pl.Utf8
        assert events["traffic_source"].to_list() == ["google"]
        assert events["device_type"].to_list() == ["desktop"]


class TestLoadSnapshot:
    """Tests for loading snapshot directories"""

    def test_load_csv_directory(self, tmp_path):
        """Test loading a CSV snapshot"""
        (tmp_path / "categories.csv").write_text("category_id,name,parent_id\n1,Electronics,\n2,Phones,1\n")
        (tmp_path / "products.csv").write_text("product_id,name,category_id,cost,price\n10,Phone X,2,300,500\n")
        (tmp_path / "users.csv").write_text("user_id,signup_at,lifetime_value\n1,2024-01-05 09:00:00,120.5\n")
        (tmp_path / "orders.csv").write_text(
            "order_id,user_id,order_at,total_amount\n"
            "100,1,2024-06-01 10:00:00,500.0\n"
            "101,1,2024-06-20 10:00:00,500.0\n"
        )

        snapshot = load_snapshot(tmp_path, FileFormat.CSV)

        assert snapshot.records(EntityType.CATEGORY)["parent_id"].to_list() == [None, 1]
        assert snapshot.records(EntityType.PRODUCT)["cost"].dtype == pl.Float64
        assert snapshot.records(EntityType.EVENT).is_empty()
        june = snapshot.records_in_range(EntityType.ORDER, datetime(2024, 6, 10), datetime(2024, 7, 1))
        assert june["order_id"].to_list() == [101]

    def test_load_parquet_directory(self, tmp_path, categories):
        """Test loading a parquet snapshot"""
        pl.DataFrame({
            "category_id": [c.category_id for c in categories],
            "name": [c.name for c in categories],
            "parent_id": [c.parent_id for c in categories],
        }).write_parquet(tmp_path / "categories.parquet")

        snapshot = load_snapshot(tmp_path)

        assert snapshot.records(EntityType.CATEGORY).height == 5
        assert snapshot.records(EntityType.PRODUCT).is_empty()

    def test_load_jsonl_directory(self, tmp_path):
        """Test loading a JSON Lines snapshot"""
        (tmp_path / "categories.jsonl").write_text(
            '{"category_id": 1, "name": "Home", "parent_id": null}\n'
            '{"category_id": 2, "name": "Kitchen", "parent_id": 1}\n'
        )

        snapshot = load_snapshot(tmp_path, "jsonl")

        assert snapshot.records(EntityType.CATEGORY)["name"].to_list() == ["Home", "Kitchen"]

    def test_load_jsonl_timestamps_and_nested_payload(self, tmp_path):
        """Test JSON Lines snapshot with ISO timestamps and structured event payloads"""
        (tmp_path / "users.jsonl").write_text(
            '{"user_id": 1, "signup_at": "2024-01-05T09:00:00"}\n'
        )
        (tmp_path / "orders.jsonl").write_text(
            '{"order_id": 100, "user_id": 1, "order_at": "2024-06-01T10:00:00", "total_amount": 50.0}\n'
        )
        (tmp_path / "events.jsonl").write_text(
            '{"event_id": 1, "user_id": 1, "session_id": "s1", "event_type": "product_view",'
            ' "event_at": "2024-06-01T09:55:00", "event_data": {"source": "google", "product_id": 10}}\n'
            '{"event_id": 2, "user_id": 1, "session_id": "s1", "event_type": "purchase",'
            ' "event_at": "2024-06-01T09:58:00", "event_data": {"source": "email", "product_id": 11}}\n'
        )

        snapshot = load_snapshot(tmp_path, FileFormat.JSONL)

        users = snapshot.records(EntityType.USER)
        assert users["signup_at"].dtype == pl.Datetime("us")
        assert users["signup_at"].to_list() == [datetime(2024, 1, 5, 9, 0)]
        assert snapshot.records(EntityType.ORDER)["order_at"].to_list() == [datetime(2024, 6, 1, 10, 0)]
        events = snapshot.records(EntityType.EVENT).sort("event_id")
        assert events["traffic_source"].to_list() == ["google", "email"]
        assert events["payload_product_id"].to_list() == [10, 11]

    def test_missing_directory(self, tmp_path):
        """Test loading a missing directory"""
        with pytest.raises(FileNotFoundError):
            load_snapshot(tmp_path / "nope")

    def test_integrity_checked_on_load(self, tmp_path):
        """Test integrity checks run on load"""
        (tmp_path / "categories.csv").write_text("category_id,name,parent_id\n1,Electronics,7\n")

        with pytest.raises(DataIntegrityError):
            load_snapshot(tmp_path, FileFormat.CSV)

"""
Unit Tests - Data Quality
"""
import pytest
import polars as pl

from analytics_engine.quality import (
    DataIntegrityError,
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
)
from analytics_engine.quality.validators import create_order_items_validator, create_orders_validator


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        """Test not null check with valid data"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        validator = DataValidator("things", id_column="id")
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        """Test not null check reports the offending ids"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", None, "c"]})

        validator = DataValidator("things", id_column="id")
        validator.add_not_null_check("name")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1
        assert result.checks[0].offending_ids == [2]

    def test_unique_check_fails(self):
        """Test unique check with duplicates"""
        df = pl.DataFrame({"id": [1, 2, 1, 3, 3]})

        validator = DataValidator("things", id_column="id")
        validator.add_unique_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].offending_ids == [1, 3]

    def test_range_check(self):
        """Test range check"""
        df = pl.DataFrame({"price": [10.0, 50.0, -5.0, 200.0]})

        validator = DataValidator("products")
        validator.add_range_check("price", min_value=0, max_value=100)

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        # Two values outside range: -5 and 200
        assert result.checks[0].failed_rows == 2

    def test_positive_check_rejects_zero_when_strict(self):
        """Test strict positive check"""
        df = pl.DataFrame({"quantity": [1, 0, 3]})

        lenient = DataValidator("order_items").add_positive_check("quantity").validate(df)
        strict = DataValidator("order_items").add_positive_check("quantity", allow_zero=False).validate(df)

        assert lenient.status == ValidationStatus.PASSED
        assert strict.status == ValidationStatus.FAILED

    def test_enum_check_is_a_warning(self):
        """Unknown enum values warn without failing the suite"""
        df = pl.DataFrame({"status": ["pending", "shipped", "invalid"]})

        validator = DataValidator("orders")
        validator.add_enum_check("status", ["pending", "shipped", "delivered"])

        result = validator.validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1
        result.raise_for_errors()

    def test_strict_mode_fails_on_warning(self):
        """Test strict mode fails on warnings"""
        df = pl.DataFrame({"status": ["invalid"]})

        validator = DataValidator("orders", strict_mode=True)
        validator.add_enum_check("status", ["pending"])

        assert validator.validate(df).status == ValidationStatus.FAILED

    def test_referential_integrity_allows_null_references(self):
        """Test null references pass the integrity check"""
        categories = pl.DataFrame({"category_id": [1, 2], "parent_id": [None, 1]})

        validator = DataValidator("categories", id_column="category_id")
        validator.add_referential_integrity_check("parent_id", categories, "category_id")

        assert validator.validate(categories).status == ValidationStatus.PASSED

    def test_referential_integrity_against_empty_reference(self):
        """With nothing to reference every non-null value is an orphan"""
        orders = pl.DataFrame({"order_id": [1, 2], "user_id": [7, 8]})
        users = pl.DataFrame({"user_id": []}, schema={"user_id": pl.Int64})

        validator = DataValidator("orders", id_column="order_id")
        validator.add_referential_integrity_check("user_id", users, "user_id")

        result = validator.validate(orders)

        assert result.checks[0].offending_ids == [1, 2]

    def test_missing_column_fails(self):
        """Test check against a missing column"""
        df = pl.DataFrame({"id": [1]})

        result = DataValidator("things").add_not_null_check("name").validate(df)

        assert result.status == ValidationStatus.FAILED

    def test_success_rate(self):
        """Test report success rate"""
        df = pl.DataFrame({"id": [1, 1]})

        validator = DataValidator("things")
        validator.add_not_null_check("id").add_unique_check("id")

        assert validator.validate(df).success_rate == 50.0


class TestRaiseForErrors:
    """Tests for turning failed checks into DataIntegrityError"""

    def test_error_carries_entity_and_ids(self):
        """Test integrity error fields"""
        df = pl.DataFrame({"order_id": [5, 5]})
        result = DataValidator("orders", id_column="order_id").add_unique_check("order_id").validate(df)

        with pytest.raises(DataIntegrityError) as exc_info:
            result.raise_for_errors()

        error = exc_info.value
        assert error.entity == "orders"
        assert error.check == "unique_order_id"
        assert error.offending_ids == [5]
        assert "orders:" in str(error)
        assert "[ids: 5]" in str(error)

    def test_message_caps_reported_ids(self):
        """Test integrity error message truncates ids"""
        error = DataIntegrityError("users", "bad rows", offending_ids=list(range(15)))

        assert "(+5 more)" in str(error)
        assert len(error.offending_ids) == 15

    def test_warning_severity_does_not_raise(self):
        """Test warnings do not raise"""
        df = pl.DataFrame({"id": [None]})
        validator = DataValidator("things").add_not_null_check("id", severity=ValidationSeverity.WARNING)

        validator.validate(df).raise_for_errors()


class TestEntitySuites:
    """Tests for the pre-built entity suites"""

    def test_orders_suite_flags_negative_totals(self):
        """Test orders suite rejects negative totals"""
        users = pl.DataFrame({"user_id": [1]})
        orders = pl.DataFrame({
            "order_id": [1, 2],
            "user_id": [1, 1],
            "order_at": ["2024-01-01", "2024-01-02"],
            "subtotal": [10.0, 10.0],
            "tax": [1.0, 1.0],
            "shipping_cost": [0.0, 0.0],
            "total_amount": [11.0, -1.0],
            "status": ["delivered", "pending"],
        })

        result = create_orders_validator(users).validate(orders)

        failed = [c for c in result.checks if not c.passed]
        assert [c.name for c in failed] == ["range_total_amount"]
        assert failed[0].offending_ids == [2]

    def test_order_items_suite_flags_dangling_product(self):
        """Test order items suite rejects unknown products"""
        orders = pl.DataFrame({"order_id": [1]})
        products = pl.DataFrame({"product_id": [10]})
        items = pl.DataFrame({
            "order_item_id": [100, 101],
            "order_id": [1, 1],
            "product_id": [10, 99],
            "quantity": [1, 2],
            "unit_price": [5.0, 5.0],
            "discount": [0.0, 0.0],
            "tax_amount": [0.0, 0.0],
        })

        result = create_order_items_validator(orders, products).validate(items)

        assert result.status == ValidationStatus.FAILED
        with pytest.raises(DataIntegrityError) as exc_info:
            result.raise_for_errors()
        assert exc_info.value.offending_ids == [101]

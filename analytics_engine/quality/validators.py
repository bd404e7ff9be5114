"""
Data Validation Module

Rule-based integrity checks run over every snapshot before analysis.
Implements validation patterns inspired by Great Expectations.

Features:
- Null checks on required columns
- Primary key uniqueness
- Monetary and quantity range checks
- Referential integrity between entities
- Allowed-value checks for enum-like columns
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import polars as pl
import structlog

from .errors import DataIntegrityError

logger = structlog.get_logger(__name__)

ORDER_STATUSES = ["pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "refunded"]


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - aborts the analysis
    WARNING = "warning"  # Non-critical - logged but continues
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0
    offending_ids: List[Any] = field(default_factory=list)


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    entity: str
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    def raise_for_errors(self) -> None:
        """Raise DataIntegrityError for the first failed ERROR check"""
        for check in self.checks:
            if not check.passed and check.severity == ValidationSeverity.ERROR:
                raise DataIntegrityError(
                    self.entity,
                    check.message,
                    offending_ids=check.offending_ids,
                    check=check.name,
                )


class DataValidator:
    """
    Snapshot validator with a fluent check suite.

    Example:
        validator = DataValidator("orders", id_column="order_id")
        validator.add_unique_check("order_id")
        validator.add_range_check("total_amount", min_value=0)
        result = validator.validate(df)
    """

    def __init__(self, entity: str, id_column: Optional[str] = None, strict_mode: bool = False):
        self.entity = entity
        self.id_column = id_column
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def _ids(self, df: pl.DataFrame) -> List[Any]:
        if self.id_column is None or self.id_column not in df.columns:
            return []
        return df[self.id_column].to_list()

    @staticmethod
    def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
        return ValidationCheck(
            name=name,
            passed=False,
            severity=severity,
            message=f"Column '{column}' not found",
        )

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"not_null_{column}"
            if column not in df.columns:
                return self._missing_column(name, column, severity)

            nulls = df.filter(pl.col(column).is_null())
            null_count = nulls.height
            passed = null_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count},
                failed_rows=null_count,
                total_rows=df.height,
                offending_ids=self._ids(nulls),
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of column values"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"unique_{column}"
            if column not in df.columns:
                return self._missing_column(name, column, severity)

            total = df.height
            duplicate_count = total - df[column].n_unique()
            passed = duplicate_count == 0
            duplicates = (
                df.filter(pl.col(column).is_duplicated())[column].unique().sort().to_list()
                if not passed else []
            )

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {duplicate_count} duplicate values" if not passed else f"Column '{column}' values are unique",
                details={"duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
                offending_ids=duplicates,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within specified range"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"range_{column}"
            if column not in df.columns:
                return self._missing_column(name, column, severity)

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=name,
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            # Combine conditions with OR
            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined)
            passed = out_of_range.height == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range.height} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range.height},
                failed_rows=out_of_range.height,
                total_rows=df.height,
                offending_ids=self._ids(out_of_range),
            )

        self._checks.append(check)
        return self

    def add_positive_check(
        self,
        column: str,
        allow_zero: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for non-negative (or strictly positive) values"""
        min_val = 0 if allow_zero else 1
        return self.add_range_check(column, min_value=min_val, severity=severity)

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.WARNING,
    ) -> "DataValidator":
        """Add check for values in allowed set"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"enum_{column}"
            if column not in df.columns:
                return self._missing_column(name, column, severity)

            invalid = df.filter(
                ~pl.col(column).is_in(allowed_values) & pl.col(column).is_not_null()
            )
            passed = invalid.height == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {invalid.height} invalid values" if not passed else "All values are valid",
                details={"allowed_values": allowed_values, "invalid_count": invalid.height},
                failed_rows=invalid.height,
                total_rows=df.height,
                offending_ids=self._ids(invalid),
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add referential integrity check; null references are allowed"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"ref_integrity_{column}"
            if column not in df.columns:
                return self._missing_column(name, column, severity)

            ref_values = reference_df[reference_column].drop_nulls().unique().to_list()

            if ref_values:
                orphans = df.filter(
                    ~pl.col(column).is_in(ref_values) & pl.col(column).is_not_null()
                )
            else:
                orphans = df.filter(pl.col(column).is_not_null())
            passed = orphans.height == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans.height} orphan records" if not passed else "Referential integrity maintained",
                details={"orphan_count": orphans.height},
                failed_rows=orphans.height,
                total_rows=df.height,
                offending_ids=self._ids(orphans),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        results = []

        logger.debug(
            "Running validation checks",
            entity=self.entity,
            checks=len(self._checks),
            rows=df.height,
        )

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    entity=self.entity,
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        return ValidationResult(
            entity=self.entity,
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
        )


# Pre-built validators for the snapshot entities
def create_categories_validator(categories_df: pl.DataFrame) -> DataValidator:
    """Create pre-configured validator for categories"""
    return (
        DataValidator("categories", id_column="category_id")
        .add_not_null_check("category_id")
        .add_unique_check("category_id")
        .add_not_null_check("name")
        .add_referential_integrity_check("parent_id", categories_df, "category_id")
    )


def create_products_validator(categories_df: pl.DataFrame) -> DataValidator:
    """Create pre-configured validator for products"""
    return (
        DataValidator("products", id_column="product_id")
        .add_not_null_check("product_id")
        .add_unique_check("product_id")
        .add_not_null_check("category_id")
        .add_referential_integrity_check("category_id", categories_df, "category_id")
        .add_positive_check("price")
        .add_positive_check("cost")
        .add_positive_check("inventory_count")
    )


def create_users_validator() -> DataValidator:
    """Create pre-configured validator for users"""
    return (
        DataValidator("users", id_column="user_id")
        .add_not_null_check("user_id")
        .add_unique_check("user_id")
        .add_not_null_check("signup_at")
        .add_positive_check("lifetime_value")
    )


def create_orders_validator(users_df: pl.DataFrame) -> DataValidator:
    """Create pre-configured validator for orders"""
    return (
        DataValidator("orders", id_column="order_id")
        .add_not_null_check("order_id")
        .add_unique_check("order_id")
        .add_not_null_check("user_id")
        .add_not_null_check("order_at")
        .add_referential_integrity_check("user_id", users_df, "user_id")
        .add_positive_check("subtotal")
        .add_positive_check("tax")
        .add_positive_check("shipping_cost")
        .add_positive_check("total_amount")
        .add_enum_check("status", ORDER_STATUSES)
    )


def create_order_items_validator(orders_df: pl.DataFrame, products_df: pl.DataFrame) -> DataValidator:
    """Create pre-configured validator for order items"""
    return (
        DataValidator("order_items", id_column="order_item_id")
        .add_not_null_check("order_item_id")
        .add_unique_check("order_item_id")
        .add_referential_integrity_check("order_id", orders_df, "order_id")
        .add_referential_integrity_check("product_id", products_df, "product_id")
        .add_positive_check("quantity", allow_zero=False)
        .add_positive_check("unit_price")
        .add_positive_check("discount")
        .add_positive_check("tax_amount")
    )


def create_events_validator(users_df: pl.DataFrame) -> DataValidator:
    """Create pre-configured validator for user events"""
    return (
        DataValidator("events", id_column="event_id")
        .add_not_null_check("event_id")
        .add_unique_check("event_id")
        .add_not_null_check("session_id")
        .add_not_null_check("event_type")
        .add_not_null_check("event_at")
        .add_referential_integrity_check("user_id", users_df, "user_id")
    )

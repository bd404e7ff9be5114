"""
Unit Tests - Report Runner and CLI
"""
import json
from datetime import datetime

import pytest

from analytics_engine.data import Category, Order, User
from analytics_engine.main import REPORTS, ReportRunner, main
from analytics_engine.quality import DataIntegrityError


@pytest.fixture
def small_snapshot(make_snapshot):
    users = [User(user_id=1, signup_at=datetime(2024, 6, 1), last_activity_at=datetime(2024, 6, 2))]
    orders = [Order(order_id=1, user_id=1, order_at=datetime(2024, 6, 2, 10), total_amount=25.0)]
    return make_snapshot(users=users, orders=orders)


def write_snapshot(directory, categories="category_id,name,parent_id\n1,Electronics,\n2,Phones,1\n"):
    (directory / "categories.csv").write_text(categories)
    (directory / "products.csv").write_text("product_id,name,category_id,cost,price\n10,Phone X,2,300,500\n")
    (directory / "users.csv").write_text("user_id,signup_at\n1,2024-06-01 09:00:00\n")
    (directory / "orders.csv").write_text("order_id,user_id,order_at,total_amount\n100,1,2024-06-02 10:00:00,500.0\n")
    (directory / "order_items.csv").write_text(
        "order_item_id,order_id,product_id,quantity,unit_price\n1,100,10,1,500.0\n"
    )


class TestReportRunner:
    """Tests for ReportRunner"""

    def test_all_reports_in_order(self, small_snapshot, analytics_settings, as_of):
        """Test every report is produced in order"""
        results = ReportRunner(analytics_settings).run(small_snapshot, as_of)

        assert list(results) == list(REPORTS)

    def test_selection_keeps_requested_order(self, small_snapshot, analytics_settings, as_of):
        """Test selected reports keep the requested order"""
        results = ReportRunner(analytics_settings).run(
            small_snapshot, as_of, ["daily_sales", "cohort_retention", "daily_sales"]
        )

        assert list(results) == ["daily_sales", "cohort_retention"]
        assert results["daily_sales"] == [{
            "sale_date": "2024-06-02",
            "num_orders": 1,
            "daily_revenue": 25.0,
            "unique_customers": 1,
            "new_customer_revenue": 0.0,
        }]

    def test_unknown_report(self, small_snapshot, analytics_settings, as_of):
        """Test unknown report name"""
        with pytest.raises(ValueError, match="no_such_report"):
            ReportRunner(analytics_settings).run(small_snapshot, as_of, ["no_such_report"])

    def test_analyzer_failure_propagates(self, make_snapshot, analytics_settings, as_of):
        """Test analyzer errors propagate"""
        cyclic = [
            Category(category_id=1, name="A", parent_id=2),
            Category(category_id=2, name="B", parent_id=1),
        ]
        snapshot = make_snapshot(categories=cyclic, products=[])

        with pytest.raises(DataIntegrityError):
            ReportRunner(analytics_settings).run(snapshot, as_of, ["daily_sales", "category_hierarchy"])


class TestMain:
    """Tests for the command line entry point"""

    def test_writes_reports(self, tmp_path):
        """Test report files are written"""
        write_snapshot(tmp_path)
        output = tmp_path / "out.json"

        code = main([
            "--snapshot-dir", str(tmp_path),
            "--format", "csv",
            "--as-of", "2024-06-30",
            "--report", "category_hierarchy",
            "--report", "daily_sales",
            "--output", str(output),
        ])

        assert code == 0
        payload = json.loads(output.read_text())
        assert payload["as_of"] == "2024-06-30"
        assert list(payload["reports"]) == ["category_hierarchy", "daily_sales"]
        hierarchy = payload["reports"]["category_hierarchy"]
        assert [row["path"] for row in hierarchy] == [[1], [1, 2]]
        assert hierarchy[0]["subtree_revenue"] == 500.0

    def test_writes_to_stdout(self, tmp_path, capsys):
        """Test report output to stdout"""
        write_snapshot(tmp_path)

        code = main([
            "--snapshot-dir", str(tmp_path),
            "--format", "csv",
            "--as-of", "2024-06-30",
            "--report", "daily_sales",
        ])

        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["reports"]["daily_sales"][0]["num_orders"] == 1

    def test_integrity_failure_exit_code(self, tmp_path):
        """Test exit code on integrity failure"""
        write_snapshot(tmp_path, categories="category_id,name,parent_id\n1,Electronics,\n1,Phones,\n")

        code = main(["--snapshot-dir", str(tmp_path), "--format", "csv", "--as-of", "2024-06-30"])

        assert code == 1

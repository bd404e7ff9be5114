"""
Unit Tests - RFM Segmentation
"""
from datetime import datetime, timedelta

import pytest

from analytics_engine.analysis import RfmAnalyzer, classify_segment, rfm_score
from analytics_engine.analysis.rfm import summarize_segments
from analytics_engine.data import Order, User


class TestSegmentRules:
    """Tests for the ordered segment rule table"""

    @pytest.mark.parametrize(
        "scores, segment",
        [
            ((5, 5, 5), "Champions"),
            ((1, 1, 1), "Hibernating"),
            ((1, 5, 5), "Cannot Lose Them"),
            ((2, 3, 3), "At Risk"),
            ((3, 3, 3), "Loyal Customers"),
            ((3, 1, 2), "Potential Loyalists"),
            ((5, 1, 1), "New Customers"),
            ((2, 5, 1), "Others"),
        ],
    )
    def test_classification(self, scores, segment):
        """Test segment classification"""
        assert classify_segment(*scores) == segment

    def test_first_match_wins(self):
        """4/4/4 also satisfies the Loyal Customers bands"""
        assert classify_segment(4, 4, 4) == "Champions"

    def test_composite_score(self):
        """Test composite RFM score"""
        assert rfm_score(3, 4, 2) == 342
        assert rfm_score(5, 5, 5) == 555


@pytest.fixture
def rfm_snapshot(make_snapshot, as_of):
    """User k has k orders of 100 each, the latest 10 * (6 - k) days ago"""
    users = [User(user_id=k, signup_at=datetime(2023, 1, 1)) for k in range(1, 6)]
    orders = []
    for k in range(1, 6):
        last = datetime(as_of.year, as_of.month, as_of.day, 12) - timedelta(days=10 * (6 - k))
        for j in range(k):
            orders.append(Order(
                order_id=100 * k + j,
                user_id=k,
                order_at=last - timedelta(days=j),
                total_amount=100.0,
            ))
    return make_snapshot(users=users, orders=orders)


class TestRfmAnalyzer:
    """Tests for RfmAnalyzer"""

    def test_metrics(self, rfm_snapshot, analytics_settings, as_of):
        """Test per-customer RFM metrics"""
        records = {r.user_id: r for r in RfmAnalyzer(analytics_settings).analyze(rfm_snapshot, as_of)}

        assert records[5].recency_days == 10
        assert records[5].frequency == 5
        assert records[5].monetary == 500.0
        assert records[1].recency_days == 50

    def test_bands_and_segments(self, rfm_snapshot, analytics_settings, as_of):
        """Test score bands and segments"""
        records = RfmAnalyzer(analytics_settings).analyze(rfm_snapshot, as_of)

        assert [(r.user_id, r.rfm_score, r.segment) for r in records] == [
            (1, 111, "Hibernating"),
            (2, 222, "Hibernating"),
            (3, 333, "Loyal Customers"),
            (4, 444, "Champions"),
            (5, 555, "Champions"),
        ]

    def test_ties_broken_by_user_id(self, make_snapshot, analytics_settings, as_of):
        """Test ties are broken by user id"""
        users = [User(user_id=k, signup_at=datetime(2023, 1, 1)) for k in (7, 3)]
        orders = [
            Order(order_id=1, user_id=7, order_at=datetime(2024, 6, 1), total_amount=50.0),
            Order(order_id=2, user_id=3, order_at=datetime(2024, 6, 1), total_amount=50.0),
        ]
        snapshot = make_snapshot(users=users, orders=orders)

        records = {r.user_id: r for r in RfmAnalyzer(analytics_settings).analyze(snapshot, as_of)}

        assert (records[3].r_score, records[3].f_score, records[3].m_score) == (1, 1, 1)
        assert (records[7].r_score, records[7].f_score, records[7].m_score) == (2, 2, 2)

    def test_only_customers_in_window(self, make_snapshot, analytics_settings, as_of):
        """Test only customers with orders in the window"""
        users = [User(user_id=1, signup_at=datetime(2020, 1, 1))]
        orders = [Order(order_id=1, user_id=1, order_at=datetime(2022, 6, 1), total_amount=50.0)]

        assert RfmAnalyzer(analytics_settings).analyze(make_snapshot(users=users, orders=orders), as_of) == []


class TestSegmentSummary:
    """Tests for per-segment aggregation"""

    def test_summary(self, rfm_snapshot, analytics_settings, as_of):
        """Test segment summary"""
        summaries = RfmAnalyzer(analytics_settings).segment_summary(rfm_snapshot, as_of)

        assert [s.segment for s in summaries] == ["Champions", "Loyal Customers", "Hibernating"]
        champions = summaries[0]
        assert champions.num_customers == 2
        assert champions.avg_recency_days == 15.0
        assert champions.avg_frequency == 4.5
        assert champions.avg_monetary == 450.0
        assert champions.total_revenue == 900.0
        assert champions.pct_of_customers == 40.0
        assert champions.pct_of_revenue == 60.0

    def test_empty(self):
        """Test RFM on an empty snapshot"""
        assert summarize_segments([]) == []

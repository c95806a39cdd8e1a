"""Unit tests for SpendingPatternAnalyzer and SpendingPatternService."""

from datetime import date
from decimal import Decimal

import pytest

from models import SpendingPattern
from services.insight_service import InsightService
from services.spending_pattern_service import (
    SpendingPatternAnalyzer,
    SpendingPatternService,
    trend_for,
)
from tests.fixtures import add_transaction, create_user
from tests.fixtures.mocks import sample_transactions

REFERENCE = date(2026, 3, 31)


def _by_category(patterns):
    return {p.category: p for p in patterns}


class TestTrend:
    @pytest.mark.parametrize(
        "latest, previous, direction, percentage",
        [
            ("600", "200", "increasing", "200.00"),
            ("111", "100", "increasing", "11.00"),
            ("110", "100", "stable", "10.00"),
            ("90", "100", "stable", "-10.00"),
            ("89", "100", "decreasing", "-11.00"),
            ("75", "75", "stable", "0.00"),
        ],
    )
    def test_thresholds(self, latest, previous, direction, percentage):
        assert trend_for(Decimal(latest), Decimal(previous)) == (direction, Decimal(percentage))


class TestSpendingPatternAnalyzer:
    def test_sample_month_over_month(self):
        patterns = _by_category(SpendingPatternAnalyzer().analyze(sample_transactions(REFERENCE)))

        assert set(patterns) == {"FOOD_AND_DRINK", "PERSONAL_CARE"}
        food = patterns["FOOD_AND_DRINK"]
        assert food.period_start == date(2026, 3, 1)
        assert food.period_end == date(2026, 3, 31)
        assert food.total_amount == Decimal("600.00")
        assert food.transaction_count == 6
        assert food.average_transaction == Decimal("100.00")
        assert food.trend_direction == "increasing"
        assert food.trend_percentage == Decimal("200.00")
        gym = patterns["PERSONAL_CARE"]
        assert gym.total_amount == Decimal("75.00")
        assert gym.trend_direction == "stable"

    def test_inflows_are_ignored(self):
        patterns = SpendingPatternAnalyzer().analyze(sample_transactions(REFERENCE))

        assert "INCOME" not in {p.category for p in patterns}

    def test_single_month_category_is_skipped(self):
        txns = [t for t in sample_transactions(REFERENCE) if t.external_id.startswith("food_cur")]

        assert SpendingPatternAnalyzer().analyze(txns) == []

    def test_compares_with_previous_month_that_has_spend(self, db, linked_account):
        add_transaction(db, linked_account, "t1", "-50.00", date(2025, 12, 10), category="TRAVEL")
        add_transaction(db, linked_account, "t2", "-20.00", date(2026, 3, 10), category="TRAVEL")

        patterns = SpendingPatternAnalyzer().analyze(linked_account.transactions)

        travel = _by_category(patterns)["TRAVEL"]
        assert travel.period_start == date(2026, 3, 1)
        assert travel.trend_direction == "decreasing"
        assert travel.trend_percentage == Decimal("-60.00")

    def test_missing_category_is_other(self, db, linked_account):
        add_transaction(db, linked_account, "t1", "-10.00", date(2026, 2, 3), category=None)
        add_transaction(db, linked_account, "t2", "-12.00", date(2026, 3, 3), category=None)

        patterns = SpendingPatternAnalyzer().analyze(linked_account.transactions)

        assert [p.category for p in patterns] == ["Other"]

    def test_months_outside_window_are_ignored(self, db, linked_account):
        add_transaction(db, linked_account, "t1", "-40.00", date(2025, 9, 15), category="TRAVEL")
        add_transaction(db, linked_account, "t2", "-20.00", date(2026, 3, 10), category="TRAVEL")

        assert SpendingPatternAnalyzer().analyze(linked_account.transactions) == []

    def test_no_outflows(self):
        assert SpendingPatternAnalyzer().analyze([]) == []


class TestSpendingPatternService:
    def _seed(self, db, linked_account):
        for t in sample_transactions(REFERENCE):
            add_transaction(
                db, linked_account, t.external_id, str(t.amount), t.posted_date,
                category=t.category, description=t.description, merchant_name=t.merchant_name,
            )

    def test_refresh_stores_patterns(self, db, user, linked_account):
        self._seed(db, linked_account)

        assert SpendingPatternService.refresh(db, user) == 2
        db.commit()

        rows = SpendingPatternService.list_for_owner(db, user)
        assert [r.category for r in rows] == ["FOOD_AND_DRINK", "PERSONAL_CARE"]
        assert rows[0].period_type == "monthly"
        assert rows[0].trend_percentage == Decimal("200.00")

    def test_refresh_upserts_by_period(self, db, user, linked_account):
        self._seed(db, linked_account)
        SpendingPatternService.refresh(db, user)
        db.commit()
        add_transaction(db, linked_account, "food_extra", "-60.00", date(2026, 3, 29), category="FOOD_AND_DRINK")

        SpendingPatternService.refresh(db, user)
        db.commit()

        assert db.query(SpendingPattern).count() == 2
        food = db.query(SpendingPattern).filter_by(category="FOOD_AND_DRINK").one()
        assert food.total_amount == Decimal("660.00")
        assert food.transaction_count == 7

    def test_list_orders_newest_period_then_largest(self, db, user, linked_account):
        add_transaction(db, linked_account, "a1", "-10.00", date(2026, 1, 5), category="TRAVEL")
        add_transaction(db, linked_account, "a2", "-30.00", date(2026, 2, 5), category="TRAVEL")
        add_transaction(db, linked_account, "b1", "-10.00", date(2026, 2, 6), category="SHOPPING")
        add_transaction(db, linked_account, "b2", "-90.00", date(2026, 3, 6), category="SHOPPING")
        add_transaction(db, linked_account, "c1", "-10.00", date(2026, 2, 7), category="GAS")
        add_transaction(db, linked_account, "c2", "-95.00", date(2026, 3, 7), category="GAS")
        SpendingPatternService.refresh(db, user)

        rows = SpendingPatternService.list_for_owner(db, user)

        assert [(r.category, r.period_start.month) for r in rows] == [
            ("GAS", 3), ("SHOPPING", 3), ("TRAVEL", 2),
        ]

    def test_list_is_per_owner(self, db, user, linked_account):
        self._seed(db, linked_account)
        SpendingPatternService.refresh(db, user)
        bob = create_user(db, email="bob@example.com")

        assert SpendingPatternService.list_for_owner(db, bob) == []


class TestRefreshAll:
    def test_patterns_written_even_without_enough_for_insights(self, db, user, linked_account):
        add_transaction(db, linked_account, "t1", "-10.00", date(2026, 2, 3), category="GAS")
        add_transaction(db, linked_account, "t2", "-12.00", date(2026, 3, 3), category="GAS")

        assert InsightService.refresh_all(db, user) == 0
        db.commit()

        assert db.query(SpendingPattern).count() == 1

"""Monthly spending patterns per category.

``SpendingPatternAnalyzer`` groups outflows by category and calendar month
over the six months ending with the latest posted date, then compares each
category's latest month with the previous month that had spend.
``SpendingPatternService`` stores the result, one row per category and
month.
"""

import calendar
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from models import SpendingPattern, Transaction, User

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

WINDOW_MONTHS = 6
TREND_THRESHOLD_PERCENT = Decimal("10")
UNCATEGORIZED = "Other"
MAX_LISTED_PATTERNS = 50


@dataclass
class GeneratedPattern:
    """A category's spend for one month, before it is stored."""

    category: str
    period_start: date
    period_end: date
    total_amount: Decimal
    transaction_count: int
    average_transaction: Decimal
    trend_direction: str
    trend_percentage: Decimal


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _shift_months(month_start: date, months: int) -> date:
    """First day of the month ``months`` away from ``month_start``."""
    index = month_start.year * 12 + month_start.month - 1 + months
    return date(index // 12, index % 12 + 1, 1)


def _month_end(month_start: date) -> date:
    return month_start.replace(
        day=calendar.monthrange(month_start.year, month_start.month)[1]
    )


def trend_for(latest: Decimal, previous: Decimal) -> tuple[str, Decimal]:
    """Direction and percentage change from ``previous`` to ``latest``."""
    if previous <= 0:
        return "stable", Decimal("0.00")
    percentage = _money((latest - previous) / previous * 100)
    if percentage > TREND_THRESHOLD_PERCENT:
        return "increasing", percentage
    if percentage < -TREND_THRESHOLD_PERCENT:
        return "decreasing", percentage
    return "stable", percentage


class SpendingPatternAnalyzer:
    """Derives month-over-month spending trends from transactions."""

    def analyze(self, transactions: Iterable) -> list[GeneratedPattern]:
        txns = [t for t in transactions if Decimal(t.amount) < 0]
        if not txns:
            return []

        reference = max(t.posted_date for t in txns)
        window_start = _shift_months(reference.replace(day=1), -(WINDOW_MONTHS - 1))

        totals: dict[str, dict[date, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
        counts: dict[str, dict[date, int]] = defaultdict(lambda: defaultdict(int))
        for t in txns:
            if t.posted_date < window_start or t.posted_date > reference:
                continue
            category = t.category or UNCATEGORIZED
            month = t.posted_date.replace(day=1)
            totals[category][month] += -Decimal(t.amount)
            counts[category][month] += 1

        patterns: list[GeneratedPattern] = []
        for category in sorted(totals):
            months = sorted(totals[category], reverse=True)
            if len(months) < 2:
                continue
            latest, previous = months[0], months[1]
            total = totals[category][latest]
            count = counts[category][latest]
            direction, percentage = trend_for(total, totals[category][previous])
            patterns.append(
                GeneratedPattern(
                    category=category,
                    period_start=latest,
                    period_end=_month_end(latest),
                    total_amount=_money(total),
                    transaction_count=count,
                    average_transaction=_money(total / count),
                    trend_direction=direction,
                    trend_percentage=percentage,
                )
            )
        return patterns


class SpendingPatternService:
    """Service for refreshing and reading a user's spending patterns."""

    @staticmethod
    def refresh(db: Session, owner: User, analyzer: SpendingPatternAnalyzer | None = None) -> int:
        """Recompute patterns from the owner's stored transactions.

        Rows are upserted on ``(owner, category, period_start)`` and flushed;
        the caller commits.

        Returns:
            Number of patterns written.
        """
        analyzer = analyzer or SpendingPatternAnalyzer()
        transactions = db.query(Transaction).filter(Transaction.owner_id == owner.id).all()
        generated = analyzer.analyze(transactions)

        for gp in generated:
            row = (
                db.query(SpendingPattern)
                .filter(
                    SpendingPattern.owner_id == owner.id,
                    SpendingPattern.category == gp.category,
                    SpendingPattern.period_start == gp.period_start,
                )
                .first()
            )
            if row is None:
                row = SpendingPattern(
                    owner_id=owner.id,
                    category=gp.category,
                    period_start=gp.period_start,
                )
                db.add(row)
            row.period_type = "monthly"
            row.period_end = gp.period_end
            row.total_amount = gp.total_amount
            row.transaction_count = gp.transaction_count
            row.average_transaction = gp.average_transaction
            row.trend_direction = gp.trend_direction
            row.trend_percentage = gp.trend_percentage

        db.flush()
        logger.info("Spending patterns for user %s: %d written", owner.id, len(generated))
        return len(generated)

    @staticmethod
    def list_for_owner(db: Session, owner: User) -> list[SpendingPattern]:
        """Most recent periods first, largest spend first within a period."""
        return (
            db.query(SpendingPattern)
            .filter(SpendingPattern.owner_id == owner.id)
            .order_by(SpendingPattern.period_start.desc(), SpendingPattern.total_amount.desc())
            .limit(MAX_LISTED_PATTERNS)
            .all()
        )

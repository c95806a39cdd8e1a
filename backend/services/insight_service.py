"""Spending insights derived from stored transactions.

``InsightGenerator`` is a pure function of the transactions it is given:
every time window is anchored on the latest posted date in the input, not
on the wall clock, so the same transactions always yield the same insights.
``InsightService`` loads a user's transactions, runs the generator and
stores the results.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol

from sqlalchemy.orm import Session

from config import settings
from models import Insight, Transaction, User
from services.exceptions import InsufficientDataError, NotFoundError
from services.spending_pattern_service import SpendingPatternService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Rule thresholds
RECENT_WINDOW_DAYS = 30
RECURRING_WINDOW_DAYS = 90
MIN_CATEGORY_SPEND = Decimal("50")
SPENDING_INCREASE_PERCENT = Decimal("20")
HIGH_SPEND_THRESHOLD = Decimal("500")
RECURRING_MIN_COUNT = 3
RECURRING_MIN_AMOUNT = Decimal("10")
RECURRING_MONTHLY_THRESHOLD = Decimal("50")
MAX_CATEGORIES = 10
MAX_SAVING_OPPORTUNITIES = 5

# Stored insight lifetime
DUPLICATE_WINDOW_DAYS = 7
INSIGHT_TTL_DAYS = 30


class TransactionLike(Protocol):
    amount: Decimal
    posted_date: date
    description: str
    merchant_name: str | None
    category: str | None


@dataclass
class GeneratedInsight:
    """An insight produced by the generator, before it is stored."""

    insight_type: str
    title: str
    description: str
    category: str | None
    amount: Decimal
    confidence: Decimal
    action_items: list[str] = field(default_factory=list)


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _category_label(category: str) -> str:
    """Human label for a provider category ("FOOD_AND_DRINK" -> "Food And Drink")."""
    return category.replace("_", " ").title()


class InsightGenerator:
    """Derives spending insights from a set of transactions."""

    def __init__(self, min_transactions: int | None = None):
        if min_transactions is None:
            min_transactions = settings.INSIGHT_MIN_TRANSACTIONS
        self.min_transactions = min_transactions

    def generate(self, transactions: Iterable[TransactionLike]) -> list[GeneratedInsight]:
        """Generate insights.

        Raises:
            InsufficientDataError: Fewer than ``min_transactions`` supplied.
        """
        txns = list(transactions)
        if len(txns) < self.min_transactions:
            raise InsufficientDataError(
                f"{len(txns)} transactions, at least {self.min_transactions} required"
            )

        reference = max(t.posted_date for t in txns)
        insights = self._category_insights(txns, reference)
        insights.extend(self._saving_opportunities(txns, reference))
        return insights

    @staticmethod
    def _spend(txn: TransactionLike) -> Decimal:
        """Spend amount of an outflow (positive), or 0 for inflows."""
        amount = Decimal(txn.amount)
        return -amount if amount < 0 else Decimal("0")

    def _category_insights(self, txns: list, reference: date) -> list[GeneratedInsight]:
        recent_start = reference - timedelta(days=RECENT_WINDOW_DAYS)
        previous_start = recent_start - timedelta(days=RECENT_WINDOW_DAYS)

        current: dict[str, Decimal] = defaultdict(Decimal)
        counts: dict[str, int] = defaultdict(int)
        previous: dict[str, Decimal] = defaultdict(Decimal)
        for t in txns:
            spend = self._spend(t)
            if not t.category or spend == 0:
                continue
            if recent_start < t.posted_date <= reference:
                current[t.category] += spend
                counts[t.category] += 1
            elif previous_start < t.posted_date <= recent_start:
                previous[t.category] += spend

        ranked = sorted(current.items(), key=lambda kv: (-kv[1], kv[0]))[:MAX_CATEGORIES]

        insights: list[GeneratedInsight] = []
        for category, amount in ranked:
            if amount < MIN_CATEGORY_SPEND:
                continue
            label = _category_label(category)
            prev_amount = previous.get(category, Decimal("0"))

            if prev_amount > 0:
                change = (amount - prev_amount) / prev_amount * 100
                if change > SPENDING_INCREASE_PERCENT:
                    insights.append(
                        GeneratedInsight(
                            insight_type="spending_pattern",
                            title=f"{label} spending increased",
                            description=(
                                f"Your {label.lower()} spending increased by {change:.0f}% "
                                f"this month (${amount:.2f} vs ${prev_amount:.2f} last month)."
                            ),
                            category=category,
                            amount=_money(amount),
                            confidence=Decimal("0.85"),
                            action_items=[
                                f"Review your {label.lower()} purchases",
                                "Set a monthly budget for this category",
                                "Look for ways to reduce spending",
                            ],
                        )
                    )

            if amount > HIGH_SPEND_THRESHOLD:
                insights.append(
                    GeneratedInsight(
                        insight_type="budget_alert",
                        title=f"High {label} spending",
                        description=(
                            f"You've spent ${amount:.2f} on {label.lower()} this month "
                            f"across {counts[category]} transactions."
                        ),
                        category=category,
                        amount=_money(amount),
                        confidence=Decimal("0.90"),
                        action_items=[
                            "Consider setting a monthly budget",
                            "Track daily spending in this category",
                            "Look for subscription services to cancel",
                        ],
                    )
                )
        return insights

    def _saving_opportunities(self, txns: list, reference: date) -> list[GeneratedInsight]:
        window_start = reference - timedelta(days=RECURRING_WINDOW_DAYS)

        groups: dict[tuple, list[Decimal]] = defaultdict(list)
        for t in txns:
            spend = self._spend(t)
            if spend <= RECURRING_MIN_AMOUNT or not (window_start < t.posted_date <= reference):
                continue
            groups[(t.description or "", t.merchant_name or "", t.category or "")].append(spend)

        recurring = []
        for key, amounts in groups.items():
            if len(amounts) < RECURRING_MIN_COUNT:
                continue
            average = sum(amounts, Decimal("0")) / len(amounts)
            recurring.append((key, average, len(amounts)))
        recurring.sort(key=lambda r: (-r[1], r[0]))

        insights: list[GeneratedInsight] = []
        for (description, merchant, category), average, frequency in recurring[:MAX_SAVING_OPPORTUNITIES]:
            # Frequency over the 90-day window, so a third of it per month
            monthly = average * Decimal(frequency) / Decimal(3)
            if monthly <= RECURRING_MONTHLY_THRESHOLD:
                continue
            name = merchant or description
            insights.append(
                GeneratedInsight(
                    insight_type="saving_opportunity",
                    title=f"Potential savings: {name}",
                    description=(
                        f"You spend approximately ${monthly:.2f}/month on {name}. "
                        "Consider if this aligns with your financial goals."
                    ),
                    category=category or None,
                    amount=_money(monthly),
                    confidence=Decimal("0.75"),
                    action_items=[
                        "Review if this expense is necessary",
                        "Look for cheaper alternatives",
                        "Consider reducing frequency",
                    ],
                )
            )
        return insights


class InsightService:
    """Service for generating, storing and reading a user's insights."""

    @staticmethod
    def refresh(
        db: Session,
        owner: User,
        generator: InsightGenerator | None = None,
        now: datetime | None = None,
    ) -> int:
        """Regenerate insights from all of the owner's stored transactions.

        An insight whose title was already stored in the last 7 days is
        skipped. Rows are flushed; the caller commits.

        Returns:
            Number of insights stored.

        Raises:
            InsufficientDataError: Not enough transactions to analyse.
        """
        generator = generator or InsightGenerator()
        now = now or datetime.now(timezone.utc)

        transactions = db.query(Transaction).filter(Transaction.owner_id == owner.id).all()
        generated = generator.generate(transactions)

        recent_titles = set(
            row[0]
            for row in db.query(Insight.title)
            .filter(
                Insight.owner_id == owner.id,
                Insight.created_at > now - timedelta(days=DUPLICATE_WINDOW_DAYS),
            )
            .all()
        )

        stored = 0
        for gi in generated:
            if gi.title in recent_titles:
                continue
            db.add(
                Insight(
                    owner_id=owner.id,
                    insight_type=gi.insight_type,
                    title=gi.title,
                    description=gi.description,
                    category=gi.category,
                    amount=gi.amount,
                    confidence=gi.confidence,
                    action_items=gi.action_items,
                    created_at=now,
                    expires_at=now + timedelta(days=INSIGHT_TTL_DAYS),
                )
            )
            recent_titles.add(gi.title)
            stored += 1

        db.flush()
        logger.info(
            "Insights for user %s: %d generated, %d stored",
            owner.id, len(generated), stored,
        )
        return stored

    @staticmethod
    def refresh_all(
        db: Session,
        owner: User,
        generator: InsightGenerator | None = None,
        now: datetime | None = None,
    ) -> int:
        """Refresh spending patterns, then insights.

        Too few transactions for insights is not an error here: the patterns
        are still written and 0 insights are reported. Rows are flushed; the
        caller commits.

        Returns:
            Number of insights stored.
        """
        SpendingPatternService.refresh(db, owner)
        try:
            return InsightService.refresh(db, owner, generator, now)
        except InsufficientDataError as e:
            logger.info("No insights for user %s: %s", owner.id, e)
            return 0

    @staticmethod
    def list_for_owner(db: Session, owner: User, now: datetime | None = None) -> list[Insight]:
        """Unexpired insights, most confident and most recent first."""
        now = now or datetime.now(timezone.utc)
        return (
            db.query(Insight)
            .filter(
                Insight.owner_id == owner.id,
                (Insight.expires_at.is_(None)) | (Insight.expires_at > now),
            )
            .order_by(Insight.confidence.desc(), Insight.created_at.desc())
            .all()
        )

    @staticmethod
    def mark_read(db: Session, owner: User, insight_id: str) -> Insight:
        """Mark one of the owner's insights as read.

        Raises:
            NotFoundError: No such insight for this owner.
        """
        insight = (
            db.query(Insight)
            .filter(Insight.id == insight_id, Insight.owner_id == owner.id)
            .first()
        )
        if insight is None:
            raise NotFoundError("Insight not found")
        insight.is_read = True
        db.commit()
        return insight

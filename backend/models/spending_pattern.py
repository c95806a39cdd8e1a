"""SpendingPattern model - monthly spend per category with a trend."""

from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint

from database import Base
from models.utils import generate_uuid


class SpendingPattern(Base):
    """A user's spend in one category for one month, compared to the
    previous month with spend in that category.

    One row per ``(owner_id, category, period_start)``; a refresh updates
    the row in place.
    """

    __tablename__ = "spending_patterns"
    __table_args__ = (
        UniqueConstraint(
            "owner_id", "category", "period_start", name="uix_spending_pattern_period",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String(100), nullable=False)
    period_type = Column(String(20), nullable=False, default="monthly")
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    total_amount = Column(Numeric(18, 2), nullable=False)
    transaction_count = Column(Integer, nullable=False)
    average_transaction = Column(Numeric(18, 2), nullable=False)
    trend_direction = Column(String(20), nullable=False)  # "increasing" | "decreasing" | "stable"
    trend_percentage = Column(Numeric(9, 2), nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

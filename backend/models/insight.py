"""Insight model - a stored spending observation for a user."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, JSON, Numeric, String, Text

from database import Base
from models.utils import generate_uuid


class Insight(Base):
    """A human-readable financial observation derived from transactions."""

    __tablename__ = "spending_insights"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    insight_type = Column(String(50), nullable=False)  # "spending_pattern" | "budget_alert" | "saving_opportunity"
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=True)
    amount = Column(Numeric(18, 2), nullable=True)
    confidence = Column(Numeric(3, 2), nullable=True)
    action_items = Column(JSON, nullable=True)  # list[str]
    is_read = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

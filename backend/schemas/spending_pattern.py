"""Pydantic schemas for monthly spending patterns."""

from datetime import date
from decimal import Decimal

from schemas.common import CamelModel


class SpendingPatternResponse(CamelModel):
    id: str
    category: str
    period_type: str
    period_start: date
    period_end: date
    total_amount: Decimal
    transaction_count: int
    average_transaction: Decimal
    trend_direction: str
    trend_percentage: Decimal


class SpendingPatternListResponse(CamelModel):
    patterns: list[SpendingPatternResponse]

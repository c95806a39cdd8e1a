"""Pydantic schemas for spending insights."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from schemas.common import CamelModel


class InsightResponse(CamelModel):
    id: str
    insight_type: str
    title: str
    description: str
    category: Optional[str] = None
    amount: Optional[Decimal] = None
    confidence: Optional[Decimal] = None
    action_items: Optional[list[str]] = None
    is_read: bool
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class InsightListResponse(CamelModel):
    insights: list[InsightResponse]


class MarkReadResponse(CamelModel):
    success: bool = True

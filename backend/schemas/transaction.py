"""Pydantic schemas for stored transactions."""

from datetime import date
from decimal import Decimal
from typing import Optional

from schemas.common import CamelModel


class TransactionResponse(CamelModel):
    """A stored transaction. Outflows are negative."""

    id: str
    linked_account_id: str
    account_id: str
    external_id: str
    amount: Decimal
    currency: Optional[str] = None
    posted_date: date
    description: str
    merchant_name: Optional[str] = None
    category: Optional[str] = None
    pending: bool = False


class TransactionListResponse(CamelModel):
    transactions: list[TransactionResponse]
    limit: int
    offset: int


class TransactionStatusResponse(CamelModel):
    total_transactions: int
    latest_transaction_date: Optional[date] = None
    earliest_transaction_date: Optional[date] = None
    sync_status: str  # "completed" | "pending"

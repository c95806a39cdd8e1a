"""Pydantic schemas for the Plaid link, account and webhook endpoints.

Link token and exchange bodies use Plaid's own snake_case field names;
everything the service itself reports is camelCase.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from integrations.provider_protocol import ErrorCategory
from schemas.common import CamelModel


class LinkTokenUser(BaseModel):
    client_user_id: Optional[str] = None


class LinkTokenRequest(BaseModel):
    """Optional overrides for the Link token request."""

    client_name: Optional[str] = None
    country_codes: Optional[list[str]] = None
    language: Optional[str] = None
    products: Optional[list[str]] = None
    user: Optional[LinkTokenUser] = None


class LinkTokenResponse(BaseModel):
    link_token: str
    expiration: Optional[str] = None


class ExchangeTokenRequest(BaseModel):
    public_token: Optional[str] = None


class StageErrorResponse(CamelModel):
    stage: str
    category: ErrorCategory
    retriable: bool
    message: str


class SyncOutcomeResponse(CamelModel):
    """Result of the link flow: each stage reports independently."""

    token_exchanged: bool
    transactions_synced: bool
    insights_generated: bool
    institution_name: Optional[str] = None
    linked_account_id: Optional[str] = None
    transactions_added: int = 0
    insight_count: int = 0
    errors: list[StageErrorResponse] = []


class BankAccountResponse(CamelModel):
    """One bank account (checking, savings, card...) under a linked Item."""

    account_id: str
    name: str
    type: Optional[str] = None
    subtype: Optional[str] = None
    mask: Optional[str] = None
    current_balance: Optional[Decimal] = None
    available_balance: Optional[Decimal] = None
    currency: Optional[str] = None


class LinkedAccountResponse(CamelModel):
    id: str
    item_id: str
    institution_id: Optional[str] = None
    institution_name: str
    status: str
    last_sync_time: Optional[datetime] = None
    last_sync_status: Optional[str] = None
    last_sync_error: Optional[str] = None
    created_at: Optional[datetime] = None
    bank_accounts: list[BankAccountResponse] = []


class LinkedAccountListResponse(CamelModel):
    accounts: list[LinkedAccountResponse]


class RemoveAccountResponse(CamelModel):
    status: str
    id: str


class SyncTransactionsRequest(CamelModel):
    linked_account_id: Optional[str] = None


class AccountSyncResultResponse(CamelModel):
    linked_account_id: str
    institution_name: str
    success: bool
    transactions_added: int = 0
    error: Optional[str] = None


class SyncTransactionsResponse(CamelModel):
    results: list[AccountSyncResultResponse]
    transactions_added: int
    insights_generated: int


class WebhookResponse(CamelModel):
    received: bool = True

"""Plaid Link API endpoints.

Provides the server-side endpoints for the Plaid Link flow: creating link
tokens, exchanging public tokens (which also syncs transactions and
refreshes insights), and managing linked institutions.
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from api.helpers import get_current_user, get_plaid_client, http_error_for
from database import get_db
from integrations.exceptions import ProviderError
from integrations.plaid_client import PlaidClient
from models import User, generate_uuid
from schemas.plaid import (
    ExchangeTokenRequest,
    LinkedAccountListResponse,
    LinkedAccountResponse,
    LinkTokenRequest,
    LinkTokenResponse,
    RemoveAccountResponse,
    SyncOutcomeResponse,
    SyncTransactionsRequest,
    SyncTransactionsResponse,
)
from services.exceptions import (
    DuplicateLinkError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
)
from services.exchange_service import ExchangeService
from services.insight_service import InsightService
from services.linked_account_service import LinkedAccountService
from services.transaction_sync_service import TransactionSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plaid", tags=["plaid"])


@router.post("/create-link-token", response_model=LinkTokenResponse)
def create_link_token(
    body: LinkTokenRequest | None = Body(default=None),
    client: PlaidClient = Depends(get_plaid_client),
):
    """Create a Plaid Link token for the client app."""
    body = body or LinkTokenRequest()
    if not client.is_configured():
        raise HTTPException(status_code=503, detail="Plaid is not configured")

    client_user_id = (body.user.client_user_id if body.user else None) or generate_uuid()
    try:
        token = client.create_link_token(
            client_user_id,
            client_name=body.client_name,
            products=body.products,
            country_codes=body.country_codes,
            language=body.language,
        )
    except ProviderError as e:
        error_detail = str(e)
        # Surface actionable hint for the most common error
        if "INVALID_API_KEYS" in error_detail:
            logger.error(
                "Plaid rejected the credentials. Check that PLAID_ENVIRONMENT "
                "matches your keys (sandbox or production)."
            )
        logger.error("Failed to create Plaid link token: %s", e)
        raise http_error_for(e)

    return LinkTokenResponse(link_token=token.link_token, expiration=token.expiration)


@router.post("/exchange-public-token", response_model=SyncOutcomeResponse)
def exchange_public_token(
    body: ExchangeTokenRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    client: PlaidClient = Depends(get_plaid_client),
):
    """Exchange a Plaid Link public_token, then sync and analyse.

    Stage failures after the exchange are reported in the outcome flags
    with a 200; only rejected input, duplicates and outages are errors.
    """
    service = ExchangeService(client)
    try:
        outcome = service.exchange_and_sync(db, body.public_token, user)
    except (UnauthorizedError, InvalidInputError, DuplicateLinkError) as e:
        raise http_error_for(e)
    except Exception as e:
        db.rollback()
        raise http_error_for(e)

    return SyncOutcomeResponse.model_validate(asdict(outcome))


@router.get("/accounts", response_model=LinkedAccountListResponse)
def list_accounts(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List the caller's linked institutions."""
    accounts = LinkedAccountService.list_for_owner(db, user)
    return LinkedAccountListResponse(
        accounts=[LinkedAccountResponse.model_validate(a) for a in accounts]
    )


@router.delete("/accounts/{linked_account_id}", response_model=RemoveAccountResponse)
def remove_account(
    linked_account_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    client: PlaidClient = Depends(get_plaid_client),
):
    """Remove a linked institution (revokes with Plaid, then deletes locally)."""
    try:
        LinkedAccountService.remove(db, user, linked_account_id, client)
    except NotFoundError as e:
        raise http_error_for(e)
    return RemoveAccountResponse(status="ok", id=linked_account_id)


@router.post("/sync-transactions", response_model=SyncTransactionsResponse)
def sync_transactions(
    body: SyncTransactionsRequest | None = Body(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    client: PlaidClient = Depends(get_plaid_client),
):
    """Re-sync the caller's linked accounts and refresh insights."""
    linked_account_id = body.linked_account_id if body else None
    if linked_account_id is not None:
        try:
            LinkedAccountService.get_for_owner(db, user, linked_account_id)
        except NotFoundError as e:
            raise http_error_for(e)

    results = TransactionSyncService(client).sync_owner(db, user, linked_account_id)

    insight_count = InsightService.refresh_all(db, user)
    db.commit()

    return SyncTransactionsResponse(
        results=[asdict(r) for r in results],
        transactions_added=sum(r.transactions_added for r in results),
        insights_generated=insight_count,
    )

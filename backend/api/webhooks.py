"""Plaid webhook receiver.

Plaid posts item and transaction events here, signed with a JWT in the
``Plaid-Verification`` header. Requests whose signature does not verify are
rejected with 401. Verified events are always acknowledged with 200 so
Plaid does not retry events we chose to ignore; failures while handling an
event are logged and recorded on the account.
"""

import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from api.helpers import get_plaid_client, http_error_for
from database import get_db
from integrations.exceptions import ProviderError
from integrations.plaid_client import PlaidClient
from schemas.plaid import WebhookResponse
from services.exceptions import WebhookVerificationError
from services.insight_service import InsightService
from services.linked_account_service import LinkedAccountService
from services.transaction_sync_service import TransactionSyncService
from services.webhook_verifier import PlaidWebhookVerifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

TRANSACTION_SYNC_CODES = frozenset(
    {"INITIAL_UPDATE", "HISTORICAL_UPDATE", "DEFAULT_UPDATE", "SYNC_UPDATES_AVAILABLE"}
)

# ITEM webhook code -> linked account status
ITEM_STATUS_BY_CODE = {
    "ERROR": "login_required",
    "PENDING_EXPIRATION": "pending_expiration",
    "USER_PERMISSION_REVOKED": "revoked",
}


async def _raw_body(request: Request) -> bytes:
    return await request.body()


@router.post("/plaid", response_model=WebhookResponse)
def plaid_webhook(
    body: bytes = Depends(_raw_body),
    plaid_verification: str | None = Header(default=None),
    db: Session = Depends(get_db),
    client: PlaidClient = Depends(get_plaid_client),
):
    """Verify and handle a Plaid webhook event."""
    try:
        PlaidWebhookVerifier(client).verify(body, plaid_verification)
    except WebhookVerificationError as e:
        logger.warning("Rejected Plaid webhook: %s", e)
        raise http_error_for(e)

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    webhook_type = payload.get("webhook_type")
    webhook_code = payload.get("webhook_code")
    item_id = payload.get("item_id")
    logger.info("Plaid webhook: %s %s (item=%s)", webhook_type, webhook_code, item_id)

    if webhook_type == "TRANSACTIONS" and webhook_code in TRANSACTION_SYNC_CODES:
        _sync_item(db, client, item_id)
    elif webhook_type == "ITEM" and webhook_code in ITEM_STATUS_BY_CODE:
        status = ITEM_STATUS_BY_CODE[webhook_code]
        if LinkedAccountService.mark_item_status(db, item_id, status):
            db.commit()
    else:
        logger.info("Ignoring Plaid webhook %s %s", webhook_type, webhook_code)

    return WebhookResponse(received=True)


def _sync_item(db: Session, client: PlaidClient, item_id: str | None) -> None:
    """Sync the item named in a TRANSACTIONS webhook and refresh insights."""
    account = LinkedAccountService.get_by_item_id(db, item_id) if item_id else None
    if account is None:
        logger.warning("TRANSACTIONS webhook for unknown item %s", item_id)
        return
    if account.status == "revoked":
        logger.info("Ignoring TRANSACTIONS webhook for revoked item %s", item_id)
        return

    owner = account.owner
    try:
        TransactionSyncService(client).sync(db, account)
        db.commit()
    except (ProviderError, SQLAlchemyError) as e:
        logger.warning("Webhook sync failed for item %s: %s", item_id, e)
        # Persist the failure recorded on the account
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
        return

    try:
        InsightService.refresh_all(db, owner)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Insight refresh failed for user %s: %s", owner.id, e)

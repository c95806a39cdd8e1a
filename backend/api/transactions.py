"""Stored transaction endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from api.helpers import get_current_user
from database import get_db
from models import Transaction, User
from schemas.transaction import (
    TransactionListResponse,
    TransactionResponse,
    TransactionStatusResponse,
)

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


@router.get("", response_model=TransactionListResponse)
def list_transactions(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List the caller's transactions, newest first."""
    rows = (
        db.query(Transaction)
        .filter(Transaction.owner_id == user.id)
        .order_by(Transaction.posted_date.desc(), Transaction.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in rows],
        limit=limit,
        offset=offset,
    )


@router.get("/status", response_model=TransactionStatusResponse)
def transaction_status(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Summary of what has been synced for the caller."""
    total, latest, earliest = (
        db.query(
            func.count(Transaction.id),
            func.max(Transaction.posted_date),
            func.min(Transaction.posted_date),
        )
        .filter(Transaction.owner_id == user.id)
        .one()
    )
    return TransactionStatusResponse(
        total_transactions=total,
        latest_transaction_date=latest,
        earliest_transaction_date=earliest,
        sync_status="completed" if total > 0 else "pending",
    )

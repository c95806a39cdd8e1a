"""Spending pattern endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.helpers import get_current_user
from database import get_db
from models import User
from schemas.spending_pattern import SpendingPatternListResponse, SpendingPatternResponse
from services.spending_pattern_service import SpendingPatternService

router = APIRouter(prefix="/api/spending-patterns", tags=["spending-patterns"])


@router.get("", response_model=SpendingPatternListResponse)
def list_spending_patterns(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Latest 50 monthly category patterns, newest period first."""
    patterns = SpendingPatternService.list_for_owner(db, user)
    return SpendingPatternListResponse(
        patterns=[SpendingPatternResponse.model_validate(p) for p in patterns]
    )

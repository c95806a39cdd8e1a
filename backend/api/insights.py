"""Spending insight endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.helpers import get_current_user, http_error_for
from database import get_db
from models import User
from schemas.insight import InsightListResponse, InsightResponse, MarkReadResponse
from services.exceptions import NotFoundError
from services.insight_service import InsightService

router = APIRouter(prefix="/api/insights", tags=["insights"])


@router.get("", response_model=InsightListResponse)
def list_insights(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List the caller's unexpired insights."""
    insights = InsightService.list_for_owner(db, user)
    return InsightListResponse(
        insights=[InsightResponse.model_validate(i) for i in insights]
    )


@router.post("/{insight_id}/read", response_model=MarkReadResponse)
def mark_insight_read(
    insight_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        InsightService.mark_read(db, user, insight_id)
    except NotFoundError as e:
        raise http_error_for(e)
    return MarkReadResponse(success=True)

"""Shared API helpers for route handlers.

Dependencies (current user, Plaid client) and the mapping from service and
provider exceptions to HTTP errors used across route files.
"""

import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
from integrations.exceptions import ProviderError, ProviderNotConfiguredError
from integrations.plaid_client import PlaidClient
from models import User
from services.auth_service import AuthService
from services.exceptions import (
    DuplicateLinkError,
    DuplicateUserError,
    InvalidCredentialsError,
    InvalidInputError,
    NotFoundError,
    ServiceError,
    UnauthorizedError,
    WebhookVerificationError,
)

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)

# Status codes for errors a route lets escape from a service
_SERVICE_ERROR_STATUS: dict[type[ServiceError], int] = {
    UnauthorizedError: 401,
    InvalidCredentialsError: 401,
    InvalidInputError: 400,
    DuplicateLinkError: 400,
    DuplicateUserError: 409,
    NotFoundError: 404,
    WebhookVerificationError: 401,
}


def get_plaid_client() -> PlaidClient:
    """Dependency for injecting the Plaid client (overridable in tests)."""
    return PlaidClient()


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to a user or raise 401."""
    token = credentials.credentials if credentials else None
    try:
        return AuthService.resolve_user(db, token)
    except UnauthorizedError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


def http_error_for(error: Exception) -> HTTPException:
    """Translate a service or provider exception into an HTTPException.

    Unexpected errors become a 500 that never echoes the exception text.
    """
    for error_type, status in _SERVICE_ERROR_STATUS.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status, detail=str(error))
    if isinstance(error, ProviderNotConfiguredError):
        return HTTPException(status_code=503, detail="Bank linking is not configured")
    if isinstance(error, SQLAlchemyError):
        logger.error("Database error: %s", error)
        return HTTPException(status_code=503, detail="Database unavailable")
    if isinstance(error, ProviderError):
        return HTTPException(status_code=502, detail=f"{error.provider_name or 'Provider'} request failed")
    logger.error("Unhandled error: %s", error, exc_info=error)
    return HTTPException(status_code=500, detail="Internal server error")

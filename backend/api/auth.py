"""Registration, login and profile endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.helpers import get_current_user, http_error_for
from database import get_db
from models import User
from schemas.auth import (
    AuthResponse,
    LoginRequest,
    ProfileResponse,
    RegisterRequest,
    UserResponse,
)
from services.auth_service import AuthService
from services.exceptions import DuplicateUserError, InvalidCredentialsError, InvalidInputError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    """Create a user and return a bearer token."""
    try:
        user = AuthService.register(
            db, body.email, body.password, body.first_name, body.last_name
        )
    except (InvalidInputError, DuplicateUserError) as e:
        raise http_error_for(e)

    return AuthResponse(
        message="Registration successful",
        token=AuthService.issue_token(user),
        user=UserResponse.model_validate(user),
    )


@router.post("/auth/login", response_model=AuthResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    """Verify credentials and return a bearer token."""
    try:
        user = AuthService.authenticate(db, body.email, body.password)
    except InvalidCredentialsError:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    logger.info("User %s logged in", user.id)
    return AuthResponse(
        message="Login successful",
        token=AuthService.issue_token(user),
        user=UserResponse.model_validate(user),
    )


@router.get("/user/profile", response_model=ProfileResponse)
def get_profile(user: User = Depends(get_current_user)):
    return ProfileResponse(user=UserResponse.model_validate(user))

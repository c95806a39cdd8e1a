"""Pydantic schemas for registration, login and profile."""

from typing import Optional

from schemas.common import CamelModel


class RegisterRequest(CamelModel):
    """Registration body. Fields are validated by AuthService so a missing
    field is reported as a 400, not a schema error."""

    email: Optional[str] = None
    password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UserResponse(CamelModel):
    """Public view of a user (never includes the password hash)."""

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class AuthResponse(CamelModel):
    message: str
    token: str
    user: UserResponse


class ProfileResponse(CamelModel):
    user: UserResponse

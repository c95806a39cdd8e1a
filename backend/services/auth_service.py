"""User registration, password verification and bearer tokens."""

import base64
import logging
import os
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from models import User
from services.exceptions import (
    DuplicateUserError,
    InvalidCredentialsError,
    InvalidInputError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
_HASH_SCHEME = "pbkdf2_sha256"
_SALT_BYTES = 16


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode()


class AuthService:
    """Service for user accounts and JWT issuance."""

    PBKDF2_ITERATIONS = 390_000
    _ephemeral_secret: str | None = None

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    @classmethod
    def hash_password(cls, password: str) -> str:
        """Hash a password as ``pbkdf2_sha256$<iterations>$<salt>$<hash>``."""
        salt = os.urandom(_SALT_BYTES)
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=cls.PBKDF2_ITERATIONS,
        )
        digest = kdf.derive(password.encode())
        return f"{_HASH_SCHEME}${cls.PBKDF2_ITERATIONS}${_b64(salt)}${_b64(digest)}"

    @staticmethod
    def verify_password(password: str, stored: str) -> bool:
        """Check a password against a stored hash."""
        try:
            scheme, iterations, salt_b64, digest_b64 = stored.split("$")
        except ValueError:
            return False
        if scheme != _HASH_SCHEME:
            return False

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=base64.b64decode(salt_b64),
            iterations=int(iterations),
        )
        try:
            kdf.verify(password.encode(), base64.b64decode(digest_b64))
        except InvalidKey:
            return False
        return True

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @classmethod
    def register(
        cls,
        db: Session,
        email: str | None,
        password: str | None,
        first_name: str | None,
        last_name: str | None,
    ) -> User:
        """Create a user account.

        Raises:
            InvalidInputError: A required field is missing or blank.
            DuplicateUserError: The email is already registered.
        """
        fields = (email, password, first_name, last_name)
        if any(not (v and v.strip()) for v in fields):
            raise InvalidInputError("email, password, firstName and lastName are required")

        email = email.strip().lower()
        if db.query(User).filter(User.email == email).first():
            raise DuplicateUserError("User already exists")

        user = User(
            email=email,
            password_hash=cls.hash_password(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicateUserError("User already exists")
        db.refresh(user)
        logger.info("Registered user %s", user.id)
        return user

    @classmethod
    def authenticate(cls, db: Session, email: str | None, password: str | None) -> User:
        """Return the user for a valid email/password pair.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
        """
        if not email or not password:
            raise InvalidCredentialsError("Invalid credentials")
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if user is None or not cls.verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Invalid credentials")
        return user

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    @classmethod
    def _secret(cls) -> str:
        if settings.JWT_SECRET:
            return settings.JWT_SECRET
        if cls._ephemeral_secret is None:
            logger.warning("JWT_SECRET is not set; issued tokens will not survive a restart")
            cls._ephemeral_secret = secrets.token_urlsafe(48)
        return cls._ephemeral_secret

    @classmethod
    def issue_token(cls, user: User) -> str:
        """Issue a signed bearer token for a user."""
        payload = {
            "userId": user.id,
            "email": user.email,
            "exp": datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRES_HOURS),
        }
        return jwt.encode(payload, cls._secret(), algorithm=JWT_ALGORITHM)

    @classmethod
    def resolve_user(cls, db: Session, token: str | None) -> User:
        """Resolve a bearer token to a persisted user.

        Raises:
            UnauthorizedError: Missing, malformed, expired or orphaned token.
        """
        if not token:
            raise UnauthorizedError("Access token required")
        try:
            payload = jwt.decode(token, cls._secret(), algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise UnauthorizedError("Token expired")
        except jwt.InvalidTokenError:
            raise UnauthorizedError("Invalid token")

        user_id = payload.get("userId")
        user = db.query(User).filter(User.id == user_id).first() if user_id else None
        if user is None:
            raise UnauthorizedError("User no longer exists")
        return user

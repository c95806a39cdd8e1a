"""User model - an authenticated owner of linked accounts."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class User(Base):
    """A registered user.

    Emails are stored lower-cased so uniqueness is case-insensitive.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    linked_accounts = relationship(
        "LinkedAccount", back_populates="owner", cascade="all, delete-orphan"
    )

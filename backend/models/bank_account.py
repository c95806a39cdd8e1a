"""BankAccount model - one account (checking, savings, card) under a linked Item."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class BankAccount(Base):
    """A bank account reported by the provider for a linked institution.

    Refreshed on every sync; balances are the provider's cached values at
    that time.
    """

    __tablename__ = "bank_accounts"
    __table_args__ = (
        UniqueConstraint(
            "linked_account_id", "account_id", name="uix_bank_account_linked_account",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    linked_account_id = Column(
        String(36), ForeignKey("linked_accounts.id", ondelete="CASCADE"), nullable=False
    )
    account_id = Column(String, nullable=False)  # Provider's account ID
    name = Column(String, nullable=False)
    type = Column(String(50), nullable=True)
    subtype = Column(String(50), nullable=True)
    mask = Column(String(10), nullable=True)
    current_balance = Column(Numeric(18, 2), nullable=True)
    available_balance = Column(Numeric(18, 2), nullable=True)
    currency = Column(String(3), nullable=True)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    linked_account = relationship("LinkedAccount", back_populates="bank_accounts")

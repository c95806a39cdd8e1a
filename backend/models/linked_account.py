"""LinkedAccount model - stores one Plaid Item (linked institution) per user."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class LinkedAccount(Base):
    """A durable credential for one linked financial institution.

    Created only after a successful public token exchange. The access token
    is Fernet-encrypted and never leaves the service. A user can link a
    given institution once: ``(owner_id, institution_name)`` is unique.
    """

    __tablename__ = "linked_accounts"
    __table_args__ = (
        UniqueConstraint(
            "owner_id", "institution_name", name="uix_linked_account_owner_institution"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(String, unique=True, index=True, nullable=False)
    access_token_encrypted = Column(String, nullable=False)
    institution_id = Column(String, nullable=True)
    institution_name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="active")  # "active" | "login_required" | "pending_expiration" | "revoked"
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Sync tracking
    last_sync_time = Column(DateTime, nullable=True)
    last_sync_status = Column(String, nullable=True)  # "success" | "failed"
    last_sync_error = Column(String, nullable=True)

    # Relationships
    owner = relationship("User", back_populates="linked_accounts")
    transactions = relationship(
        "Transaction", back_populates="linked_account", cascade="all, delete-orphan"
    )
    bank_accounts = relationship(
        "BankAccount",
        back_populates="linked_account",
        cascade="all, delete-orphan",
        order_by="BankAccount.name",
    )

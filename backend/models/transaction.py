"""Transaction model - one ledger entry pulled from the provider."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Transaction(Base):
    """A transaction record from a linked account.

    Transactions are append-only. Deduplication via composite unique
    constraint (account_id, external_id), so re-syncing an overlapping
    date range never creates duplicate rows.

    Sign convention: outflows (spending) are negative, inflows positive.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "external_id", name="uix_transaction_account_external",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    linked_account_id = Column(
        String(36), ForeignKey("linked_accounts.id", ondelete="CASCADE"), nullable=False
    )
    account_id = Column(String, nullable=False)  # Provider's account ID
    external_id = Column(String, nullable=False)  # Provider's transaction ID
    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(3), nullable=True)
    posted_date = Column(Date, nullable=False, index=True)
    description = Column(String, nullable=False)
    merchant_name = Column(String, nullable=True)
    category = Column(String, nullable=True)
    pending = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    linked_account = relationship("LinkedAccount", back_populates="transactions")

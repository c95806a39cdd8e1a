"""Test fixtures and sample data."""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from models import LinkedAccount, Transaction, User
from services.auth_service import AuthService
from services.linked_account_service import LinkedAccountService
from tests.fixtures.mocks import SAMPLE_EXCHANGE_RESULT


def create_user(db: Session, email: str = "alice@example.com", password: str = "correct-horse") -> User:
    """Register a user through AuthService."""
    return AuthService.register(db, email, password, "Alice", "Smith")


def auth_header(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {AuthService.issue_token(user)}"}


def add_transaction(
    db: Session,
    account: LinkedAccount,
    external_id: str,
    amount: str,
    posted_date: date,
    category: str | None = "FOOD_AND_DRINK",
    description: str = "Grocery Store",
    merchant_name: str | None = None,
) -> Transaction:
    """Insert a stored transaction directly."""
    txn = Transaction(
        owner_id=account.owner_id,
        linked_account_id=account.id,
        account_id="acc_checking",
        external_id=external_id,
        amount=Decimal(amount),
        currency="USD",
        posted_date=posted_date,
        description=description,
        merchant_name=merchant_name,
        category=category,
    )
    db.add(txn)
    db.flush()
    return txn


@pytest.fixture
def user(db) -> User:
    """A registered user (alice@example.com)."""
    return create_user(db)


@pytest.fixture
def auth_headers(user) -> dict[str, str]:
    """Bearer header for the ``user`` fixture."""
    return auth_header(user)


@pytest.fixture
def linked_account(db, user) -> LinkedAccount:
    """A linked Test Bank account for the ``user`` fixture."""
    account = LinkedAccountService.create(db, user, SAMPLE_EXCHANGE_RESULT)
    db.commit()
    return account

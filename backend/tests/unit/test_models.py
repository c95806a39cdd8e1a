"""Tests for database models."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from models import BankAccount, LinkedAccount, SpendingPattern, Transaction
from tests.fixtures import add_transaction, create_user


def test_user_creation(user):
    assert user.id is not None
    assert user.email == "alice@example.com"
    assert user.password_hash.startswith("pbkdf2_sha256$")
    assert user.created_at is not None


def test_user_email_unique(db, user):
    from models import User

    db.add(User(email="alice@example.com", password_hash="x"))
    with pytest.raises(IntegrityError):
        db.commit()


def test_linked_account_defaults(linked_account):
    assert linked_account.status == "active"
    assert linked_account.last_sync_time is None
    assert linked_account.last_sync_status is None
    assert linked_account.institution_id == "ins_109508"


def test_linked_account_owner_relationship(linked_account, user):
    assert linked_account.owner.id == user.id
    assert user.linked_accounts == [linked_account]


def test_linked_account_unique_institution_per_owner(db, user, linked_account):
    db.add(
        LinkedAccount(
            owner_id=user.id,
            item_id="item-other",
            access_token_encrypted="x",
            institution_name="Test Bank",
        )
    )
    with pytest.raises(IntegrityError):
        db.commit()


def test_linked_account_item_id_unique(db, linked_account):
    bob = create_user(db, email="bob@example.com")
    db.add(
        LinkedAccount(
            owner_id=bob.id,
            item_id=linked_account.item_id,
            access_token_encrypted="x",
            institution_name="Test Bank",
        )
    )
    with pytest.raises(IntegrityError):
        db.commit()


def test_transaction_creation(db, linked_account):
    txn = add_transaction(db, linked_account, "txn_1", "-42.50", date(2026, 3, 14))
    db.commit()

    assert txn.amount == Decimal("-42.50")
    assert txn.pending is False
    assert txn.linked_account.id == linked_account.id


def test_transaction_unique_per_provider_account(db, linked_account):
    add_transaction(db, linked_account, "txn_1", "-42.50", date(2026, 3, 14))
    db.commit()

    with pytest.raises(IntegrityError):
        add_transaction(db, linked_account, "txn_1", "-42.50", date(2026, 3, 14))


def test_deleting_linked_account_deletes_transactions(db, linked_account):
    add_transaction(db, linked_account, "txn_1", "-42.50", date(2026, 3, 14))
    db.commit()

    db.delete(linked_account)
    db.commit()

    assert db.query(Transaction).count() == 0


def test_bank_account_unique_per_linked_account(db, linked_account):
    db.add(BankAccount(owner_id=linked_account.owner_id, linked_account_id=linked_account.id,
                       account_id="acc_1", name="Checking"))
    db.commit()

    db.add(BankAccount(owner_id=linked_account.owner_id, linked_account_id=linked_account.id,
                       account_id="acc_1", name="Checking"))
    with pytest.raises(IntegrityError):
        db.commit()


def test_deleting_linked_account_deletes_bank_accounts(db, linked_account):
    db.add(BankAccount(owner_id=linked_account.owner_id, linked_account_id=linked_account.id,
                       account_id="acc_1", name="Checking", current_balance=Decimal("10.00")))
    db.commit()

    db.delete(linked_account)
    db.commit()

    assert db.query(BankAccount).count() == 0


def test_spending_pattern_unique_per_category_month(db, user):
    def pattern():
        return SpendingPattern(
            owner_id=user.id, category="FOOD_AND_DRINK",
            period_start=date(2026, 3, 1), period_end=date(2026, 3, 31),
            total_amount=Decimal("600.00"), transaction_count=6,
            average_transaction=Decimal("100.00"),
            trend_direction="increasing", trend_percentage=Decimal("200.00"),
        )

    db.add(pattern())
    db.commit()
    assert db.query(SpendingPattern).one().period_type == "monthly"

    db.add(pattern())
    with pytest.raises(IntegrityError):
        db.commit()

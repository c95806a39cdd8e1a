"""SQLAlchemy ORM models."""

from .bank_account import BankAccount
from .insight import Insight
from .linked_account import LinkedAccount
from .spending_pattern import SpendingPattern
from .transaction import Transaction
from .user import User
from .utils import generate_uuid

__all__ = [
    "BankAccount",
    "Insight",
    "LinkedAccount",
    "SpendingPattern",
    "Transaction",
    "User",
    "generate_uuid",
]

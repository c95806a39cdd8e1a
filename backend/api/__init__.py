"""API route handlers."""
from . import auth, insights, plaid, spending_patterns, transactions, webhooks

__all__ = ["auth", "insights", "plaid", "spending_patterns", "transactions", "webhooks"]

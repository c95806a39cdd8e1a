"""Provider protocol definitions for bank-linking providers.

This module defines the normalized data types a bank-linking provider
client returns and the interface the services depend on, so the
orchestration code never touches SDK response objects directly.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Protocol


@dataclass
class ProviderExchangeResult:
    """Typed result of a public token exchange."""

    access_token: str  # Durable secret, never returned to API clients
    item_id: str  # Provider's ID for the linked institution
    institution_name: str
    institution_id: str | None = None


@dataclass
class ProviderTransaction:
    """Normalized transaction data from a provider.

    Sign convention: outflows are negative, inflows positive.
    """

    account_id: str  # Provider's account ID this transaction belongs to
    external_id: str  # Provider's unique ID for this transaction
    amount: Decimal
    posted_date: date
    description: str
    currency: str | None = None  # ISO currency code (e.g., "USD")
    merchant_name: str | None = None
    category: str | None = None  # Primary category (e.g., "FOOD_AND_DRINK")
    pending: bool = False


@dataclass
class ProviderAccount:
    """Normalized bank account (one of an Item's accounts) from a provider."""

    account_id: str  # Provider's account ID, matches ProviderTransaction.account_id
    name: str
    type: str | None = None  # e.g. "depository", "credit"
    subtype: str | None = None  # e.g. "checking", "credit card"
    mask: str | None = None  # Last digits of the account number
    current_balance: Decimal | None = None
    available_balance: Decimal | None = None
    currency: str | None = None


@dataclass
class ProviderLinkToken:
    """A short-lived token that opens the provider's client-side Link flow."""

    link_token: str
    expiration: str | None = None


class ErrorCategory(str, Enum):
    """Category of a provider failure, as reported back to callers."""

    CONNECTION = "connection"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    DATA = "data"
    DATABASE = "database"
    UNKNOWN = "unknown"


class ProviderClient(Protocol):
    """Protocol that bank-linking provider clients implement."""

    @property
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'Plaid')."""
        ...

    def is_configured(self) -> bool:
        """Check if this provider has credentials configured."""
        ...

    def create_link_token(
        self,
        client_user_id: str,
        client_name: str | None = None,
        products: list[str] | None = None,
        country_codes: list[str] | None = None,
        language: str | None = None,
    ) -> ProviderLinkToken:
        """Create a token for the client-side linking flow."""
        ...

    def exchange_public_token(self, public_token: str) -> ProviderExchangeResult:
        """Exchange a single-use public token for a durable access token.

        Raises:
            ProviderRejectedError: The public token is invalid, expired or used.
            ProviderUnavailableError: Network failure, timeout or outage.
        """
        ...

    def get_accounts(self, access_token: str) -> list[ProviderAccount]:
        """Fetch the bank accounts of an Item with their balances.

        Raises:
            ProviderRejectedError: The access token is invalid or revoked.
            ProviderUnavailableError: Network failure, timeout or outage.
        """
        ...

    def get_transactions(
        self,
        access_token: str,
        start_date: date,
        end_date: date,
    ) -> list[ProviderTransaction]:
        """Fetch every transaction posted between the two dates (inclusive).

        Raises:
            ProviderRejectedError: The access token is invalid or revoked.
            ProviderUnavailableError: Network failure, timeout or outage.
        """
        ...

    def remove_item(self, access_token: str) -> None:
        """Revoke an access token at the provider."""
        ...

    def get_webhook_verification_key(self, key_id: str) -> dict:
        """Return the public JWK that signs the provider's webhooks."""
        ...

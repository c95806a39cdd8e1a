"""Plaid API client.

This module implements the ProviderClient protocol for Plaid via the
plaid-python SDK: Link token creation, public token exchange, bank accounts
and balances, transaction history, item removal and webhook signing keys.

Every SDK call carries a bounded request timeout. SDK failures are mapped
onto the typed exceptions in ``integrations.exceptions`` so callers can tell
a rejected token (re-link) from an unavailable provider (retry later).
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from plaid import ApiException, Environment
from plaid.api.plaid_api import PlaidApi
from plaid.api_client import ApiClient
from plaid.configuration import Configuration
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.country_code import CountryCode
from plaid.model.institutions_get_by_id_request import InstitutionsGetByIdRequest
from plaid.model.item_get_request import ItemGetRequest
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.item_remove_request import ItemRemoveRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from plaid.model.transactions_get_request import TransactionsGetRequest
from plaid.model.transactions_get_request_options import TransactionsGetRequestOptions
from plaid.model.webhook_verification_key_get_request import WebhookVerificationKeyGetRequest
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from config import settings
from integrations.exceptions import (
    ProviderAPIError,
    ProviderDataError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderRejectedError,
    ProviderUnavailableError,
)
from integrations.provider_protocol import (
    ProviderAccount,
    ProviderExchangeResult,
    ProviderLinkToken,
    ProviderTransaction,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Plaid"

# Map PLAID_ENVIRONMENT setting to SDK host URLs.
# Plaid's Development environment is deprecated; only sandbox and production
# are supported.
_ENVIRONMENT_MAP: dict[str, str] = {
    "sandbox": Environment.Sandbox,
    "production": Environment.Production,
}

# Plaid error codes that mean the token itself is unusable.
_REJECTED_ERROR_CODES = frozenset(
    {
        "INVALID_PUBLIC_TOKEN",
        "INVALID_ACCESS_TOKEN",
        "ITEM_LOGIN_REQUIRED",
        "ITEM_NOT_FOUND",
        "ACCESS_NOT_GRANTED",
        "USER_PERMISSION_REVOKED",
    }
)

# Max page size accepted by /transactions/get
_TRANSACTIONS_PAGE_SIZE = 500

# Fields of a webhook verification JWK
_JWK_FIELDS = ("alg", "crv", "kid", "kty", "use", "x", "y", "expired_at")


def _enum_value(value) -> str | None:
    """Plain string for an SDK enum (AccountType, AccountSubtype) or str."""
    if value is None:
        return None
    return str(getattr(value, "value", value))


class PlaidClient:
    """Wrapper around the Plaid API.

    Implements the ProviderClient protocol.
    """

    def __init__(
        self,
        client_id: str | None = None,
        secret: str | None = None,
        environment: str | None = None,
        timeout: float | None = None,
    ):
        self._client_id = client_id or settings.PLAID_CLIENT_ID
        self._secret = secret or settings.PLAID_SECRET
        self._environment = environment or settings.PLAID_ENVIRONMENT
        self._timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS

        # Lazily created on first use
        self._api: PlaidApi | None = None

    def _get_api(self) -> PlaidApi:
        """Return (and cache) a PlaidApi instance."""
        if not self.is_configured():
            raise ProviderNotConfiguredError(
                "Plaid is not configured: PLAID_CLIENT_ID or PLAID_SECRET missing",
                provider_name=PROVIDER_NAME,
            )
        if self._api is None:
            env_key = self._environment.lower()
            host = _ENVIRONMENT_MAP.get(env_key)
            if host is None:
                logger.warning(
                    "Unknown PLAID_ENVIRONMENT=%r, falling back to sandbox. "
                    "Valid values: sandbox, production",
                    self._environment,
                )
                host = Environment.Sandbox
            logger.info(
                "Plaid API client: environment=%s, host=%s, client_id=<configured>",
                env_key,
                host,
            )
            configuration = Configuration(
                host=host,
                api_key={
                    "clientId": self._client_id,
                    "secret": self._secret,
                },
            )
            api_client = ApiClient(configuration)
            self._api = PlaidApi(api_client)
        return self._api

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        """Check if Plaid credentials are configured."""
        return bool(self._client_id) and bool(self._secret)

    def _call(self, operation: str, method, request):
        """Invoke an SDK method with the request timeout and map failures."""
        try:
            return method(request, _request_timeout=self._timeout)
        except ApiException as e:
            mapped = self._map_plaid_error(e)
            logger.warning("Plaid %s failed: %s", operation, mapped)
            raise mapped from e
        except Urllib3HTTPError as e:
            logger.warning("Plaid %s unreachable: %s", operation, e)
            raise ProviderUnavailableError(
                f"Plaid {operation} failed: {e}", provider_name=PROVIDER_NAME
            ) from e

    # ------------------------------------------------------------------
    # Link Token & Token Exchange
    # ------------------------------------------------------------------

    def create_link_token(
        self,
        client_user_id: str,
        client_name: str | None = None,
        products: list[str] | None = None,
        country_codes: list[str] | None = None,
        language: str | None = None,
    ) -> ProviderLinkToken:
        """Create a Plaid Link token for the client-side auth flow.

        Returns:
            ProviderLinkToken with the link_token and its expiration.
        """
        api = self._get_api()
        kwargs = {
            "user": LinkTokenCreateRequestUser(client_user_id=client_user_id),
            "client_name": client_name or "North",
            "products": [Products(p) for p in (products or ["transactions"])],
            "country_codes": [
                CountryCode(c.upper())
                for c in (country_codes or settings.plaid_country_codes)
            ],
            "language": language or "en",
        }
        if settings.PLAID_WEBHOOK_URL:
            kwargs["webhook"] = settings.PLAID_WEBHOOK_URL
        response = self._call("link_token_create", api.link_token_create, LinkTokenCreateRequest(**kwargs))

        expiration = response.get("expiration")
        if isinstance(expiration, datetime):
            expiration = expiration.isoformat()
        return ProviderLinkToken(link_token=response["link_token"], expiration=expiration)

    def exchange_public_token(self, public_token: str) -> ProviderExchangeResult:
        """Exchange a Plaid Link public_token for a permanent access_token.

        Also resolves the institution the Item belongs to, so the caller
        gets everything it needs to persist the link in one typed value.

        Args:
            public_token: The public_token from Plaid Link on-success callback.

        Returns:
            ProviderExchangeResult with access token, item id and institution.
        """
        api = self._get_api()
        response = self._call(
            "item_public_token_exchange",
            api.item_public_token_exchange,
            ItemPublicTokenExchangeRequest(public_token=public_token),
        )
        access_token = response["access_token"]
        item_id = response["item_id"]
        if not access_token or not item_id:
            raise ProviderDataError(
                "Plaid exchange response missing access_token or item_id",
                provider_name=PROVIDER_NAME,
            )

        institution_id, institution_name = self._resolve_institution(api, access_token)
        logger.info("Plaid item %s linked (%s)", item_id, institution_name)
        return ProviderExchangeResult(
            access_token=access_token,
            item_id=item_id,
            institution_id=institution_id,
            institution_name=institution_name,
        )

    def _resolve_institution(self, api: PlaidApi, access_token: str) -> tuple[str | None, str]:
        """Look up the institution id and display name for an Item.

        The name lookup is best effort: if it fails the institution id (or
        "Unknown Bank") stands in for the name.
        """
        item_response = self._call("item_get", api.item_get, ItemGetRequest(access_token=access_token))
        item = item_response.get("item") or {}
        institution_id = item.get("institution_id")
        if not institution_id:
            return None, "Unknown Bank"

        try:
            inst_response = self._call(
                "institutions_get_by_id",
                api.institutions_get_by_id,
                InstitutionsGetByIdRequest(
                    institution_id=institution_id,
                    country_codes=[CountryCode(c) for c in settings.plaid_country_codes],
                ),
            )
            return institution_id, inst_response["institution"]["name"]
        except ProviderError as e:
            logger.warning("Could not fetch institution name for %s: %s", institution_id, e)
            return institution_id, institution_id

    def remove_item(self, access_token: str) -> None:
        """Revoke an access token by calling Plaid's /item/remove endpoint."""
        api = self._get_api()
        self._call("item_remove", api.item_remove, ItemRemoveRequest(access_token=access_token))

    def get_webhook_verification_key(self, key_id: str) -> dict:
        """Fetch the public JWK Plaid signs webhooks with.

        Returns:
            The JWK fields (kty, crv, x, y, alg, kid, expired_at) as a dict.
        """
        api = self._get_api()
        response = self._call(
            "webhook_verification_key_get",
            api.webhook_verification_key_get,
            WebhookVerificationKeyGetRequest(key_id=key_id),
        )
        key = response.get("key")
        if not key:
            raise ProviderDataError(
                f"No verification key returned for key id {key_id}",
                provider_name=PROVIDER_NAME,
            )
        return {field: key.get(field) for field in _JWK_FIELDS}

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_accounts(self, access_token: str) -> list[ProviderAccount]:
        """Fetch the accounts of a single Item with their cached balances."""
        api = self._get_api()
        response = self._call(
            "accounts_get", api.accounts_get, AccountsGetRequest(access_token=access_token)
        )

        accounts: list[ProviderAccount] = []
        for acct in response.get("accounts", []) or []:
            account_id = acct.get("account_id")
            if not account_id:
                continue
            balances = acct.get("balances") or {}
            currency = balances.get("iso_currency_code") or balances.get("unofficial_currency_code")
            accounts.append(ProviderAccount(
                account_id=account_id,
                name=acct.get("name") or acct.get("official_name") or "Plaid Account",
                type=_enum_value(acct.get("type")),
                subtype=_enum_value(acct.get("subtype")),
                mask=acct.get("mask"),
                current_balance=self._to_decimal(balances.get("current")),
                available_balance=self._to_decimal(balances.get("available")),
                currency=currency.upper() if currency else None,
            ))
        return accounts

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def get_transactions(
        self,
        access_token: str,
        start_date: date,
        end_date: date,
    ) -> list[ProviderTransaction]:
        """Fetch transactions for a single Item with pagination.

        Args:
            access_token: The Item's access token.
            start_date: First posted date to include.
            end_date: Last posted date to include.

        Returns:
            List of ProviderTransaction objects.
        """
        api = self._get_api()
        transactions: list[ProviderTransaction] = []
        total_transactions = None
        offset = 0

        while True:
            request = TransactionsGetRequest(
                access_token=access_token,
                start_date=start_date,
                end_date=end_date,
                options=TransactionsGetRequestOptions(
                    count=_TRANSACTIONS_PAGE_SIZE, offset=offset
                ),
            )
            response = self._call("transactions_get", api.transactions_get, request)

            if total_transactions is None:
                total_transactions = response.get("total_transactions", 0) or 0

            page = response.get("transactions", []) or []
            for txn in page:
                mapped = self._map_transaction(txn)
                if mapped:
                    transactions.append(mapped)

            offset += len(page)
            if not page or offset >= total_transactions:
                break

        logger.info(
            "Plaid: %d transactions fetched (%s to %s)",
            len(transactions), start_date, end_date,
        )
        return transactions

    def _map_transaction(self, txn) -> ProviderTransaction | None:
        """Map a Plaid transaction to a ProviderTransaction.

        Plaid sign convention: positive amount = money leaving the account.
        Ours: outflows are negative, so the sign is flipped.
        """
        external_id = txn.get("transaction_id")
        account_id = txn.get("account_id")
        if not external_id or not account_id:
            return None

        raw_amount = self._to_decimal(txn.get("amount"))
        if raw_amount is None:
            return None

        posted = self._to_date(txn.get("date"))
        if posted is None:
            return None

        currency = txn.get("iso_currency_code") or txn.get("unofficial_currency_code")

        return ProviderTransaction(
            account_id=account_id,
            external_id=external_id,
            amount=-raw_amount,
            posted_date=posted,
            description=txn.get("name") or txn.get("merchant_name") or "",
            currency=currency.upper() if currency else None,
            merchant_name=txn.get("merchant_name"),
            category=self._primary_category(txn),
            pending=bool(txn.get("pending")),
        )

    @staticmethod
    def _primary_category(txn) -> str | None:
        """Primary category: personal_finance_category, else legacy category[0]."""
        pfc = txn.get("personal_finance_category")
        if pfc:
            primary = pfc.get("primary")
            if primary:
                return str(primary)
        legacy = txn.get("category")
        if legacy:
            return str(legacy[0])
        return None

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _map_plaid_error(exc: ApiException) -> ProviderError:
        """Map a Plaid ApiException to a typed ProviderError."""
        status = exc.status or 0
        message = str(exc)

        # Try to extract error_code from the body
        error_code = ""
        error_type = ""
        try:
            body = json.loads(exc.body) if exc.body else {}
            error_code = body.get("error_code", "") or ""
            error_type = body.get("error_type", "") or ""
            error_message = body.get("error_message", "")
            if error_message:
                message = f"Plaid error ({error_code}): {error_message}"
        except (TypeError, ValueError, AttributeError):
            pass

        if (
            status in (401, 403)
            or error_code in _REJECTED_ERROR_CODES
            or error_type == "INVALID_INPUT"
        ):
            return ProviderRejectedError(message, provider_name=PROVIDER_NAME, error_code=error_code)
        if status == 429 or status >= 500 or error_type in ("RATE_LIMIT_EXCEEDED", "API_ERROR", "INSTITUTION_ERROR"):
            return ProviderUnavailableError(message, provider_name=PROVIDER_NAME)
        return ProviderAPIError(
            message, provider_name=PROVIDER_NAME, status_code=status or None, error_code=error_code
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_decimal(value) -> Decimal | None:
        """Convert a value to Decimal, returning None on failure."""
        if value is None:
            return None
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None

    @staticmethod
    def _to_date(value) -> date | None:
        """Convert an SDK date (date, datetime or ISO string) to a date."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            return None



"""Unit tests for PlaidClient provider protocol implementation."""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from plaid import ApiException
from urllib3.exceptions import ReadTimeoutError

from integrations.exceptions import (
    ProviderAPIError,
    ProviderDataError,
    ProviderNotConfiguredError,
    ProviderRejectedError,
    ProviderUnavailableError,
)
from integrations.plaid_client import PlaidClient


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_settings():
    """Fixture that mocks settings with configured Plaid credentials."""
    with patch("integrations.plaid_client.settings") as ms:
        ms.PLAID_CLIENT_ID = "test-client-id"
        ms.PLAID_SECRET = "test-secret"
        ms.PLAID_ENVIRONMENT = "sandbox"
        ms.PLAID_WEBHOOK_URL = ""
        ms.PROVIDER_TIMEOUT_SECONDS = 7
        ms.plaid_country_codes = ["US", "CA"]
        yield ms


@pytest.fixture
def mock_empty_settings():
    """Fixture that mocks settings with empty Plaid credentials."""
    with patch("integrations.plaid_client.settings") as ms:
        ms.PLAID_CLIENT_ID = ""
        ms.PLAID_SECRET = ""
        ms.PLAID_ENVIRONMENT = "sandbox"
        ms.PROVIDER_TIMEOUT_SECONDS = 7
        yield ms


@pytest.fixture
def mock_plaid_api():
    """Fixture that provides a mocked PlaidApi."""
    with patch("integrations.plaid_client.PlaidApi") as MockCls:
        api_instance = MagicMock()
        MockCls.return_value = api_instance
        yield api_instance


@pytest.fixture
def client(mock_settings, mock_plaid_api):
    with patch("integrations.plaid_client.ApiClient"):
        yield PlaidClient()


def _api_exception(status: int, body: str = "{}") -> ApiException:
    exc = ApiException(status=status, reason="error")
    exc.body = body
    return exc


def _plaid_txn(**overrides) -> dict:
    txn = {
        "transaction_id": "txn_001",
        "account_id": "acc_001",
        "amount": 42.50,  # Plaid: positive = money out
        "date": date(2026, 3, 14),
        "name": "Blue Bottle Coffee",
        "merchant_name": "Blue Bottle",
        "iso_currency_code": "usd",
        "personal_finance_category": {"primary": "FOOD_AND_DRINK"},
        "category": ["Food and Drink", "Coffee"],
        "pending": False,
    }
    txn.update(overrides)
    return txn


# ---------------------------------------------------------------------------
# Tests: Configuration
# ---------------------------------------------------------------------------


class TestPlaidClientConfig:
    def test_is_configured_with_credentials(self, mock_settings):
        assert PlaidClient().is_configured() is True

    def test_is_not_configured_without_credentials(self, mock_empty_settings):
        assert PlaidClient().is_configured() is False

    def test_provider_name(self, mock_settings):
        assert PlaidClient().provider_name == "Plaid"

    def test_unconfigured_call_raises_before_any_request(self, mock_empty_settings, mock_plaid_api):
        with pytest.raises(ProviderNotConfiguredError):
            PlaidClient().exchange_public_token("public-sandbox-x")
        mock_plaid_api.item_public_token_exchange.assert_not_called()

    def test_explicit_credentials_override_settings(self, mock_empty_settings):
        client = PlaidClient(client_id="id", secret="secret", environment="production")
        assert client.is_configured() is True


# ---------------------------------------------------------------------------
# Tests: Link token and exchange
# ---------------------------------------------------------------------------


class TestLinkFlow:
    def test_create_link_token(self, client, mock_plaid_api):
        mock_plaid_api.link_token_create.return_value = {
            "link_token": "link-sandbox-abc123",
            "expiration": "2026-03-14T12:00:00Z",
        }

        token = client.create_link_token("user-1")

        assert token.link_token == "link-sandbox-abc123"
        assert token.expiration == "2026-03-14T12:00:00Z"
        request = mock_plaid_api.link_token_create.call_args[0][0]
        assert request.client_name == "North"
        assert request.user.client_user_id == "user-1"
        assert [c.value for c in request.country_codes] == ["US", "CA"]

    def test_every_call_carries_timeout(self, client, mock_plaid_api):
        mock_plaid_api.link_token_create.return_value = {"link_token": "link-x"}

        client.create_link_token("user-1")

        assert mock_plaid_api.link_token_create.call_args.kwargs["_request_timeout"] == 7

    def test_exchange_public_token_resolves_institution(self, client, mock_plaid_api):
        mock_plaid_api.item_public_token_exchange.return_value = {
            "access_token": "access-sandbox-xyz",
            "item_id": "item-sandbox-xyz",
        }
        mock_plaid_api.item_get.return_value = {"item": {"institution_id": "ins_109508"}}
        mock_plaid_api.institutions_get_by_id.return_value = {
            "institution": {"name": "First Platypus Bank"}
        }

        result = client.exchange_public_token("public-sandbox-test")

        assert result.access_token == "access-sandbox-xyz"
        assert result.item_id == "item-sandbox-xyz"
        assert result.institution_id == "ins_109508"
        assert result.institution_name == "First Platypus Bank"

    def test_exchange_falls_back_when_institution_lookup_fails(self, client, mock_plaid_api):
        mock_plaid_api.item_public_token_exchange.return_value = {
            "access_token": "access-sandbox-xyz",
            "item_id": "item-sandbox-xyz",
        }
        mock_plaid_api.item_get.return_value = {"item": {"institution_id": "ins_3"}}
        mock_plaid_api.institutions_get_by_id.side_effect = _api_exception(500)

        result = client.exchange_public_token("public-sandbox-test")

        assert result.institution_name == "ins_3"

    def test_exchange_invalid_public_token(self, client, mock_plaid_api):
        mock_plaid_api.item_public_token_exchange.side_effect = _api_exception(
            400,
            '{"error_type": "INVALID_INPUT", "error_code": "INVALID_PUBLIC_TOKEN",'
            ' "error_message": "provided public token is in an invalid format"}',
        )

        with pytest.raises(ProviderRejectedError) as exc_info:
            client.exchange_public_token("public-sandbox-bad")

        assert exc_info.value.error_code == "INVALID_PUBLIC_TOKEN"
        assert exc_info.value.retriable is False

    def test_exchange_timeout_is_unavailable(self, client, mock_plaid_api):
        mock_plaid_api.item_public_token_exchange.side_effect = ReadTimeoutError(
            None, "/item/public_token/exchange", "Read timed out."
        )

        with pytest.raises(ProviderUnavailableError) as exc_info:
            client.exchange_public_token("public-sandbox-test")

        assert exc_info.value.retriable is True

    def test_remove_item(self, client, mock_plaid_api):
        mock_plaid_api.item_remove.return_value = {"request_id": "r1"}

        client.remove_item("access-sandbox-xyz")

        mock_plaid_api.item_remove.assert_called_once()
        call_args = mock_plaid_api.item_remove.call_args[0][0]
        assert call_args.access_token == "access-sandbox-xyz"


# ---------------------------------------------------------------------------
# Tests: Transactions
# ---------------------------------------------------------------------------


class TestGetTransactions:
    def test_maps_transaction_and_flips_sign(self, client, mock_plaid_api):
        mock_plaid_api.transactions_get.return_value = {
            "transactions": [_plaid_txn()],
            "total_transactions": 1,
        }

        txns = client.get_transactions("access-x", date(2026, 1, 1), date(2026, 3, 31))

        assert len(txns) == 1
        t = txns[0]
        assert t.external_id == "txn_001"
        assert t.account_id == "acc_001"
        assert t.amount == Decimal("-42.5")
        assert t.posted_date == date(2026, 3, 14)
        assert t.currency == "USD"
        assert t.category == "FOOD_AND_DRINK"
        assert t.merchant_name == "Blue Bottle"

    def test_refund_is_positive(self, client, mock_plaid_api):
        mock_plaid_api.transactions_get.return_value = {
            "transactions": [_plaid_txn(amount=-20.00)],
            "total_transactions": 1,
        }

        txns = client.get_transactions("access-x", date(2026, 1, 1), date(2026, 3, 31))

        assert txns[0].amount == Decimal("20.0")

    def test_legacy_category_fallback(self, client, mock_plaid_api):
        mock_plaid_api.transactions_get.return_value = {
            "transactions": [_plaid_txn(personal_finance_category=None)],
            "total_transactions": 1,
        }

        txns = client.get_transactions("access-x", date(2026, 1, 1), date(2026, 3, 31))

        assert txns[0].category == "Food and Drink"

    def test_paginates_until_total(self, client, mock_plaid_api):
        page1 = [_plaid_txn(transaction_id=f"t{i}") for i in range(3)]
        page2 = [_plaid_txn(transaction_id="t3")]
        mock_plaid_api.transactions_get.side_effect = [
            {"transactions": page1, "total_transactions": 4},
            {"transactions": page2, "total_transactions": 4},
        ]

        txns = client.get_transactions("access-x", date(2026, 1, 1), date(2026, 3, 31))

        assert [t.external_id for t in txns] == ["t0", "t1", "t2", "t3"]
        assert mock_plaid_api.transactions_get.call_count == 2
        second_request = mock_plaid_api.transactions_get.call_args_list[1][0][0]
        assert second_request.options.offset == 3

    def test_skips_missing_id(self, client, mock_plaid_api):
        mock_plaid_api.transactions_get.return_value = {
            "transactions": [_plaid_txn(transaction_id=None)],
            "total_transactions": 1,
        }

        assert client.get_transactions("access-x", date(2026, 1, 1), date(2026, 3, 31)) == []

    def test_revoked_access_token(self, client, mock_plaid_api):
        mock_plaid_api.transactions_get.side_effect = _api_exception(
            400, '{"error_code": "ITEM_LOGIN_REQUIRED", "error_message": "login needed"}'
        )

        with pytest.raises(ProviderRejectedError):
            client.get_transactions("access-x", date(2026, 1, 1), date(2026, 3, 31))


# ---------------------------------------------------------------------------
# Tests: Accounts
# ---------------------------------------------------------------------------


class TestGetAccounts:
    def test_maps_accounts_and_balances(self, client, mock_plaid_api):
        mock_plaid_api.accounts_get.return_value = {
            "accounts": [
                {
                    "account_id": "acc_001",
                    "name": "Plaid Checking",
                    "official_name": "Plaid Gold Standard 0% Interest Checking",
                    "type": "depository",
                    "subtype": "checking",
                    "mask": "0000",
                    "balances": {"current": 110.5, "available": 100, "iso_currency_code": "usd"},
                },
                {
                    "account_id": "acc_002",
                    "name": None,
                    "official_name": "Plaid Credit Card",
                    "type": "credit",
                    "subtype": "credit card",
                    "balances": {"current": 410, "available": None, "unofficial_currency_code": "btc"},
                },
            ]
        }

        accounts = client.get_accounts("access-x")

        checking, card = accounts
        assert checking.account_id == "acc_001"
        assert checking.name == "Plaid Checking"
        assert checking.type == "depository"
        assert checking.subtype == "checking"
        assert checking.mask == "0000"
        assert checking.current_balance == Decimal("110.5")
        assert checking.available_balance == Decimal("100")
        assert checking.currency == "USD"
        assert card.name == "Plaid Credit Card"
        assert card.available_balance is None
        assert card.currency == "BTC"
        request = mock_plaid_api.accounts_get.call_args[0][0]
        assert request.access_token == "access-x"

    def test_skips_missing_id(self, client, mock_plaid_api):
        mock_plaid_api.accounts_get.return_value = {"accounts": [{"account_id": None, "name": "x"}]}

        assert client.get_accounts("access-x") == []

    def test_login_required(self, client, mock_plaid_api):
        mock_plaid_api.accounts_get.side_effect = _api_exception(
            400, '{"error_code": "ITEM_LOGIN_REQUIRED", "error_message": "login needed"}'
        )

        with pytest.raises(ProviderRejectedError):
            client.get_accounts("access-x")


# ---------------------------------------------------------------------------
# Tests: Webhook verification keys
# ---------------------------------------------------------------------------


class TestWebhookVerificationKey:
    def test_returns_jwk_fields(self, client, mock_plaid_api):
        mock_plaid_api.webhook_verification_key_get.return_value = {
            "key": {
                "alg": "ES256",
                "crv": "P-256",
                "kid": "kid-1",
                "kty": "EC",
                "use": "sig",
                "x": "xval",
                "y": "yval",
                "created_at": 1560466143,
                "expired_at": None,
            }
        }

        jwk = client.get_webhook_verification_key("kid-1")

        assert jwk == {
            "alg": "ES256", "crv": "P-256", "kid": "kid-1", "kty": "EC",
            "use": "sig", "x": "xval", "y": "yval", "expired_at": None,
        }
        request = mock_plaid_api.webhook_verification_key_get.call_args[0][0]
        assert request.key_id == "kid-1"

    def test_missing_key(self, client, mock_plaid_api):
        mock_plaid_api.webhook_verification_key_get.return_value = {"key": None}

        with pytest.raises(ProviderDataError):
            client.get_webhook_verification_key("kid-1")


# ---------------------------------------------------------------------------
# Tests: Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    def test_auth_error_401(self):
        error = PlaidClient._map_plaid_error(
            _api_exception(401, '{"error_code": "INVALID_API_KEYS", "error_message": "bad keys"}')
        )

        assert isinstance(error, ProviderRejectedError)
        assert "bad keys" in str(error)
        assert not error.retriable

    def test_rate_limit_429(self):
        error = PlaidClient._map_plaid_error(_api_exception(429))

        assert isinstance(error, ProviderUnavailableError)
        assert error.retriable is True

    def test_server_error_500(self):
        error = PlaidClient._map_plaid_error(_api_exception(500))

        assert isinstance(error, ProviderUnavailableError)
        assert error.retriable is True

    def test_item_not_found(self):
        error = PlaidClient._map_plaid_error(
            _api_exception(400, '{"error_code": "ITEM_NOT_FOUND"}')
        )

        assert isinstance(error, ProviderRejectedError)
        assert error.error_code == "ITEM_NOT_FOUND"

    def test_other_client_error(self):
        error = PlaidClient._map_plaid_error(
            _api_exception(400, '{"error_type": "INVALID_REQUEST", "error_code": "MISSING_FIELDS"}')
        )

        assert isinstance(error, ProviderAPIError)
        assert error.status_code == 400
        assert error.error_code == "MISSING_FIELDS"
        assert error.retriable is False

    def test_unparseable_body(self):
        error = PlaidClient._map_plaid_error(_api_exception(400, "<html>oops</html>"))

        assert isinstance(error, ProviderAPIError)

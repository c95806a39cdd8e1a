"""Public token exchange orchestration.

Runs the link flow for one public token: exchange it for an access token,
persist the linked account, sync its transactions and refresh the user's
insights. Each stage reports independently in a ``SyncOutcome`` so a caller
can tell "nothing happened" from "linked, but the sync stalled".
"""

import logging
import re
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from integrations.exceptions import (
    ProviderAPIError,
    ProviderDataError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderRejectedError,
    ProviderUnavailableError,
)
from integrations.provider_protocol import ErrorCategory, ProviderClient
from models import User
from services.exceptions import (
    DuplicateLinkError,
    InvalidInputError,
    UnauthorizedError,
)
from services.insight_service import InsightGenerator, InsightService
from services.linked_account_service import LinkedAccountService
from services.token_cipher import TokenCipher
from services.transaction_sync_service import TransactionSyncService

logger = logging.getLogger(__name__)

PUBLIC_TOKEN_PATTERN = re.compile(
    r"^public-(sandbox|development|production)-"
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

STAGE_EXCHANGE = "exchange"
STAGE_SYNC = "sync"
STAGE_INSIGHTS = "insights"


@dataclass
class StageError:
    """A failure captured from one stage of the link flow."""

    stage: str
    category: ErrorCategory
    retriable: bool
    message: str


@dataclass
class SyncOutcome:
    """Composite result of one exchange, sync and insight cycle.

    The three flags are independent; ``institution_name`` is set as soon
    as the exchange succeeds, even if a later stage fails.
    """

    token_exchanged: bool = False
    transactions_synced: bool = False
    insights_generated: bool = False
    institution_name: str | None = None
    linked_account_id: str | None = None
    transactions_added: int = 0
    insight_count: int = 0
    errors: list[StageError] = field(default_factory=list)


def classify_error(stage: str, error: Exception) -> StageError:
    """Describe a stage failure for the caller's retry decision."""
    if isinstance(error, ProviderRejectedError):
        category, retriable = ErrorCategory.AUTH, False
    elif isinstance(error, ProviderUnavailableError):
        category, retriable = ErrorCategory.CONNECTION, error.retriable
    elif isinstance(error, ProviderAPIError):
        category = ErrorCategory.RATE_LIMIT if error.status_code == 429 else ErrorCategory.UNKNOWN
        retriable = error.retriable
    elif isinstance(error, ProviderDataError):
        category, retriable = ErrorCategory.DATA, False
    elif isinstance(error, SQLAlchemyError):
        return StageError(stage, ErrorCategory.DATABASE, True, "Database error")
    elif isinstance(error, ProviderError):
        category, retriable = ErrorCategory.UNKNOWN, error.retriable
    else:
        return StageError(stage, ErrorCategory.UNKNOWN, False, "Unexpected error")
    return StageError(stage, category, retriable, str(error))


def validate_public_token(public_token) -> str:
    """Check the public token shape without any I/O.

    Raises:
        InvalidInputError: Not a non-empty ``public-<env>-<uuid>`` string.
    """
    if not isinstance(public_token, str) or not public_token:
        raise InvalidInputError("public_token is required")
    token = public_token.strip()
    if not PUBLIC_TOKEN_PATTERN.match(token):
        raise InvalidInputError("public_token is malformed")
    return token


class ExchangeService:
    """Orchestrates the link flow for a public token."""

    def __init__(
        self,
        client: ProviderClient,
        cipher: TokenCipher | None = None,
        generator: InsightGenerator | None = None,
    ):
        self._client = client
        self._cipher = cipher or TokenCipher()
        self._generator = generator
        self._sync_service = TransactionSyncService(client, self._cipher)

    def exchange_and_sync(self, db: Session, public_token, caller: User | None) -> SyncOutcome:
        """Exchange a public token and run the follow-up stages.

        Stage failures after the exchange are captured in the outcome.
        Each stage commits its own work, so a later failure never undoes an
        earlier stage.

        Raises:
            UnauthorizedError: Caller is not a persisted user.
            InvalidInputError: Malformed public token (no provider call made).
            DuplicateLinkError: Institution already linked for this caller.
            ProviderNotConfiguredError: Provider credentials are missing.
        """
        if caller is None or caller.id is None or db.get(User, caller.id) is None:
            raise UnauthorizedError("Caller is not an authenticated user")
        token = validate_public_token(public_token)

        outcome = SyncOutcome()

        account = self._exchange(db, token, caller, outcome)
        if account is None:
            return outcome

        self._sync(db, account, outcome)
        self._refresh_insights(db, caller, outcome)

        logger.info(
            "Link flow for user %s (%s): exchanged=%s synced=%s insights=%s",
            caller.id, outcome.institution_name, outcome.token_exchanged,
            outcome.transactions_synced, outcome.insights_generated,
        )
        return outcome

    def _exchange(self, db: Session, token: str, caller: User, outcome: SyncOutcome):
        try:
            result = self._client.exchange_public_token(token)
        except ProviderNotConfiguredError:
            raise
        except ProviderError as e:
            logger.warning("Public token exchange failed for user %s: %s", caller.id, e)
            outcome.errors.append(classify_error(STAGE_EXCHANGE, e))
            return None

        outcome.institution_name = result.institution_name

        try:
            account = LinkedAccountService.create(db, caller, result, self._cipher)
            db.commit()
        except DuplicateLinkError:
            db.rollback()
            logger.info("Duplicate link of %s for user %s", result.institution_name, caller.id)
            self._revoke(result.access_token, result.item_id)
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Persisting linked account failed for user %s: %s", caller.id, e)
            outcome.errors.append(classify_error(STAGE_EXCHANGE, e))
            self._revoke(result.access_token, result.item_id)
            return None

        outcome.token_exchanged = True
        outcome.linked_account_id = account.id
        return account

    def _sync(self, db: Session, account, outcome: SyncOutcome) -> None:
        try:
            outcome.transactions_added = self._sync_service.sync(db, account)
            db.commit()
            outcome.transactions_synced = True
        except Exception as e:
            if isinstance(e, (ProviderError, SQLAlchemyError)):
                logger.warning("Transaction sync failed for %s: %s", account.id, e)
            else:
                logger.exception("Unexpected error syncing %s", account.id)
            outcome.errors.append(classify_error(STAGE_SYNC, e))
            # Keep the recorded failure status when the database allows it
            try:
                db.commit()
            except SQLAlchemyError:
                db.rollback()

    def _refresh_insights(self, db: Session, caller: User, outcome: SyncOutcome) -> None:
        try:
            outcome.insight_count = InsightService.refresh_all(db, caller, self._generator)
            db.commit()
            outcome.insights_generated = True
        except Exception as e:
            db.rollback()
            if isinstance(e, SQLAlchemyError):
                logger.warning("Insight refresh failed for user %s: %s", caller.id, e)
            else:
                logger.exception("Unexpected error generating insights for user %s", caller.id)
            outcome.errors.append(classify_error(STAGE_INSIGHTS, e))

    def _revoke(self, access_token: str, item_id: str) -> None:
        """Revoke an access token that will not be kept. Best effort."""
        try:
            self._client.remove_item(access_token)
            logger.info("Revoked unused item %s", item_id)
        except ProviderError as e:
            logger.warning("Could not revoke unused item %s: %s", item_id, e)

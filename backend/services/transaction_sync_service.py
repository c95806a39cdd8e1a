"""Transaction sync service - pulls provider transactions into storage."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import ProviderError, ProviderRejectedError
from integrations.provider_protocol import ProviderAccount, ProviderClient, ProviderTransaction
from models import BankAccount, LinkedAccount, Transaction, User
from services.linked_account_service import LinkedAccountService
from services.token_cipher import TokenCipher

logger = logging.getLogger(__name__)


@dataclass
class AccountSyncResult:
    """Per-account result of a multi-account sync."""

    linked_account_id: str
    institution_name: str
    success: bool
    transactions_added: int = 0
    error: str | None = None


class TransactionSyncService:
    """Service that fetches transactions for linked accounts and stores them.

    Repeated syncs over overlapping windows are idempotent: rows are keyed
    by ``(account_id, external_id)`` and existing rows are never updated.
    """

    def __init__(self, client: ProviderClient, cipher: TokenCipher | None = None):
        self._client = client
        self._cipher = cipher

    @staticmethod
    def sync_window_start(account: LinkedAccount, today: date) -> date:
        """First posted date to request for an account.

        A first sync looks back TRANSACTION_HISTORY_DAYS; later syncs
        re-read TRANSACTION_SYNC_OVERLAP_DAYS before the last successful
        sync so late-posting transactions are picked up.
        """
        history_start = today - timedelta(days=settings.TRANSACTION_HISTORY_DAYS)
        if account.last_sync_time is None or account.last_sync_status != "success":
            return history_start
        overlap_start = account.last_sync_time.date() - timedelta(
            days=settings.TRANSACTION_SYNC_OVERLAP_DAYS
        )
        return max(overlap_start, history_start)

    def sync(
        self,
        db: Session,
        account: LinkedAccount,
        since_date: date | None = None,
        today: date | None = None,
    ) -> int:
        """Sync one linked account.

        Args:
            db: Database session. Rows are flushed, not committed.
            account: The linked account to sync.
            since_date: Explicit window start; defaults to the incremental window.
            today: Window end (defaults to the current date).

        Returns:
            Number of new transactions stored (0 is a valid outcome).

        Raises:
            ProviderRejectedError: Access token invalid or revoked.
            ProviderUnavailableError: Provider unreachable; retry later.
            SQLAlchemyError: Storing the transactions failed.
        """
        end_date = today or date.today()
        start_date = since_date or self.sync_window_start(account, end_date)

        try:
            access_token = LinkedAccountService.access_token_for(account, self._cipher)
        except ValueError as e:
            error = ProviderRejectedError(
                "Stored access token is unreadable; re-link required",
                provider_name=self._client.provider_name,
            )
            self._record_failure(db, account, error)
            raise error from e

        try:
            provider_accounts = self._client.get_accounts(access_token)
            provider_txns = self._client.get_transactions(access_token, start_date, end_date)
        except ProviderError as e:
            self._record_failure(db, account, e)
            raise

        try:
            with db.begin_nested():
                self._store_bank_accounts(db, account, provider_accounts)
                new_count = self._store(db, account, provider_txns)
        except SQLAlchemyError as e:
            logger.error("Storing transactions for %s failed: %s", account.id, e)
            self._record_failure(db, account, e)
            raise

        account.last_sync_time = datetime.now(timezone.utc)
        account.last_sync_status = "success"
        account.last_sync_error = None
        db.flush()

        logger.info(
            "Synced %s (%s): %d fetched, %d new (%s to %s)",
            account.institution_name, account.id, len(provider_txns), new_count,
            start_date, end_date,
        )
        return new_count

    @staticmethod
    def _store_bank_accounts(
        db: Session,
        account: LinkedAccount,
        provider_accounts: list[ProviderAccount],
    ) -> None:
        """Insert or update the Item's bank accounts and their balances."""
        existing = {
            ba.account_id: ba
            for ba in db.query(BankAccount).filter(BankAccount.linked_account_id == account.id)
        }
        for pa in provider_accounts:
            row = existing.get(pa.account_id)
            if row is None:
                row = BankAccount(
                    owner_id=account.owner_id,
                    linked_account_id=account.id,
                    account_id=pa.account_id,
                )
                db.add(row)
                existing[pa.account_id] = row
            row.name = pa.name
            row.type = pa.type
            row.subtype = pa.subtype
            row.mask = pa.mask
            row.current_balance = pa.current_balance
            row.available_balance = pa.available_balance
            row.currency = pa.currency
        db.flush()

    def _store(
        self,
        db: Session,
        account: LinkedAccount,
        provider_txns: list[ProviderTransaction],
    ) -> int:
        """Insert transactions not already stored. Returns the insert count."""
        if not provider_txns:
            return 0

        account_ids = {pt.account_id for pt in provider_txns}
        seen = set(
            db.query(Transaction.account_id, Transaction.external_id)
            .filter(Transaction.account_id.in_(account_ids))
            .all()
        )

        pending_rows: list[Transaction] = []
        for pt in provider_txns:
            key = (pt.account_id, pt.external_id)
            if key in seen:
                continue
            seen.add(key)
            pending_rows.append(self._to_model(account, pt))

        if not pending_rows:
            return 0

        try:
            with db.begin_nested():
                db.add_all(pending_rows)
                db.flush()
            return len(pending_rows)
        except IntegrityError:
            # A concurrent sync inserted some of the same rows; retry one
            # row at a time and skip the conflicts.
            logger.info("Concurrent insert detected for %s, retrying row by row", account.id)

        inserted = 0
        for row in pending_rows:
            retry = self._clone(row)
            try:
                with db.begin_nested():
                    db.add(retry)
                    db.flush()
                inserted += 1
            except IntegrityError:
                continue
        return inserted

    @staticmethod
    def _to_model(account: LinkedAccount, pt: ProviderTransaction) -> Transaction:
        return Transaction(
            owner_id=account.owner_id,
            linked_account_id=account.id,
            account_id=pt.account_id,
            external_id=pt.external_id,
            amount=pt.amount,
            currency=pt.currency,
            posted_date=pt.posted_date,
            description=pt.description,
            merchant_name=pt.merchant_name,
            category=pt.category,
            pending=pt.pending,
        )

    @staticmethod
    def _clone(row: Transaction) -> Transaction:
        return Transaction(
            owner_id=row.owner_id,
            linked_account_id=row.linked_account_id,
            account_id=row.account_id,
            external_id=row.external_id,
            amount=row.amount,
            currency=row.currency,
            posted_date=row.posted_date,
            description=row.description,
            merchant_name=row.merchant_name,
            category=row.category,
            pending=row.pending,
        )

    @staticmethod
    def _record_failure(db: Session, account: LinkedAccount, error: Exception) -> None:
        """Record a failed sync on the account row."""
        account.last_sync_time = datetime.now(timezone.utc)
        account.last_sync_status = "failed"
        account.last_sync_error = str(error)[:500]
        if isinstance(error, ProviderRejectedError) and account.status != "revoked":
            account.status = "login_required"
        try:
            db.flush()
        except SQLAlchemyError:
            logger.warning("Could not record sync failure for %s", account.id, exc_info=True)

    def sync_owner(
        self,
        db: Session,
        owner: User,
        linked_account_id: str | None = None,
    ) -> list[AccountSyncResult]:
        """Sync every linked account of a user (or just one).

        Accounts the user revoked at the provider are skipped. Commits after
        each account so one failing institution never rolls back another's
        transactions.
        """
        query = db.query(LinkedAccount).filter(
            LinkedAccount.owner_id == owner.id,
            LinkedAccount.status != "revoked",
        )
        if linked_account_id is not None:
            query = query.filter(LinkedAccount.id == linked_account_id)

        results: list[AccountSyncResult] = []
        for account in query.order_by(LinkedAccount.created_at).all():
            try:
                added = self.sync(db, account)
                db.commit()
                results.append(
                    AccountSyncResult(
                        linked_account_id=account.id,
                        institution_name=account.institution_name,
                        success=True,
                        transactions_added=added,
                    )
                )
            except (ProviderError, SQLAlchemyError) as e:
                logger.warning("Sync failed for %s: %s", account.institution_name, e)
                try:
                    db.commit()
                except SQLAlchemyError:
                    db.rollback()
                results.append(
                    AccountSyncResult(
                        linked_account_id=account.id,
                        institution_name=account.institution_name,
                        success=False,
                        error=str(e),
                    )
                )
        return results

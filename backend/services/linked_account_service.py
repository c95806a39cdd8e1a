"""Linked account (Plaid Item) persistence."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from integrations.exceptions import ProviderError
from integrations.provider_protocol import ProviderClient, ProviderExchangeResult
from models import LinkedAccount, User
from services.exceptions import DuplicateLinkError, NotFoundError
from services.token_cipher import TokenCipher

logger = logging.getLogger(__name__)


class LinkedAccountService:
    """Service for creating, reading and removing linked accounts."""

    @staticmethod
    def _find_by_institution(db: Session, owner_id: str, institution_name: str) -> LinkedAccount | None:
        return (
            db.query(LinkedAccount)
            .filter(
                LinkedAccount.owner_id == owner_id,
                LinkedAccount.institution_name == institution_name,
            )
            .first()
        )

    @classmethod
    def create(
        cls,
        db: Session,
        owner: User,
        exchange: ProviderExchangeResult,
        cipher: TokenCipher | None = None,
    ) -> LinkedAccount:
        """Persist a linked account for a successful exchange.

        The row is flushed inside a savepoint; the caller commits.

        Raises:
            DuplicateLinkError: The owner already linked this institution,
                either found up front or detected by the unique constraint
                when a concurrent request won the race.
        """
        if cls._find_by_institution(db, owner.id, exchange.institution_name):
            raise DuplicateLinkError(exchange.institution_name)

        cipher = cipher or TokenCipher()
        account = LinkedAccount(
            owner_id=owner.id,
            item_id=exchange.item_id,
            access_token_encrypted=cipher.encrypt(exchange.access_token),
            institution_id=exchange.institution_id,
            institution_name=exchange.institution_name,
            status="active",
        )
        try:
            with db.begin_nested():
                db.add(account)
                db.flush()
        except IntegrityError:
            if cls._find_by_institution(db, owner.id, exchange.institution_name):
                raise DuplicateLinkError(exchange.institution_name)
            raise

        logger.info(
            "Linked account created: %s (id=%s, item=%s)",
            account.institution_name, account.id, account.item_id,
        )
        return account

    @staticmethod
    def list_for_owner(db: Session, owner: User) -> list[LinkedAccount]:
        """List an owner's linked accounts, oldest first."""
        return (
            db.query(LinkedAccount)
            .filter(LinkedAccount.owner_id == owner.id)
            .order_by(LinkedAccount.created_at)
            .all()
        )

    @staticmethod
    def get_for_owner(db: Session, owner: User, linked_account_id: str) -> LinkedAccount:
        """Fetch one of the owner's linked accounts.

        Raises:
            NotFoundError: No such account for this owner.
        """
        account = (
            db.query(LinkedAccount)
            .filter(
                LinkedAccount.id == linked_account_id,
                LinkedAccount.owner_id == owner.id,
            )
            .first()
        )
        if account is None:
            raise NotFoundError("Linked account not found")
        return account

    @staticmethod
    def get_by_item_id(db: Session, item_id: str) -> LinkedAccount | None:
        return db.query(LinkedAccount).filter(LinkedAccount.item_id == item_id).first()

    @staticmethod
    def access_token_for(account: LinkedAccount, cipher: TokenCipher | None = None) -> str:
        """Decrypt the stored access token for provider calls."""
        return (cipher or TokenCipher()).decrypt(account.access_token_encrypted)

    @classmethod
    def remove(
        cls,
        db: Session,
        owner: User,
        linked_account_id: str,
        client: ProviderClient,
        cipher: TokenCipher | None = None,
    ) -> None:
        """Revoke the Item at the provider and delete it locally.

        The local row (and its transactions) is deleted even when the
        provider revocation fails.
        """
        account = cls.get_for_owner(db, owner, linked_account_id)
        try:
            client.remove_item(cls.access_token_for(account, cipher))
        except (ProviderError, ValueError) as e:
            logger.warning(
                "Could not revoke item %s at provider, deleting locally: %s",
                account.item_id, e,
            )

        db.delete(account)
        db.commit()
        logger.info("Linked account removed: %s (id=%s)", account.institution_name, linked_account_id)

    @classmethod
    def mark_item_status(cls, db: Session, item_id: str, status: str) -> LinkedAccount | None:
        """Update the status of the account holding ``item_id``.

        Returns None when the item is unknown.
        """
        account = cls.get_by_item_id(db, item_id)
        if account is None:
            logger.warning("Status update for unknown item %s", item_id)
            return None
        account.status = status
        db.flush()
        logger.info("Item %s status -> %s", item_id, status)
        return account

"""Bank account service for connected account operations."""
import logging
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.core.exceptions import (
    BankAccountInUse,
    BankAccountNotFound,
    ProviderAPIError,
    TokenVaultError,
)
from bankfeed.models.bank_account import BankAccount
from bankfeed.models.sync_log import SyncLog
from bankfeed.providers.monzo import MonzoClient
from bankfeed.repositories.bank_account import BankAccountRepository
from bankfeed.repositories.sync_log import SyncLogRepository
from bankfeed.services.token_vault import TokenVault

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"account_name", "sync_enabled"}


class BankAccountService:
    """Service layer for bank account operations."""

    def __init__(self, db: AsyncSession):
        """Initialize bank account service with database session.

        Args:
            db: Database session
        """
        self.db = db
        self.account_repo = BankAccountRepository(db)
        self.sync_log_repo = SyncLogRepository(db)

    async def list_accounts(self) -> list[BankAccount]:
        return await self.account_repo.list_accounts()

    async def get_account(self, bank_account_id: UUID) -> BankAccount:
        """Get a bank account.

        Raises:
            BankAccountNotFound: If the account does not exist
        """
        account = await self.account_repo.get_by_id(bank_account_id)
        if account is None:
            raise BankAccountNotFound(details={"bank_account_id": str(bank_account_id)})
        return account

    async def get_sync_history(self, bank_account_id: UUID, limit: int = 20) -> list[SyncLog]:
        await self.get_account(bank_account_id)
        return await self.sync_log_repo.list_for_account(bank_account_id, limit)

    async def update_account(self, bank_account_id: UUID, changes: dict[str, Any]) -> BankAccount:
        """Rename an account or toggle syncing."""
        await self.get_account(bank_account_id)
        data = {key: value for key, value in changes.items() if key in UPDATABLE_FIELDS}
        return await self.account_repo.update(bank_account_id, data)

    async def delete_account(
        self, bank_account_id: UUID, client: MonzoClient, vault: TokenVault
    ) -> None:
        """Disconnect an account that has no imported transactions.

        The provider webhook is removed on a best-effort basis.

        Raises:
            BankAccountNotFound: If the account does not exist
            BankAccountInUse: If imported transactions still reference it
        """
        account = await self.get_account(bank_account_id)
        if await self.account_repo.has_transactions(bank_account_id):
            raise BankAccountInUse(details={"bank_account_id": str(bank_account_id)})

        if account.webhook_id:
            try:
                await client.delete_webhook(vault.get_access_token(account), account.webhook_id)
            except (ProviderAPIError, TokenVaultError, httpx.TransportError) as exc:
                logger.warning(
                    "Could not delete webhook for disconnected account",
                    extra={"bank_account_id": str(bank_account_id), "error_type": type(exc).__name__},
                )

        await self.account_repo.delete(bank_account_id)
        logger.info("Bank account disconnected", extra={"bank_account_id": str(bank_account_id)})

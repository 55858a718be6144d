"""Bank account repository."""
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.models.bank_account import BankAccount
from bankfeed.models.bank_transaction import BankTransaction
from bankfeed.repositories.base import BaseRepository


class BankAccountRepository(BaseRepository[BankAccount]):
    """Repository for connected bank accounts."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, BankAccount)

    async def get_by_account_id(self, account_id: str) -> BankAccount | None:
        """Get an account by the provider's external account id."""
        result = await self.db.execute(
            select(BankAccount).where(BankAccount.account_id == account_id)
        )
        return result.scalar_one_or_none()

    async def list_accounts(self) -> list[BankAccount]:
        result = await self.db.execute(select(BankAccount).order_by(BankAccount.created_at))
        return list(result.scalars().all())

    async def list_with_webhooks(self) -> list[BankAccount]:
        result = await self.db.execute(
            select(BankAccount)
            .where(BankAccount.webhook_id.is_not(None))
            .order_by(BankAccount.account_name)
        )
        return list(result.scalars().all())

    async def has_transactions(self, bank_account_id: UUID) -> bool:
        """Check whether any imported transaction references the account."""
        result = await self.db.execute(
            select(exists().where(BankTransaction.bank_account_id == bank_account_id))
        )
        return bool(result.scalar())

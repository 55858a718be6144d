"""Bank transaction repository."""
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.models.bank_transaction import BankTransaction
from bankfeed.repositories.base import BaseRepository


class BankTransactionRepository(BaseRepository[BankTransaction]):
    """Repository for imported provider transactions."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, BankTransaction)

    async def get_by_external_id(
        self, bank_account_id: UUID, external_id: str
    ) -> BankTransaction | None:
        """Look up a transaction by its dedup key."""
        result = await self.db.execute(
            select(BankTransaction).where(
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.external_id == external_id,
            )
        )
        return result.scalar_one_or_none()

    async def count_by_account(self, bank_account_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(BankTransaction)
            .where(BankTransaction.bank_account_id == bank_account_id)
        )
        return int(result.scalar_one())

    async def find_near_duplicates(
        self,
        bank_account_id: UUID,
        amount: Decimal,
        transaction_date: datetime,
        window: timedelta,
        limit: int,
    ) -> list[BankTransaction]:
        """Same-amount transactions of the account dated within ``window``, newest first."""
        result = await self.db.execute(
            select(BankTransaction)
            .where(
                BankTransaction.bank_account_id == bank_account_id,
                BankTransaction.amount == amount,
                BankTransaction.transaction_date >= transaction_date - window,
                BankTransaction.transaction_date <= transaction_date + window,
            )
            .order_by(BankTransaction.transaction_date.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

"""Ledger transaction repository."""
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.models.transaction import Transaction
from bankfeed.repositories.base import BaseRepository


class TransactionRepository(BaseRepository[Transaction]):
    """Repository for approved ledger transactions."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Transaction)

    async def get_by_bank_transaction_id(self, bank_transaction_id: UUID) -> Transaction | None:
        result = await self.db.execute(
            select(Transaction).where(Transaction.bank_transaction_id == bank_transaction_id)
        )
        return result.scalar_one_or_none()

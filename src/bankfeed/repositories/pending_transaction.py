"""Pending transaction repository."""
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.models.bank_transaction import BankTransaction
from bankfeed.models.pending_transaction import PendingTransaction
from bankfeed.repositories.base import BaseRepository


class PendingTransactionRepository(BaseRepository[PendingTransaction]):
    """Repository for the review queue."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, PendingTransaction)

    def _scoped(self, query, bank_account_id: UUID | None):
        if bank_account_id is None:
            return query
        return query.join(
            BankTransaction, PendingTransaction.bank_transaction_id == BankTransaction.id
        ).where(BankTransaction.bank_account_id == bank_account_id)

    async def list_pending(
        self, bank_account_id: UUID | None = None, skip: int = 0, limit: int = 100
    ) -> list[PendingTransaction]:
        """List pending rows, newest transaction first."""
        query = self._scoped(select(PendingTransaction), bank_account_id)
        result = await self.db.execute(
            query.order_by(PendingTransaction.transaction_date.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def list_ids(self, bank_account_id: UUID | None = None) -> list[UUID]:
        """Ids of every pending row in scope, oldest first."""
        query = self._scoped(select(PendingTransaction.id), bank_account_id)
        result = await self.db.execute(query.order_by(PendingTransaction.created_at))
        return list(result.scalars().all())

    async def count(self, bank_account_id: UUID | None = None) -> int:
        query = self._scoped(select(func.count(PendingTransaction.id)), bank_account_id)
        result = await self.db.execute(query)
        return int(result.scalar_one())

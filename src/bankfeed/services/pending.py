"""Manual review of pending bank transactions."""
import logging
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.categorization.categories import to_ledger_type, validate_type_category
from bankfeed.core.clock import utcnow
from bankfeed.core.exceptions import (
    InvalidRuleAssignment,
    PendingTransactionIncomplete,
    PendingTransactionNotFound,
)
from bankfeed.models.pending_transaction import PendingTransaction
from bankfeed.models.transaction import Transaction
from bankfeed.repositories.bank_transaction import BankTransactionRepository
from bankfeed.repositories.pending_transaction import PendingTransactionRepository
from bankfeed.repositories.property import PropertyRepository
from bankfeed.services.approval import TransactionApprover

logger = logging.getLogger(__name__)


class PendingTransactionService:
    """Service layer for the review queue."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.pending_repo = PendingTransactionRepository(db)
        self.bank_transaction_repo = BankTransactionRepository(db)
        self.property_repo = PropertyRepository(db)
        self.approver = TransactionApprover(db)

    async def list_pending(
        self, bank_account_id: UUID | None = None, skip: int = 0, limit: int = 100
    ) -> list[PendingTransaction]:
        return await self.pending_repo.list_pending(bank_account_id, skip, limit)

    async def count_pending(self, bank_account_id: UUID | None = None) -> int:
        return await self.pending_repo.count(bank_account_id)

    async def get_pending(self, pending_id: UUID) -> PendingTransaction:
        pending = await self.pending_repo.get_by_id(pending_id)
        if pending is None:
            raise PendingTransactionNotFound(details={"pending_transaction_id": str(pending_id)})
        return pending

    async def update_pending(
        self, pending_id: UUID, changes: dict[str, Any], reviewed_by: str | None = None
    ) -> PendingTransaction:
        """Record a reviewer's choice of property, lease, type and category.

        Reviewed values take precedence over rule output on later
        reprocessing.

        Raises:
            PendingTransactionNotFound: Unknown id
            InvalidRuleAssignment: Unknown property or category/type mismatch
        """
        pending = await self.get_pending(pending_id)
        if "type" in changes:
            changes["type"] = to_ledger_type(changes["type"])
        transaction_type = changes.get("type", pending.type)
        category = changes.get("category", pending.category)
        if transaction_type and category and not validate_type_category(transaction_type, category):
            raise InvalidRuleAssignment(details={"type": transaction_type, "category": category})
        property_id = changes.get("property_id")
        if property_id is not None and not await self.property_repo.exists(property_id):
            raise InvalidRuleAssignment(details={"property_id": str(property_id)})

        for key, value in changes.items():
            setattr(pending, key, value)
        pending.reviewed_at = utcnow()
        pending.reviewed_by = reviewed_by
        await self.db.commit()
        await self.db.refresh(pending)
        return pending

    async def approve_pending(
        self, pending_id: UUID, changes: dict[str, Any] | None = None, reviewed_by: str | None = None
    ) -> Transaction:
        """Approve a pending row into the ledger.

        Args:
            pending_id: Pending transaction id
            changes: Optional last-minute property/lease/type/category values
            reviewed_by: Reviewer identifier

        Returns:
            The created ledger Transaction

        Raises:
            PendingTransactionNotFound: Unknown id
            PendingTransactionIncomplete: Property, type or category missing
            InvalidRuleAssignment: The assignment is not allowed
        """
        pending = await self.get_pending(pending_id)
        for key, value in (changes or {}).items():
            setattr(pending, key, to_ledger_type(value) if key == "type" else value)

        if not pending.is_complete:
            await self.db.rollback()
            raise PendingTransactionIncomplete(details={"pending_transaction_id": str(pending_id)})
        if not await self.approver.is_valid_assignment(pending.property_id, pending.type, pending.category):
            await self.db.rollback()
            raise InvalidRuleAssignment(details={"pending_transaction_id": str(pending_id)})

        bank_transaction = await self.bank_transaction_repo.get_by_id(pending.bank_transaction_id)
        transaction = await self.approver.approve_pending(pending, bank_transaction)
        await self.db.commit()
        logger.info(
            "Pending transaction approved",
            extra={"pending_transaction_id": str(pending_id), "transaction_id": str(transaction.id)},
        )
        return transaction

"""Turning imported bank transactions into ledger transactions."""
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.categorization.categories import to_ledger_type, validate_type_category
from bankfeed.models.bank_transaction import BankTransaction
from bankfeed.models.pending_transaction import PendingTransaction
from bankfeed.models.transaction import Transaction
from bankfeed.repositories.property import PropertyRepository
from bankfeed.repositories.transaction import TransactionRepository


class TransactionApprover:
    """Creates ledger entries for bank transactions.

    Methods only flush; the caller commits, so the ledger insert, the
    BankTransaction relink and the PendingTransaction delete land together.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.property_repo = PropertyRepository(db)
        self.transaction_repo = TransactionRepository(db)

    async def is_valid_assignment(
        self, property_id: UUID | None, transaction_type: str | None, category: str | None
    ) -> bool:
        """Check that the property exists and the category fits the type."""
        if property_id is None or not validate_type_category(transaction_type, category):
            return False
        return await self.property_repo.exists(property_id)

    async def known_property(self, property_id: UUID | None) -> UUID | None:
        """Return the id if the property exists, otherwise None."""
        if property_id is None or not await self.property_repo.exists(property_id):
            return None
        return property_id

    async def create_ledger_entry(
        self,
        bank_transaction: BankTransaction,
        property_id: UUID,
        transaction_type: str,
        category: str,
        lease_id: UUID | None = None,
    ) -> Transaction:
        """Create the Transaction for a bank transaction and link the two.

        Args:
            bank_transaction: Imported transaction (already flushed)
            property_id: Property the entry is booked against
            transaction_type: INCOME/EXPENSE or Income/Expense
            category: Ledger category
            lease_id: Optional lease

        Returns:
            The flushed ledger Transaction
        """
        transaction = Transaction(
            property_id=property_id,
            lease_id=lease_id,
            type=to_ledger_type(transaction_type),
            category=category,
            amount=bank_transaction.amount,
            transaction_date=bank_transaction.transaction_date,
            description=bank_transaction.description,
            bank_transaction_id=bank_transaction.id,
            is_imported=True,
            imported_at=bank_transaction.imported_at,
        )
        await self.transaction_repo.add(transaction)
        bank_transaction.transaction_id = transaction.id
        bank_transaction.pending_transaction_id = None
        await self.db.flush()
        return transaction

    async def approve_pending(
        self, pending: PendingTransaction, bank_transaction: BankTransaction
    ) -> Transaction:
        """Replace a complete pending row with a ledger Transaction."""
        transaction = await self.create_ledger_entry(
            bank_transaction,
            pending.property_id,
            pending.type,
            pending.category,
            lease_id=pending.lease_id,
        )
        await self.db.delete(pending)
        await self.db.flush()
        return transaction

"""Bank transaction model: a raw provider transaction as imported."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bankfeed.models.base import BaseModel


class BankTransaction(BaseModel):
    """Imported provider transaction.

    Immutable after creation apart from the link to the ledger Transaction
    or the PendingTransaction it produced. Exactly one of the two links is
    set once processing finishes.
    """

    __tablename__ = "bank_transactions"
    __table_args__ = (
        UniqueConstraint("bank_account_id", "external_id", name="uq_bank_transactions_account_external"),
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # Major currency units; negative values are money leaving the account.
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GBP")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    counterparty_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    merchant: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    settled_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    imported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    # No FK: pending_transactions already references this table.
    pending_transaction_id: Mapped[UUID | None] = mapped_column(nullable=True, unique=True)

    bank_account: Mapped["BankAccount"] = relationship("BankAccount")

    def __repr__(self) -> str:
        return f"<BankTransaction(id={self.id}, external_id={self.external_id}, amount={self.amount})>"

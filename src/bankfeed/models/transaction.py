"""Transaction model: an approved ledger entry booked against a property."""
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bankfeed.models.base import BaseModel


class TransactionType(StrEnum):
    INCOME = "Income"
    EXPENSE = "Expense"


class Transaction(BaseModel):
    """Ledger entry. Imported entries keep a back-link to their BankTransaction."""

    __tablename__ = "transactions"

    property_id: Mapped[UUID] = mapped_column(
        ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lease_id: Mapped[UUID | None] = mapped_column(nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    bank_transaction_id: Mapped[UUID | None] = mapped_column(nullable=True, unique=True)
    is_imported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    imported_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, type={self.type}, category={self.category}, amount={self.amount})>"

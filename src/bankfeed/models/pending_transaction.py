"""Pending transaction model: an imported transaction awaiting review."""
from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bankfeed.models.base import BaseModel


class PendingTransaction(BaseModel):
    """Review queue entry holding a (possibly partial) rule assignment.

    Deleted when approved; the ledger Transaction replaces it.
    """

    __tablename__ = "pending_transactions"

    bank_transaction_id: Mapped[UUID] = mapped_column(
        ForeignKey("bank_transactions.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    property_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("properties.id", ondelete="SET NULL"), nullable=True, index=True
    )
    lease_id: Mapped[UUID | None] = mapped_column(nullable=True)
    type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    bank_transaction: Mapped["BankTransaction"] = relationship("BankTransaction", lazy="selectin")

    @property
    def is_complete(self) -> bool:
        return self.property_id is not None and bool(self.type) and bool(self.category)

    def __repr__(self) -> str:
        return f"<PendingTransaction(id={self.id}, bank_transaction_id={self.bank_transaction_id})>"

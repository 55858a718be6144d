"""Sync log model: one row per sync attempt (bulk import, manual or webhook)."""
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bankfeed.models.bank_account import SyncStatus
from bankfeed.models.base import BaseModel


class SyncType(StrEnum):
    INITIAL = "initial"
    MANUAL = "manual"
    WEBHOOK = "webhook"


class SyncLog(BaseModel):
    """Audit record for one sync attempt.

    Closed logs (status other than in_progress) are never modified.
    """

    __tablename__ = "sync_logs"
    __table_args__ = (
        # At most one running bulk/manual sync per account. Webhook syncs are
        # single-transaction and may overlap.
        Index(
            "uq_sync_logs_account_in_progress",
            "bank_account_id",
            unique=True,
            postgresql_where=text("status = 'in_progress' AND sync_type <> 'webhook'"),
            sqlite_where=text("status = 'in_progress' AND sync_type <> 'webhook'"),
        ),
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SyncStatus.IN_PROGRESS
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transactions_fetched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    transactions_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    transactions_matched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    transactions_pending: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    webhook_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    bank_account: Mapped["BankAccount"] = relationship("BankAccount", back_populates="sync_logs")

    @property
    def is_closed(self) -> bool:
        return self.status != SyncStatus.IN_PROGRESS

    def __repr__(self) -> str:
        return f"<SyncLog(id={self.id}, sync_type={self.sync_type}, status={self.status})>"

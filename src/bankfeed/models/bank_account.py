"""Bank account model representing a connected Open Banking account."""
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bankfeed.models.base import BaseModel


class SyncStatus(StrEnum):
    """Outcome of the latest sync attempt for an account or sync log."""

    NEVER_SYNCED = "never_synced"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class BankAccount(BaseModel):
    """A provider account connected through OAuth.

    Tokens are stored encrypted (see TokenVault); they are never returned by
    the API.
    """

    __tablename__ = "bank_accounts"

    account_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[str] = mapped_column(String(50), nullable=False, default="current")
    provider: Mapped[str] = mapped_column(
        String(20), nullable=False, default="monzo", server_default=text("'monzo'")
    )
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sync_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    sync_from_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_sync_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SyncStatus.NEVER_SYNCED,
        server_default=text("'never_synced'"),
    )
    webhook_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    webhook_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Relationships
    rules: Mapped[list["MatchingRule"]] = relationship(
        "MatchingRule", back_populates="bank_account", passive_deletes="all"
    )
    sync_logs: Mapped[list["SyncLog"]] = relationship(
        "SyncLog", back_populates="bank_account", passive_deletes="all"
    )

    def __repr__(self) -> str:
        return f"<BankAccount(id={self.id}, provider={self.provider}, account_name={self.account_name})>"

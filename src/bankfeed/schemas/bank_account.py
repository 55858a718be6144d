"""Pydantic schemas for bank account API responses."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class BankAccountResponse(BaseModel):
    """Connected bank account. Tokens are never exposed."""

    id: UUID
    account_id: str = Field(description="Provider account identifier")
    account_name: str
    account_type: str
    provider: str
    sync_enabled: bool
    sync_from_date: datetime = Field(description="Oldest transaction date imported")
    last_sync_at: datetime | None = None
    last_sync_status: str
    webhook_registered: bool = Field(default=False, description="Whether real-time updates are active")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BankAccountListResult(BaseModel):
    accounts: list[BankAccountResponse]
    total: int


class BankAccountUpdateRequest(BaseModel):
    account_name: str | None = Field(None, min_length=1, max_length=255)
    sync_enabled: bool | None = None


class SyncLogResponse(BaseModel):
    id: UUID
    bank_account_id: UUID
    sync_type: str
    status: str
    started_at: datetime
    completed_at: datetime | None = None
    transactions_fetched: int
    transactions_skipped: int
    transactions_matched: int
    transactions_pending: int
    error_message: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SyncResultResponse(BaseModel):
    """Outcome of a manual sync."""

    success: bool
    sync_log_id: UUID
    status: str = Field(description="success, partial or failed")
    transactions_fetched: int
    transactions_processed: int
    duplicates_skipped: int
    transactions_matched: int
    transactions_pending: int
    message: str | None = None
    last_sync_at: datetime | None = None
    last_sync_status: str

"""Pydantic schemas for the pending transaction review queue."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bankfeed.models.transaction import TransactionType


class BankTransactionSummary(BaseModel):
    id: UUID
    bank_account_id: UUID
    external_id: str
    amount: Decimal = Field(description="Signed amount in major units")
    currency: str
    description: str
    counterparty_name: str | None = None
    reference: str | None = None
    merchant: str | None = None
    transaction_date: datetime

    model_config = ConfigDict(from_attributes=True)


class PendingTransactionResponse(BaseModel):
    id: UUID
    bank_transaction: BankTransactionSummary
    property_id: UUID | None = None
    lease_id: UUID | None = None
    type: str | None = None
    category: str | None = None
    transaction_date: datetime
    description: str
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PendingTransactionListResult(BaseModel):
    pending_transactions: list[PendingTransactionResponse]
    total: int


class PendingCountResponse(BaseModel):
    count: int


class PendingTransactionUpdateRequest(BaseModel):
    property_id: UUID | None = None
    lease_id: UUID | None = None
    type: TransactionType | None = None
    category: str | None = Field(None, max_length=100)
    reviewed_by: str | None = Field(None, max_length=255)


class PendingApproveRequest(BaseModel):
    property_id: UUID | None = None
    lease_id: UUID | None = None
    type: TransactionType | None = None
    category: str | None = Field(None, max_length=100)
    reviewed_by: str | None = Field(None, max_length=255)


class TransactionResponse(BaseModel):
    id: UUID
    property_id: UUID
    lease_id: UUID | None = None
    type: str
    category: str
    amount: Decimal
    transaction_date: datetime
    description: str
    bank_transaction_id: UUID | None = None
    is_imported: bool

    model_config = ConfigDict(from_attributes=True)

"""Pydantic schemas for the Monzo connection flow."""

from uuid import UUID

from pydantic import BaseModel, Field


class ConnectRequest(BaseModel):
    sync_from_days: int = Field(
        90, ge=1, le=1825, description="Days of history to import on first sync"
    )


class ConnectResponse(BaseModel):
    success: bool = True
    auth_url: str


class CompleteConnectionRequest(BaseModel):
    pending_id: str = Field(min_length=1, description="Id from the OAuth callback redirect")


class CompleteConnectionResponse(BaseModel):
    success: bool = True
    bank_account_id: UUID
    sync_log_id: UUID | None = Field(None, description="Bulk import to follow via import-progress")
    message: str = "Bank account connected. Importing transaction history."

"""Pydantic schemas for webhook acknowledgements and webhook health."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class WebhookAck(BaseModel):
    success: bool = True
    message: str


class WebhookEvent(BaseModel):
    """One webhook delivery as recorded in the sync log."""

    id: UUID
    bank_account_id: UUID
    account_name: str | None = None
    status: str
    started_at: datetime
    completed_at: datetime | None = None
    error_message: str | None = None
    webhook_event_id: str | None = None
    transactions_fetched: int


class AccountWebhookStatus(BaseModel):
    bank_account_id: UUID
    account_name: str
    webhook_id: str
    last_webhook_at: datetime | None = None
    last_webhook_status: str | None = None


class WebhookStatusResponse(BaseModel):
    """Webhook health across all connected accounts."""

    last_event_at: datetime | None = Field(None, description="Start of the most recent delivery")
    recent_events: list[WebhookEvent]
    failed_count_1h: int
    failed_count_24h: int
    account_statuses: list[AccountWebhookStatus]

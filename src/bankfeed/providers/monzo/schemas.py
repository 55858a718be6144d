"""Pydantic models for Monzo API payloads.

Only the fields used by ingestion are declared; everything else in the
provider's responses is ignored.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MonzoModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class MonzoMerchant(MonzoModel):
    id: str | None = None
    name: str | None = None


class MonzoCounterparty(MonzoModel):
    name: str | None = None


class MonzoTransaction(MonzoModel):
    """Transaction as returned by /transactions and transaction.created webhooks.

    ``amount`` is in minor units (pence); negative values are debits.
    """

    id: str
    account_id: str | None = None
    created: datetime | None = None
    description: str = ""
    amount: int
    currency: str = "GBP"
    notes: str | None = None
    # Unexpanded transactions carry the merchant id as a plain string.
    merchant: MonzoMerchant | str | None = None
    counterparty: MonzoCounterparty | None = None
    category: str | None = None
    settled: datetime | None = None

    @field_validator("settled", "notes", "created", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Any) -> Any:
        # The API reports unsettled transactions with settled = ""
        if value == "":
            return None
        return value

    @property
    def merchant_name(self) -> str | None:
        if isinstance(self.merchant, MonzoMerchant):
            return self.merchant.name
        return None

    @property
    def counterparty_name(self) -> str | None:
        return self.counterparty.name if self.counterparty else None


class MonzoAccount(MonzoModel):
    id: str
    description: str | None = None
    type: str | None = None
    closed: bool = False

    @property
    def display_name(self) -> str:
        return self.description or self.type or "Monzo Account"


class TokenSet(MonzoModel):
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str = "Bearer"
    user_id: str | None = None


class MonzoWebhook(MonzoModel):
    id: str
    account_id: str
    url: str


class WebhookTransaction(MonzoTransaction):
    id: str = Field(min_length=1)
    account_id: str = Field(min_length=1)


class MonzoWebhookPayload(MonzoModel):
    """Body of a webhook delivery. Only transaction.created is accepted."""

    type: Literal["transaction.created"]
    data: WebhookTransaction = Field(description="The created transaction")

"""Pydantic schemas for matching rule endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bankfeed.categorization.engine import RuleConditions
from bankfeed.models.matching_rule import RuleType


class RuleCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    conditions: RuleConditions
    enabled: bool = True
    property_id: UUID | None = None
    type: RuleType | None = None
    category: str | None = Field(None, max_length=100)


class RuleUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    conditions: RuleConditions | None = None
    enabled: bool | None = None
    property_id: UUID | None = None
    type: RuleType | None = None
    category: str | None = Field(None, max_length=100)


class RuleResponse(BaseModel):
    id: UUID
    bank_account_id: UUID | None = Field(None, description="Null for global rules")
    priority: int
    name: str
    enabled: bool
    conditions: dict[str, Any]
    property_id: UUID | None = None
    type: str | None = None
    category: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RuleListResult(BaseModel):
    rules: list[RuleResponse]
    total: int


class ReprocessingSummary(BaseModel):
    processed: int = Field(description="Pending transactions re-evaluated")
    approved: int = Field(description="Pending transactions turned into ledger entries")
    failed: int

    model_config = ConfigDict(from_attributes=True)


class RuleMutationResponse(BaseModel):
    success: bool = True
    rule: RuleResponse | None = None
    reprocessing: ReprocessingSummary


class RuleReorderRequest(BaseModel):
    rule_ids: list[UUID] = Field(min_length=1, description="Rule ids in evaluation order")


class RuleTestRequest(BaseModel):
    description: str | None = None
    amount: Decimal = Decimal("0")
    counterparty_name: str | None = None
    reference: str | None = None
    merchant: str | None = None


class RuleTestResponse(BaseModel):
    matches: bool
    property_id: UUID | None = None
    type: str | None = None
    category: str | None = None
    is_fully_matched: bool

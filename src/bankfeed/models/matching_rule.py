"""Matching rule model: user-defined categorization rule."""
from enum import StrEnum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bankfeed.models.base import BaseModel


class RuleType(StrEnum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class MatchingRule(BaseModel):
    """Rule assigning property, type and/or category to matching transactions.

    A null bank_account_id makes the rule global. Lower priority values are
    evaluated first. Conditions are stored as
    {"operator": "AND"|"OR", "rules": [{"field", "matchType", "value", "caseSensitive"}]}.
    """

    __tablename__ = "matching_rules"
    __table_args__ = (
        Index("ix_matching_rules_account_priority", "bank_account_id", "priority"),
    )

    bank_account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=True
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    conditions: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    property_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("properties.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    bank_account: Mapped["BankAccount"] = relationship("BankAccount", back_populates="rules")

    @property
    def is_global(self) -> bool:
        return self.bank_account_id is None

    def __repr__(self) -> str:
        return f"<MatchingRule(id={self.id}, name={self.name}, priority={self.priority})>"

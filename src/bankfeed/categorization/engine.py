"""Rule evaluation for imported bank transactions.

Rules are applied in order (account-specific before global, then by
ascending priority). Each rule whose conditions pass is recorded in
``matched_rules`` and may fill the property, type and category slots that
are still empty: the first rule to provide a slot wins it. Evaluation
stops as soon as all three slots are filled.

The module does no I/O. The same transaction and rule list always give the
same result.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from itertools import accumulate
from typing import Any, Iterable, Literal, Protocol
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

ConditionField = Literal["description", "amount", "counterpartyName", "reference", "merchant"]
MatchType = Literal["contains", "equals", "startsWith", "endsWith", "greaterThan", "lessThan"]

# Condition field name -> transaction attribute
_FIELD_ATTRIBUTES: dict[str, str] = {
    "description": "description",
    "amount": "amount",
    "counterpartyName": "counterparty_name",
    "reference": "reference",
    "merchant": "merchant",
}

_NUMERIC_FIELDS = {"amount"}


class RuleCondition(BaseModel):
    """A single field test."""

    model_config = ConfigDict(populate_by_name=True)

    field: ConditionField
    match_type: MatchType = Field(alias="matchType")
    value: str
    case_sensitive: bool = Field(default=False, alias="caseSensitive")

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return str(value)
        return value


class RuleConditions(BaseModel):
    """Conditions combined with AND (all pass) or OR (any passes)."""

    operator: Literal["AND", "OR"] = "AND"
    rules: list[RuleCondition] = Field(default_factory=list)


class MatchableTransaction(Protocol):
    description: str | None
    amount: Decimal
    counterparty_name: str | None
    reference: str | None
    merchant: str | None


class MatchableRule(Protocol):
    id: UUID
    bank_account_id: UUID | None
    priority: int
    enabled: bool
    conditions: dict[str, Any] | str
    property_id: UUID | None
    type: str | None
    category: str | None


@dataclass(frozen=True)
class RuleSnapshot:
    """Detached copy of a rule, safe to keep across session rollbacks."""

    id: UUID
    bank_account_id: UUID | None
    priority: int
    enabled: bool
    conditions: dict[str, Any] | str
    property_id: UUID | None = None
    type: str | None = None
    category: str | None = None

    @classmethod
    def from_rule(cls, rule: MatchableRule) -> RuleSnapshot:
        return cls(
            id=rule.id,
            bank_account_id=rule.bank_account_id,
            priority=rule.priority,
            enabled=rule.enabled,
            conditions=rule.conditions,
            property_id=rule.property_id,
            type=rule.type,
            category=rule.category,
        )


@dataclass(frozen=True)
class RuleMatch:
    """Accumulated assignment produced by evaluate_rules()."""

    property_id: UUID | None = None
    type: str | None = None
    category: str | None = None
    matched_rules: tuple[UUID, ...] = ()

    @property
    def is_fully_matched(self) -> bool:
        return self.property_id is not None and bool(self.type) and bool(self.category)

    def absorb(self, rule: MatchableRule) -> RuleMatch:
        """Return a new match with empty slots filled from the rule."""
        return replace(
            self,
            property_id=self.property_id if self.property_id is not None else rule.property_id,
            type=self.type or rule.type,
            category=self.category or rule.category,
            matched_rules=self.matched_rules + (rule.id,),
        )


def parse_conditions(raw: dict[str, Any] | str | None) -> RuleConditions | None:
    """Parse stored rule conditions; None when they are malformed."""
    if raw is None:
        return None
    try:
        if isinstance(raw, str):
            return RuleConditions.model_validate_json(raw)
        return RuleConditions.model_validate(raw)
    except (ValidationError, json.JSONDecodeError):
        return None


def _to_decimal(value: Any) -> Decimal | None:
    """Finite decimal value, or None for text, NaN and Infinity."""
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def evaluate_condition(transaction: MatchableTransaction, condition: RuleCondition) -> bool:
    """Test one condition against a transaction.

    Missing field values never match. greaterThan/lessThan (and equals on
    amount) compare the signed numeric value.
    """
    field_value = getattr(transaction, _FIELD_ATTRIBUTES[condition.field], None)
    if field_value is None:
        return False

    if condition.match_type in ("greaterThan", "lessThan") or (
        condition.match_type == "equals" and condition.field in _NUMERIC_FIELDS
    ):
        actual = _to_decimal(field_value)
        expected = _to_decimal(condition.value)
        if actual is None or expected is None:
            return False
        if condition.match_type == "greaterThan":
            return actual > expected
        if condition.match_type == "lessThan":
            return actual < expected
        return actual == expected

    actual_text = str(field_value)
    expected_text = condition.value
    if not condition.case_sensitive:
        actual_text = actual_text.casefold()
        expected_text = expected_text.casefold()

    if condition.match_type == "contains":
        return expected_text in actual_text
    if condition.match_type == "equals":
        return actual_text == expected_text
    if condition.match_type == "startsWith":
        return actual_text.startswith(expected_text)
    return actual_text.endswith(expected_text)


def evaluate_conditions(transaction: MatchableTransaction, conditions: RuleConditions) -> bool:
    """AND over an empty list is true, OR over an empty list is false."""
    results = (evaluate_condition(transaction, condition) for condition in conditions.rules)
    if conditions.operator == "OR":
        return any(results)
    return all(results)


def order_rules(rules: Iterable[MatchableRule]) -> list[MatchableRule]:
    """Enabled rules, account-specific first, then by ascending priority."""
    return sorted(
        (rule for rule in rules if rule.enabled),
        key=lambda rule: (rule.bank_account_id is None, rule.priority),
    )


def evaluate_rules(
    transaction: MatchableTransaction, rules: Iterable[MatchableRule]
) -> RuleMatch:
    """Fold the ordered rules over a transaction.

    Args:
        transaction: Normalized transaction (BankTransaction or equivalent)
        rules: Candidate rules in any order; disabled rules are ignored

    Returns:
        RuleMatch with the assigned slots and every matching rule id
    """

    def step(match: RuleMatch, rule: MatchableRule) -> RuleMatch:
        conditions = parse_conditions(rule.conditions)
        if conditions is None:
            logger.warning("Skipping rule with malformed conditions", extra={"rule_id": str(rule.id)})
            return match
        if not evaluate_conditions(transaction, conditions):
            return match
        return match.absorb(rule)

    match = RuleMatch()
    for match in accumulate(order_rules(rules), step, initial=RuleMatch()):
        if match.is_fully_matched:
            break
    return match

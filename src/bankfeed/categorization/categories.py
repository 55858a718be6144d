"""Ledger taxonomy for property transactions.

Rules speak in INCOME/EXPENSE; the ledger stores Income/Expense. Each type
has its own closed set of categories.
"""

from __future__ import annotations

from typing import Any

from bankfeed.models.matching_rule import RuleType
from bankfeed.models.transaction import TransactionType

CATEGORIES_BY_TYPE: dict[str, frozenset[str]] = {
    TransactionType.INCOME: frozenset({"Rent", "Security Deposit", "Late Fee", "Lease Fee"}),
    TransactionType.EXPENSE: frozenset(
        {
            "Maintenance",
            "Repair",
            "Utilities",
            "Insurance",
            "Property Tax",
            "Management Fee",
            "Legal Fee",
            "Transport",
            "Other",
        }
    ),
}

_LEDGER_TYPES: dict[str, str] = {
    RuleType.INCOME: TransactionType.INCOME,
    RuleType.EXPENSE: TransactionType.EXPENSE,
}


def to_ledger_type(value: str | None) -> str | None:
    """Map a rule type (INCOME/EXPENSE) or ledger type to the ledger spelling.

    Unknown values map to None.
    """
    if value is None:
        return None
    if value in _LEDGER_TYPES:
        return _LEDGER_TYPES[value]
    if value in CATEGORIES_BY_TYPE:
        return value
    return None


def validate_type_category(transaction_type: str | None, category: str | None) -> bool:
    """Return True when category belongs to the (ledger or rule) type."""
    ledger_type = to_ledger_type(transaction_type)
    if ledger_type is None or not category:
        return False
    return category in CATEGORIES_BY_TYPE[ledger_type]


def _contains(value: str) -> dict[str, Any]:
    return {
        "operator": "AND",
        "rules": [{"field": "description", "matchType": "contains", "value": value, "caseSensitive": False}],
    }


# Global rules seeded by RuleService.create_default_rules().
# Ordering matters: earlier (lower priority) rules win each slot.
DEFAULT_RULE_PREFIX = "Default: "

DEFAULT_RULES: list[dict[str, Any]] = [
    {
        "name": "Default: Rent Income",
        "priority": 100,
        "conditions": _contains("rent"),
        "type": RuleType.INCOME,
        "category": "Rent",
    },
    {
        "name": "Default: Security Deposit",
        "priority": 101,
        "conditions": _contains("deposit"),
        "type": RuleType.INCOME,
        "category": "Security Deposit",
    },
    {
        "name": "Default: Maintenance Expense",
        "priority": 102,
        "conditions": _contains("maintenance"),
        "type": RuleType.EXPENSE,
        "category": "Maintenance",
    },
    {
        "name": "Default: Repair Expense",
        "priority": 103,
        "conditions": _contains("repair"),
        "type": RuleType.EXPENSE,
        "category": "Repair",
    },
    {
        # Catch-all for outgoing money not claimed by a more specific rule.
        "name": "Default: Negative Amount Expense",
        "priority": 1000,
        "conditions": {
            "operator": "AND",
            "rules": [{"field": "amount", "matchType": "lessThan", "value": "0"}],
        },
        "type": RuleType.EXPENSE,
        "category": "Other",
    },
]

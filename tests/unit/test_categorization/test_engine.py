"""Unit tests for the rule evaluation engine."""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from bankfeed.categorization.engine import (
    RuleCondition,
    RuleConditions,
    RuleSnapshot,
    evaluate_condition,
    evaluate_conditions,
    evaluate_rules,
    order_rules,
    parse_conditions,
)

ACCOUNT_ID = uuid4()
PROPERTY_A = uuid4()
PROPERTY_B = uuid4()


@dataclass
class Txn:
    description: str | None = "RENT FLAT 2 JONES"
    amount: Decimal = Decimal("1200.00")
    counterparty_name: str | None = "Sam Jones"
    reference: str | None = None
    merchant: str | None = None


def cond(field: str, match_type: str, value, case_sensitive: bool = False) -> RuleCondition:
    return RuleCondition.model_validate(
        {"field": field, "matchType": match_type, "value": value, "caseSensitive": case_sensitive}
    )


def rule(
    *conditions: dict,
    operator: str = "AND",
    priority: int = 0,
    account: UUID | None = ACCOUNT_ID,
    enabled: bool = True,
    property_id: UUID | None = None,
    type: str | None = None,
    category: str | None = None,
) -> RuleSnapshot:
    return RuleSnapshot(
        id=uuid4(),
        bank_account_id=account,
        priority=priority,
        enabled=enabled,
        conditions={"operator": operator, "rules": list(conditions)},
        property_id=property_id,
        type=type,
        category=category,
    )


def contains(value: str) -> dict:
    return {"field": "description", "matchType": "contains", "value": value}


class TestEvaluateCondition:
    """Single field tests."""

    @pytest.mark.parametrize(
        "match_type,value,expected",
        [
            ("contains", "flat 2", True),
            ("contains", "garage", False),
            ("equals", "rent flat 2 jones", True),
            ("startsWith", "RENT", True),
            ("startsWith", "FLAT", False),
            ("endsWith", "jones", True),
        ],
    )
    def test_text_match_types(self, match_type, value, expected):
        assert evaluate_condition(Txn(), cond("description", match_type, value)) is expected

    def test_case_sensitive_contains(self):
        assert evaluate_condition(Txn(), cond("description", "contains", "rent", case_sensitive=True)) is False
        assert evaluate_condition(Txn(), cond("description", "contains", "RENT", case_sensitive=True)) is True

    def test_missing_field_never_matches(self):
        txn = Txn(reference=None)
        assert evaluate_condition(txn, cond("reference", "contains", "")) is False

    def test_counterparty_field_maps_to_attribute(self):
        assert evaluate_condition(Txn(), cond("counterpartyName", "equals", "sam jones")) is True

    def test_numeric_comparisons_use_signed_amount(self):
        debit = Txn(amount=Decimal("-45.20"))
        assert evaluate_condition(debit, cond("amount", "lessThan", "0")) is True
        assert evaluate_condition(debit, cond("amount", "greaterThan", "-50")) is True
        assert evaluate_condition(debit, cond("amount", "greaterThan", "40")) is False

    @pytest.mark.parametrize(
        "amount,expected",
        [("750.00", True), ("500.00", False), ("-750.00", False)],
    )
    def test_greater_than_threshold(self, amount, expected):
        txn = Txn(amount=Decimal(amount))
        assert evaluate_condition(txn, cond("amount", "greaterThan", 500)) is expected

    def test_amount_equals_is_numeric(self):
        assert evaluate_condition(Txn(amount=Decimal("1200.00")), cond("amount", "equals", 1200)) is True

    def test_non_numeric_threshold_never_matches(self):
        assert evaluate_condition(Txn(), cond("amount", "greaterThan", "lots")) is False

    @pytest.mark.parametrize("value", ["NaN", "sNaN", "Infinity", "-inf"])
    @pytest.mark.parametrize("match_type", ["greaterThan", "lessThan", "equals"])
    def test_non_finite_threshold_never_matches(self, value, match_type):
        assert evaluate_condition(Txn(), cond("amount", match_type, value)) is False

    def test_non_finite_threshold_does_not_stop_later_rules(self):
        broken = rule({"field": "amount", "matchType": "greaterThan", "value": "NaN"}, priority=0, type="EXPENSE")
        good = rule(contains("rent"), priority=1, category="Rent")

        match = evaluate_rules(Txn(), [broken, good])

        assert match.matched_rules == (good.id,)
        assert match.type is None


class TestEvaluateConditions:
    def test_empty_and_is_true(self):
        assert evaluate_conditions(Txn(), RuleConditions(operator="AND", rules=[])) is True

    def test_empty_or_is_false(self):
        assert evaluate_conditions(Txn(), RuleConditions(operator="OR", rules=[])) is False

    def test_or_needs_one(self):
        conditions = RuleConditions(
            operator="OR", rules=[cond("description", "contains", "garage"), cond("amount", "greaterThan", "0")]
        )
        assert evaluate_conditions(Txn(), conditions) is True

    def test_and_needs_all(self):
        conditions = RuleConditions(
            rules=[cond("description", "contains", "rent"), cond("amount", "lessThan", "0")]
        )
        assert evaluate_conditions(Txn(), conditions) is False


class TestParseConditions:
    def test_accepts_json_string(self):
        parsed = parse_conditions('{"operator": "OR", "rules": []}')
        assert parsed is not None
        assert parsed.operator == "OR"

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            {"operator": "XOR", "rules": []},
            {"rules": [{"field": "iban", "matchType": "equals", "value": "x"}]},
        ],
    )
    def test_malformed_returns_none(self, raw):
        assert parse_conditions(raw) is None


class TestEvaluateRules:
    """Ordering, slot filling and early termination."""

    def test_account_rules_before_global(self):
        global_rule = rule(contains("rent"), account=None, priority=0, category="Rent", type="INCOME")
        account_rule = rule(contains("rent"), priority=50, category="Late Fee", type="INCOME")

        ordered = order_rules([global_rule, account_rule])

        assert ordered == [account_rule, global_rule]

    def test_disabled_rules_ignored(self):
        disabled = rule(contains("rent"), enabled=False, property_id=PROPERTY_A)
        match = evaluate_rules(Txn(), [disabled])
        assert match.property_id is None
        assert match.matched_rules == ()

    def test_first_rule_wins_each_slot(self):
        first = rule(contains("rent"), priority=0, property_id=PROPERTY_A)
        second = rule(contains("jones"), priority=1, property_id=PROPERTY_B, type="INCOME")
        third = rule(contains("flat"), priority=2, type="EXPENSE", category="Rent")

        match = evaluate_rules(Txn(), [third, second, first])

        assert match.property_id == PROPERTY_A
        assert match.type == "INCOME"
        assert match.category == "Rent"
        assert match.matched_rules == (first.id, second.id, third.id)
        assert match.is_fully_matched

    def test_stops_once_fully_matched(self):
        complete = rule(contains("rent"), priority=0, property_id=PROPERTY_A, type="INCOME", category="Rent")
        later = rule(contains("rent"), priority=1, property_id=PROPERTY_B)

        match = evaluate_rules(Txn(), [complete, later])

        assert match.matched_rules == (complete.id,)

    def test_partial_match(self):
        match = evaluate_rules(Txn(), [rule(contains("rent"), category="Rent")])
        assert match.category == "Rent"
        assert not match.is_fully_matched

    def test_malformed_rule_skipped(self):
        broken = RuleSnapshot(
            id=uuid4(), bank_account_id=ACCOUNT_ID, priority=0, enabled=True, conditions="{oops"
        )
        good = rule(contains("rent"), priority=1, category="Rent")

        match = evaluate_rules(Txn(), [broken, good])

        assert match.matched_rules == (good.id,)

    def test_no_rules(self):
        match = evaluate_rules(Txn(), [])
        assert match.matched_rules == ()
        assert not match.is_fully_matched

    def test_deterministic(self):
        rules = [
            rule(contains("rent"), priority=3, property_id=PROPERTY_A),
            rule(contains("flat"), priority=1, type="INCOME"),
            rule(contains("jones"), account=None, priority=0, category="Rent"),
        ]
        assert evaluate_rules(Txn(), rules) == evaluate_rules(Txn(), list(reversed(rules)))

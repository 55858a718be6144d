"""Integration tests for dedup, categorization and storage of transactions."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from bankfeed.models.bank_transaction import BankTransaction
from bankfeed.models.matching_rule import MatchingRule
from bankfeed.models.pending_transaction import PendingTransaction
from bankfeed.models.transaction import Transaction
from bankfeed.providers.monzo import MonzoTransaction
from bankfeed.repositories.bank_transaction import BankTransactionRepository
from bankfeed.services.processor import ProcessingOutcome, TransactionProcessor, normalize_transaction
from fakes import condition, conditions, monzo_transaction

CREATED = datetime(2026, 2, 14, 9, 30, tzinfo=timezone.utc)


def raw(external_id: str, amount: int, description: str = "CARD PAYMENT", **extra) -> MonzoTransaction:
    return MonzoTransaction.model_validate(monzo_transaction(external_id, amount, CREATED, description, **extra))


@pytest.fixture
async def rent_rule(db_session, bank_account, test_property):
    rule = MatchingRule(
        bank_account_id=bank_account.id,
        priority=0,
        name="Rent from tenant",
        conditions=conditions(condition("description", "contains", "rent")),
        property_id=test_property.id,
        type="INCOME",
        category="Rent",
    )
    db_session.add(rule)
    await db_session.commit()
    return rule


class TestNormalizeTransaction:
    def test_minor_units_converted_with_sign(self):
        values = normalize_transaction(raw("tx_1", -4550))
        assert values["amount"] == Decimal("-45.50")

    def test_merchant_object_and_notes(self):
        values = normalize_transaction(
            raw("tx_1", -899, merchant={"id": "merch_1", "name": "Screwfix"}, notes="Invoice 42")
        )
        assert values["merchant"] == "Screwfix"
        assert values["reference"] == "Invoice 42"

    def test_unexpanded_merchant_and_blank_notes(self):
        values = normalize_transaction(raw("tx_1", -899, merchant="merch_1"))
        assert values["merchant"] is None
        assert values["reference"] is None
        assert values["settled_date"] is None

    def test_missing_created_falls_back_to_now(self):
        item = MonzoTransaction.model_validate({"id": "tx_1", "amount": 100, "created": ""})
        before = datetime.now(timezone.utc)
        values = normalize_transaction(item)
        assert values["transaction_date"] >= before - timedelta(seconds=1)


class TestProcessTransactions:
    @pytest.mark.asyncio
    async def test_fully_matched_transaction_is_approved(self, db_session, bank_account, test_property, rent_rule):
        processor = TransactionProcessor(db_session)

        result = await processor.process_transactions(
            [raw("tx_rent", 120000, "RENT MARCH FLAT 2")], bank_account.id
        )

        assert (result.processed, result.approved, result.pending) == (1, 1, 0)
        assert result.outcome == ProcessingOutcome.SUCCEEDED
        stored = await BankTransactionRepository(db_session).get_by_external_id(bank_account.id, "tx_rent")
        assert stored.transaction_id is not None
        assert stored.pending_transaction_id is None
        ledger = (await db_session.execute(select(Transaction))).scalar_one()
        assert ledger.amount == Decimal("1200.00")
        assert ledger.type == "Income"
        assert ledger.category == "Rent"
        assert ledger.property_id == test_property.id
        assert ledger.is_imported
        assert ledger.bank_transaction_id == stored.id

    @pytest.mark.asyncio
    async def test_unmatched_transaction_goes_to_review(self, db_session, bank_account, rent_rule):
        processor = TransactionProcessor(db_session)

        result = await processor.process_transactions([raw("tx_shop", -2599, "TESCO")], bank_account.id)

        assert (result.processed, result.approved, result.pending) == (1, 0, 1)
        pending = (await db_session.execute(select(PendingTransaction))).scalar_one()
        assert pending.property_id is None
        assert pending.type is None
        assert pending.category is None
        assert pending.description == "TESCO"
        stored = await BankTransactionRepository(db_session).get_by_external_id(bank_account.id, "tx_shop")
        assert stored.pending_transaction_id == pending.id
        assert stored.transaction_id is None

    @pytest.mark.asyncio
    async def test_partial_match_keeps_candidate_fields(self, db_session, bank_account):
        db_session.add(
            MatchingRule(
                bank_account_id=bank_account.id,
                priority=0,
                name="Hardware stores",
                conditions=conditions(condition("merchant", "equals", "screwfix")),
                type="EXPENSE",
                category="Repair",
            )
        )
        await db_session.commit()
        processor = TransactionProcessor(db_session)

        result = await processor.process_transactions(
            [raw("tx_tools", -4550, merchant={"id": "m1", "name": "Screwfix"})], bank_account.id
        )

        assert result.pending == 1
        pending = (await db_session.execute(select(PendingTransaction))).scalar_one()
        assert pending.type == "Expense"
        assert pending.category == "Repair"
        assert pending.property_id is None

    @pytest.mark.asyncio
    async def test_unknown_property_is_not_approved(self, db_session, bank_account):
        db_session.add(
            MatchingRule(
                bank_account_id=bank_account.id,
                priority=0,
                name="Stale rule",
                conditions=conditions(condition("description", "contains", "rent")),
                property_id=uuid4(),
                type="INCOME",
                category="Rent",
            )
        )
        await db_session.commit()
        processor = TransactionProcessor(db_session)

        result = await processor.process_transactions([raw("tx_rent", 95000, "RENT")], bank_account.id)

        assert (result.approved, result.pending) == (0, 1)
        pending = (await db_session.execute(select(PendingTransaction))).scalar_one()
        assert pending.property_id is None

    @pytest.mark.asyncio
    async def test_category_not_matching_type_is_not_approved(self, db_session, bank_account, test_property):
        db_session.add(
            MatchingRule(
                bank_account_id=bank_account.id,
                priority=0,
                name="Mismatched",
                conditions=conditions(condition("description", "contains", "rent")),
                property_id=test_property.id,
                type="EXPENSE",
                category="Rent",
            )
        )
        await db_session.commit()
        processor = TransactionProcessor(db_session)

        result = await processor.process_transactions([raw("tx_rent", 95000, "RENT")], bank_account.id)

        assert result.pending == 1

    @pytest.mark.asyncio
    async def test_duplicates_are_skipped(self, db_session, bank_account, rent_rule):
        processor = TransactionProcessor(db_session)
        batch = [raw("tx_1", -100), raw("tx_2", 120000, "RENT")]

        first = await processor.process_transactions(batch, bank_account.id)
        second = await processor.process_transactions(batch, bank_account.id)

        assert first.processed == 2
        assert second.processed == 0
        assert second.duplicates_skipped == 2
        assert second.outcome == ProcessingOutcome.SUCCEEDED
        assert await BankTransactionRepository(db_session).count_by_account(bank_account.id) == 2
        ledger_rows = (await db_session.execute(select(Transaction))).scalars().all()
        assert len(ledger_rows) == 1

    @pytest.mark.asyncio
    async def test_signed_amount_rules(self, db_session, bank_account, test_property):
        db_session.add(
            MatchingRule(
                bank_account_id=bank_account.id,
                priority=0,
                name="Large outgoings",
                conditions=conditions(condition("amount", "lessThan", -40)),
                property_id=test_property.id,
                type="EXPENSE",
                category="Maintenance",
            )
        )
        await db_session.commit()
        processor = TransactionProcessor(db_session)

        result = await processor.process_transactions(
            [raw("tx_big", -4550), raw("tx_small", -1000), raw("tx_income", 4550)], bank_account.id
        )

        assert (result.approved, result.pending) == (1, 2)
        ledger = (await db_session.execute(select(Transaction))).scalar_one()
        assert ledger.amount == Decimal("-45.50")

    @pytest.mark.asyncio
    async def test_global_rules_apply_after_account_rules(self, db_session, bank_account, test_property):
        db_session.add_all(
            [
                MatchingRule(
                    bank_account_id=None,
                    priority=0,
                    name="Global utilities",
                    conditions=conditions(condition("description", "contains", "octopus")),
                    property_id=test_property.id,
                    type="EXPENSE",
                    category="Utilities",
                ),
                MatchingRule(
                    bank_account_id=bank_account.id,
                    priority=5,
                    name="Account energy override",
                    conditions=conditions(condition("description", "startsWith", "octopus")),
                    category="Other",
                ),
            ]
        )
        await db_session.commit()
        processor = TransactionProcessor(db_session)

        result = await processor.process_transactions([raw("tx_energy", -8800, "OCTOPUS ENERGY")], bank_account.id)

        assert result.approved == 1
        ledger = (await db_session.execute(select(Transaction))).scalar_one()
        assert ledger.category == "Other"
        assert ledger.type == "Expense"

    @pytest.mark.asyncio
    async def test_failing_item_does_not_stop_batch(self, db_session, bank_account, monkeypatch):
        processor = TransactionProcessor(db_session)
        original = processor._process_one

        async def flaky(item, bank_account_id, rules):
            if item.id == "tx_bad":
                raise ValueError("unexpected payload")
            return await original(item, bank_account_id, rules)

        monkeypatch.setattr(processor, "_process_one", flaky)

        result = await processor.process_transactions(
            [raw("tx_1", -100), raw("tx_bad", -200), raw("tx_3", -300)], bank_account.id
        )

        assert result.processed == 2
        assert [error.external_id for error in result.errors] == ["tx_bad"]
        assert result.outcome == ProcessingOutcome.PARTIAL
        stored = (await db_session.execute(select(BankTransaction.external_id))).scalars().all()
        assert sorted(stored) == ["tx_1", "tx_3"]

    @pytest.mark.asyncio
    async def test_every_item_failing_is_failed_outcome(self, db_session, bank_account, monkeypatch):
        processor = TransactionProcessor(db_session)

        async def broken(item, bank_account_id, rules):
            raise ValueError("unexpected payload")

        monkeypatch.setattr(processor, "_process_one", broken)

        result = await processor.process_transactions([raw("tx_1", -100), raw("tx_2", -200)], bank_account.id)

        assert result.outcome == ProcessingOutcome.FAILED
        assert len(result.errors) == 2

    @pytest.mark.asyncio
    async def test_rule_with_non_finite_threshold_is_ignored(self, db_session, bank_account, rent_rule):
        db_session.add(
            MatchingRule(
                bank_account_id=bank_account.id,
                priority=1,
                name="Broken threshold",
                conditions=conditions(condition("amount", "greaterThan", "NaN")),
                type="EXPENSE",
            )
        )
        await db_session.commit()
        processor = TransactionProcessor(db_session)

        result = await processor.process_transactions(
            [raw("tx_1", -100), raw("tx_2", -200), raw("tx_rent", 120000, "RENT")], bank_account.id
        )

        assert result.errors == []
        assert (result.processed, result.approved, result.pending) == (3, 1, 2)
        assert result.outcome == ProcessingOutcome.SUCCEEDED

    @pytest.mark.asyncio
    async def test_constraint_violation_without_stored_row_is_an_error(self, db_session, bank_account, monkeypatch):
        processor = TransactionProcessor(db_session)

        async def violates_foreign_key(item, bank_account_id, rules):
            raise IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))

        monkeypatch.setattr(processor, "_process_one", violates_foreign_key)

        result = await processor.process_transactions([raw("tx_1", -100)], bank_account.id)

        assert result.duplicates_skipped == 0
        assert [error.external_id for error in result.errors] == ["tx_1"]
        assert result.outcome == ProcessingOutcome.FAILED

    @pytest.mark.asyncio
    async def test_constraint_violation_for_stored_row_is_a_duplicate(self, db_session, bank_account, monkeypatch):
        processor = TransactionProcessor(db_session)
        await processor.process_transactions([raw("tx_1", -100)], bank_account.id)

        async def lost_race(item, bank_account_id, rules):
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

        monkeypatch.setattr(processor, "_process_one", lost_race)

        result = await processor.process_transactions([raw("tx_1", -100)], bank_account.id)

        assert result.duplicates_skipped == 1
        assert result.errors == []


class TestReissuedTransactions:
    """Same payment delivered again under a new provider id."""

    @pytest.mark.asyncio
    async def test_settled_copy_is_skipped(self, db_session, bank_account):
        processor = TransactionProcessor(db_session)
        pending = MonzoTransaction.model_validate(
            monzo_transaction("tx_pending", -2599, CREATED, "TESCO STORES 3297")
        )
        settled = MonzoTransaction.model_validate(
            monzo_transaction("tx_settled", -2599, CREATED + timedelta(hours=20), "Tesco Stores  3297")
        )

        await processor.process_transactions([pending], bank_account.id)
        result = await processor.process_transactions([settled], bank_account.id)

        assert result.duplicates_skipped == 1
        assert result.processed == 0
        stored = (await db_session.execute(select(BankTransaction.external_id))).scalars().all()
        assert stored == ["tx_pending"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "amount,offset,description",
        [
            (-2600, timedelta(hours=2), "TESCO STORES 3297"),
            (-2599, timedelta(days=2), "TESCO STORES 3297"),
            (-2599, timedelta(hours=2), "SAINSBURYS LOCAL"),
        ],
    )
    async def test_similar_but_distinct_transaction_is_stored(
        self, db_session, bank_account, amount, offset, description
    ):
        processor = TransactionProcessor(db_session)
        first = MonzoTransaction.model_validate(monzo_transaction("tx_1", -2599, CREATED, "TESCO STORES 3297"))
        second = MonzoTransaction.model_validate(monzo_transaction("tx_2", amount, CREATED + offset, description))

        await processor.process_transactions([first], bank_account.id)
        result = await processor.process_transactions([second], bank_account.id)

        assert result.processed == 1
        assert result.duplicates_skipped == 0

"""Normalize, deduplicate, categorize and store provider transactions.

The same TransactionProcessor is used by the bulk import, manual syncs and
webhooks, so every entry point applies identical dedup and rule semantics.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.categorization.categories import to_ledger_type
from bankfeed.categorization.engine import RuleSnapshot, evaluate_rules
from bankfeed.core.clock import utcnow
from bankfeed.models.bank_transaction import BankTransaction
from bankfeed.models.pending_transaction import PendingTransaction
from bankfeed.providers.monzo import MonzoTransaction
from bankfeed.repositories.bank_transaction import BankTransactionRepository
from bankfeed.repositories.matching_rule import MatchingRuleRepository
from bankfeed.repositories.pending_transaction import PendingTransactionRepository
from bankfeed.services.approval import TransactionApprover
from bankfeed.services.duplicates import DuplicateDetector

logger = logging.getLogger(__name__)

MINOR_UNITS = Decimal(100)
CENTS = Decimal("0.01")


class ProcessingOutcome(StrEnum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemError:
    external_id: str
    message: str


@dataclass
class ProcessingResult:
    """Counts for one batch.

    processed: newly stored BankTransactions
    approved: of those, turned straight into ledger Transactions
    pending: of those, queued for review
    """

    processed: int = 0
    duplicates_skipped: int = 0
    approved: int = 0
    pending: int = 0
    errors: list[ItemError] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.processed + self.duplicates_skipped + len(self.errors)

    @property
    def outcome(self) -> ProcessingOutcome:
        if not self.errors:
            return ProcessingOutcome.SUCCEEDED
        if self.processed == 0 and self.duplicates_skipped == 0:
            return ProcessingOutcome.FAILED
        return ProcessingOutcome.PARTIAL

    def merge(self, other: "ProcessingResult") -> None:
        self.processed += other.processed
        self.duplicates_skipped += other.duplicates_skipped
        self.approved += other.approved
        self.pending += other.pending
        self.errors.extend(other.errors)


def normalize_transaction(raw: MonzoTransaction) -> dict[str, Any]:
    """Map a provider transaction onto BankTransaction columns.

    Amounts are converted from minor to major units with the sign kept.
    """
    return {
        "external_id": raw.id,
        "amount": (Decimal(raw.amount) / MINOR_UNITS).quantize(CENTS),
        "currency": raw.currency or "GBP",
        "description": raw.description or "",
        "counterparty_name": raw.counterparty_name,
        "reference": raw.notes or None,
        "merchant": raw.merchant_name,
        "category": raw.category,
        "transaction_date": raw.created or utcnow(),
        "settled_date": raw.settled,
    }


class TransactionProcessor:
    """Stores a batch of provider transactions one item at a time.

    Each item is committed on its own; a failing item is rolled back and
    recorded without affecting the rest of the batch.
    """

    def __init__(self, db: AsyncSession):
        """Initialize the processor.

        Args:
            db: Database session
        """
        self.db = db
        self.bank_transaction_repo = BankTransactionRepository(db)
        self.pending_repo = PendingTransactionRepository(db)
        self.rule_repo = MatchingRuleRepository(db)
        self.approver = TransactionApprover(db)
        self.duplicates = DuplicateDetector(self.bank_transaction_repo)

    async def load_rules(self, bank_account_id: UUID) -> list[RuleSnapshot]:
        rules = await self.rule_repo.get_rules_for_account(bank_account_id)
        return [RuleSnapshot.from_rule(rule) for rule in rules]

    async def process_transactions(
        self, raw_transactions: Iterable[MonzoTransaction], bank_account_id: UUID
    ) -> ProcessingResult:
        """Run every transaction through dedup, rules and storage.

        Args:
            raw_transactions: Provider transactions for one account
            bank_account_id: Internal bank account id

        Returns:
            ProcessingResult with counts and per-item errors
        """
        rules = await self.load_rules(bank_account_id)
        result = ProcessingResult()

        for raw in raw_transactions:
            try:
                outcome = await self._process_one(raw, bank_account_id, rules)
            except IntegrityError as exc:
                await self.db.rollback()
                if await self.bank_transaction_repo.get_by_external_id(bank_account_id, raw.id) is not None:
                    # Lost a race with a concurrent sync or webhook for the same item.
                    result.duplicates_skipped += 1
                    continue
                logger.error(
                    "Constraint violation while storing bank transaction",
                    extra={"external_id": raw.id, "bank_account_id": str(bank_account_id)},
                )
                result.errors.append(ItemError(external_id=raw.id, message=type(exc).__name__))
                continue
            except Exception as exc:
                await self.db.rollback()
                logger.error(
                    "Failed to process bank transaction",
                    extra={
                        "external_id": raw.id,
                        "bank_account_id": str(bank_account_id),
                        "error_type": type(exc).__name__,
                    },
                )
                result.errors.append(ItemError(external_id=raw.id, message=str(exc) or type(exc).__name__))
                continue

            if outcome == "duplicate":
                result.duplicates_skipped += 1
                continue
            result.processed += 1
            if outcome == "approved":
                result.approved += 1
            else:
                result.pending += 1

        logger.info(
            "Processed bank transactions",
            extra={
                "bank_account_id": str(bank_account_id),
                "processed": result.processed,
                "duplicates_skipped": result.duplicates_skipped,
                "approved": result.approved,
                "pending": result.pending,
                "errors": len(result.errors),
            },
        )
        return result

    async def _process_one(
        self, raw: MonzoTransaction, bank_account_id: UUID, rules: list[RuleSnapshot]
    ) -> str:
        values = normalize_transaction(raw)
        existing = await self.duplicates.find_duplicate(
            bank_account_id,
            values["external_id"],
            values["amount"],
            values["description"],
            values["transaction_date"],
        )
        if existing is not None:
            return "duplicate"

        bank_transaction = BankTransaction(
            bank_account_id=bank_account_id, imported_at=utcnow(), **values
        )
        await self.bank_transaction_repo.add(bank_transaction)

        match = evaluate_rules(bank_transaction, rules)
        if match.is_fully_matched and await self.approver.is_valid_assignment(
            match.property_id, match.type, match.category
        ):
            await self.approver.create_ledger_entry(
                bank_transaction, match.property_id, match.type, match.category
            )
            await self.db.commit()
            return "approved"

        pending = PendingTransaction(
            bank_transaction_id=bank_transaction.id,
            property_id=await self.approver.known_property(match.property_id),
            type=to_ledger_type(match.type),
            category=match.category,
            transaction_date=bank_transaction.transaction_date,
            description=bank_transaction.description,
        )
        await self.pending_repo.add(pending)
        bank_transaction.pending_transaction_id = pending.id
        await self.db.commit()
        return "pending"

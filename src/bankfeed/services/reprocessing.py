"""Re-evaluate the review queue after matching rules change."""
import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.categorization.categories import to_ledger_type
from bankfeed.categorization.engine import RuleSnapshot, evaluate_rules
from bankfeed.repositories.bank_transaction import BankTransactionRepository
from bankfeed.repositories.matching_rule import MatchingRuleRepository
from bankfeed.repositories.pending_transaction import PendingTransactionRepository
from bankfeed.services.approval import TransactionApprover

logger = logging.getLogger(__name__)


@dataclass
class ReprocessingResult:
    processed: int = 0
    approved: int = 0
    failed: int = 0


class ReprocessingService:
    """Re-runs the rule engine over PendingTransactions.

    Rows that become fully and validly matched are approved (ledger entry
    created, BankTransaction relinked, pending row deleted) in a single
    commit. Other rows get their candidate fields updated in place.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.pending_repo = PendingTransactionRepository(db)
        self.bank_transaction_repo = BankTransactionRepository(db)
        self.rule_repo = MatchingRuleRepository(db)
        self.approver = TransactionApprover(db)

    async def reprocess_pending_transactions(
        self, bank_account_id: UUID | None = None
    ) -> ReprocessingResult:
        """Re-evaluate every pending row in scope.

        Args:
            bank_account_id: Limit to one account; None covers all accounts

        Returns:
            ReprocessingResult with processed, approved and failed counts
        """
        result = ReprocessingResult()
        rules_by_account: dict[UUID, list[RuleSnapshot]] = {}
        pending_ids = await self.pending_repo.list_ids(bank_account_id)

        for pending_id in pending_ids:
            try:
                approved = await self._reprocess_one(pending_id, rules_by_account)
            except Exception as exc:
                await self.db.rollback()
                result.failed += 1
                logger.error(
                    "Failed to reprocess pending transaction",
                    extra={"pending_transaction_id": str(pending_id), "error_type": type(exc).__name__},
                )
                continue
            if approved is None:
                continue
            result.processed += 1
            if approved:
                result.approved += 1

        logger.info(
            "Reprocessed pending transactions",
            extra={
                "bank_account_id": str(bank_account_id) if bank_account_id else None,
                "processed": result.processed,
                "approved": result.approved,
                "failed": result.failed,
            },
        )
        return result

    async def _rules_for(
        self, bank_account_id: UUID, cache: dict[UUID, list[RuleSnapshot]]
    ) -> list[RuleSnapshot]:
        if bank_account_id not in cache:
            rules = await self.rule_repo.get_rules_for_account(bank_account_id)
            cache[bank_account_id] = [RuleSnapshot.from_rule(rule) for rule in rules]
        return cache[bank_account_id]

    async def _reprocess_one(
        self, pending_id: UUID, rules_by_account: dict[UUID, list[RuleSnapshot]]
    ) -> bool | None:
        pending = await self.pending_repo.get_by_id(pending_id)
        if pending is None:
            # Approved by someone else since the ids were listed.
            return None
        bank_transaction = await self.bank_transaction_repo.get_by_id(pending.bank_transaction_id)
        rules = await self._rules_for(bank_transaction.bank_account_id, rules_by_account)
        match = evaluate_rules(bank_transaction, rules)

        property_id = await self.approver.known_property(match.property_id)
        transaction_type = to_ledger_type(match.type)
        category = match.category
        if pending.reviewed_at is not None:
            # Values chosen by a reviewer win over rule output.
            property_id = pending.property_id or property_id
            transaction_type = pending.type or transaction_type
            category = pending.category or category

        pending.property_id = property_id
        pending.type = transaction_type
        pending.category = category

        if pending.is_complete and await self.approver.is_valid_assignment(
            property_id, transaction_type, category
        ):
            await self.approver.approve_pending(pending, bank_transaction)
            await self.db.commit()
            return True

        await self.db.commit()
        return False

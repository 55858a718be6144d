"""Matching rule management. Every change re-evaluates the review queue."""
import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.categorization.categories import (
    CATEGORIES_BY_TYPE,
    DEFAULT_RULE_PREFIX,
    DEFAULT_RULES,
    validate_type_category,
)
from bankfeed.categorization.engine import RuleMatch, RuleSnapshot, evaluate_rules
from bankfeed.core.exceptions import (
    BankAccountNotFound,
    GlobalRuleImmutable,
    InvalidRuleAssignment,
    RuleNotFound,
    RuleReorderMismatch,
)
from bankfeed.models.matching_rule import MatchingRule
from bankfeed.repositories.bank_account import BankAccountRepository
from bankfeed.repositories.matching_rule import MatchingRuleRepository
from bankfeed.repositories.property import PropertyRepository
from bankfeed.services.reprocessing import ReprocessingResult, ReprocessingService

logger = logging.getLogger(__name__)

ALL_CATEGORIES = frozenset().union(*CATEGORIES_BY_TYPE.values())


@dataclass
class RuleChange:
    """A rule mutation and the reprocessing it triggered."""

    rule: MatchingRule | None
    reprocessing: ReprocessingResult


@dataclass(frozen=True)
class SampleTransaction:
    """Hand-written transaction used to try out a rule."""

    description: str | None = None
    amount: Decimal = Decimal("0")
    counterparty_name: str | None = None
    reference: str | None = None
    merchant: str | None = None


class RuleService:
    """Service layer for matching rule operations."""

    def __init__(self, db: AsyncSession):
        """Initialize rule service with database session.

        Args:
            db: Database session
        """
        self.db = db
        self.rule_repo = MatchingRuleRepository(db)
        self.account_repo = BankAccountRepository(db)
        self.property_repo = PropertyRepository(db)
        self.reprocessing = ReprocessingService(db)

    async def _require_account(self, bank_account_id: UUID) -> None:
        if await self.account_repo.get_by_id(bank_account_id) is None:
            raise BankAccountNotFound(details={"bank_account_id": str(bank_account_id)})

    async def get_rule(self, rule_id: UUID) -> MatchingRule:
        rule = await self.rule_repo.get_by_id(rule_id)
        if rule is None:
            raise RuleNotFound(details={"rule_id": str(rule_id)})
        return rule

    async def _get_account_rule(self, rule_id: UUID) -> MatchingRule:
        rule = await self.get_rule(rule_id)
        if rule.is_global:
            raise GlobalRuleImmutable(details={"rule_id": str(rule_id)})
        return rule

    async def _validate_assignment(
        self, property_id: UUID | None, rule_type: str | None, category: str | None
    ) -> None:
        if rule_type and category and not validate_type_category(rule_type, category):
            raise InvalidRuleAssignment(details={"type": rule_type, "category": category})
        if category and not rule_type and category not in ALL_CATEGORIES:
            raise InvalidRuleAssignment(details={"category": category})
        if property_id is not None and not await self.property_repo.exists(property_id):
            raise InvalidRuleAssignment(details={"property_id": str(property_id)})

    async def _reprocess(self, bank_account_id: UUID | None) -> ReprocessingResult:
        return await self.reprocessing.reprocess_pending_transactions(bank_account_id)

    async def list_rules(self, bank_account_id: UUID) -> list[MatchingRule]:
        """Rules that apply to an account: its own first, then global ones.

        Args:
            bank_account_id: Bank account ID

        Returns:
            Rules in evaluation order
        """
        await self._require_account(bank_account_id)
        return await self.rule_repo.get_rules_for_account(bank_account_id)

    async def create_rule(self, bank_account_id: UUID, data: dict[str, Any]) -> RuleChange:
        """Create an account rule at the lowest precedence.

        Args:
            bank_account_id: Owning bank account
            data: name, conditions, enabled, property_id, type, category

        Returns:
            RuleChange with the new rule and the reprocessing summary
        """
        await self._require_account(bank_account_id)
        await self._validate_assignment(data.get("property_id"), data.get("type"), data.get("category"))

        max_priority = await self.rule_repo.get_max_priority(bank_account_id)
        rule = await self.rule_repo.create(
            MatchingRule(
                bank_account_id=bank_account_id,
                priority=0 if max_priority is None else max_priority + 1,
                name=data["name"],
                enabled=data.get("enabled", True),
                conditions=data["conditions"],
                property_id=data.get("property_id"),
                type=data.get("type"),
                category=data.get("category"),
            )
        )
        rule_id = rule.id
        logger.info("Matching rule created", extra={"rule_id": str(rule_id)})

        reprocessing = await self._reprocess(bank_account_id)
        return RuleChange(rule=await self.rule_repo.get_by_id(rule_id), reprocessing=reprocessing)

    async def update_rule(self, rule_id: UUID, changes: dict[str, Any]) -> RuleChange:
        """Apply a partial update to an account rule.

        Raises:
            RuleNotFound: Unknown rule
            GlobalRuleImmutable: The rule is global
            InvalidRuleAssignment: Resulting property/type/category is not allowed
        """
        rule = await self._get_account_rule(rule_id)
        merged = {
            "property_id": changes.get("property_id", rule.property_id),
            "type": changes.get("type", rule.type),
            "category": changes.get("category", rule.category),
        }
        await self._validate_assignment(merged["property_id"], merged["type"], merged["category"])

        bank_account_id = rule.bank_account_id
        await self.rule_repo.update(rule_id, changes)
        logger.info("Matching rule updated", extra={"rule_id": str(rule_id)})

        reprocessing = await self._reprocess(bank_account_id)
        return RuleChange(rule=await self.rule_repo.get_by_id(rule_id), reprocessing=reprocessing)

    async def delete_rule(self, rule_id: UUID) -> RuleChange:
        rule = await self._get_account_rule(rule_id)
        bank_account_id = rule.bank_account_id
        await self.rule_repo.delete(rule_id)
        logger.info("Matching rule deleted", extra={"rule_id": str(rule_id)})
        return RuleChange(rule=None, reprocessing=await self._reprocess(bank_account_id))

    async def reorder_rules(self, rule_ids: list[UUID]) -> RuleChange:
        """Set priorities to the position of each id in the list.

        Args:
            rule_ids: Account rule ids in the desired evaluation order

        Raises:
            RuleNotFound: Some id does not exist
            GlobalRuleImmutable: Some id is a global rule
            RuleReorderMismatch: The rules belong to different accounts
        """
        rules = await self.rule_repo.get_by_ids(rule_ids)
        by_id = {rule.id: rule for rule in rules}
        missing = [str(rule_id) for rule_id in rule_ids if rule_id not in by_id]
        if missing:
            raise RuleNotFound(details={"rule_ids": missing})
        if any(rule.is_global for rule in rules):
            raise GlobalRuleImmutable(details={"reason": "global rules cannot be reordered"})
        account_ids = {rule.bank_account_id for rule in rules}
        if len(account_ids) > 1:
            raise RuleReorderMismatch()

        for index, rule_id in enumerate(rule_ids):
            by_id[rule_id].priority = index
        await self.db.commit()
        logger.info("Matching rules reordered", extra={"count": len(rule_ids)})

        bank_account_id = account_ids.pop() if account_ids else None
        if bank_account_id is None:
            return RuleChange(rule=None, reprocessing=ReprocessingResult())
        return RuleChange(rule=None, reprocessing=await self._reprocess(bank_account_id))

    async def test_rule(self, rule_id: UUID, sample: SampleTransaction) -> RuleMatch:
        """Evaluate one rule against a sample transaction, even if disabled."""
        rule = await self.get_rule(rule_id)
        snapshot = replace(RuleSnapshot.from_rule(rule), enabled=True)
        return evaluate_rules(sample, [snapshot])

    async def create_default_rules(self) -> RuleChange:
        """Seed the global default rules that are not present yet.

        Idempotent: defaults are recognised by name.
        """
        existing = {
            rule.name
            for rule in await self.rule_repo.get_global_rules()
            if rule.name.startswith(DEFAULT_RULE_PREFIX)
        }
        created = 0
        for definition in DEFAULT_RULES:
            if definition["name"] in existing:
                continue
            self.db.add(
                MatchingRule(
                    bank_account_id=None,
                    priority=definition["priority"],
                    name=definition["name"],
                    enabled=True,
                    conditions=definition["conditions"],
                    type=definition["type"],
                    category=definition["category"],
                )
            )
            created += 1
        if not created:
            return RuleChange(rule=None, reprocessing=ReprocessingResult())

        await self.db.commit()
        logger.info("Default matching rules created", extra={"count": created})
        return RuleChange(rule=None, reprocessing=await self._reprocess(None))

"""Matching rule repository."""
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.models.matching_rule import MatchingRule
from bankfeed.repositories.base import BaseRepository


class MatchingRuleRepository(BaseRepository[MatchingRule]):
    """Repository for categorization rules."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, MatchingRule)

    async def get_rules_for_account(self, bank_account_id: UUID) -> list[MatchingRule]:
        """Account-specific rules followed by global rules, each by priority."""
        result = await self.db.execute(
            select(MatchingRule)
            .where(
                or_(
                    MatchingRule.bank_account_id == bank_account_id,
                    MatchingRule.bank_account_id.is_(None),
                )
            )
            .order_by(
                MatchingRule.bank_account_id.is_(None),
                MatchingRule.priority,
                MatchingRule.created_at,
            )
        )
        return list(result.scalars().all())

    async def get_global_rules(self) -> list[MatchingRule]:
        result = await self.db.execute(
            select(MatchingRule)
            .where(MatchingRule.bank_account_id.is_(None))
            .order_by(MatchingRule.priority, MatchingRule.created_at)
        )
        return list(result.scalars().all())

    async def get_max_priority(self, bank_account_id: UUID) -> int | None:
        result = await self.db.execute(
            select(func.max(MatchingRule.priority)).where(
                MatchingRule.bank_account_id == bank_account_id
            )
        )
        return result.scalar_one_or_none()

    async def get_by_ids(self, rule_ids: list[UUID]) -> list[MatchingRule]:
        result = await self.db.execute(select(MatchingRule).where(MatchingRule.id.in_(rule_ids)))
        return list(result.scalars().all())

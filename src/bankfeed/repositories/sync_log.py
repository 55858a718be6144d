"""Sync log repository."""
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.models.bank_account import SyncStatus
from bankfeed.models.sync_log import SyncLog, SyncType
from bankfeed.repositories.base import BaseRepository

FETCHING_SYNC_TYPES = (SyncType.INITIAL, SyncType.MANUAL)


class SyncLogRepository(BaseRepository[SyncLog]):
    """Repository for sync attempt audit rows."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, SyncLog)

    async def get_in_progress(self, bank_account_id: UUID) -> SyncLog | None:
        """Running bulk or manual sync for an account, if any."""
        result = await self.db.execute(
            select(SyncLog).where(
                SyncLog.bank_account_id == bank_account_id,
                SyncLog.status == SyncStatus.IN_PROGRESS,
                SyncLog.sync_type.in_(FETCHING_SYNC_TYPES),
            )
        )
        return result.scalars().first()

    async def get_by_webhook_event_id(self, event_id: str) -> SyncLog | None:
        result = await self.db.execute(
            select(SyncLog).where(SyncLog.webhook_event_id == event_id)
        )
        return result.scalar_one_or_none()

    async def get_last_successful_fetch(self, bank_account_id: UUID) -> SyncLog | None:
        """Latest bulk or manual sync that fetched the whole window."""
        result = await self.db.execute(
            select(SyncLog)
            .where(
                SyncLog.bank_account_id == bank_account_id,
                SyncLog.status == SyncStatus.SUCCESS,
                SyncLog.sync_type.in_(FETCHING_SYNC_TYPES),
            )
            .order_by(SyncLog.started_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_account(self, bank_account_id: UUID, limit: int = 20) -> list[SyncLog]:
        result = await self.db.execute(
            select(SyncLog)
            .where(SyncLog.bank_account_id == bank_account_id)
            .order_by(SyncLog.started_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_recent_webhooks(self, limit: int = 20) -> list[SyncLog]:
        """Newest webhook deliveries across all accounts."""
        result = await self.db.execute(
            select(SyncLog)
            .where(SyncLog.sync_type == SyncType.WEBHOOK)
            .order_by(SyncLog.started_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_failed_webhooks_since(self, since: datetime) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(SyncLog)
            .where(
                SyncLog.sync_type == SyncType.WEBHOOK,
                SyncLog.status == SyncStatus.FAILED,
                SyncLog.started_at >= since,
            )
        )
        return int(result.scalar_one())

    async def latest_webhook_by_account(self, bank_account_ids: list[UUID]) -> dict[UUID, SyncLog]:
        """Most recent webhook log for each of the given accounts."""
        if not bank_account_ids:
            return {}
        latest = (
            select(SyncLog.bank_account_id, func.max(SyncLog.started_at).label("started_at"))
            .where(
                SyncLog.sync_type == SyncType.WEBHOOK,
                SyncLog.bank_account_id.in_(bank_account_ids),
            )
            .group_by(SyncLog.bank_account_id)
            .subquery()
        )
        result = await self.db.execute(
            select(SyncLog).join(
                latest,
                and_(
                    SyncLog.bank_account_id == latest.c.bank_account_id,
                    SyncLog.started_at == latest.c.started_at,
                ),
            ).where(SyncLog.sync_type == SyncType.WEBHOOK)
        )
        return {log.bank_account_id: log for log in result.scalars().all()}

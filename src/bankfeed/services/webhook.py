"""Real-time ingestion of transaction.created webhook deliveries, and their health report."""
import logging
from datetime import timedelta
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.config import Settings
from bankfeed.core.clock import as_utc, utcnow
from bankfeed.core.exceptions import (
    InvalidWebhookPayload,
    UnsupportedWebhookProvider,
    WebhookForbidden,
    WebhookMisconfigured,
    WebhookProcessingFailed,
)
from bankfeed.core.security import verify_webhook_secret
from bankfeed.models.bank_account import SyncStatus
from bankfeed.models.sync_log import SyncLog, SyncType
from bankfeed.providers.monzo import MonzoWebhookPayload
from bankfeed.repositories.bank_account import BankAccountRepository
from bankfeed.repositories.sync_log import SyncLogRepository
from bankfeed.schemas.webhook import AccountWebhookStatus, WebhookEvent, WebhookStatusResponse
from bankfeed.services.processor import ProcessingResult, TransactionProcessor

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = {"monzo"}
RECENT_WEBHOOK_EVENTS = 20


class WebhookOutcome(StrEnum):
    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"
    UNKNOWN_ACCOUNT = "unknown_account"


class WebhookService:
    """Authenticates webhook deliveries and imports their transaction."""

    def __init__(self, db: AsyncSession, processor: TransactionProcessor, settings: Settings):
        self.db = db
        self.processor = processor
        self.settings = settings
        self.account_repo = BankAccountRepository(db)
        self.sync_log_repo = SyncLogRepository(db)

    def authenticate(self, provider: str, secret: str, client_ip: str | None = None) -> None:
        """Check the provider name and the secret embedded in the URL path.

        Raises:
            UnsupportedWebhookProvider: Unknown provider segment
            WebhookMisconfigured: No secret configured on this server
            WebhookForbidden: Secret mismatch
        """
        if provider not in SUPPORTED_PROVIDERS:
            raise UnsupportedWebhookProvider(details={"provider": provider})
        expected = self.settings.monzo_webhook_secret
        if not expected:
            logger.error("Webhook received but MONZO_WEBHOOK_SECRET is not configured")
            raise WebhookMisconfigured()
        if not verify_webhook_secret(secret, expected):
            logger.warning(
                "Rejected webhook with invalid secret",
                extra={"provider": provider, "client_ip": client_ip},
            )
            raise WebhookForbidden()

    def parse_payload(self, body: Any) -> MonzoWebhookPayload:
        """Validate a delivery as a transaction.created event.

        Raises:
            InvalidWebhookPayload: Other event types, or account_id/id/amount missing
        """
        try:
            return MonzoWebhookPayload.model_validate(body)
        except ValidationError as exc:
            raise InvalidWebhookPayload(details={"errors": exc.error_count()}) from exc

    async def handle_transaction_created(self, payload: MonzoWebhookPayload) -> WebhookOutcome:
        """Import the delivered transaction exactly once.

        Args:
            payload: Validated webhook payload

        Returns:
            WebhookOutcome describing what happened

        Raises:
            WebhookProcessingFailed: The transaction could not be stored; the
                provider is expected to retry the delivery
        """
        transaction = payload.data
        event_id = transaction.id

        if await self.sync_log_repo.get_by_webhook_event_id(event_id) is not None:
            logger.info("Webhook already processed", extra={"webhook_event_id": event_id})
            return WebhookOutcome.ALREADY_PROCESSED

        account = await self.account_repo.get_by_account_id(transaction.account_id)
        if account is None:
            logger.info("Webhook for unknown bank account ignored", extra={"webhook_event_id": event_id})
            return WebhookOutcome.UNKNOWN_ACCOUNT
        bank_account_id = account.id

        sync_log = SyncLog(
            bank_account_id=bank_account_id,
            sync_type=SyncType.WEBHOOK,
            status=SyncStatus.IN_PROGRESS,
            started_at=utcnow(),
            transactions_fetched=1,
            webhook_event_id=event_id,
        )
        try:
            await self.sync_log_repo.create(sync_log)
        except IntegrityError:
            # Concurrent delivery of the same event won the insert.
            await self.db.rollback()
            return WebhookOutcome.ALREADY_PROCESSED
        sync_log_id = sync_log.id

        try:
            result = await self.processor.process_transactions([transaction], bank_account_id)
            if result.errors:
                raise WebhookProcessingFailed(
                    details={"webhook_event_id": event_id, "error": result.errors[0].message}
                )
            await self._close_log(sync_log_id, bank_account_id, result)
        except Exception as exc:
            await self.db.rollback()
            if isinstance(exc, WebhookProcessingFailed):
                message = exc.details["error"]
            else:
                message = str(exc) or type(exc).__name__
            await self._release_event(sync_log_id, bank_account_id, event_id, message)
            logger.error(
                "Webhook transaction processing failed",
                extra={
                    "webhook_event_id": event_id,
                    "sync_log_id": str(sync_log_id),
                    "error_type": type(exc).__name__,
                },
            )
            if isinstance(exc, WebhookProcessingFailed):
                raise
            raise WebhookProcessingFailed(details={"webhook_event_id": event_id}) from exc

        logger.info(
            "Webhook transaction processed",
            extra={"webhook_event_id": event_id, "sync_log_id": str(sync_log_id)},
        )
        return WebhookOutcome.PROCESSED

    async def _close_log(self, sync_log_id: UUID, bank_account_id: UUID, result: ProcessingResult) -> None:
        sync_log = await self.sync_log_repo.get_by_id(sync_log_id)
        account = await self.account_repo.get_by_id(bank_account_id)
        now = utcnow()
        sync_log.status = SyncStatus.SUCCESS
        sync_log.completed_at = now
        sync_log.transactions_skipped = result.duplicates_skipped
        sync_log.transactions_matched = result.approved
        sync_log.transactions_pending = result.pending
        account.last_sync_at = now
        account.last_sync_status = SyncStatus.SUCCESS
        await self.db.commit()

    async def _release_event(
        self, sync_log_id: UUID, bank_account_id: UUID, event_id: str, message: str
    ) -> None:
        """Close the log as failed and free its event id so the provider's retry is processed."""
        sync_log = await self.sync_log_repo.get_by_id(sync_log_id)
        if sync_log is None:
            return
        sync_log.status = SyncStatus.FAILED
        sync_log.completed_at = utcnow()
        sync_log.error_message = message
        sync_log.webhook_event_id = None
        sync_log.error_details = {"webhook_event_id": event_id}
        account = await self.account_repo.get_by_id(bank_account_id)
        if account is not None:
            account.last_sync_status = SyncStatus.FAILED
        await self.db.commit()


class WebhookStatusService:
    """Reports webhook delivery health across connected accounts."""

    def __init__(self, db: AsyncSession):
        self.account_repo = BankAccountRepository(db)
        self.sync_log_repo = SyncLogRepository(db)

    async def get_status(self, recent_limit: int = RECENT_WEBHOOK_EVENTS) -> WebhookStatusResponse:
        """Summarize recent webhook deliveries.

        Args:
            recent_limit: How many of the newest deliveries to list

        Returns:
            Last event time, recent deliveries, failure counts for the last
            hour and day, and the latest delivery status of every account
            with a registered webhook
        """
        now = utcnow()
        account_names = {account.id: account.account_name for account in await self.account_repo.list_accounts()}
        recent = await self.sync_log_repo.list_recent_webhooks(recent_limit)
        with_webhooks = await self.account_repo.list_with_webhooks()
        latest = await self.sync_log_repo.latest_webhook_by_account([account.id for account in with_webhooks])

        return WebhookStatusResponse(
            last_event_at=as_utc(recent[0].started_at) if recent else None,
            recent_events=[
                WebhookEvent(
                    id=log.id,
                    bank_account_id=log.bank_account_id,
                    account_name=account_names.get(log.bank_account_id),
                    status=log.status,
                    started_at=as_utc(log.started_at),
                    completed_at=as_utc(log.completed_at),
                    error_message=log.error_message,
                    webhook_event_id=log.webhook_event_id,
                    transactions_fetched=log.transactions_fetched,
                )
                for log in recent
            ],
            failed_count_1h=await self.sync_log_repo.count_failed_webhooks_since(now - timedelta(hours=1)),
            failed_count_24h=await self.sync_log_repo.count_failed_webhooks_since(now - timedelta(hours=24)),
            account_statuses=[
                AccountWebhookStatus(
                    bank_account_id=account.id,
                    account_name=account.account_name,
                    webhook_id=account.webhook_id,
                    last_webhook_at=as_utc(latest[account.id].started_at) if account.id in latest else None,
                    last_webhook_status=latest[account.id].status if account.id in latest else None,
                )
                for account in with_webhooks
            ],
        )

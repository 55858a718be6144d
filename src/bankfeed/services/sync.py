"""Bulk import and manual sync of bank transactions.

A sync opens a SyncLog, fetches transactions from the provider within a
time budget, runs them through the TransactionProcessor in batches, and
closes the log with success, partial or failed. Progress is published on
the ImportProgressTracker under the SyncLog id.
"""
import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bankfeed.config import Settings
from bankfeed.core.clock import Clock, as_utc, utcnow
from bankfeed.core.errors import get_user_message, translate_provider_error
from bankfeed.core.exceptions import (
    BankAccountNotFound,
    ProviderAPIError,
    SyncAlreadyInProgress,
    SyncDisabled,
    SyncFailed,
    TokenRefreshFailed,
    TokenVaultError,
)
from bankfeed.core.security import TokenCipher
from bankfeed.models.bank_account import BankAccount, SyncStatus
from bankfeed.models.sync_log import SyncLog, SyncType
from bankfeed.providers.monzo import MonzoClient, MonzoTransaction
from bankfeed.repositories.bank_account import BankAccountRepository
from bankfeed.repositories.sync_log import SyncLogRepository
from bankfeed.services.fetcher import FetchResult, RetryPolicy, Sleep, TransactionFetcher
from bankfeed.services.processor import (
    ItemError,
    ProcessingOutcome,
    ProcessingResult,
    TransactionProcessor,
)
from bankfeed.services.progress import ImportProgressTracker, ImportProgressUpdate, ProgressStatus
from bankfeed.services.token_vault import TokenVault

logger = logging.getLogger(__name__)

# A bulk/manual log still in progress after this long belongs to a crashed worker.
STALE_SYNC_AFTER = timedelta(minutes=15)

FATAL_SYNC_ERRORS = (ProviderAPIError, httpx.TransportError, TokenRefreshFailed, TokenVaultError)


class SyncLocks:
    """Per-account locks guarding the in-progress check within one process."""

    def __init__(self) -> None:
        self._locks: defaultdict[UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    def for_account(self, bank_account_id: UUID) -> asyncio.Lock:
        return self._locks[bank_account_id]


@dataclass
class SyncResult:
    """Summary of a finished sync attempt."""

    sync_log_id: UUID
    status: str
    transactions_fetched: int = 0
    transactions_processed: int = 0
    duplicates_skipped: int = 0
    transactions_matched: int = 0
    transactions_pending: int = 0
    timed_out: bool = False
    error_message: str | None = None
    errors: list[ItemError] = field(default_factory=list)
    fatal_error: BaseException | None = None


def _fatal_message(exc: BaseException) -> str:
    if isinstance(exc, TokenRefreshFailed):
        return get_user_message("OAUTH_006")
    if isinstance(exc, TokenVaultError):
        return get_user_message(exc.error_code)
    return translate_provider_error(exc)


class SyncService:
    """Runs bulk imports and manual syncs for connected accounts."""

    def __init__(
        self,
        db: AsyncSession,
        client: MonzoClient,
        vault: TokenVault,
        processor: TransactionProcessor,
        tracker: ImportProgressTracker,
        settings: Settings,
        locks: SyncLocks,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize the sync service.

        Args:
            db: Database session
            client: Provider client
            vault: Token vault for decrypting and refreshing tokens
            processor: Shared transaction processor
            tracker: Progress channel
            settings: Application settings (budgets, page size, retry policy)
            locks: Per-account sync locks
            clock: Monotonic clock used for deadlines
            sleep: Sleep used between retries
        """
        self.db = db
        self.client = client
        self.vault = vault
        self.processor = processor
        self.tracker = tracker
        self.settings = settings
        self.locks = locks
        self._clock = clock
        self._sleep = sleep
        self.account_repo = BankAccountRepository(db)
        self.sync_log_repo = SyncLogRepository(db)

    @classmethod
    def build(
        cls,
        db: AsyncSession,
        client: MonzoClient,
        cipher: TokenCipher,
        tracker: ImportProgressTracker,
        settings: Settings,
        locks: SyncLocks,
        **kwargs,
    ) -> "SyncService":
        return cls(
            db,
            client,
            TokenVault(db, cipher, client),
            TransactionProcessor(db),
            tracker,
            settings,
            locks,
            **kwargs,
        )

    async def _get_account(self, bank_account_id: UUID) -> BankAccount:
        account = await self.account_repo.get_by_id(bank_account_id)
        if account is None:
            raise BankAccountNotFound(details={"bank_account_id": str(bank_account_id)})
        return account

    async def _open_log(self, bank_account_id: UUID, sync_type: SyncType) -> SyncLog:
        async with self.locks.for_account(bank_account_id):
            running = await self.sync_log_repo.get_in_progress(bank_account_id)
            if running is not None:
                if utcnow() - as_utc(running.started_at) < STALE_SYNC_AFTER:
                    raise SyncAlreadyInProgress(
                        details={"bank_account_id": str(bank_account_id), "sync_log_id": str(running.id)}
                    )
                logger.warning("Closing stale sync log", extra={"sync_log_id": str(running.id)})
                running.status = SyncStatus.FAILED
                running.completed_at = utcnow()
                running.error_message = "Sync was interrupted"
                await self.db.commit()

            sync_log = SyncLog(
                bank_account_id=bank_account_id,
                sync_type=sync_type,
                status=SyncStatus.IN_PROGRESS,
                started_at=utcnow(),
            )
            try:
                await self.sync_log_repo.create(sync_log)
            except IntegrityError:
                # Another process opened a sync between the check and the insert.
                await self.db.rollback()
                raise SyncAlreadyInProgress(details={"bank_account_id": str(bank_account_id)})
        return sync_log

    async def start_import(self, bank_account_id: UUID) -> SyncLog:
        """Open the initial SyncLog for a freshly connected account.

        Raises:
            BankAccountNotFound: If the account does not exist
            SyncAlreadyInProgress: If a bulk or manual sync is already running
        """
        await self._get_account(bank_account_id)
        return await self._open_log(bank_account_id, SyncType.INITIAL)

    async def run_import(self, sync_log_id: UUID) -> SyncResult:
        """Fetch the full history since the account's import floor.

        Stops at the bulk import budget with a partial result.
        """
        sync_log = await self.sync_log_repo.get_by_id(sync_log_id)
        account = await self._get_account(sync_log.bank_account_id)
        return await self._run(
            sync_log_id, account, as_utc(account.sync_from_date), self.settings.import_timeout_seconds
        )

    async def import_full_history(self, bank_account_id: UUID) -> SyncResult:
        sync_log = await self.start_import(bank_account_id)
        return await self.run_import(sync_log.id)

    async def sync_new_transactions(self, bank_account_id: UUID) -> SyncResult:
        """Fetch transactions created since the last complete sync.

        Args:
            bank_account_id: Internal bank account id

        Returns:
            SyncResult (status success, partial or failed)

        Raises:
            BankAccountNotFound: If the account does not exist
            SyncDisabled: If syncing is turned off for the account
            SyncAlreadyInProgress: If a bulk or manual sync is already running
            SyncFailed: If the provider could not be read at all
        """
        account = await self._get_account(bank_account_id)
        if not account.sync_enabled:
            raise SyncDisabled(details={"bank_account_id": str(bank_account_id)})

        sync_log = await self._open_log(bank_account_id, SyncType.MANUAL)
        last_complete = await self.sync_log_repo.get_last_successful_fetch(bank_account_id)
        since = as_utc(last_complete.started_at) if last_complete else as_utc(account.sync_from_date)

        result = await self._run(sync_log.id, account, since, self.settings.sync_timeout_seconds)
        if result.fatal_error is not None:
            auth_failure = isinstance(result.fatal_error, TokenRefreshFailed) or (
                isinstance(result.fatal_error, ProviderAPIError) and result.fatal_error.status_code == 401
            )
            raise SyncFailed(
                "SYNC_002" if auth_failure else "SYNC_003",
                details={"sync_log_id": str(result.sync_log_id)},
                http_status=401 if auth_failure else 502,
                user_message=result.error_message,
            )
        return result

    def _emit(self, sync_log_id: UUID, status: ProgressStatus, **fields) -> None:
        self.tracker.emit(sync_log_id, ImportProgressUpdate(status=status, **fields))

    async def _run(
        self, sync_log_id: UUID, account: BankAccount, since: datetime, budget_seconds: float
    ) -> SyncResult:
        bank_account_id = account.id
        external_account_id = account.account_id
        logger.info(
            "Sync started",
            extra={"sync_log_id": str(sync_log_id), "bank_account_id": str(bank_account_id)},
        )
        self._emit(sync_log_id, ProgressStatus.FETCHING, message="Fetching transactions")
        account.last_sync_status = SyncStatus.IN_PROGRESS
        await self.db.commit()

        async def on_page(pages: int, fetched: int) -> None:
            self._emit(
                sync_log_id,
                ProgressStatus.FETCHING,
                transactions_fetched=fetched,
                current_batch=pages,
            )

        fetcher = TransactionFetcher(
            self.client,
            lambda: self.vault.refresh(bank_account_id),
            page_size=self.settings.transactions_page_size,
            retry_policy=RetryPolicy.from_settings(self.settings),
            clock=self._clock,
            sleep=self._sleep,
        )
        try:
            access_token = self.vault.get_access_token(account)
            fetched = await fetcher.fetch(
                access_token, external_account_id, since, budget_seconds, on_page=on_page
            )
        except FATAL_SYNC_ERRORS as exc:
            return await self._fail(sync_log_id, bank_account_id, exc)

        processed = await self._process(sync_log_id, bank_account_id, fetched)
        return await self._close(sync_log_id, bank_account_id, fetched, processed)

    async def _process(
        self, sync_log_id: UUID, bank_account_id: UUID, fetched: FetchResult
    ) -> ProcessingResult:
        transactions: list[MonzoTransaction] = fetched.transactions
        total = ProcessingResult()
        batch_size = max(self.settings.progress_batch_size, 1)
        self._emit(
            sync_log_id,
            ProgressStatus.PROCESSING,
            transactions_fetched=len(transactions),
            message="Processing transactions",
        )
        for batch_number, start in enumerate(range(0, len(transactions), batch_size), start=1):
            batch = transactions[start : start + batch_size]
            total.merge(await self.processor.process_transactions(batch, bank_account_id))
            self._emit(
                sync_log_id,
                ProgressStatus.PROCESSING,
                transactions_fetched=len(transactions),
                transactions_processed=total.processed,
                duplicates_skipped=total.duplicates_skipped,
                current_batch=batch_number,
            )
        return total

    async def _close(
        self,
        sync_log_id: UUID,
        bank_account_id: UUID,
        fetched: FetchResult,
        processed: ProcessingResult,
    ) -> SyncResult:
        fetched_count = len(fetched.transactions)
        messages: list[str] = []
        if processed.outcome == ProcessingOutcome.FAILED:
            status = SyncStatus.FAILED
        elif fetched.timed_out or processed.outcome == ProcessingOutcome.PARTIAL:
            status = SyncStatus.PARTIAL
        else:
            status = SyncStatus.SUCCESS
        if fetched.timed_out:
            messages.append(
                f"Time limit reached after {fetched_count} transactions; "
                "run a sync to fetch the remaining history"
            )
        if processed.errors:
            messages.append(f"{len(processed.errors)} transactions could not be imported")
        error_message = "; ".join(messages) or None

        sync_log = await self.sync_log_repo.get_by_id(sync_log_id)
        account = await self.account_repo.get_by_id(bank_account_id)
        now = utcnow()
        sync_log.status = status
        sync_log.completed_at = now
        sync_log.transactions_fetched = fetched_count
        sync_log.transactions_skipped = processed.duplicates_skipped
        sync_log.transactions_matched = processed.approved
        sync_log.transactions_pending = processed.pending
        sync_log.error_message = error_message
        if processed.errors or fetched.timed_out:
            sync_log.error_details = {
                "timed_out": fetched.timed_out,
                "pages_fetched": fetched.pages_fetched,
                "item_errors": [
                    {"external_id": error.external_id, "message": error.message}
                    for error in processed.errors
                ],
            }
        account.last_sync_status = status
        if status != SyncStatus.FAILED:
            account.last_sync_at = now
        await self.db.commit()

        logger.info(
            "Sync finished",
            extra={
                "sync_log_id": str(sync_log_id),
                "bank_account_id": str(bank_account_id),
                "status": str(status),
                "transactions_fetched": fetched_count,
                "timed_out": fetched.timed_out,
            },
        )
        if status == SyncStatus.FAILED:
            self._emit(
                sync_log_id,
                ProgressStatus.FAILED,
                transactions_fetched=fetched_count,
                transactions_processed=processed.processed,
                duplicates_skipped=processed.duplicates_skipped,
                error=error_message,
            )
        else:
            self._emit(
                sync_log_id,
                ProgressStatus.COMPLETED,
                transactions_fetched=fetched_count,
                transactions_processed=processed.processed,
                duplicates_skipped=processed.duplicates_skipped,
                message=error_message or "Import complete",
            )

        return SyncResult(
            sync_log_id=sync_log_id,
            status=status,
            transactions_fetched=fetched_count,
            transactions_processed=processed.processed,
            duplicates_skipped=processed.duplicates_skipped,
            transactions_matched=processed.approved,
            transactions_pending=processed.pending,
            timed_out=fetched.timed_out,
            error_message=error_message,
            errors=processed.errors,
        )

    async def _fail(self, sync_log_id: UUID, bank_account_id: UUID, exc: BaseException) -> SyncResult:
        """Close a sync that could not read from the provider.

        last_sync_at is left untouched so the next sync covers the same window.
        """
        await self.db.rollback()
        message = _fatal_message(exc)
        logger.error(
            "Sync failed",
            extra={
                "sync_log_id": str(sync_log_id),
                "bank_account_id": str(bank_account_id),
                "error_type": type(exc).__name__,
                "status_code": getattr(exc, "status_code", None),
            },
        )
        await self.mark_failed(sync_log_id, message, {"error_type": type(exc).__name__})
        return SyncResult(
            sync_log_id=sync_log_id,
            status=SyncStatus.FAILED,
            error_message=message,
            fatal_error=exc,
        )

    async def mark_failed(self, sync_log_id: UUID, message: str, details: dict | None = None) -> None:
        """Close an in-progress log as failed and notify subscribers."""
        sync_log = await self.sync_log_repo.get_by_id(sync_log_id)
        if sync_log is None or sync_log.is_closed:
            return
        account = await self.account_repo.get_by_id(sync_log.bank_account_id)
        sync_log.status = SyncStatus.FAILED
        sync_log.completed_at = utcnow()
        sync_log.error_message = message
        sync_log.error_details = details
        if account is not None:
            account.last_sync_status = SyncStatus.FAILED
        await self.db.commit()
        self._emit(sync_log_id, ProgressStatus.FAILED, error=message)


async def run_import_job(
    session_factory: async_sessionmaker[AsyncSession],
    sync_log_id: UUID,
    *,
    client: MonzoClient,
    cipher: TokenCipher,
    tracker: ImportProgressTracker,
    settings: Settings,
    locks: SyncLocks,
) -> None:
    """Background entry point for the bulk import, with its own session."""
    async with session_factory() as db:
        service = SyncService.build(db, client, cipher, tracker, settings, locks)
        try:
            await service.run_import(sync_log_id)
        except Exception:
            logger.exception("Bulk import crashed", extra={"sync_log_id": str(sync_log_id)})
            await db.rollback()
            await service.mark_failed(sync_log_id, get_user_message("SYNC_003"))

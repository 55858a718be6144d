"""Monzo connection endpoints: OAuth, in-app approval and import progress."""

import json
import logging
from collections.abc import AsyncIterator
from urllib.parse import urlencode
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import RedirectResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bankfeed.api.deps import (
    AppSettings,
    DbSession,
    get_connection_service,
    get_monzo_client,
    get_oauth_manager,
    get_progress_tracker,
    get_sync_locks,
    get_token_cipher,
)
from bankfeed.core.exceptions import BankFeedError, SyncLogNotFound
from bankfeed.core.security import TokenCipher
from bankfeed.db.session import get_session_factory
from bankfeed.models.bank_account import SyncStatus
from bankfeed.models.sync_log import SyncLog
from bankfeed.providers.monzo import MonzoClient
from bankfeed.repositories.sync_log import SyncLogRepository
from bankfeed.schemas.monzo import (
    CompleteConnectionRequest,
    CompleteConnectionResponse,
    ConnectRequest,
    ConnectResponse,
)
from bankfeed.services.connection import ConnectionService
from bankfeed.services.oauth import OAuthFlowManager
from bankfeed.services.progress import ImportProgressTracker, ImportProgressUpdate, ProgressStatus
from bankfeed.services.sync import SyncLocks, run_import_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bank/monzo", tags=["monzo"])


def _settings_redirect(path: str, **params: str) -> RedirectResponse:
    return RedirectResponse(url=f"{path}?{urlencode(params)}", status_code=302)


def _terminal_update(sync_log: SyncLog) -> ImportProgressUpdate:
    """Final progress event reconstructed from a closed SyncLog."""
    failed = sync_log.status == SyncStatus.FAILED
    return ImportProgressUpdate(
        status=ProgressStatus.FAILED if failed else ProgressStatus.COMPLETED,
        transactions_fetched=sync_log.transactions_fetched,
        transactions_processed=sync_log.transactions_matched + sync_log.transactions_pending,
        duplicates_skipped=sync_log.transactions_skipped,
        message=None if failed else (sync_log.error_message or "Import complete"),
        error=sync_log.error_message if failed else None,
    )


SSE_KEEPALIVE = ": keepalive\n\n"


def _sse(update: ImportProgressUpdate) -> str:
    return f"data: {json.dumps(update.to_event())}\n\n"


@router.post(
    "/connect",
    response_model=ConnectResponse,
    summary="Start connecting a Monzo account",
    description="""
    Returns the Monzo consent URL. The chosen history window is used by
    the first import once the connection is complete.
    """,
)
async def connect(
    request: ConnectRequest,
    oauth: OAuthFlowManager = Depends(get_oauth_manager),
) -> ConnectResponse:
    return ConnectResponse(auth_url=oauth.generate_auth_url(request.sync_from_days))


@router.get(
    "/callback",
    summary="OAuth redirect target",
    description="""
    Exchanges the authorization code and redirects the browser to the
    settings page, where the user is asked to approve access in the
    Monzo app.
    """,
    responses={302: {"description": "Redirect to the settings page"}},
)
async def callback(
    settings: AppSettings,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    oauth: OAuthFlowManager = Depends(get_oauth_manager),
) -> RedirectResponse:
    """
    Handle the provider redirect.

    Errors never surface as JSON here: the browser always lands back on
    the settings page with either a pending id or an error code.
    """
    redirect_path = settings.settings_redirect_path
    if error:
        logger.info("OAuth authorization declined", extra={"error_code": error})
        return _settings_redirect(redirect_path, error=error)
    if not code or not state:
        return _settings_redirect(redirect_path, error="missing_parameters")

    try:
        pending_id = await oauth.accept_callback(code, state)
    except BankFeedError as exc:
        logger.warning("OAuth callback rejected", extra={"error_code": exc.error_code})
        return _settings_redirect(redirect_path, error=exc.error_code)

    return _settings_redirect(redirect_path, pending_approval="monzo", pendingId=pending_id)


@router.post(
    "/complete-connection",
    response_model=CompleteConnectionResponse,
    summary="Finish connecting after in-app approval",
    responses={
        400: {"description": "Unknown or expired pending connection"},
        403: {"description": "Access not yet approved in the Monzo app"},
    },
)
async def complete_connection(
    request: CompleteConnectionRequest,
    background_tasks: BackgroundTasks,
    settings: AppSettings,
    connections: ConnectionService = Depends(get_connection_service),
    client: MonzoClient = Depends(get_monzo_client),
    cipher: TokenCipher = Depends(get_token_cipher),
    tracker: ImportProgressTracker = Depends(get_progress_tracker),
    locks: SyncLocks = Depends(get_sync_locks),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> CompleteConnectionResponse:
    """
    Connect the account and schedule the bulk import.

    The import runs after the response is sent; clients follow it on
    the import-progress stream using the returned sync_log_id.
    """
    completed = await connections.complete_connection(request.pending_id)
    sync_log = completed.sync_log
    if sync_log is not None:
        background_tasks.add_task(
            run_import_job,
            session_factory,
            sync_log.id,
            client=client,
            cipher=cipher,
            tracker=tracker,
            settings=settings,
            locks=locks,
        )
    return CompleteConnectionResponse(
        bank_account_id=completed.bank_account.id,
        sync_log_id=sync_log.id if sync_log is not None else None,
    )


@router.get(
    "/import-progress/{sync_log_id}",
    summary="Stream import progress",
    description="""
    Server-Sent Events stream of progress updates for one sync. Each event
    carries status, transactionsFetched, transactionsProcessed,
    duplicatesSkipped and optionally currentBatch, message or error. The
    stream ends after a completed or failed event.
    """,
    responses={404: {"description": "Sync log not found"}},
)
async def import_progress(
    sync_log_id: UUID,
    db: DbSession,
    settings: AppSettings,
    tracker: ImportProgressTracker = Depends(get_progress_tracker),
) -> StreamingResponse:
    sync_log = await SyncLogRepository(db).get_by_id(sync_log_id)
    if sync_log is None:
        raise SyncLogNotFound(details={"sync_log_id": str(sync_log_id)})

    if sync_log.is_closed:
        final = _terminal_update(sync_log)

        async def events() -> AsyncIterator[str]:
            yield _sse(final)

    else:

        async def events() -> AsyncIterator[str]:
            async for update in tracker.stream(
                sync_log_id,
                keepalive_seconds=settings.progress_keepalive_seconds,
                max_seconds=settings.progress_stream_max_seconds,
            ):
                yield SSE_KEEPALIVE if update is None else _sse(update)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )

"""FastAPI dependency injection for services, provider clients and the database.

Long-lived collaborators (HTTP client, OAuth stores, progress tracker, sync
locks) live on ``app.state``; everything else is built per request.
"""

from typing import Annotated

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.config import Settings, get_settings
from bankfeed.core.security import TokenCipher
from bankfeed.db.session import get_db
from bankfeed.providers.monzo import MonzoClient
from bankfeed.services.bank_account import BankAccountService
from bankfeed.services.connection import ConnectionService
from bankfeed.services.oauth import OAuthFlowManager, OAuthStores
from bankfeed.services.pending import PendingTransactionService
from bankfeed.services.processor import TransactionProcessor
from bankfeed.services.progress import ImportProgressTracker
from bankfeed.services.rules import RuleService
from bankfeed.services.sync import SyncLocks, SyncService
from bankfeed.services.token_vault import TokenVault
from bankfeed.services.webhook import WebhookService, WebhookStatusService

DbSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_progress_tracker(request: Request) -> ImportProgressTracker:
    return request.app.state.progress_tracker


def get_sync_locks(request: Request) -> SyncLocks:
    return request.app.state.sync_locks


def get_oauth_stores(request: Request) -> OAuthStores:
    return request.app.state.oauth_stores


def get_monzo_client(
    settings: AppSettings,
    http: httpx.AsyncClient = Depends(get_http_client),
) -> MonzoClient:
    """
    Build the provider client over the shared HTTP connection pool.

    Args:
        settings: Application settings
        http: Shared HTTP client

    Returns:
        MonzoClient instance
    """
    return MonzoClient.from_settings(http, settings)


def get_token_cipher(settings: AppSettings) -> TokenCipher:
    """
    Get the token cipher.

    Raises:
        TokenVaultError: If BANK_TOKEN_ENCRYPTION_KEY is missing or invalid
    """
    return TokenCipher(settings.bank_token_encryption_key)


def get_oauth_manager(
    client: MonzoClient = Depends(get_monzo_client),
    stores: OAuthStores = Depends(get_oauth_stores),
) -> OAuthFlowManager:
    return OAuthFlowManager(client, stores)


def get_token_vault(
    db: DbSession,
    cipher: TokenCipher = Depends(get_token_cipher),
    client: MonzoClient = Depends(get_monzo_client),
) -> TokenVault:
    return TokenVault(db, cipher, client)


def get_transaction_processor(db: DbSession) -> TransactionProcessor:
    """One processor per request, shared by every flow that stores transactions."""
    return TransactionProcessor(db)


def get_sync_service(
    db: DbSession,
    settings: AppSettings,
    client: MonzoClient = Depends(get_monzo_client),
    vault: TokenVault = Depends(get_token_vault),
    processor: TransactionProcessor = Depends(get_transaction_processor),
    tracker: ImportProgressTracker = Depends(get_progress_tracker),
    locks: SyncLocks = Depends(get_sync_locks),
) -> SyncService:
    return SyncService(db, client, vault, processor, tracker, settings, locks)


def get_connection_service(
    db: DbSession,
    settings: AppSettings,
    oauth: OAuthFlowManager = Depends(get_oauth_manager),
    client: MonzoClient = Depends(get_monzo_client),
    vault: TokenVault = Depends(get_token_vault),
    sync_service: SyncService = Depends(get_sync_service),
) -> ConnectionService:
    return ConnectionService(db, oauth, client, vault, sync_service, settings)


def get_webhook_service(
    db: DbSession,
    settings: AppSettings,
    processor: TransactionProcessor = Depends(get_transaction_processor),
) -> WebhookService:
    return WebhookService(db, processor, settings)


def get_webhook_status_service(db: DbSession) -> WebhookStatusService:
    return WebhookStatusService(db)


def get_rule_service(db: DbSession) -> RuleService:
    return RuleService(db)


def get_pending_service(db: DbSession) -> PendingTransactionService:
    return PendingTransactionService(db)


def get_bank_account_service(db: DbSession) -> BankAccountService:
    return BankAccountService(db)

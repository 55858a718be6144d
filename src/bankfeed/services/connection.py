"""Connecting a provider account once OAuth and in-app approval are done."""
import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from bankfeed.config import Settings
from bankfeed.core.exceptions import ProviderAPIError, ScaNotApproved, SyncAlreadyInProgress
from bankfeed.models.bank_account import BankAccount, SyncStatus
from bankfeed.models.sync_log import SyncLog
from bankfeed.providers.monzo import MonzoAccount, MonzoClient
from bankfeed.repositories.bank_account import BankAccountRepository
from bankfeed.services.oauth import OAuthFlowManager
from bankfeed.services.sync import SyncService
from bankfeed.services.token_vault import TokenVault

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/v1/bank/webhooks/monzo"


@dataclass
class CompletedConnection:
    bank_account: BankAccount
    sync_log: SyncLog | None


class ConnectionService:
    """Completes a connection once the user approved access in the banking app."""

    def __init__(
        self,
        db: AsyncSession,
        oauth: OAuthFlowManager,
        client: MonzoClient,
        vault: TokenVault,
        sync_service: SyncService,
        settings: Settings,
    ):
        self.db = db
        self.oauth = oauth
        self.client = client
        self.vault = vault
        self.sync_service = sync_service
        self.settings = settings
        self.account_repo = BankAccountRepository(db)

    def webhook_url(self) -> str | None:
        secret = self.settings.monzo_webhook_secret
        base_url = self.settings.webhook_base_url
        if not secret or not base_url:
            return None
        return f"{base_url.rstrip('/')}{WEBHOOK_PATH}/{secret}"

    async def _replace_webhook(
        self, access_token: str, provider_account: MonzoAccount, account: BankAccount | None
    ) -> tuple[str | None, str | None]:
        if account is not None and account.webhook_id:
            try:
                await self.client.delete_webhook(access_token, account.webhook_id)
            except (ProviderAPIError, httpx.TransportError) as exc:
                logger.warning(
                    "Could not delete previous webhook",
                    extra={"bank_account_id": str(account.id), "error_type": type(exc).__name__},
                )

        url = self.webhook_url()
        if url is None:
            logger.info("Webhook secret or base URL not configured; skipping webhook registration")
            return None, None
        try:
            webhook = await self.client.register_webhook(access_token, provider_account.id, url)
        except (ProviderAPIError, httpx.TransportError) as exc:
            logger.warning("Webhook registration failed", extra={"error_type": type(exc).__name__})
            return None, None
        return webhook.id, url

    async def complete_connection(self, pending_id: str) -> CompletedConnection:
        """Finish connecting after the user approved access in the banking app.

        Args:
            pending_id: Id returned by OAuthFlowManager.accept_callback()

        Returns:
            The connected BankAccount and the SyncLog of the bulk import
            (None if another import is still running)

        Raises:
            PendingConnectionNotFound: Unknown or expired pending id
            ScaNotApproved: The provider still refuses access; retry later
        """
        pending = self.oauth.get_pending_connection(pending_id)
        access_token = pending.tokens.access_token

        try:
            provider_accounts = await self.client.get_accounts(access_token)
        except (ProviderAPIError, httpx.TransportError) as exc:
            logger.info("Provider access not yet approved", extra={"error_type": type(exc).__name__})
            raise ScaNotApproved() from exc
        open_accounts = [item for item in provider_accounts if not item.closed] or provider_accounts
        if not open_accounts:
            raise ScaNotApproved(details={"reason": "no accounts returned"})
        provider_account = open_accounts[0]

        account = await self.account_repo.get_by_account_id(provider_account.id)
        webhook_id, webhook_url = await self._replace_webhook(access_token, provider_account, account)

        if account is None:
            account = BankAccount(
                account_id=provider_account.id,
                last_sync_status=SyncStatus.NEVER_SYNCED,
            )
            self.db.add(account)
        account.account_name = provider_account.display_name
        account.account_type = provider_account.type or "current"
        account.provider = "monzo"
        account.sync_enabled = True
        account.sync_from_date = pending.sync_from_date
        account.webhook_id = webhook_id
        account.webhook_url = webhook_url
        self.vault.store_tokens(account, pending.tokens)
        await self.db.commit()
        await self.db.refresh(account)

        self.oauth.delete_pending_connection(pending_id)
        logger.info("Bank account connected", extra={"bank_account_id": str(account.id)})

        try:
            sync_log = await self.sync_service.start_import(account.id)
        except SyncAlreadyInProgress:
            logger.info("Import already running for reconnected account", extra={"bank_account_id": str(account.id)})
            sync_log = None
        return CompletedConnection(bank_account=account, sync_log=sync_log)

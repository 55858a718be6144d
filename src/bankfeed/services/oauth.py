"""OAuth authorization-code flow with Monzo, including the SCA approval step.

Monzo issues tokens before the user has approved access in the banking
app (Strong Customer Authentication). The callback therefore parks the
tokens in a pending-connection store; ConnectionService completes the
connection once the user confirms the approval.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx

from bankfeed.config import Settings
from bankfeed.core.cache import ExpiringStore
from bankfeed.core.clock import Clock, utcnow
from bankfeed.core.exceptions import (
    ExpiredState,
    InvalidState,
    OAuthExchangeFailed,
    PendingConnectionNotFound,
    ProviderAPIError,
)
from bankfeed.core.security import generate_token
from bankfeed.providers.monzo import MonzoClient, TokenSet

logger = logging.getLogger(__name__)

MIN_SYNC_FROM_DAYS = 1
MAX_SYNC_FROM_DAYS = 1825
DEFAULT_SYNC_FROM_DAYS = 90


@dataclass(frozen=True)
class PendingConnection:
    """Tokens obtained from the callback, awaiting in-app approval."""

    tokens: TokenSet
    sync_from_date: datetime


@dataclass
class OAuthStores:
    """In-memory stores owned by one application instance."""

    states: ExpiringStore[str, datetime]
    pending: ExpiringStore[str, PendingConnection]

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = time.monotonic) -> "OAuthStores":
        return cls(
            states=ExpiringStore(settings.oauth_state_ttl_seconds, clock=clock),
            pending=ExpiringStore(settings.pending_connection_ttl_seconds, clock=clock),
        )


class OAuthFlowManager:
    """Issues and validates OAuth state and exchanges authorization codes."""

    def __init__(self, client: MonzoClient, stores: OAuthStores):
        self.client = client
        self.stores = stores

    def generate_auth_url(self, sync_from_days: int = DEFAULT_SYNC_FROM_DAYS) -> str:
        """Build the consent URL and remember the import floor under a fresh state.

        Args:
            sync_from_days: How many days of history the first import covers

        Returns:
            Provider authorization URL

        Raises:
            OAuthConfigMissing: If client id or redirect URI are not configured
        """
        state = generate_token(32)
        url = self.client.build_authorize_url(state)
        self.stores.states.put(state, utcnow() - timedelta(days=sync_from_days))
        return url

    def validate_state(self, state: str) -> datetime:
        """Consume a state and return its import floor.

        The state is removed on any lookup, so it can be used once.

        Raises:
            InvalidState: If the state is unknown or already consumed
            ExpiredState: If the state is older than its TTL
        """
        entry = self.stores.states.pop(state)
        if entry is None:
            raise InvalidState()
        if self.stores.states.is_expired(entry):
            raise ExpiredState()
        return entry.value

    async def exchange_code_for_tokens(self, code: str) -> TokenSet:
        """Exchange an authorization code (single attempt, no retry).

        Raises:
            OAuthExchangeFailed: If the provider rejects the code or is unreachable
        """
        try:
            return await self.client.exchange_code(code)
        except ProviderAPIError as exc:
            raise OAuthExchangeFailed(details={"status_code": exc.status_code}) from exc
        except httpx.TransportError as exc:
            raise OAuthExchangeFailed(details={"error_type": type(exc).__name__}) from exc

    async def accept_callback(self, code: str, state: str) -> str:
        """Validate state, exchange the code and park the tokens.

        Args:
            code: Authorization code from the provider redirect
            state: State parameter from the provider redirect

        Returns:
            Pending connection id the client uses to complete the connection

        Raises:
            InvalidOrExpiredState: State unknown, reused or expired
            OAuthExchangeFailed: Provider rejected the code
        """
        sync_from_date = self.validate_state(state)
        tokens = await self.exchange_code_for_tokens(code)
        pending_id = self.store_pending_connection(tokens, sync_from_date)
        logger.info("OAuth callback accepted; awaiting in-app approval")
        return pending_id

    def store_pending_connection(self, tokens: TokenSet, sync_from_date: datetime) -> str:
        pending_id = generate_token(16)
        self.stores.pending.put(pending_id, PendingConnection(tokens=tokens, sync_from_date=sync_from_date))
        return pending_id

    def get_pending_connection(self, pending_id: str) -> PendingConnection:
        """Look up a pending connection without consuming it.

        Raises:
            PendingConnectionNotFound: If the id is unknown or the entry expired
        """
        entry = self.stores.pending.get(pending_id)
        if entry is None:
            raise PendingConnectionNotFound()
        if self.stores.pending.is_expired(entry):
            self.stores.pending.delete(pending_id)
            raise PendingConnectionNotFound(details={"reason": "expired"})
        return entry.value

    def delete_pending_connection(self, pending_id: str) -> None:
        self.stores.pending.delete(pending_id)

    async def sweep(self) -> int:
        """Drop expired states and pending connections.

        Access tokens of abandoned pending connections are revoked on a
        best-effort basis.

        Returns:
            Number of pending connections that expired
        """
        self.stores.states.sweep()
        expired = self.stores.pending.sweep()
        for connection in expired:
            try:
                await self.client.logout(connection.tokens.access_token)
            except (ProviderAPIError, httpx.TransportError) as exc:
                logger.info(
                    "Could not revoke token of expired pending connection",
                    extra={"error_type": type(exc).__name__},
                )
        if expired:
            logger.info("Expired pending bank connections", extra={"count": len(expired)})
        return len(expired)

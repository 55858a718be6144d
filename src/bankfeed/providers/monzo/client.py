"""Async client for the Monzo API."""

import logging
from datetime import datetime
from typing import Any
from urllib.parse import urlencode

import httpx

from bankfeed.config import Settings
from bankfeed.core.clock import to_iso8601
from bankfeed.core.exceptions import OAuthConfigMissing, ProviderAPIError
from bankfeed.providers.monzo.schemas import MonzoAccount, MonzoTransaction, MonzoWebhook, TokenSet

logger = logging.getLogger(__name__)


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class MonzoClient:
    """Thin wrapper over the Monzo REST endpoints used for ingestion.

    The underlying ``httpx.AsyncClient`` is owned by the caller (one per
    application instance). Non-success responses raise ProviderAPIError;
    network failures propagate as ``httpx.TransportError``.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        client_id: str | None,
        client_secret: str | None,
        redirect_uri: str | None,
        api_base_url: str = "https://api.monzo.com",
        auth_base_url: str = "https://auth.monzo.com",
    ):
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.api_base_url = api_base_url.rstrip("/")
        self.auth_base_url = auth_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> "MonzoClient":
        return cls(
            http,
            client_id=settings.monzo_client_id,
            client_secret=settings.monzo_client_secret,
            redirect_uri=settings.monzo_redirect_uri,
            api_base_url=settings.monzo_api_base_url,
            auth_base_url=settings.monzo_auth_base_url,
        )

    def _require_oauth_config(self, *, secret: bool = True) -> None:
        missing = [
            name
            for name, value in (
                ("MONZO_CLIENT_ID", self.client_id),
                ("MONZO_CLIENT_SECRET", self.client_secret if secret else "set"),
                ("MONZO_REDIRECT_URI", self.redirect_uri),
            )
            if not value
        ]
        if missing:
            raise OAuthConfigMissing(details={"missing": missing})

    async def _request(
        self,
        method: str,
        path: str,
        *,
        access_token: str | None = None,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        response = await self.http.request(
            method,
            f"{self.api_base_url}{path}",
            headers=headers,
            params=params,
            data=data,
        )
        if response.is_error:
            logger.warning(
                "Monzo API request failed",
                extra={"path": path, "method": method, "status_code": response.status_code},
            )
            raise ProviderAPIError(
                response.status_code,
                details={"path": path},
                retry_after=_parse_retry_after(response),
            )
        if not response.content:
            return {}
        return response.json()

    def build_authorize_url(self, state: str) -> str:
        """URL the user is redirected to for consent."""
        self._require_oauth_config(secret=False)
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "state": state,
            }
        )
        return f"{self.auth_base_url}/?{query}"

    async def exchange_code(self, code: str) -> TokenSet:
        self._require_oauth_config()
        payload = await self._request(
            "POST",
            "/oauth2/token",
            data={
                "grant_type": "authorization_code",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "code": code,
            },
        )
        return TokenSet.model_validate(payload)

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        self._require_oauth_config()
        payload = await self._request(
            "POST",
            "/oauth2/token",
            data={
                "grant_type": "refresh_token",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
            },
        )
        return TokenSet.model_validate(payload)

    async def logout(self, access_token: str) -> None:
        """Invalidate an access token."""
        await self._request("POST", "/oauth2/logout", access_token=access_token)

    async def get_accounts(self, access_token: str) -> list[MonzoAccount]:
        payload = await self._request("GET", "/accounts", access_token=access_token)
        return [MonzoAccount.model_validate(item) for item in payload.get("accounts", [])]

    async def get_transactions(
        self,
        access_token: str,
        account_id: str,
        since: datetime,
        before: datetime | None = None,
        limit: int = 100,
    ) -> list[MonzoTransaction]:
        """Fetch one page of transactions.

        Args:
            access_token: Decrypted bearer token
            account_id: Provider account id
            since: Lower bound on created time
            before: Upper bound cursor (exclusive), for pagination
            limit: Page size

        Returns:
            Transactions in the page
        """
        params: dict[str, Any] = {
            "account_id": account_id,
            "since": to_iso8601(since),
            "limit": limit,
        }
        if before is not None:
            params["before"] = to_iso8601(before)
        payload = await self._request("GET", "/transactions", access_token=access_token, params=params)
        return [MonzoTransaction.model_validate(item) for item in payload.get("transactions", [])]

    async def register_webhook(self, access_token: str, account_id: str, url: str) -> MonzoWebhook:
        payload = await self._request(
            "POST",
            "/webhooks",
            access_token=access_token,
            data={"account_id": account_id, "url": url},
        )
        return MonzoWebhook.model_validate(payload.get("webhook", payload))

    async def delete_webhook(self, access_token: str, webhook_id: str) -> None:
        await self._request("DELETE", f"/webhooks/{webhook_id}", access_token=access_token)

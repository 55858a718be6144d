"""Paginated transaction fetching with retry, token refresh and a deadline."""
import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from bankfeed.config import Settings
from bankfeed.core.clock import Clock
from bankfeed.core.exceptions import ProviderAPIError
from bankfeed.providers.monzo import MonzoClient, MonzoTransaction

logger = logging.getLogger(__name__)

TokenRefresher = Callable[[], Awaitable[str]]
PageCallback = Callable[[int, int], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for transient provider failures."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    retryable_statuses: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.provider_max_attempts,
            base_delay=settings.provider_backoff_base_seconds,
            max_delay=settings.provider_backoff_max_seconds,
        )

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        if retry_after is not None:
            return min(retry_after, self.max_delay)
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


@dataclass
class FetchResult:
    """Transactions gathered before the loop ended.

    ``timed_out`` is set when the deadline stopped pagination early; the
    transactions collected so far are still valid and should be processed.
    """

    transactions: list[MonzoTransaction] = field(default_factory=list)
    timed_out: bool = False
    pages_fetched: int = 0


class TransactionFetcher:
    """Walks the provider's transaction pages for one account.

    Pages are requested newest-first: each request uses the ``created`` time
    of the oldest transaction of the previous page as its ``before`` cursor.
    A page shorter than the page size ends the walk.
    """

    def __init__(
        self,
        client: MonzoClient,
        refresh_token: TokenRefresher,
        *,
        page_size: int = 100,
        retry_policy: RetryPolicy | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.refresh_token = refresh_token
        self.page_size = page_size
        self.retry_policy = retry_policy or RetryPolicy()
        self._clock = clock
        self._sleep = sleep
        self._access_token = ""
        self._refreshed = False

    async def fetch(
        self,
        access_token: str,
        account_id: str,
        since: datetime,
        budget_seconds: float,
        on_page: PageCallback | None = None,
    ) -> FetchResult:
        """Fetch every transaction since ``since`` within the time budget.

        Args:
            access_token: Decrypted access token
            account_id: Provider account id
            since: Lower bound on transaction creation time
            budget_seconds: Time allowed before returning a partial result
            on_page: Awaited after each page with (pages fetched, transactions so far)

        Returns:
            FetchResult; ``timed_out`` instead of an exception when the
            budget runs out

        Raises:
            ProviderAPIError: Non-retryable provider error, or retries exhausted
            httpx.TransportError: Network failure after retries
            TokenRefreshFailed: A 401 could not be recovered by refreshing
        """
        self._access_token = access_token
        self._refreshed = False
        deadline = self._clock() + budget_seconds
        result = FetchResult()
        before: datetime | None = None

        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                result.timed_out = True
                break
            try:
                page = await asyncio.wait_for(
                    self._fetch_page(account_id, since, before), timeout=remaining
                )
            except asyncio.TimeoutError:
                result.timed_out = True
                break
            except ProviderAPIError as exc:
                if exc.status_code != 401 or self._refreshed:
                    raise
                # The refresh persists rotated tokens, so it must not be cancelled by the deadline.
                self._refreshed = True
                self._access_token = await self.refresh_token()
                continue

            result.pages_fetched += 1
            result.transactions.extend(page)
            if on_page is not None:
                await on_page(result.pages_fetched, len(result.transactions))

            if len(page) < self.page_size:
                break
            created = [txn.created for txn in page if txn.created is not None]
            if not created:
                break
            oldest = min(created)
            if before is not None and oldest >= before:
                # Cursor did not move; another request would return the same page.
                break
            before = oldest

        if result.timed_out:
            logger.warning(
                "Transaction fetch deadline reached",
                extra={
                    "pages_fetched": result.pages_fetched,
                    "transactions_fetched": len(result.transactions),
                },
            )
        return result

    async def _fetch_page(
        self, account_id: str, since: datetime, before: datetime | None
    ) -> list[MonzoTransaction]:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self.client.get_transactions(
                    self._access_token, account_id, since, before=before, limit=self.page_size
                )
            except ProviderAPIError as exc:
                if (
                    exc.status_code not in self.retry_policy.retryable_statuses
                    or attempt >= self.retry_policy.max_attempts
                ):
                    raise
                delay = self.retry_policy.delay_for(
                    attempt, exc.retry_after if exc.status_code == 429 else None
                )
                error_type = f"HTTP {exc.status_code}"
            except httpx.TransportError as exc:
                if attempt >= self.retry_policy.max_attempts:
                    raise
                delay = self.retry_policy.delay_for(attempt)
                error_type = type(exc).__name__

            logger.info(
                "Retrying transaction page",
                extra={"attempt": attempt, "delay_seconds": delay, "error": error_type},
            )
            await self._sleep(delay)

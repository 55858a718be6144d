"""Publish/subscribe channel for import progress, keyed by SyncLog id."""
import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from bankfeed.core.cache import ExpiringStore
from bankfeed.core.clock import Clock

logger = logging.getLogger(__name__)


class ProgressStatus(StrEnum):
    FETCHING = "fetching"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ImportProgressUpdate(BaseModel):
    """One progress event. Serialized with camelCase keys for clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: ProgressStatus
    transactions_fetched: int = 0
    transactions_processed: int = 0
    duplicates_skipped: int = 0
    current_batch: int | None = None
    message: str | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (ProgressStatus.COMPLETED, ProgressStatus.FAILED)

    def to_event(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


ProgressCallback = Callable[[ImportProgressUpdate], None]


class ImportProgressTracker:
    """In-process event channel between running syncs and their observers.

    Every emitted update is delivered to the callbacks subscribed to that
    sync log id at the time of emission. Subscribers of a finished sync are
    dropped after the terminal (completed/failed) event; the terminal event
    itself stays available to late observers for ``retention_seconds``.
    """

    def __init__(self, retention_seconds: float = 300, clock: Clock = time.monotonic) -> None:
        self._subscribers: dict[UUID, list[ProgressCallback]] = defaultdict(list)
        self._latest: dict[UUID, ImportProgressUpdate] = {}
        self._finished: ExpiringStore[UUID, ImportProgressUpdate] = ExpiringStore(retention_seconds, clock=clock)
        self._clock = clock

    def subscribe(self, sync_log_id: UUID, callback: ProgressCallback) -> Callable[[], None]:
        """Register a callback and return a function that unregisters it."""
        self._subscribers[sync_log_id].append(callback)
        return lambda: self.unsubscribe(sync_log_id, callback)

    def unsubscribe(self, sync_log_id: UUID, callback: ProgressCallback) -> None:
        callbacks = self._subscribers.get(sync_log_id)
        if not callbacks:
            return
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            del self._subscribers[sync_log_id]

    def latest(self, sync_log_id: UUID) -> ImportProgressUpdate | None:
        """Most recent update; a terminal one until its retention runs out."""
        if sync_log_id in self._latest:
            return self._latest[sync_log_id]
        entry = self._finished.get(sync_log_id)
        if entry is None or self._finished.is_expired(entry):
            return None
        return entry.value

    def subscriber_count(self, sync_log_id: UUID) -> int:
        return len(self._subscribers.get(sync_log_id, ()))

    def emit(self, sync_log_id: UUID, update: ImportProgressUpdate) -> None:
        """Deliver an update to current subscribers.

        A failing subscriber is logged and does not affect the sync or the
        other subscribers.
        """
        if update.is_terminal:
            self._latest.pop(sync_log_id, None)
            self._finished.sweep()
            self._finished.put(sync_log_id, update)
        else:
            self._latest[sync_log_id] = update

        for callback in list(self._subscribers.get(sync_log_id, ())):
            try:
                callback(update)
            except Exception:
                logger.exception(
                    "Progress subscriber failed", extra={"sync_log_id": str(sync_log_id)}
                )

        if update.is_terminal:
            self._subscribers.pop(sync_log_id, None)

    async def stream(
        self,
        sync_log_id: UUID,
        keepalive_seconds: float | None = None,
        max_seconds: float | None = None,
    ) -> AsyncIterator[ImportProgressUpdate | None]:
        """Yield updates for one sync until its terminal event.

        Args:
            sync_log_id: Sync to follow
            keepalive_seconds: Yield None after this long without an update
            max_seconds: Stop following after this long even without a
                terminal event

        Yields:
            Progress updates, or None as a keepalive
        """
        queue: asyncio.Queue[ImportProgressUpdate] = asyncio.Queue()
        unsubscribe = self.subscribe(sync_log_id, queue.put_nowait)
        deadline = None if max_seconds is None else self._clock() + max_seconds
        try:
            current = self.latest(sync_log_id)
            if current is not None:
                yield current
                if current.is_terminal:
                    return
            while True:
                timeout = keepalive_seconds
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        logger.info(
                            "Progress stream ended without a terminal event",
                            extra={"sync_log_id": str(sync_log_id)},
                        )
                        return
                    timeout = remaining if timeout is None else min(timeout, remaining)
                try:
                    update = await asyncio.wait_for(queue.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    yield None
                    continue
                yield update
                if update.is_terminal:
                    return
        finally:
            unsubscribe()

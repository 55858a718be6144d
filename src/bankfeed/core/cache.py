"""In-process key/value store whose entries expire after a fixed TTL."""
import time
from dataclasses import dataclass
from typing import Generic, TypeVar

from bankfeed.core.clock import Clock

K = TypeVar("K")
V = TypeVar("V")


@dataclass(frozen=True)
class StoreEntry(Generic[V]):
    value: V
    created_at: float


class ExpiringStore(Generic[K, V]):
    """Dictionary with per-entry TTL.

    Lookups distinguish a key that was never stored from one that has
    expired, so callers can report the two cases differently. Expired
    entries are only dropped when looked up or swept.

    The store lives as long as its owner (one per application instance)
    and is not shared across processes.
    """

    def __init__(self, ttl_seconds: float, clock: Clock = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[K, StoreEntry[V]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: K) -> bool:
        return key in self._entries

    def put(self, key: K, value: V) -> None:
        self._entries[key] = StoreEntry(value=value, created_at=self._clock())

    def is_expired(self, entry: StoreEntry[V]) -> bool:
        return self._clock() - entry.created_at > self.ttl_seconds

    def get(self, key: K) -> StoreEntry[V] | None:
        """Return the raw entry (possibly expired) without removing it."""
        return self._entries.get(key)

    def pop(self, key: K) -> StoreEntry[V] | None:
        """Remove and return the raw entry (possibly expired)."""
        return self._entries.pop(key, None)

    def delete(self, key: K) -> bool:
        return self._entries.pop(key, None) is not None

    def sweep(self) -> list[V]:
        """Drop every expired entry and return their values."""
        expired = [key for key, entry in self._entries.items() if self.is_expired(entry)]
        return [self._entries.pop(key).value for key in expired]

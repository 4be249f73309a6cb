"""
Time-bounded cache of observed venue prices.

Entries are keyed by (venue, instrument pair). An entry older than the TTL
is logically absent on read and is evicted on the next write; each venue
also keeps at most ``max_entries`` pairs, dropping the oldest first.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .packets import now_ms

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 60000
DEFAULT_MAX_ENTRIES = 1000


@dataclass(frozen=True)
class PriceCacheEntry:
    """A single price observation."""
    price: float
    observed_at: int
    simulated: bool = False

    def age_ms(self, now: int) -> int:
        return now - self.observed_at


class PriceCache:
    """
    Per-venue price store with TTL expiry and capacity eviction.

    A single writer updates the cache; readers may call ``get`` concurrently.
    Writes swap in a fresh per-venue dict so a reader never observes a
    partially evicted venue.
    """

    def __init__(
        self,
        ttl_ms: int = DEFAULT_TTL_MS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], int] = now_ms
    ):
        self.ttl_ms = ttl_ms
        self.max_entries = max_entries
        self.clock = clock
        self._entries: Dict[str, Dict[str, PriceCacheEntry]] = {}
        self._write_lock = threading.Lock()

    def put(self, venue: str, pair: str, price: float, simulated: bool = False) -> PriceCacheEntry:
        """Record a price observation at the current time."""
        entry = PriceCacheEntry(price=price, observed_at=self.clock(), simulated=simulated)
        with self._write_lock:
            venue_entries = dict(self._entries.get(venue, {}))
            venue_entries[pair] = entry
            self._entries[venue] = venue_entries
            self._evict_locked(entry.observed_at)
        return entry

    def get_entry(self, venue: str, pair: str) -> Optional[PriceCacheEntry]:
        """Fresh entry for (venue, pair), or None when absent or expired."""
        entry = self._entries.get(venue, {}).get(pair)
        if entry is None:
            return None
        if entry.age_ms(self.clock()) > self.ttl_ms:
            return None
        return entry

    def get(self, venue: str, pair: str) -> Optional[float]:
        """Fresh price for (venue, pair), or None when absent or expired."""
        entry = self.get_entry(venue, pair)
        return entry.price if entry else None

    def evict_expired(self) -> int:
        """Drop expired entries and enforce capacity; returns entries removed."""
        with self._write_lock:
            return self._evict_locked(self.clock())

    def _evict_locked(self, now: int) -> int:
        removed = 0
        for venue, venue_entries in list(self._entries.items()):
            fresh = {
                pair: entry for pair, entry in venue_entries.items()
                if entry.age_ms(now) <= self.ttl_ms
            }

            if len(fresh) > self.max_entries:
                newest = sorted(fresh.items(), key=lambda item: item[1].observed_at, reverse=True)
                fresh = dict(newest[:self.max_entries])

            removed += len(venue_entries) - len(fresh)
            if len(fresh) != len(venue_entries):
                self._entries[venue] = fresh

        if removed:
            logger.debug(f"Evicted {removed} price cache entries")
        return removed

    def clear(self) -> None:
        with self._write_lock:
            self._entries = {}

    def size(self) -> int:
        """Number of stored entries, including not-yet-evicted expired ones."""
        return sum(len(venue_entries) for venue_entries in list(self._entries.values()))

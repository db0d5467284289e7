# src/storage/price_cache.py

"""In-memory TTL cache for fetched card prices."""

import logging
import time
from dataclasses import dataclass

from src.config.settings import Settings
from src.models.price_observation import PriceSnapshot

logger = logging.getLogger("price_sync.cache")


@dataclass
class CacheEntry:
    """A cached price snapshot and the time it was stored."""

    snapshot: PriceSnapshot
    timestamp: float


class PriceCache:
    """Short-lived cache of price snapshots keyed by card id.

    Only successful lookups are stored; a "not found" answer is never
    cached so that the card is asked for again on the next cycle.
    """

    def __init__(self, ttl: float | None = None) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._ttl: float = (
            ttl if ttl is not None else Settings.CARD_PRICE_CACHE_TTL
        )

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, card_id: str) -> PriceSnapshot | None:
        """Return the live snapshot for ``card_id`` or ``None``."""
        self._evict_expired(time.time())
        entry = self._entries.get(card_id)
        if entry is None:
            return None
        logger.debug("Cache hit for card %s", card_id)
        return entry.snapshot

    def store(self, snapshot: PriceSnapshot) -> None:
        """Cache ``snapshot`` under its card id."""
        self._entries[snapshot.card_id] = CacheEntry(
            snapshot=snapshot,
            timestamp=time.time(),
        )

    def clear(self) -> int:
        """Purge all cached entries.

        Returns the number of entries that were removed.
        """
        count = len(self._entries)
        self._entries.clear()
        logger.info("Price cache purged (%d entries removed)", count)
        return count

    def _evict_expired(self, now: float) -> None:
        """Remove entries older than the TTL threshold."""
        expired = [
            key
            for key, entry in self._entries.items()
            if now - entry.timestamp >= self._ttl
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(
                "Evicted %d expired price entries", len(expired)
            )

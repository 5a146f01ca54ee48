"""In-memory TTL cache for suggestion lists.

Entries expire lazily: a stale entry is only deleted when it is read again.
An optional LRU bound keeps unread stale keys from accumulating forever.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import structlog

from itera.models.dto import PlaceSuggestion

logger = structlog.get_logger(__name__)


def make_cache_key(text: str, proximity: Tuple[float, float], precision: int = 3) -> str:
    """Builds the lookup key from normalized text and the rounded proximity point.

    Rounding to 3 decimals groups bias points within roughly 100 m of each
    other under the same key.
    """
    lon, lat = proximity
    return f"{text.strip().lower()}|{lon:.{precision}f},{lat:.{precision}f}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Tuple[PlaceSuggestion, ...]
    expires_at: float


class SuggestionCache:
    def __init__(
        self,
        ttl_seconds: float = 60.0,
        max_entries: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[Tuple[PlaceSuggestion, ...]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            # Checked-and-deleted on read
            del self._entries[key]
            logger.debug("suggestion_cache_expired", key=key)
            return None
        self._entries.move_to_end(key)
        return entry.payload

    def set(self, key: str, payload: Sequence[PlaceSuggestion]) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            payload=tuple(payload),
            expires_at=self._clock() + self.ttl_seconds,
        )
        self._entries[key] = entry
        self._entries.move_to_end(key)
        if self.max_entries and len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("suggestion_cache_evicted", key=evicted)
        return entry

    def clear(self) -> None:
        self._entries.clear()

#order_cache.py
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from config import CACHE_TTL_SECONDS
from models import Order
from logger import get_logger

log = get_logger("order_cache")


@dataclass
class CacheEntry:
    key: str
    payload: List[Order]
    written_at: float


def cache_key(farmer_id: Optional[str], email: Optional[str]) -> str:
    # field-labelled so an id can never collide with an email
    if not farmer_id and not email:
        raise ValueError("cache key needs a farmer id or email")
    return f"id={farmer_id or ''}|email={(email or '').lower()}"


class OrderCache:
    """Keyed, time-boxed store of fetched order collections (one key per farmer identity)."""

    def __init__(self, ttl_seconds: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[List[Order]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.written_at >= self.ttl:
                # stale entries stay until the next set() sweeps or overwrites them
                return None
            return list(entry.payload)

    def set(self, key: str, orders: List[Order]) -> None:
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if now - e.written_at > self.ttl]
            for k in expired:
                del self._entries[k]
            if expired:
                log.debug(f"Swept {len(expired)} expired cache entr{'y' if len(expired) == 1 else 'ies'}")
            self._entries[key] = CacheEntry(key=key, payload=list(orders), written_at=now)

    def invalidate_all(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        log.debug(f"Order cache cleared ({count} entries)")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

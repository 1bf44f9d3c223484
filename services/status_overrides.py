#status_overrides.py
"""
Short-lived record of statuses this dashboard has successfully written.

The order API can serve a slightly stale list right after a PATCH. Re-applying
the override on the next fetches keeps the optimistic status from flickering
back, until the entry ages out.
"""
import dataclasses
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from config import STATUS_OVERRIDE_MAX_AGE_SECONDS
from models import Order, encode_key


class StatusOverrides:
    def __init__(self, max_age_seconds: float = STATUS_OVERRIDE_MAX_AGE_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.max_age = max_age_seconds
        self._clock = clock
        # order_id -> (status, vendor_key or None, recorded_at)
        self._entries: Dict[str, Tuple[str, Optional[str], float]] = {}
        self._lock = threading.Lock()

    def record(self, order_id: str, status: str, vendor_key: Optional[str] = None) -> None:
        if not order_id or not status:
            return
        with self._lock:
            self._entries[order_id] = (status, vendor_key, self._clock())

    def get(self, order_id: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(order_id)
            if entry is None or self._clock() - entry[2] > self.max_age:
                return None
            return entry[0]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def apply(self, orders: List[Order]) -> List[Order]:
        with self._lock:
            if not self._entries:
                return orders
            now = self._clock()
            for oid in [k for k, e in self._entries.items() if now - e[2] > self.max_age]:
                del self._entries[oid]
            entries = dict(self._entries)

        out = []
        for o in orders:
            entry = entries.get(o.order_id)
            if entry is None:
                out.append(o)
                continue
            status, vendor_key, _ = entry
            if vendor_key and o.is_mixed:
                fs = dict(o.farmer_statuses or {})
                if fs.get(encode_key(vendor_key)) != status:
                    fs[encode_key(vendor_key)] = status
                    o = dataclasses.replace(o, farmer_statuses=fs)
            elif not vendor_key and o.status != status:
                o = dataclasses.replace(o, status=status)
            out.append(o)
        return out

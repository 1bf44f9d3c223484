#order_state.py
import threading
from typing import Callable, Iterable, List, Optional, Set

from models import Order


class OrderCollection:
    """
    The dashboard's visible order list plus the bulk-selection set.

    Only the sync engine and the mutation coordinator write to it; readers take
    snapshots. All access goes through the lock because the admin server and the
    poller run on different threads.
    """

    def __init__(self, orders: Optional[Iterable[Order]] = None):
        self._lock = threading.RLock()
        self._orders: List[Order] = list(orders or [])
        self._selected: Set[str] = set()
        self.loading = False
        self.busy = False
        self.last_error: Optional[str] = None

    def snapshot(self) -> List[Order]:
        with self._lock:
            return list(self._orders)

    def replace(self, orders: Iterable[Order]) -> None:
        with self._lock:
            self._orders = list(orders)
            # drop selections that no longer exist
            ids = {o.order_id for o in self._orders}
            self._selected &= ids

    def apply(self, fn: Callable[[List[Order]], List[Order]]) -> None:
        with self._lock:
            self._orders = list(fn(list(self._orders)))

    def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            for o in self._orders:
                if o.order_id == order_id:
                    return o
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    # ---------------- selection ----------------
    def select(self, order_ids: Iterable[str]) -> None:
        with self._lock:
            known = {o.order_id for o in self._orders}
            self._selected |= {i for i in order_ids if i in known}

    def deselect(self, order_ids: Iterable[str]) -> None:
        with self._lock:
            self._selected -= set(order_ids)

    def clear_selection(self) -> None:
        with self._lock:
            self._selected.clear()

    def selected_ids(self) -> List[str]:
        with self._lock:
            return [o.order_id for o in self._orders if o.order_id in self._selected]

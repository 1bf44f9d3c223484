#notifications.py
import itertools
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List

from config import NOTIFICATION_MAX_VISIBLE, NOTIFICATION_TTL_SECONDS
from logger import get_logger

log = get_logger("notifications")

INFO = "info"
SUCCESS = "success"
WARNING = "warning"
ERROR = "error"

SEVERITIES = (INFO, SUCCESS, WARNING, ERROR)

_LOG_LEVEL = {INFO: log.info, SUCCESS: log.info, WARNING: log.warning, ERROR: log.error}


@dataclass(frozen=True)
class Notification:
    id: int
    message: str
    severity: str
    created_at: float


class NotificationBus:
    """
    Toast feed for the dashboard. Newest `max_visible` are kept; each one
    expires `ttl` seconds after it was pushed.
    """

    def __init__(
        self,
        ttl_seconds: float = NOTIFICATION_TTL_SECONDS,
        max_visible: int = NOTIFICATION_MAX_VISIBLE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl_seconds
        self._clock = clock
        self._items: Deque[Notification] = deque(maxlen=max_visible)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def push(self, message: str, severity: str = INFO) -> int:
        if severity not in SEVERITIES:
            severity = INFO
        with self._lock:
            n = Notification(next(self._ids), message, severity, self._clock())
            self._items.append(n)   # deque(maxlen) drops the oldest
        _LOG_LEVEL[severity](f"[{severity}] {message}")
        return n.id

    def _expire(self) -> None:
        now = self._clock()
        while self._items and now - self._items[0].created_at >= self.ttl:
            self._items.popleft()

    def visible(self) -> List[Notification]:
        with self._lock:
            self._expire()
            return list(self._items)

    def dismiss(self, notification_id: int) -> None:
        with self._lock:
            self._items = deque(
                (n for n in self._items if n.id != notification_id),
                maxlen=self._items.maxlen,
            )

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

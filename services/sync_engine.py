#sync_engine.py
"""
Keeps one farmer's order list in sync with the order API.

A logical fetch is: optional cache lookup, then up to 1 + max_retries network
attempts with exponential backoff. Only one logical fetch is active at a time.
Background calls made while one is running are dropped; a forced (visible)
fetch cancels the running one and takes over. Whatever the superseded fetch
returns afterwards is discarded.
"""
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests

import api
from config import FETCH_BACKOFF_BASE_SECONDS, FETCH_MAX_RETRIES, REQUEST_TIMEOUT_SECONDS
from exceptions import FetchCancelled, OrderApiError
from models import FarmerIdentity, Order, normalize_orders
from services.notifications import ERROR, SUCCESS, WARNING, NotificationBus
from services.order_cache import OrderCache, cache_key
from services.order_state import OrderCollection
from services.status_overrides import StatusOverrides
from logger import get_logger

log = get_logger("sync_engine")

TRANSIENT_ERRORS = (OrderApiError, requests.RequestException, ValueError)


class CancelToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; True if cancelled meanwhile."""
        return self._event.wait(seconds)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise FetchCancelled()


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = FETCH_MAX_RETRIES
    base_delay: float = FETCH_BACKOFF_BASE_SECONDS

    def delay(self, attempt: int) -> float:
        # attempt is the 0-based index of the failed attempt: 1s, 2s, 4s, ...
        return self.base_delay * (2 ** attempt)


class SyncEngine:
    def __init__(
        self,
        identity: FarmerIdentity,
        orders: OrderCollection,
        cache: OrderCache,
        bus: NotificationBus,
        *,
        overrides: Optional[StatusOverrides] = None,
        session: Optional[requests.Session] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        fetcher: Callable[..., list] = api.fetch_orders,
    ):
        self.identity = identity
        self.orders = orders
        self.cache = cache
        self.bus = bus
        self.overrides = overrides
        self.session = session
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self._fetcher = fetcher

        self._lock = threading.Lock()
        self._generation = 0
        self._in_flight = False
        self._token: Optional[CancelToken] = None
        self.has_loaded = False
        self.retry_count = 0

    @property
    def key(self) -> str:
        return cache_key(self.identity.farmer_id, self.identity.email)

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    # ---------------- public ----------------
    def fetch_orders(self, force_visible_loading: bool = False) -> None:
        if not (self.identity.farmer_id or self.identity.email):
            log.warning("fetch_orders called without a farmer identity; skipped")
            return

        with self._lock:
            if self._in_flight and not force_visible_loading:
                log.debug(f"Background fetch for {self.key} skipped: another fetch is in flight")
                return
            if self._token is not None:
                self._token.cancel()
            self._generation += 1
            gen = self._generation
            token = CancelToken()
            self._token = token
            self._in_flight = True

        if force_visible_loading:
            self.orders.loading = True

        try:
            self._run(gen, token, force_visible_loading)
        except FetchCancelled:
            log.info(f"Fetch #{gen} for {self.key} cancelled")
        finally:
            with self._lock:
                if self._generation == gen:
                    self._in_flight = False
                    self._token = None
                    if force_visible_loading:
                        self.orders.loading = False

    def cancel(self) -> None:
        with self._lock:
            if self._token is not None:
                self._token.cancel()

    def refresh(self) -> None:
        """User-requested refresh: drop cached data and refetch with the spinner."""
        self.cache.invalidate_all()
        self.fetch_orders(force_visible_loading=True)

    # ---------------- internals ----------------
    def _is_current(self, gen: int, token: CancelToken) -> bool:
        with self._lock:
            return not token.cancelled and gen == self._generation

    def _run(self, gen: int, token: CancelToken, force: bool) -> None:
        policy = self.retry_policy
        key = self.key

        if not force:
            cached = self.cache.get(key)
            if cached is not None:
                log.debug(f"Cache hit for {key} ({len(cached)} orders)")
                self._publish(gen, token, cached, force, from_cache=True)
                return

        for attempt in range(policy.max_retries + 1):
            token.raise_if_cancelled()
            try:
                raw = self._fetcher(
                    self.identity.farmer_id,
                    self.identity.email,
                    session=self.session,
                    timeout=self.timeout,
                )
                fetched = normalize_orders(raw)
            except TRANSIENT_ERRORS as e:
                if not self._is_current(gen, token):
                    raise FetchCancelled()

                if attempt < policy.max_retries:
                    self.retry_count = attempt + 1
                    delay = policy.delay(attempt)
                    log.warning(
                        f"Fetch for {key} failed ({e}); retry {attempt + 1}/{policy.max_retries} in {delay:.1f}s"
                    )
                    self.bus.push(
                        f"Connection problem, retrying ({attempt + 1}/{policy.max_retries})...",
                        WARNING,
                    )
                    if token.wait(delay):
                        raise FetchCancelled()
                    continue

                self._give_up(gen, token, e)
                return

            self._publish(gen, token, fetched, force, from_cache=False)
            return

    def _publish(self, gen: int, token: CancelToken, fetched: List[Order], force: bool, from_cache: bool) -> None:
        if self.overrides is not None:
            fetched = self.overrides.apply(fetched)

        with self._lock:
            # the superseded fetch may still race through here
            if token.cancelled or gen != self._generation:
                raise FetchCancelled()
            previous = len(self.orders)
            is_background = not force and self.has_loaded
            self.orders.replace(fetched)
            self.orders.last_error = None
            self.has_loaded = True
            self.retry_count = 0

        if not from_cache:
            self.cache.set(self.key, fetched)

            # count-based on purpose: adds and removals in the same window offset each other
            if is_background and len(fetched) > previous:
                new = len(fetched) - previous
                self.bus.push(f"{new} new order{'s' if new != 1 else ''} received", SUCCESS)

        log.info(f"Orders for {self.key}: {len(fetched)} ({'cache' if from_cache else 'network'})")

    def _give_up(self, gen: int, token: CancelToken, err: Exception) -> None:
        with self._lock:
            if token.cancelled or gen != self._generation:
                raise FetchCancelled()
            self.orders.replace([])
            self.orders.last_error = str(err)
            self.retry_count = 0

        log.error(f"Fetch for {self.key} failed after {self.retry_policy.max_retries} retries: {err}")
        self.bus.push(f"Failed to load orders: {err}", ERROR)

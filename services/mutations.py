#mutations.py
"""
Status updates, single and bulk.

Each update runs in three steps:
  build_intent()  -> what we are about to write (payload + local patch)
  send            -> PATCH /orders/<id>
  reconcile()     -> apply the patches of the successful intents to the list

Bulk updates go out in batches of BULK_BATCH_SIZE. Batches run one after the
other; the requests inside a batch run concurrently and are joined all-settled,
so one failure never stops its siblings.
"""
import dataclasses
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

import requests

import api
from config import BULK_BATCH_SIZE, ESTIMATED_DELIVERY_DAYS, REQUEST_TIMEOUT_SECONDS, utc_now
from exceptions import InvalidTransition, OrderApiError
from models import FarmerIdentity, Order, StatusChange, encode_key
from services.notifications import ERROR, SUCCESS, WARNING, NotificationBus
from services.order_cache import OrderCache
from services.order_state import OrderCollection
from services.status_overrides import StatusOverrides
from services.status_vocabulary import MIXED, SHIPPED, success_message, validate_transition
from services.vendor_aggregator import vendor_status
from logger import get_logger

log = get_logger("mutations")

SEND_ERRORS = (OrderApiError, requests.RequestException)


@dataclass(frozen=True)
class StatusIntent:
    order_id: str
    status: str
    history: StatusChange
    estimated_delivery_date: Optional[str] = None
    vendor_key: Optional[str] = None      # set for vendor-scoped updates of mixed orders

    def payload(self) -> Dict:
        body = {
            "status": self.status,
            "statusHistory": {
                "status": self.history.status,
                "timestamp": self.history.timestamp,
                "updatedBy": self.history.actor,
            },
        }
        if self.estimated_delivery_date:
            body["estimatedDeliveryDate"] = self.estimated_delivery_date
        if self.vendor_key:
            body["farmerEmail"] = self.vendor_key
        return body


@dataclass
class MutationResult:
    order_id: str
    ok: bool
    status: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class BulkResult:
    requested: List[str]
    status: str
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)   # order_id -> reason

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


def build_intent(order: Order, target: str, identity: FarmerIdentity, now: datetime) -> StatusIntent:
    """Validate the transition and describe the write. Raises InvalidTransition."""
    if order.is_mixed and not identity.email:
        # a mixed order only moves one farmer's share at a time
        raise InvalidTransition(MIXED, target)
    vendor_key = identity.email if order.is_mixed else None
    current = vendor_status(order, vendor_key) if vendor_key else order.status
    status = validate_transition(current, target)

    eta = None
    if status == SHIPPED:
        eta = (now + timedelta(days=ESTIMATED_DELIVERY_DAYS)).isoformat()

    return StatusIntent(
        order_id=order.order_id,
        status=status,
        history=StatusChange(status=status, timestamp=now.isoformat(), actor=identity.actor),
        estimated_delivery_date=eta,
        vendor_key=vendor_key,
    )


def apply_intent(order: Order, intent: StatusIntent) -> Order:
    changes = {
        "status_history": tuple(order.status_history) + (intent.history,),
    }
    if intent.vendor_key:
        fs = dict(order.farmer_statuses or {})
        fs.pop(intent.vendor_key, None)     # keep a single (encoded) entry per vendor
        fs[encode_key(intent.vendor_key)] = intent.status
        changes["farmer_statuses"] = fs
    else:
        changes["status"] = intent.status
    if intent.estimated_delivery_date:
        changes["estimated_delivery_date"] = intent.estimated_delivery_date
    return dataclasses.replace(order, **changes)


def reconcile(orders: List[Order], intents: Iterable[StatusIntent]) -> List[Order]:
    """New list with every intent applied to its order; untouched orders are kept as-is."""
    by_id = {i.order_id: i for i in intents}
    if not by_id:
        return list(orders)
    return [apply_intent(o, by_id[o.order_id]) if o.order_id in by_id else o for o in orders]


def chunked(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class MutationCoordinator:
    def __init__(
        self,
        identity: FarmerIdentity,
        orders: OrderCollection,
        cache: OrderCache,
        bus: NotificationBus,
        *,
        overrides: Optional[StatusOverrides] = None,
        session: Optional[requests.Session] = None,
        batch_size: int = BULK_BATCH_SIZE,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        sender: Callable[..., Dict] = api.patch_order_status,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.identity = identity
        self.orders = orders
        self.cache = cache
        self.bus = bus
        self.overrides = overrides
        self.session = session
        self.batch_size = max(1, batch_size)
        self.timeout = timeout
        self._send = sender
        self._clock = clock

    @property
    def busy(self) -> bool:
        return self.orders.busy

    def _send_intent(self, intent: StatusIntent) -> None:
        self._send(intent.order_id, intent.payload(), session=self.session, timeout=self.timeout)

    def _prepare(self, order_id: str, target: str, now: datetime) -> StatusIntent:
        order = self.orders.get(order_id)
        if order is None:
            raise LookupError(f"Order {order_id} not found")
        return build_intent(order, target, self.identity, now)

    def _commit(self, intents: List[StatusIntent]) -> None:
        self.orders.apply(lambda current: reconcile(current, intents))
        if self.overrides is not None:
            for i in intents:
                self.overrides.record(i.order_id, i.status, i.vendor_key)

    # ---------------- single ----------------
    def update_status(self, order_id: str, new_status: str, *, confirmed: bool = False) -> MutationResult:
        """
        Change one order's status. `confirmed` must be True: the caller is
        responsible for having asked the farmer first (see confirmation_prompt()).
        """
        if not confirmed:
            log.warning(f"Status update of {order_id} to '{new_status}' ignored: not confirmed by user")
            return MutationResult(order_id, False, reason="confirmation required")

        try:
            intent = self._prepare(order_id, new_status, self._clock())
        except (InvalidTransition, LookupError) as e:
            self.bus.push(f"Failed to update order status: {e}", ERROR)
            return MutationResult(order_id, False, reason=str(e))

        try:
            self._send_intent(intent)
        except SEND_ERRORS as e:
            reason = e.reason if isinstance(e, OrderApiError) else str(e)
            log.error(f"Status update of {order_id} to '{intent.status}' failed: {reason}")
            self.bus.push(f"Failed to update order status: {reason}", ERROR)
            return MutationResult(order_id, False, reason=reason)

        self._commit([intent])
        self.cache.invalidate_all()
        log.info(f"Order {order_id} -> {intent.status} by {self.identity.actor}")
        self.bus.push(success_message(intent.status), SUCCESS)
        return MutationResult(order_id, True, status=intent.status)

    # ---------------- bulk ----------------
    def bulk_update_status(self, order_ids: Iterable[str], new_status: str) -> BulkResult:
        ids = list(dict.fromkeys(i for i in order_ids if i))
        result = BulkResult(requested=ids, status=(new_status or "").strip().lower())
        if not ids:
            self.bus.push("No orders selected for bulk update", WARNING)
            return result

        self.orders.busy = True
        try:
            now = self._clock()
            intents: Dict[str, StatusIntent] = {}
            for oid in ids:
                try:
                    intents[oid] = self._prepare(oid, new_status, now)
                except (InvalidTransition, LookupError) as e:
                    result.failed[oid] = str(e)

            sendable = [oid for oid in ids if oid in intents]
            with ThreadPoolExecutor(max_workers=self.batch_size, thread_name_prefix="bulk-status") as pool:
                for n, batch in enumerate(chunked(sendable, self.batch_size), start=1):
                    futures = {pool.submit(self._send_intent, intents[oid]): oid for oid in batch}
                    wait(futures)
                    for fut, oid in futures.items():
                        err = fut.exception()
                        if err is None:
                            result.succeeded.append(oid)
                        else:
                            reason = err.reason if isinstance(err, OrderApiError) else str(err)
                            result.failed[oid] = reason
                            log.warning(f"Bulk update: order {oid} failed: {reason}")
                    log.debug(f"Bulk batch {n} done ({len(batch)} requests)")

            # keep request order in the success list
            ok = set(result.succeeded)
            result.succeeded = [oid for oid in ids if oid in ok]

            self._commit([intents[oid] for oid in result.succeeded])
            self.orders.clear_selection()
            self.cache.invalidate_all()
        finally:
            self.orders.busy = False

        self._summarize(result)
        return result

    def _summarize(self, result: BulkResult) -> None:
        ok, bad = result.success_count, result.failure_count
        log.info(f"Bulk update to '{result.status}': {ok} succeeded, {bad} failed")
        if bad == 0:
            self.bus.push(f"Updated {ok} order{'s' if ok != 1 else ''} to {result.status}", SUCCESS)
        elif ok == 0:
            self.bus.push(f"Failed to update {bad} order{'s' if bad != 1 else ''}", ERROR)
        else:
            self.bus.push(f"Updated {ok} order{'s' if ok != 1 else ''} to {result.status}; {bad} failed", WARNING)

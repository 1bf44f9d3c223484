#query_pipeline.py
import dataclasses
import locale
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Dict, List, Optional

from config import PAGE_SIZE_COMPACT, PAGE_SIZE_DETAILED
from models import Order
from services.status_vocabulary import ALL, ALL_LABEL, STATUSES

SORT_NEWEST = "newest"
SORT_OLDEST = "oldest"
SORT_HIGHEST = "highest-value"
SORT_LOWEST = "lowest-value"
SORT_CUSTOMER = "customer-name"
SORT_OPTIONS = (SORT_NEWEST, SORT_OLDEST, SORT_HIGHEST, SORT_LOWEST, SORT_CUSTOMER)

VIEW_COMPACT = "compact"
VIEW_DETAILED = "detailed"
PAGE_SIZES = {VIEW_COMPACT: PAGE_SIZE_COMPACT, VIEW_DETAILED: PAGE_SIZE_DETAILED}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class OrderQuery:
    status: str = ALL
    search: str = ""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    sort: str = SORT_NEWEST
    view: str = VIEW_DETAILED
    page: int = 1

    @property
    def page_size(self) -> int:
        return PAGE_SIZES.get(self.view, PAGE_SIZE_DETAILED)

    def with_changes(self, **changes) -> "OrderQuery":
        """Copy with `changes`; touching any filter/sort/view input sends the page back to 1."""
        updated = dataclasses.replace(self, **changes)
        if "page" not in changes and updated != self:
            updated = dataclasses.replace(updated, page=1)
        return updated


@dataclass(frozen=True)
class QueryResult:
    items: List[Order]
    total_matches: int
    page: int
    page_size: int
    total_pages: int


# ---------------- stages ----------------
def filter_status(orders: List[Order], status: str) -> List[Order]:
    wanted = (status or "").strip().lower()
    if not wanted or wanted in (ALL, ALL_LABEL.lower()):
        return list(orders)
    return [o for o in orders if (o.status or "").lower() == wanted]


def _order_matches(order: Order, rx: re.Pattern) -> bool:
    for it in order.items:
        if rx.search(it.name) or rx.search(it.product_name) or rx.search(it.category):
            return True
    return bool(
        rx.search(order.customer_name)
        or rx.search(order.customer_email)
        or rx.search(order.order_id)
    )


def filter_search(orders: List[Order], term: str) -> List[Order]:
    term = (term or "").strip()
    if not term:
        return list(orders)
    rx = re.compile(re.escape(term), re.IGNORECASE)
    return [o for o in orders if _order_matches(o, rx)]


def filter_date_range(orders: List[Order], date_from: Optional[date], date_to: Optional[date]) -> List[Order]:
    if date_from is None and date_to is None:
        return list(orders)
    lo = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
    # the upper day is included up to 23:59:59.999
    hi = datetime.combine(date_to, time(23, 59, 59, 999000), tzinfo=timezone.utc) if date_to else None

    out = []
    for o in orders:
        if o.created_at is None:
            continue
        if lo is not None and o.created_at < lo:
            continue
        if hi is not None and o.created_at > hi:
            continue
        out.append(o)
    return out


def _name_key(order: Order) -> str:
    name = (order.customer_name or "").casefold()
    try:
        return locale.strxfrm(name)
    except (ValueError, OSError):
        return name


def sort_orders(orders: List[Order], sort: str) -> List[Order]:
    # sorted() is stable, including with reverse=True
    if sort == SORT_OLDEST:
        return sorted(orders, key=lambda o: o.created_at or _EPOCH)
    if sort == SORT_HIGHEST:
        return sorted(orders, key=lambda o: o.value, reverse=True)
    if sort == SORT_LOWEST:
        return sorted(orders, key=lambda o: o.value)
    if sort == SORT_CUSTOMER:
        return sorted(orders, key=_name_key)
    return sorted(orders, key=lambda o: o.created_at or _EPOCH, reverse=True)


def paginate(orders: List[Order], page: int, page_size: int) -> QueryResult:
    total = len(orders)
    total_pages = math.ceil(total / page_size) if total else 0
    page = min(max(1, page), max(1, total_pages))
    start = (page - 1) * page_size
    return QueryResult(
        items=orders[start:start + page_size],
        total_matches=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


# ---------------- pipeline ----------------
def filter_orders(orders: List[Order], query: OrderQuery) -> List[Order]:
    """Everything but pagination (also the 'filtered set' used by export)."""
    out = filter_status(orders, query.status)
    out = filter_search(out, query.search)
    out = filter_date_range(out, query.date_from, query.date_to)
    return sort_orders(out, query.sort)


def run_query(orders: List[Order], query: OrderQuery) -> QueryResult:
    return paginate(filter_orders(orders, query), query.page, query.page_size)


def summarize(orders: List[Order]) -> Dict[str, int]:
    counts = {"total": len(orders)}
    for status in STATUSES:
        counts[status] = sum(1 for o in orders if o.status == status)
    counts["mixed"] = sum(1 for o in orders if o.is_mixed)
    return counts

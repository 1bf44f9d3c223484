# farmer_orders/app.py

from dataclasses import asdict
from datetime import date
from typing import Optional, List, Dict, Any, Iterable

import requests

# ---------------- CONFIG / CORE ----------------
from config import SESSION
from logger import get_logger
from exceptions import NothingToExport
from models import FarmerIdentity, Order

# ---------------- STATE ----------------
from services.order_cache import OrderCache
from services.order_state import OrderCollection
from services.status_overrides import StatusOverrides
from services.notifications import NotificationBus, WARNING

# ---------------- SYNC / MUTATIONS ----------------
from services.sync_engine import SyncEngine, RetryPolicy
from services.mutations import MutationCoordinator, MutationResult, BulkResult

# ---------------- VIEWS ----------------
from services.query_pipeline import OrderQuery, QueryResult, filter_orders, run_query, summarize
from services.vendor_aggregator import group_by_vendor, vendor_scoped_view, vendor_status
from services.status_vocabulary import status_info, next_statuses, confirmation_prompt
from services.export import export_set, export_orders


log = get_logger("app")


class OrderDashboard:
    """
    Everything one farmer's order dashboard needs, wired together:
    engine + coordinator over a shared collection, cache, overrides and toasts.
    The cache may be shared between dashboards (it is keyed by identity).
    """

    def __init__(
        self,
        identity: FarmerIdentity,
        *,
        cache: Optional[OrderCache] = None,
        bus: Optional[NotificationBus] = None,
        session: Optional[requests.Session] = None,
        retry_policy: Optional[RetryPolicy] = None,
        fetcher=None,
        sender=None,
    ):
        self.identity = identity
        self.cache = cache or OrderCache()
        self.bus = bus or NotificationBus()
        self.orders = OrderCollection()
        self.overrides = StatusOverrides()
        self.query = OrderQuery()

        session = session or SESSION

        self.engine = SyncEngine(
            identity, self.orders, self.cache, self.bus,
            overrides=self.overrides,
            session=session,
            retry_policy=retry_policy,
            **({"fetcher": fetcher} if fetcher else {}),
        )
        self.mutations = MutationCoordinator(
            identity, self.orders, self.cache, self.bus,
            overrides=self.overrides,
            session=session,
            **({"sender": sender} if sender else {}),
        )

    # ------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------
    def load(self) -> None:
        """Initial load: spinner on, cache skipped."""
        self.engine.fetch_orders(force_visible_loading=True)

    def background_refresh(self) -> None:
        self.engine.fetch_orders(force_visible_loading=False)

    def refresh(self) -> None:
        self.engine.refresh()

    def close(self) -> None:
        self.engine.cancel()

    # ------------------------------------------------------------
    # Query state
    # ------------------------------------------------------------
    def set_query(self, **changes) -> OrderQuery:
        self.query = self.query.with_changes(**changes)
        return self.query

    def filtered(self) -> List[Order]:
        return filter_orders(self.orders.snapshot(), self.query)

    def page(self) -> QueryResult:
        return run_query(self.orders.snapshot(), self.query)

    # ------------------------------------------------------------
    # View-models
    # ------------------------------------------------------------
    def order_card(self, order: Order) -> Dict[str, Any]:
        own_status = vendor_status(order, self.identity.email) if order.is_mixed else order.status
        info = status_info(own_status)
        items, subtotal = vendor_scoped_view(order, self.identity.email)
        card = order.to_dict()
        card.update({
            "status_label": "Mixed" if order.is_mixed else info.label,
            "status_icon": info.icon,
            "status_color": info.color,
            "my_status": info.key,
            "my_items": [asdict(it) for it in items],
            "my_subtotal": subtotal,
            "actions": [
                {"status": s, "prompt": confirmation_prompt(s)} for s in next_statuses(own_status)
            ],
            "selected": order.order_id in set(self.orders.selected_ids()),
        })
        if order.is_mixed:
            card["vendors"] = self.vendor_breakdown(order)
        return card

    def vendor_breakdown(self, order: Order) -> List[Dict[str, Any]]:
        out = []
        for g in group_by_vendor(order):
            info = status_info(g.status)
            out.append({
                "vendor_key": g.vendor_key,
                "vendor_id": g.vendor_id,
                "vendor_email": g.vendor_email,
                "vendor_name": g.vendor_name,
                "status": g.status,
                "label": info.label,
                "icon": info.icon,
                "color": info.color,
                "progress": g.progress,
                "is_cancelled": g.is_cancelled,
                "items_count": len(g.items),
                "subtotal": g.subtotal,
            })
        return out

    def view(self) -> Dict[str, Any]:
        result = self.page()
        return {
            "loading": self.orders.loading,
            "busy": self.orders.busy,
            "error": self.orders.last_error,
            "query": {
                "status": self.query.status,
                "search": self.query.search,
                "date_from": self.query.date_from.isoformat() if self.query.date_from else None,
                "date_to": self.query.date_to.isoformat() if self.query.date_to else None,
                "sort": self.query.sort,
                "view": self.query.view,
            },
            "page": result.page,
            "page_size": result.page_size,
            "total_pages": result.total_pages,
            "total_matches": result.total_matches,
            "orders": [self.order_card(o) for o in result.items],
            "summary": summarize(self.orders.snapshot()),
        }

    # ------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------
    def select(self, order_ids: Iterable[str], selected: bool = True) -> List[str]:
        if selected:
            self.orders.select(order_ids)
        else:
            self.orders.deselect(order_ids)
        return self.orders.selected_ids()

    def update_status(self, order_id: str, status: str, confirmed: bool = False) -> MutationResult:
        return self.mutations.update_status(order_id, status, confirmed=confirmed)

    def bulk_update(self, status: str, order_ids: Optional[Iterable[str]] = None) -> BulkResult:
        ids = list(order_ids) if order_ids is not None else self.orders.selected_ids()
        return self.mutations.bulk_update_status(ids, status)

    # ------------------------------------------------------------
    # Export
    # ------------------------------------------------------------
    def export(self, fmt: str = "csv", today: Optional[date] = None):
        """(filename, mimetype, body), or None when there is nothing to export."""
        orders = export_set(self.filtered(), self.orders.selected_ids())
        if not orders:
            self.bus.push("No orders to export", WARNING)
            return None
        try:
            return export_orders(orders, fmt, today)
        except NothingToExport:
            self.bus.push("No orders to export", WARNING)
            return None

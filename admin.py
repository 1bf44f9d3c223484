import threading
from datetime import date
from typing import Callable, Dict, Optional

from flask import Flask, Response, abort, jsonify, request

from app import OrderDashboard
from logger import get_logger
from models import FarmerIdentity
from services.order_cache import OrderCache, cache_key
from services.status_vocabulary import ALL

log = get_logger("admin")

DashboardFactory = Callable[[FarmerIdentity, OrderCache], OrderDashboard]


def _default_factory(identity: FarmerIdentity, cache: OrderCache) -> OrderDashboard:
    return OrderDashboard(identity, cache=cache)


class DashboardRegistry:
    """One dashboard per signed-in farmer; all of them share one order cache."""

    def __init__(self, factory: DashboardFactory = _default_factory, cache: Optional[OrderCache] = None):
        self.cache = cache or OrderCache()
        self._factory = factory
        self._dashboards: Dict[str, OrderDashboard] = {}
        self._lock = threading.Lock()

    def get(self, identity: FarmerIdentity) -> OrderDashboard:
        key = cache_key(identity.farmer_id, identity.email)
        with self._lock:
            dash = self._dashboards.get(key)
            created = dash is None
            if created:
                dash = self._factory(identity, self.cache)
                self._dashboards[key] = dash
        if created:
            log.info(f"Dashboard opened for {key}")
            dash.load()
        return dash

    def all(self):
        with self._lock:
            return list(self._dashboards.values())

    def close(self) -> None:
        with self._lock:
            for dash in self._dashboards.values():
                dash.close()
            self._dashboards.clear()


def _identity() -> FarmerIdentity:
    # authentication is handled upstream; the proxy forwards the farmer identity
    farmer_id = (request.headers.get("X-Farmer-Id") or "").strip() or None
    email = (request.headers.get("X-Farmer-Email") or "").strip() or None
    name = (request.headers.get("X-Farmer-Name") or "").strip() or None
    if not farmer_id and not email:
        abort(401, description="Missing farmer identity")
    return FarmerIdentity(farmer_id=farmer_id, email=email, name=name)


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        abort(400, description=f"Invalid date '{value}'")


def _notifications(dash: OrderDashboard):
    return [
        {"id": n.id, "message": n.message, "severity": n.severity}
        for n in dash.bus.visible()
    ]


def create_app(registry: Optional[DashboardRegistry] = None) -> Flask:
    app = Flask(__name__)
    registry = registry or DashboardRegistry()
    app.extensions["farmer_orders"] = registry

    def dashboard() -> OrderDashboard:
        return registry.get(_identity())

    @app.errorhandler(400)
    @app.errorhandler(401)
    @app.errorhandler(404)
    def json_error(err):
        return jsonify({"error": getattr(err, "description", str(err))}), err.code

    @app.route("/orders")
    def orders():
        dash = dashboard()
        args = request.args
        filters = {}
        if "status" in args:
            filters["status"] = args.get("status") or ALL
        if "q" in args:
            filters["search"] = args.get("q") or ""
        if "from" in args:
            filters["date_from"] = _parse_date(args.get("from"))
        if "to" in args:
            filters["date_to"] = _parse_date(args.get("to"))
        if "sort" in args:
            filters["sort"] = args.get("sort")
        if "view" in args:
            filters["view"] = args.get("view")

        before = dash.query
        query = dash.set_query(**filters)
        # a page number only applies when the filters did not just change
        if query == before and "page" in args:
            page = args.get("page", type=int)
            if page:
                dash.set_query(page=page)

        out = dash.view()
        out["notifications"] = _notifications(dash)
        return jsonify(out)

    @app.route("/orders/summary")
    def orders_summary():
        dash = dashboard()
        return jsonify(dash.view()["summary"])

    @app.route("/orders/<order_id>/vendors")
    def order_vendors(order_id):
        dash = dashboard()
        order = dash.orders.get(order_id)
        if order is None:
            abort(404, description=f"Order {order_id} not found")
        return jsonify({"order_id": order_id, "status": order.status, "vendors": dash.vendor_breakdown(order)})

    @app.route("/orders/refresh", methods=["POST"])
    def orders_refresh():
        dash = dashboard()
        dash.refresh()
        return jsonify({"count": len(dash.orders), "error": dash.orders.last_error, "notifications": _notifications(dash)})

    @app.route("/orders/<order_id>/status", methods=["POST"])
    def order_status(order_id):
        dash = dashboard()
        body = request.get_json(silent=True) or {}
        status = body.get("status")
        if not status:
            abort(400, description="status is required")
        result = dash.update_status(order_id, status, confirmed=bool(body.get("confirmed")))
        return jsonify({
            "order_id": result.order_id,
            "ok": result.ok,
            "status": result.status,
            "reason": result.reason,
            "notifications": _notifications(dash),
        }), (200 if result.ok else 409)

    @app.route("/orders/bulk-status", methods=["POST"])
    def orders_bulk_status():
        dash = dashboard()
        body = request.get_json(silent=True) or {}
        status = body.get("status")
        if not status:
            abort(400, description="status is required")
        ids = body.get("ids")
        result = dash.bulk_update(status, ids if isinstance(ids, list) else None)
        return jsonify({
            "status": result.status,
            "requested": len(result.requested),
            "succeeded": result.succeeded,
            "failed": result.failed,
            "notifications": _notifications(dash),
        })

    @app.route("/orders/selection", methods=["POST"])
    def orders_selection():
        dash = dashboard()
        body = request.get_json(silent=True) or {}
        ids = body.get("ids") or []
        flag = body.get("selected", True)
        if not isinstance(flag, bool):
            abort(400, description="selected must be true or false")
        selected = dash.select(ids, selected=flag)
        return jsonify({"selected": selected})

    @app.route("/notifications")
    def notifications():
        return jsonify(_notifications(dashboard()))

    @app.route("/orders/export")
    def orders_export():
        dash = dashboard()
        fmt = (request.args.get("format") or "csv").lower()
        if fmt not in ("csv", "json"):
            abort(400, description=f"Unsupported export format '{fmt}'")
        exported = dash.export(fmt)
        if exported is None:
            abort(400, description="No orders to export")
        filename, mimetype, body = exported
        return Response(
            body,
            mimetype=mimetype,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return app


app = create_app()


if __name__ == "__main__":
    # For local dev only. Waitress uses admin:app
    from services.order_poller import start_poller

    registry = app.extensions["farmer_orders"]
    poller, stop = start_poller(registry)
    try:
        app.run(host="0.0.0.0", port=5050, debug=False)
    finally:
        stop.set()
        poller.join(timeout=5)
        registry.close()

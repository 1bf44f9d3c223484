#export.py
import csv
import io
import json
from datetime import date
from typing import Iterable, List, Optional, Tuple

from exceptions import NothingToExport
from models import Order
from logger import get_logger

log = get_logger("export")

CSV_HEADER = [
    "Order ID",
    "Customer Name",
    "Customer Email",
    "Status",
    "Total Amount",
    "Order Date",
    "Items Count",
    "Payment Method",
    "Delivery Address",
]

FORMATS = {
    "csv": "text/csv",
    "json": "application/json",
}


def export_set(filtered: List[Order], selected_ids: Iterable[str]) -> List[Order]:
    """Selected orders if there is a selection, otherwise the whole filtered set."""
    selected = set(selected_ids or ())
    if selected:
        return [o for o in filtered if o.order_id in selected]
    return list(filtered)


def can_export(filtered: List[Order], selected_ids: Iterable[str]) -> bool:
    return bool(export_set(filtered, selected_ids))


def _cell(value) -> str:
    # the file is opened in tools that split on commas regardless of quoting
    return str(value if value is not None else "").replace(",", ";")


def _csv_row(order: Order) -> List[str]:
    return [
        _cell(order.order_id),
        _cell(order.customer_name),
        _cell(order.customer_email),
        _cell(order.status),
        _cell(f"{order.total:.2f}"),
        _cell(order.created_at.date().isoformat() if order.created_at else ""),
        _cell(len(order.items)),
        _cell(order.payment_method),
        _cell(order.delivery_address),
    ]


def to_csv(orders: List[Order]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for o in orders:
        writer.writerow(_csv_row(o))
    return buf.getvalue()


def to_json(orders: List[Order]) -> str:
    return json.dumps([o.to_dict() for o in orders], indent=2, default=str)


def export_filename(fmt: str, today: Optional[date] = None) -> str:
    return f"farmer-orders-{(today or date.today()).isoformat()}.{fmt}"


def export_orders(orders: List[Order], fmt: str = "csv", today: Optional[date] = None) -> Tuple[str, str, str]:
    """Returns (filename, mimetype, body). Raises NothingToExport / ValueError."""
    fmt = (fmt or "csv").lower()
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'")
    if not orders:
        raise NothingToExport("No orders to export")

    body = to_csv(orders) if fmt == "csv" else to_json(orders)
    name = export_filename(fmt, today)
    log.info(f"Exported {len(orders)} orders as {name}")
    return name, FORMATS[fmt], body

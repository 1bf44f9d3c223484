#vendor_aggregator.py
"""
Per-vendor view of an order.

Mixed orders carry one status per farmer in `farmer_statuses`, keyed by the
farmer's email. Keys may have been written either raw ("a.b@c.com") or encoded
("a(dot)b@c(dot)com"), so both are tried before falling back to pending.
"""
from typing import Dict, List, Optional

from models import Order, VendorGroup, LineItem, encode_key
from services.status_vocabulary import (
    CANCELLED,
    PENDING,
    progress_fraction,
    resolve_status,
)
from logger import get_logger

log = get_logger("vendor_aggregator")


def resolve_vendor_status(farmer_statuses: Optional[Dict[str, str]], vendor_key: str) -> str:
    if not farmer_statuses or not vendor_key:
        return PENDING
    raw = farmer_statuses.get(encode_key(vendor_key))
    if raw is None:
        raw = farmer_statuses.get(vendor_key)
    return resolve_status(raw)


def group_by_vendor(order: Order) -> List[VendorGroup]:
    groups: Dict[str, VendorGroup] = {}

    for item in order.items:
        key = item.vendor_key
        if not key:
            log.info(f"Order {order.order_id}: item '{item.name}' has no vendor identity; left out of vendor groups")
            continue

        group = groups.get(key)
        if group is None:
            if order.is_mixed:
                status = resolve_vendor_status(order.farmer_statuses, key)
            else:
                status = resolve_status(order.status)
            group = VendorGroup(
                vendor_key=key,
                vendor_id=item.vendor_id,
                vendor_email=item.vendor_email,
                vendor_name=item.vendor_name,
                status=status,
                progress=progress_fraction(status),
                is_cancelled=status == CANCELLED,
            )
            groups[key] = group    # dict keeps first-seen order
        group.items.append(item)

    return list(groups.values())


def vendor_status(order: Order, vendor_key: str) -> str:
    """The status a single farmer sees for this order."""
    if order.is_mixed:
        return resolve_vendor_status(order.farmer_statuses, vendor_key)
    return resolve_status(order.status)


def vendor_scoped_view(order: Order, vendor_email: Optional[str]) -> tuple[List[LineItem], float]:
    """
    Items and subtotal belonging to one farmer.
    Falls back to the whole order when the farmer owns none of its items.
    """
    if not vendor_email:
        return list(order.items), order.value

    mine = [it for it in order.items if it.vendor_email == vendor_email]
    if mine and len(mine) == len(order.items) and order.vendor_subtotal is not None:
        return mine, order.vendor_subtotal

    subtotal = sum(it.subtotal for it in mine)
    return (mine or list(order.items)), subtotal

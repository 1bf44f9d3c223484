#models.py
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple

from services.status_vocabulary import MIXED, is_known_status
from logger import get_logger

log = get_logger("models")

DOT_TOKEN = "(dot)"


def encode_key(key: str) -> str:
    # the order store reserves '.' in map keys
    return key.replace(".", DOT_TOKEN)


def decode_key(key: str) -> str:
    return key.replace(DOT_TOKEN, ".")


@dataclass(frozen=True)
class FarmerIdentity:
    farmer_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def actor(self) -> str:
        return self.email or self.name or self.farmer_id or "farmer"


@dataclass(frozen=True)
class LineItem:
    product_id: str
    name: str
    vendor_id: Optional[str] = None
    vendor_email: Optional[str] = None
    vendor_name: Optional[str] = None
    price: float = 0.0
    quantity: float = 0.0
    unit: str = ""
    product_name: str = ""
    category: str = ""
    image: Optional[str] = None

    @property
    def vendor_key(self) -> Optional[str]:
        return self.vendor_email or self.vendor_id or None

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True)
class StatusChange:
    status: str
    timestamp: str
    actor: str


@dataclass(frozen=True)
class Order:
    order_id: str
    items: Tuple[LineItem, ...]
    status: str
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    delivery_address: str = ""
    payment_method: str = ""
    total: float = 0.0
    vendor_subtotal: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    farmer_statuses: Optional[Dict[str, str]] = None
    status_history: Tuple[StatusChange, ...] = ()
    estimated_delivery_date: Optional[str] = None

    @property
    def is_mixed(self) -> bool:
        return self.status == MIXED

    @property
    def value(self) -> float:
        """Vendor-scoped subtotal when the API supplied one, else the order total."""
        return self.vendor_subtotal if self.vendor_subtotal is not None else self.total

    def vendor_keys(self) -> List[str]:
        seen: List[str] = []
        for it in self.items:
            k = it.vendor_key
            if k and k not in seen:
                seen.append(k)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["items"] = [asdict(it) for it in self.items]
        d["status_history"] = [asdict(h) for h in self.status_history]
        d["created_at"] = self.created_at.isoformat() if self.created_at else None
        d["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return d


@dataclass
class VendorGroup:
    vendor_key: str
    vendor_id: Optional[str]
    vendor_email: Optional[str]
    vendor_name: Optional[str]
    items: List[LineItem] = field(default_factory=list)
    status: str = "pending"
    progress: float = 0.25
    is_cancelled: bool = False

    @property
    def subtotal(self) -> float:
        return sum(it.subtotal for it in self.items)


# ------------------------------------------------------------
# Boundary normalization (raw API record -> Order)
# ------------------------------------------------------------
def _first(d: dict, *keys, default=None):
    for k in keys:
        v = d.get(k)
        if v not in (None, ""):
            return v
    return default


def _nested(d: dict, key: str) -> dict:
    v = d.get(key)
    return v if isinstance(v, dict) else {}


def _to_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_ts(value) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        try:
            # handles "2025-12-22T03:35:00Z", "...+00:00" and naive values
            dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            log.warning(f"Unparseable timestamp '{s}' ignored")
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _format_address(addr) -> str:
    if not addr:
        return ""
    if isinstance(addr, str):
        return addr.strip()
    if isinstance(addr, dict):
        parts = [
            _first(addr, "street", "address", "line1"),
            _first(addr, "city"),
            _first(addr, "state", "district"),
            _first(addr, "postalCode", "zip", "postal_code"),
            _first(addr, "country"),
        ]
        return ", ".join(str(p).strip() for p in parts if p)
    return str(addr)


def normalize_item(raw: dict) -> LineItem:
    farmer = raw.get("farmer")
    farmer_d = farmer if isinstance(farmer, dict) else {}
    farmer_ref = farmer if isinstance(farmer, str) else None

    vendor_id = _first(raw, "farmerId") or _first(farmer_d, "_id", "id") or farmer_ref
    name = _first(raw, "name", "productName", default="")

    return LineItem(
        product_id=str(_first(raw, "productId", "_id", "id", default="")),
        name=str(name),
        vendor_id=str(vendor_id) if vendor_id else None,
        vendor_email=_first(raw, "farmerEmail") or _first(farmer_d, "email"),
        vendor_name=_first(raw, "farmerName") or _first(farmer_d, "name"),
        price=_to_float(raw.get("price")),
        quantity=_to_float(raw.get("quantity"), 1.0),
        unit=str(_first(raw, "unit", default="")),
        product_name=str(_first(raw, "productName", default="")),
        category=str(_first(raw, "category", default="")),
        image=_first(raw, "image", "productImage"),
    )


def _normalize_history(entries) -> Tuple[StatusChange, ...]:
    if not isinstance(entries, list):
        return ()
    out = []
    for e in entries:
        if not isinstance(e, dict) or not e.get("status"):
            continue
        out.append(StatusChange(
            status=str(e["status"]),
            timestamp=str(_first(e, "timestamp", "at", default="")),
            actor=str(_first(e, "updatedBy", "actor", "note", default="")),
        ))
    return tuple(out)


def _farmer_statuses(raw: dict) -> Dict[str, str]:
    statuses: Dict[str, str] = {}
    if isinstance(raw.get("farmerStatuses"), dict):
        statuses.update({str(k): str(v) for k, v in raw["farmerStatuses"].items() if v})
    # older records keep a list form alongside (or instead of) the map
    for entry in raw.get("farmerStatusesArr") or []:
        if isinstance(entry, dict) and entry.get("farmerEmail") and entry.get("status"):
            statuses.setdefault(encode_key(entry["farmerEmail"]), str(entry["status"]))
    return statuses


def normalize_order(raw: dict) -> Order:
    customer_info = _nested(raw, "customerInfo")
    shipping = _nested(raw, "shippingAddress")

    items = tuple(normalize_item(it) for it in raw.get("items") or [] if isinstance(it, dict))
    status = str(raw.get("status") or "").strip().lower()
    farmer_statuses = _farmer_statuses(raw)
    order_id = str(_first(raw, "_id", "id", "orderId", default=""))

    vendor_keys = []
    for it in items:
        if it.vendor_key and it.vendor_key not in vendor_keys:
            vendor_keys.append(it.vendor_key)

    if len(vendor_keys) > 1:
        if status != MIXED:
            log.warning(f"Order {order_id} spans {len(vendor_keys)} vendors but has status '{status}'; treating as mixed")
            if is_known_status(status):
                for vk in vendor_keys:
                    if encode_key(vk) not in farmer_statuses and vk not in farmer_statuses:
                        farmer_statuses[encode_key(vk)] = status
            status = MIXED
        fs = farmer_statuses
    else:
        # single-vendor orders are driven by the top-level status alone
        fs = farmer_statuses if status == MIXED else None

    vendor_subtotal = _first(raw, "stableFarmerSubtotal", "farmerSubtotal")

    return Order(
        order_id=order_id,
        items=items,
        status=status,
        customer_name=str(_first(raw, "customerName", "userName", default="")
                          or _first(customer_info, "name", default="")
                          or _first(shipping, "name", default="")),
        customer_email=str(_first(raw, "customerEmail", "userEmail", default="")
                           or _first(customer_info, "email", default="")),
        customer_phone=str(_first(raw, "customerPhone", default="")
                           or _first(customer_info, "phone", default="")),
        delivery_address=_format_address(_first(raw, "deliveryAddress", "shippingAddress")),
        payment_method=str(_first(raw, "paymentMethod", default="")),
        total=_to_float(_first(raw, "total", "totalAmount", "totalPrice")),
        vendor_subtotal=_to_float(vendor_subtotal) if vendor_subtotal is not None else None,
        created_at=parse_ts(raw.get("createdAt")),
        updated_at=parse_ts(raw.get("updatedAt")),
        farmer_statuses=fs,
        status_history=_normalize_history(raw.get("statusHistory")),
        estimated_delivery_date=_first(raw, "estimatedDeliveryDate"),
    )


def normalize_orders(raw_orders) -> List[Order]:
    out = []
    for raw in raw_orders or []:
        if not isinstance(raw, dict):
            log.warning(f"Skipping non-object order record: {raw!r}")
            continue
        out.append(normalize_order(raw))
    return out

import os
import tempfile
import threading
from datetime import datetime, timezone

import pytest
import requests

# Keep test runs out of the project's log folder (must be set before config is imported)
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "farmer-orders-test-logs"))

from models import FarmerIdentity, normalize_orders
from services.notifications import NotificationBus
from services.order_cache import OrderCache
from services.order_state import OrderCollection
from services.sync_engine import RetryPolicy


FARMER_EMAIL = "karim.farm@example.com"


# =============================================================================
# RAW PAYLOAD BUILDERS (shape of the order API)
# =============================================================================

def raw_item(name="Tomato", farmer_email=FARMER_EMAIL, price=50, quantity=2, category="Vegetables", **extra):
    item = {
        "productId": f"p-{name.lower()}",
        "name": name,
        "price": price,
        "quantity": quantity,
        "unit": "kg",
        "category": category,
        "farmerEmail": farmer_email,
        "farmerName": (farmer_email or "").split("@")[0],
    }
    item.update(extra)
    return item


def raw_order(order_id, status="pending", items=None, created="2026-10-01T10:00:00Z",
              customer="Rahim Uddin", email="rahim@example.com", total=100, **extra):
    order = {
        "_id": order_id,
        "status": status,
        "items": items if items is not None else [raw_item()],
        "createdAt": created,
        "customerName": customer,
        "customerEmail": email,
        "total": total,
        "paymentMethod": "cod",
        "deliveryAddress": "House 4, Road 2, Dhaka",
    }
    order.update(extra)
    return order


# =============================================================================
# FAKES
# =============================================================================

class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None, reason="OK"):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else ("" if body is None else str(body))
        self.reason = reason

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeOrderApi:
    """
    Stands in for the requests session used by api.py.
    Serves `orders` on GET, records every call, and fails on demand.
    """

    def __init__(self, orders=None):
        self.orders = list(orders or [])
        self.get_calls = []
        self.patch_calls = []
        self.fail_next_gets = 0
        self.get_response = None
        self.fail_patch = {}            # order_id -> (http status, error message)
        self._lock = threading.Lock()

    def get(self, url, params=None, headers=None, timeout=None):
        with self._lock:
            self.get_calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
            if self.fail_next_gets > 0:
                self.fail_next_gets -= 1
                raise requests.ConnectionError("connection refused")
        if self.get_response is not None:
            return self.get_response
        return FakeResponse(200, {"orders": list(self.orders)})

    def patch(self, url, json=None, headers=None, timeout=None):
        order_id = url.rsplit("/", 1)[-1]
        with self._lock:
            self.patch_calls.append({"order_id": order_id, "json": json, "timeout": timeout})
        if order_id in self.fail_patch:
            code, message = self.fail_patch[order_id]
            return FakeResponse(code, {"error": message}, reason="Error")
        return FakeResponse(200, {"order": {"_id": order_id, "status": (json or {}).get("status")}})

    def patched_ids(self):
        with self._lock:
            return [c["order_id"] for c in self.patch_calls]


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def identity():
    return FarmerIdentity(farmer_id="farmer-1", email=FARMER_EMAIL, name="Karim")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_api():
    return FakeOrderApi()


@pytest.fixture
def cache(clock):
    return OrderCache(clock=clock)


@pytest.fixture
def bus(clock):
    return NotificationBus(clock=clock)


@pytest.fixture
def no_wait_retry():
    return RetryPolicy(max_retries=3, base_delay=0.0)


@pytest.fixture
def fixed_now():
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def collection_of(*raws):
    return OrderCollection(normalize_orders(list(raws)))


def severities(bus, severity):
    return [n for n in bus.visible() if n.severity == severity]

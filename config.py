import os
from datetime import datetime, timezone

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

ENV = os.getenv("ENV", "TEST").upper()

DEFAULTS = {
    "TEST": {
        "API_URL": "http://localhost:3000/api",
        "REQUEST_TIMEOUT_SECONDS": "15",
    },
    "LIVE": {
        "API_URL": "https://farmfresh-market.app/api",
        "REQUEST_TIMEOUT_SECONDS": "15",
    }
}

cfg = DEFAULTS["LIVE"] if ENV == "LIVE" else DEFAULTS["TEST"]

API_URL = os.getenv("ORDERS_API_URL", cfg["API_URL"]).rstrip("/")

# Per-attempt timeout for a single fetch/mutation request (seconds).
# Expiry is treated like any other transient network failure.
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", cfg["REQUEST_TIMEOUT_SECONDS"]))

# Sent with every fetch so the order API can tell dashboard polling apart from storefront reads
REQUEST_SOURCE_HEADER = "X-Requested-By"
REQUEST_SOURCE = os.getenv("REQUEST_SOURCE", "farmer-orders-dashboard")

# Sync behavior
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "300"))        # 5 minutes
FETCH_MAX_RETRIES = int(os.getenv("FETCH_MAX_RETRIES", "3"))           # attempts after the first
FETCH_BACKOFF_BASE_SECONDS = float(os.getenv("FETCH_BACKOFF_BASE_SECONDS", "1.0"))
POLL_SECONDS = int(os.getenv("POLL_SECONDS", "60"))

# Mutations
BULK_BATCH_SIZE = int(os.getenv("BULK_BATCH_SIZE", "5"))
ESTIMATED_DELIVERY_DAYS = int(os.getenv("ESTIMATED_DELIVERY_DAYS", "3"))
STATUS_OVERRIDE_MAX_AGE_SECONDS = int(os.getenv("STATUS_OVERRIDE_MAX_AGE_SECONDS", "300"))

# Notifications
NOTIFICATION_TTL_SECONDS = float(os.getenv("NOTIFICATION_TTL_SECONDS", "5"))
NOTIFICATION_MAX_VISIBLE = 5

# Dashboard paging (orders per page by view density)
PAGE_SIZE_COMPACT = 20
PAGE_SIZE_DETAILED = 10

# ---------------- Paths (stable, absolute) ----------------
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Logging
LOG_DIR = os.getenv("LOG_DIR", os.path.join(BASE_DIR, "logs"))
LOG_FILE = os.getenv("LOG_FILE", "farmer_orders.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").upper()
LOG_TO_CONSOLE = os.getenv("LOG_TO_CONSOLE", "0") == "1"


# -------------- HTTP Session --------------
def build_session(pool_size: int = BULK_BATCH_SIZE) -> requests.Session:
    # Retrying is owned by the sync engine, and status updates must never be
    # replayed, so the transport itself does not retry.
    session = requests.Session()
    retries = Retry(total=0, raise_on_status=False)
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size, max_retries=retries)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session

SESSION = build_session()

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

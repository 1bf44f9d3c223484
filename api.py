#api.py
import json
from typing import Optional, List, Dict, Any

import requests

from config import (
    API_URL,
    SESSION,
    REQUEST_TIMEOUT_SECONDS,
    REQUEST_SOURCE_HEADER,
    REQUEST_SOURCE,
)
from exceptions import OrderApiError
from logger import get_logger

log = get_logger("api")


def extract_error_detail(resp: requests.Response) -> Optional[str]:
    """
    Server-provided reason from a non-2xx response.
    The order API answers {"error": "..."}; anything else is not trusted as a message.
    """
    try:
        body = resp.json()
    except ValueError:
        return None

    if isinstance(body, dict) and body.get("error"):
        error = body["error"]
        if isinstance(error, dict):
            return " | ".join(f"{k}: {v}" for k, v in error.items())
        return str(error)
    return None


def _raise_for_api_error(resp: requests.Response, action: str) -> None:
    if resp.ok:
        return
    detail = extract_error_detail(resp)
    text = (getattr(resp, "text", "") or "")[:300]
    raise OrderApiError(
        detail or f"{action} failed: HTTP {resp.status_code} {getattr(resp, 'reason', '') or ''}".strip(),
        api_status=resp.status_code,
        api_error_message=detail,
        raw_response_text=text,
    )


def fetch_orders(
    farmer_id: Optional[str],
    farmer_email: Optional[str],
    *,
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
) -> List[Dict[str, Any]]:
    """GET the raw order records for one farmer (normalization happens in the caller)."""
    params = {}
    if farmer_id:
        params["farmerId"] = farmer_id
    if farmer_email:
        params["farmerEmail"] = farmer_email

    headers = {
        "Accept": "application/json",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        REQUEST_SOURCE_HEADER: REQUEST_SOURCE,
    }

    http = session or SESSION
    log.debug(f"GET {API_URL}/orders params={params}")
    resp = http.get(f"{API_URL}/orders", params=params, headers=headers, timeout=timeout)
    log.debug(f"API Response: {resp.status_code}")
    _raise_for_api_error(resp, "Fetching orders")

    try:
        body = resp.json()
    except ValueError as e:
        raise OrderApiError(
            f"Order list response was not JSON: {e}",
            api_status=resp.status_code,
            raw_response_text=(resp.text or "")[:300],
        )

    orders = body.get("orders") if isinstance(body, dict) else None
    if orders is None:
        return []
    if not isinstance(orders, list):
        raise OrderApiError(f"Unexpected 'orders' shape: {type(orders).__name__}", api_status=resp.status_code)
    return orders


def patch_order_status(
    order_id: str,
    payload: Dict[str, Any],
    *,
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
) -> Dict[str, Any]:
    """PATCH one order's status. Returns the decoded body ({} when the server sends none)."""
    headers = {"Content-Type": "application/json", "Accept": "application/json"}

    http = session or SESSION
    log.debug(f"PATCH {API_URL}/orders/{order_id} payload: {json.dumps(payload)}")
    resp = http.patch(f"{API_URL}/orders/{order_id}", json=payload, headers=headers, timeout=timeout)
    log.debug(f"API Response: {resp.status_code} {(resp.text or '')[:300]}")
    _raise_for_api_error(resp, "Updating order status")

    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}

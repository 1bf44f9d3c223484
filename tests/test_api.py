import pytest

import api
from conftest import FakeOrderApi, FakeResponse, raw_order
from exceptions import OrderApiError


def test_fetch_orders_returns_raw_list():
    session = FakeOrderApi([raw_order("o-1"), raw_order("o-2")])
    orders = api.fetch_orders("farmer-1", None, session=session, timeout=3)
    assert [o["_id"] for o in orders] == ["o-1", "o-2"]
    assert session.get_calls[0]["params"] == {"farmerId": "farmer-1"}
    assert session.get_calls[0]["timeout"] == 3


def test_fetch_orders_without_orders_key():
    session = FakeOrderApi()
    session.get_response = FakeResponse(200, {"message": "ok"})
    assert api.fetch_orders(None, "a@farm.com", session=session) == []


def test_fetch_orders_rejects_bad_shapes():
    session = FakeOrderApi()
    session.get_response = FakeResponse(200, {"orders": "nope"})
    with pytest.raises(OrderApiError):
        api.fetch_orders("f", None, session=session)

    session.get_response = FakeResponse(200, None, text="<html>maintenance</html>")
    with pytest.raises(OrderApiError) as exc:
        api.fetch_orders("f", None, session=session)
    assert exc.value.raw_response_text == "<html>maintenance</html>"


def test_http_error_carries_server_reason():
    session = FakeOrderApi()
    session.get_response = FakeResponse(403, {"error": "Farmer account suspended"}, reason="Forbidden")
    with pytest.raises(OrderApiError) as exc:
        api.fetch_orders("f", None, session=session)
    assert exc.value.api_status == 403
    assert exc.value.reason == "Farmer account suspended"


def test_http_error_without_json_body():
    session = FakeOrderApi()
    session.get_response = FakeResponse(502, None, text="Bad Gateway", reason="Bad Gateway")
    with pytest.raises(OrderApiError) as exc:
        api.fetch_orders("f", None, session=session)
    assert exc.value.api_error_message is None
    assert exc.value.reason == "Fetching orders failed: HTTP 502 Bad Gateway"


def test_extract_error_detail_shapes():
    assert api.extract_error_detail(FakeResponse(400, {"error": "bad status"})) == "bad status"
    assert api.extract_error_detail(FakeResponse(400, {"error": {"status": "required"}})) == "status: required"
    assert api.extract_error_detail(FakeResponse(400, {"message": "x"})) is None
    assert api.extract_error_detail(FakeResponse(400, None)) is None


def test_patch_order_status():
    session = FakeOrderApi()
    body = api.patch_order_status("o-1", {"status": "confirmed"}, session=session)
    assert body["order"]["status"] == "confirmed"
    assert session.patch_calls[0]["json"] == {"status": "confirmed"}


def test_patch_order_status_failure():
    session = FakeOrderApi()
    session.fail_patch["o-1"] = (400, "Invalid status transition")
    with pytest.raises(OrderApiError) as exc:
        api.patch_order_status("o-1", {"status": "delivered"}, session=session)
    assert exc.value.reason == "Invalid status transition"
    assert exc.value.api_status == 400

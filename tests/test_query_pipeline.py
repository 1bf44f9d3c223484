import math
from datetime import date

import pytest

from conftest import raw_item, raw_order
from models import normalize_orders
from services.query_pipeline import (
    SORT_CUSTOMER,
    SORT_HIGHEST,
    SORT_LOWEST,
    SORT_NEWEST,
    SORT_OLDEST,
    VIEW_COMPACT,
    VIEW_DETAILED,
    OrderQuery,
    filter_date_range,
    filter_orders,
    filter_search,
    filter_status,
    paginate,
    run_query,
    sort_orders,
    summarize,
)


def ids(orders):
    return [o.order_id for o in orders]


@pytest.fixture
def market():
    """Twelve orders spread over October with mixed statuses, values and customers."""
    rows = [
        ("o-01", "pending", "2026-10-01T08:00:00Z", "Rahim Uddin", 120, "Tomato", "Vegetables"),
        ("o-02", "confirmed", "2026-10-02T09:30:00Z", "anika rahman", 450, "Basmati Rice", "Grains"),
        ("o-03", "shipped", "2026-10-03T11:00:00Z", "Bashir Ahmed", 80, "Honey", "Organic"),
        ("o-04", "delivered", "2026-10-04T15:45:00Z", "Chowdhury Farms Ltd", 900, "Mango", "Fruits"),
        ("o-05", "cancelled", "2026-10-05T23:59:59.500000Z", "Dipa Sen", 60, "Chili", "Spices"),
        ("o-06", "pending", "2026-10-06T00:00:00Z", "Emon Khan", 300, "Potato", "Vegetables"),
        ("o-07", "pending", "2026-10-07T10:00:00Z", "Farhana Akter", 120, "Red Lentils", "Grains"),
        ("o-08", "confirmed", "2026-10-08T12:00:00Z", "Gazi Hossain", 75, "Guava", "Fruits"),
        ("o-09", "shipped", "2026-10-09T13:00:00Z", "Habib Ali", 510, "Mustard Oil", "Oils"),
        ("o-10", "delivered", "2026-10-10T14:00:00Z", "Ishrat Jahan", 120, "Spinach", "Vegetables"),
        ("o-11", "pending", "2026-10-11T16:00:00Z", "Jamal Mia", 220, "Eggplant", "Vegetables"),
        ("o-12", "confirmed", "2026-10-12T18:00:00Z", "Kamrul Hasan", 40, "Coriander", "Herbs"),
    ]
    return normalize_orders([
        raw_order(oid, status=st, created=ts, customer=name, total=total,
                  email=f"{oid}@customers.example.com",
                  items=[raw_item(product, category=cat, price=total, quantity=1)])
        for oid, st, ts, name, total, product, cat in rows
    ])


# ---------------- stages ----------------
def test_status_filter(market):
    assert ids(filter_status(market, "pending")) == ["o-01", "o-06", "o-07", "o-11"]
    assert ids(filter_status(market, "Shipped")) == ["o-03", "o-09"]
    assert len(filter_status(market, "all")) == 12
    assert len(filter_status(market, "All Orders")) == 12
    assert filter_status(market, "mixed") == []


def test_search_matches_items_and_customers(market):
    assert ids(filter_search(market, "rice")) == ["o-02"]
    assert ids(filter_search(market, "VEGETABLES")) == ["o-01", "o-06", "o-10", "o-11"]
    assert ids(filter_search(market, "anika")) == ["o-02"]
    assert ids(filter_search(market, "o-09@customers")) == ["o-09"]
    assert ids(filter_search(market, "o-12")) == ["o-12"]
    assert len(filter_search(market, "   ")) == 12


def test_search_treats_term_literally():
    orders = normalize_orders([
        raw_order("o-1", items=[raw_item("Rice (5kg)")]),
        raw_order("o-2", items=[raw_item("Rice 5kg")]),
        raw_order("o-3", items=[raw_item("axb")]),
    ])
    assert ids(filter_search(orders, "(5kg)")) == ["o-1"]
    assert filter_search(orders, "a.b") == []
    assert filter_search(orders, "[") == []


def test_date_range_is_inclusive_of_whole_last_day(market):
    got = filter_date_range(market, date(2026, 10, 3), date(2026, 10, 5))
    assert ids(got) == ["o-03", "o-04", "o-05"]

    # o-06 is at midnight of the next day
    assert "o-06" not in ids(filter_date_range(market, None, date(2026, 10, 5)))
    assert ids(filter_date_range(market, date(2026, 10, 6), date(2026, 10, 6))) == ["o-06"]


def test_date_range_drops_orders_without_date():
    orders = normalize_orders([raw_order("o-1", created=None), raw_order("o-2")])
    assert ids(filter_date_range(orders, date(2026, 1, 1), None)) == ["o-2"]
    # no bounds: nothing is dropped
    assert len(filter_date_range(orders, None, None)) == 2


def test_sorts(market):
    assert ids(sort_orders(market, SORT_NEWEST))[:3] == ["o-12", "o-11", "o-10"]
    assert ids(sort_orders(market, SORT_OLDEST))[:3] == ["o-01", "o-02", "o-03"]
    assert ids(sort_orders(market, SORT_HIGHEST))[:3] == ["o-04", "o-09", "o-02"]
    assert ids(sort_orders(market, SORT_LOWEST))[:3] == ["o-12", "o-05", "o-08"]
    by_name = sort_orders(market, SORT_CUSTOMER)
    assert [o.customer_name for o in by_name][:3] == ["anika rahman", "Bashir Ahmed", "Chowdhury Farms Ltd"]


def test_sorts_are_stable_for_ties(market):
    # o-01, o-07 and o-10 all total 120
    ties = ["o-01", "o-07", "o-10"]
    assert [i for i in ids(sort_orders(market, SORT_HIGHEST)) if i in ties] == ties
    assert [i for i in ids(sort_orders(market, SORT_LOWEST)) if i in ties] == ties


def test_unknown_sort_falls_back_to_newest(market):
    assert ids(sort_orders(market, "random")) == ids(sort_orders(market, SORT_NEWEST))


# ---------------- pagination ----------------
def test_paginate_clamps_page(market):
    res = paginate(market, 2, 5)
    assert ids(res.items) == ["o-06", "o-07", "o-08", "o-09", "o-10"]
    assert (res.page, res.total_pages, res.total_matches) == (2, 3, 12)

    assert paginate(market, 99, 5).page == 3
    assert len(paginate(market, 99, 5).items) == 2
    assert paginate(market, 0, 5).page == 1


def test_paginate_empty():
    res = paginate([], 3, 10)
    assert res.items == []
    assert res.total_pages == 0
    assert res.page == 1


def test_page_size_follows_view():
    assert OrderQuery().page_size == 10
    assert OrderQuery(view=VIEW_COMPACT).page_size == 20


def test_changing_filters_resets_page():
    q = OrderQuery(page=3)
    assert q.with_changes(status="pending").page == 1
    assert q.with_changes(search="rice").page == 1
    assert q.with_changes(view=VIEW_COMPACT).page == 1
    assert q.with_changes(page=2).page == 2
    # nothing actually changed: keep the page
    assert q.with_changes(status="all").page == 3


# ---------------- whole pipeline ----------------
def test_filter_orders_is_idempotent(market):
    q = OrderQuery(status="pending", search="vegetables", sort=SORT_HIGHEST)
    once = filter_orders(market, q)
    assert filter_orders(once, q) == once


def test_run_query_end_to_end(market):
    q = OrderQuery(
        status="pending",
        search="e",
        date_from=date(2026, 10, 1),
        date_to=date(2026, 10, 10),
        sort=SORT_HIGHEST,
    )
    res = run_query(market, q)
    # pending in range: o-01, o-06, o-07; every customer email contains "e"
    assert ids(res.items) == ["o-06", "o-01", "o-07"]
    assert res.total_matches == 3
    assert res.total_pages == 1


def test_run_query_does_not_mutate_input(market):
    before = list(market)
    run_query(market, OrderQuery(sort=SORT_CUSTOMER, view=VIEW_COMPACT))
    assert market == before


def test_summarize(market):
    mixed = normalize_orders([raw_order("m-1", items=[raw_item("A", "a@x.com"), raw_item("B", "b@x.com")])])
    counts = summarize(market + mixed)
    assert counts == {
        "total": 13,
        "pending": 4,
        "confirmed": 3,
        "shipped": 2,
        "delivered": 2,
        "cancelled": 1,
        "mixed": 1,
    }


def _all_pages(orders, query):
    first = run_query(orders, query)
    items = list(first.items)
    for page in range(2, first.total_pages + 1):
        items += run_query(orders, query.with_changes(page=page)).items
    return first, items


@pytest.mark.parametrize("sort", [SORT_NEWEST, SORT_LOWEST, SORT_CUSTOMER])
def test_page_size_only_changes_slicing(market, sort):
    query = OrderQuery(status="all", sort=sort)
    detailed, detailed_items = _all_pages(market, query.with_changes(view=VIEW_DETAILED))
    compact, compact_items = _all_pages(market, query.with_changes(view=VIEW_COMPACT))

    assert detailed.total_matches == compact.total_matches == 12
    assert (detailed.total_pages, compact.total_pages) == (2, 1)
    assert ids(detailed_items) == ids(compact_items)
    assert ids(compact.items[:10]) == ids(detailed.items)


def test_shipped_tomato_spans_two_pages():
    raws = [
        raw_order(f"s-{i:02d}", status="shipped", created=f"2026-10-{i:02d}T09:00:00Z",
                  items=[raw_item("Cherry Tomato" if i % 2 else "Tomato")])
        for i in range(1, 12)
    ]
    raws.append(raw_order("p-01", status="pending", created="2026-10-12T09:00:00Z", items=[raw_item("Tomato")]))
    orders = normalize_orders(raws)
    assert len(orders) == 12

    query = OrderQuery(status="shipped", search="tomato")
    first = run_query(orders, query)
    assert first.total_matches == 11
    assert first.total_pages == math.ceil(first.total_matches / query.page_size) == 2
    assert ids(first.items) == [f"s-{i:02d}" for i in range(11, 1, -1)]

    second = run_query(orders, query.with_changes(page=2))
    assert ids(second.items) == ["s-01"]
    assert second.page == 2

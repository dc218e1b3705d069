from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from dishcore.analytics.aggregator import AnalyticsAggregator, AnalyticsFilters, percent_change
from dishcore.analytics.windows import Window
from dishcore.app import app
from dishcore.data.stores import get_order_store
from dishcore.errors import UpstreamQueryError, ValidationError

UTC = timezone.utc
MARCH = Window(datetime(2024, 3, 1, tzinfo=UTC), datetime(2024, 3, 31, tzinfo=UTC), "custom")

client = TestClient(app)


def _month_scenario(add_order):
    for i in range(10):
        add_order("u1", ["a"], datetime(2024, 3, 5, 12, tzinfo=UTC) + timedelta(hours=i), total=50.0)
    for i in range(8):
        add_order("u1", ["a"], datetime(2024, 2, 10, 12, tzinfo=UTC) + timedelta(hours=i), total=50.0)


# ── Percent change ───────────────────────────────────────────────────────


def test_percent_change_zero_baseline_is_zero():
    assert percent_change(10, 0) == 0.0
    assert percent_change(0, 0) == 0.0
    assert percent_change(12.5, 0.0) == 0.0


def test_percent_change_rounds_to_one_decimal():
    assert percent_change(10, 8) == 25.0
    assert percent_change(2, 3) == -33.3


# ── Order stats ──────────────────────────────────────────────────────────


def test_order_stats_month_over_month(add_order):
    _month_scenario(add_order)
    stats = AnalyticsAggregator().get_order_stats(MARCH)
    assert stats.total_orders == 10
    assert stats.total_revenue == 500.0
    assert stats.average_order_value == 50.0
    assert stats.previous.total_orders == 8
    assert stats.percent_change.orders == 25.0
    assert stats.percent_change.revenue == 25.0
    assert stats.percent_change.aov == 0.0


def test_order_stats_counts_completed_and_cancelled_separately(add_order):
    ts = datetime(2024, 3, 10, tzinfo=UTC)
    add_order("u1", ["a"], ts, status="delivered", total=20)
    add_order("u1", ["a"], ts, status="ready", total=20)
    add_order("u1", ["a"], ts, status="pending", total=20)
    add_order("u1", ["a"], ts, status="cancelled", total=99)
    stats = AnalyticsAggregator().get_order_stats(MARCH)
    assert stats.total_orders == 3
    assert stats.total_revenue == 60.0
    assert stats.completed_orders == 2
    assert stats.cancelled_orders == 1
    # no previous-period orders at all
    assert stats.percent_change.orders == 0.0
    assert stats.percent_change.revenue == 0.0


def test_order_stats_empty_store():
    stats = AnalyticsAggregator().get_order_stats(MARCH)
    assert stats.total_orders == 0
    assert stats.average_order_value == 0.0
    assert stats.percent_change.aov == 0.0


def test_filters_apply_to_both_windows(add_item, add_customer, add_order):
    add_item("cake", category="dessert")
    add_item("pho", category="main")
    add_customer("north", datetime(2023, 1, 1, tzinfo=UTC), states=["Hà Nội"])
    add_customer("south", datetime(2023, 1, 1, tzinfo=UTC), states=["Cần Thơ"])
    add_order("north", ["cake"], datetime(2024, 3, 5, tzinfo=UTC), total=30)
    add_order("north", ["pho"], datetime(2024, 3, 6, tzinfo=UTC), total=40)
    add_order("south", ["cake"], datetime(2024, 3, 7, tzinfo=UTC), total=50)
    add_order("north", ["cake"], datetime(2024, 2, 5, tzinfo=UTC), total=15)
    add_order("south", ["cake"], datetime(2024, 2, 6, tzinfo=UTC), total=100)

    stats = AnalyticsAggregator().get_order_stats(
        MARCH, AnalyticsFilters(region="north", category="dessert")
    )
    assert stats.total_orders == 1
    assert stats.total_revenue == 30.0
    assert stats.previous.total_orders == 1
    assert stats.previous.total_revenue == 15.0
    assert stats.percent_change.revenue == 100.0


@pytest.mark.parametrize(
    "filters",
    [AnalyticsFilters(region="Atlantis"), AnalyticsFilters(category="soup")],
)
def test_invalid_filters_are_rejected(filters):
    with pytest.raises(ValidationError):
        AnalyticsAggregator().get_order_stats(MARCH, filters)


def test_all_filter_values_mean_unrestricted(add_order):
    add_order("u1", ["a"], datetime(2024, 3, 5, tzinfo=UTC))
    stats = AnalyticsAggregator().get_order_stats(MARCH, AnalyticsFilters(region="all", category="all"))
    assert stats.total_orders == 1


def test_upstream_failure_is_surfaced(add_order):
    add_order("u1", ["a"], datetime(2024, 3, 5, tzinfo=UTC))
    with patch.object(get_order_store(), "find", side_effect=RuntimeError("connection refused")):
        with pytest.raises(UpstreamQueryError):
            AnalyticsAggregator().get_order_stats(MARCH)


# ── Customer stats ───────────────────────────────────────────────────────


def test_customer_stats(add_customer, add_order):
    add_customer("old", datetime(2023, 6, 1, tzinfo=UTC))
    add_customer("fresh", datetime(2024, 3, 2, tzinfo=UTC))
    add_customer("idle", datetime(2024, 3, 3, tzinfo=UTC))
    add_customer("gone", datetime(2023, 6, 1, tzinfo=UTC))
    add_order("old", ["a"], datetime(2024, 3, 5, tzinfo=UTC))
    add_order("old", ["a"], datetime(2024, 3, 6, tzinfo=UTC))
    add_order("fresh", ["a"], datetime(2024, 3, 7, tzinfo=UTC))
    add_order("gone", ["a"], datetime(2024, 3, 8, tzinfo=UTC), status="cancelled")
    add_order("old", ["a"], datetime(2024, 2, 5, tzinfo=UTC))

    stats = AnalyticsAggregator().get_customer_stats(MARCH)
    assert stats.total_customers == 2
    assert stats.new_customers == 2
    assert stats.repeat_customers == 1
    assert stats.previous.total_customers == 1
    assert stats.percent_change.total == 100.0
    assert stats.percent_change.new == 0.0
    assert stats.percent_change.repeat == 0.0


# ── Popular dishes ───────────────────────────────────────────────────────


def test_popular_dishes_sorted_by_quantity(add_item, add_order):
    add_item("pho", name="Pho")
    add_item("tea", category="beverage", name="Tea")
    ts = datetime(2024, 3, 5, tzinfo=UTC)
    add_order("u1", [("pho", 2, 5.0), ("tea", 1, 2.0)], ts)
    add_order("u2", [("tea", 4, 2.0)], ts)
    add_order("u2", [("pho", 9, 5.0)], ts, status="cancelled")

    dishes = AnalyticsAggregator().get_popular_dishes(MARCH)
    assert [(d.id, d.name, d.count, d.revenue) for d in dishes] == [
        ("tea", "Tea", 5, 10.0),
        ("pho", "Pho", 2, 10.0),
    ]


def test_popular_dishes_category_filter_counts_only_matching_lines(add_item, add_order):
    add_item("pho", category="main")
    add_item("tea", category="beverage")
    add_order("u1", [("pho", 2, 5.0), ("tea", 3, 2.0)], datetime(2024, 3, 5, tzinfo=UTC))

    dishes = AnalyticsAggregator().get_popular_dishes(MARCH, AnalyticsFilters(category="beverage"))
    assert [d.id for d in dishes] == ["tea"]


def test_popular_dishes_empty():
    assert AnalyticsAggregator().get_popular_dishes(MARCH) == []


# ── Trends ───────────────────────────────────────────────────────────────


def test_trends_seven_day_window_without_orders_has_seven_zero_buckets():
    week = Window(datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 1, 8, tzinfo=UTC), "custom")
    trends = AnalyticsAggregator().get_order_trends(week)
    assert len(trends) == 7
    assert all(t.orders == 0 and t.revenue == 0 for t in trends)
    assert trends[0].date == date(2024, 1, 1)
    assert trends[-1].date == date(2024, 1, 7)


def test_trends_window_starting_mid_day_spans_eight_dates():
    week = Window(datetime(2024, 1, 1, 15, tzinfo=UTC), datetime(2024, 1, 8, 15, tzinfo=UTC), "custom")
    trends = AnalyticsAggregator().get_order_trends(week)
    assert len(trends) == 8
    assert trends[0].date == date(2024, 1, 1)
    assert trends[-1].date == date(2024, 1, 8)


def test_trends_accumulate_into_daily_buckets(add_order):
    week = Window(datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 1, 8, tzinfo=UTC), "custom")
    add_order("u1", ["a"], datetime(2024, 1, 2, 9, tzinfo=UTC), total=10)
    add_order("u1", ["a"], datetime(2024, 1, 2, 21, tzinfo=UTC), total=15)
    add_order("u1", ["a"], datetime(2024, 1, 7, 23, 59, tzinfo=UTC), total=5)
    add_order("u1", ["a"], datetime(2024, 1, 8, tzinfo=UTC), total=99)

    trends = AnalyticsAggregator().get_order_trends(week)
    assert [t.orders for t in trends] == [0, 2, 0, 0, 0, 0, 1]
    assert trends[1].revenue == 25.0


def test_trends_weekly_buckets_for_quarter(add_order):
    quarter = Window(datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 1, 29, tzinfo=UTC), "quarter")
    add_order("u1", ["a"], datetime(2024, 1, 10, tzinfo=UTC), total=10)
    add_order("u1", ["a"], datetime(2024, 1, 13, tzinfo=UTC), total=10)

    trends = AnalyticsAggregator().get_order_trends(quarter)
    assert [t.date for t in trends] == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)]
    assert [t.orders for t in trends] == [0, 2, 0, 0]


# ── Regional ─────────────────────────────────────────────────────────────


def test_regional_orders_always_reports_canonical_regions():
    result = AnalyticsAggregator().get_regional_orders(MARCH)
    assert {r.region for r in result} == {"North", "Central", "South"}
    assert all(r.count == 0 for r in result)


def test_regional_orders_classification_and_fallbacks(add_customer, add_order):
    add_customer("hn", datetime(2023, 1, 1, tzinfo=UTC), states=["Đà Nẵng"], default_state="Hà Nội")
    add_customer("first", datetime(2023, 1, 1, tzinfo=UTC), states=["Cần Thơ", "Hà Nội"])
    ts = datetime(2024, 3, 5, tzinfo=UTC)
    add_order("hn", ["a"], ts, total=10)  # default address -> North
    add_order("first", ["a"], ts, total=20)  # first address -> South
    add_order("first", ["a"], ts, total=30, state="Hồ Chí Minh")  # delivery state wins
    add_order("hn", ["a"], ts, total=40, state="Paris")
    add_order("nobody", ["a"], ts, total=5)

    result = {r.region: r for r in AnalyticsAggregator().get_regional_orders(MARCH)}
    assert result["North"].count == 1
    assert result["South"].count == 2
    assert result["South"].revenue == 50.0
    assert result["Central"].count == 0
    assert result["Other"].count == 2
    assert result["Other"].revenue == 45.0


def test_regional_orders_sorted_by_count(add_order):
    ts = datetime(2024, 3, 5, tzinfo=UTC)
    add_order("u", ["a"], ts, state="Huế")
    add_order("u", ["a"], ts, state="Đà Nẵng")
    add_order("u", ["a"], ts, state="Hà Nội")
    regions = [r.region for r in AnalyticsAggregator().get_regional_orders(MARCH)]
    assert regions == ["Central", "North", "South"]


# ── API ──────────────────────────────────────────────────────────────────


def test_order_stats_endpoint(add_order):
    _month_scenario(add_order)
    resp = client.get(
        "/analytics/orders/stats",
        params={"start_date": "2024-03-01", "end_date": "2024-03-31"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["totalOrders"] == 10
    assert body["totalRevenue"] == 500.0
    assert body["percentChange"] == {"orders": 25.0, "revenue": 25.0, "aov": 0.0}


def test_customer_stats_endpoint_shape():
    resp = client.get("/analytics/customers/stats", params={"time_range": "week"})
    assert resp.status_code == 200
    assert set(resp.json()["percentChange"]) == {"total", "new", "repeat"}


def test_trends_endpoint_is_gap_free():
    resp = client.get(
        "/analytics/orders/trends",
        params={"start_date": "2024-01-01", "end_date": "2024-01-08"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert len(body) == 7
    assert body[0] == {"date": "2024-01-01", "orders": 0, "revenue": 0.0}


def test_regional_endpoint():
    resp = client.get("/analytics/orders/regional", params={"time_range": "month"})
    assert resp.status_code == 200
    assert {r["region"] for r in resp.json()} >= {"North", "Central", "South"}


def test_popular_dishes_endpoint(add_item, add_order):
    add_item("pho")
    add_order("u1", [("pho", 3, 4.0)], datetime(2024, 3, 5, tzinfo=UTC))
    resp = client.get(
        "/analytics/dishes/popular",
        params={"start_date": "2024-03-01", "end_date": "2024-03-31"},
    )
    assert resp.status_code == 200
    assert resp.json() == [{"id": "pho", "name": "Pho", "count": 3, "revenue": 12.0}]


@pytest.mark.parametrize(
    "params",
    [
        {"time_range": "fortnight"},
        {"time_range": "custom"},
        {"start_date": "2024-03-01"},
        {"start_date": "yesterday-ish", "end_date": "2024-03-01"},
        {"region": "Mars"},
        {"category": "snacks"},
    ],
)
def test_analytics_validation_errors(params):
    resp = client.get("/analytics/orders/stats", params=params)
    assert resp.status_code == 422


def test_analytics_upstream_failure_returns_503():
    with patch.object(get_order_store(), "find", side_effect=RuntimeError("timeout")):
        resp = client.get("/analytics/orders/stats", params={"time_range": "month"})
    assert resp.status_code == 503

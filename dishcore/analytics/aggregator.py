from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import pandas as pd

from ..config import DEFAULT_ANALYTICS_CONFIG, AnalyticsConfig
from ..data.models import CATEGORIES, Order
from ..data.stores import (
    Catalog,
    CustomerStore,
    OrderStore,
    get_catalog,
    get_customer_store,
    get_order_store,
)
from ..errors import UpstreamQueryError, ValidationError
from . import regions
from .models import (
    CustomerPercentChange,
    CustomerSnapshot,
    CustomerStats,
    OrderPercentChange,
    OrderSnapshot,
    OrderStats,
    PopularDish,
    RegionalOrders,
    TrendPoint,
)
from .windows import Window, bucket_size

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CANCELLED = ("cancelled",)


def percent_change(current: float, previous: float) -> float:
    """Relative change in percent, rounded to 1 decimal; 0.0 when there is no baseline."""
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


@dataclass(frozen=True)
class AnalyticsFilters:
    region: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class ResolvedFilters:
    """Filters turned into id sets. ``None`` means unrestricted."""

    customers: set[str] | None = None
    items: set[str] | None = None

    def order_query(self) -> dict[str, Any]:
        return {"customers": self.customers, "items": self.items}


class AnalyticsAggregator:
    def __init__(
        self,
        orders: OrderStore | None = None,
        customers: CustomerStore | None = None,
        catalog: Catalog | None = None,
        config: AnalyticsConfig = DEFAULT_ANALYTICS_CONFIG,
    ) -> None:
        self.orders = orders or get_order_store()
        self.customers = customers or get_customer_store()
        self.catalog = catalog or get_catalog()
        self.config = config

    # ── Query plumbing ──────────────────────────────────────────────────

    def _query(self, what: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except UpstreamQueryError:
            logger.error("Upstream query failed: %s", what)
            raise
        except Exception as exc:
            logger.error("Upstream query failed: %s", what, exc_info=True)
            raise UpstreamQueryError(f"Could not query {what}") from exc

    def _active_orders(self, window: Window, filters: ResolvedFilters) -> list[Order]:
        return self._query(
            "orders",
            self.orders.find,
            start=window.start,
            end=window.end,
            exclude_statuses=_CANCELLED,
            **filters.order_query(),
        )

    def resolve_filters(self, filters: AnalyticsFilters | None) -> ResolvedFilters:
        """Resolve region and category filters once into customer and item id sets."""
        if filters is None:
            return ResolvedFilters()

        customers: set[str] | None = None
        region = (filters.region or "").strip()
        if region and region.lower() != "all":
            canonical = regions.canonical_region(region)
            if canonical is None:
                raise ValidationError(f"Unknown region {filters.region!r}")
            customers = self._query(
                "customers by region",
                self.customers.find_by_state,
                lambda state: regions.classify(state) == canonical,
            )

        items: set[str] | None = None
        category = (filters.category or "").strip().lower()
        if category and category != "all":
            if category not in CATEGORIES:
                raise ValidationError(f"Unknown category {filters.category!r}")
            items = self._query("catalog by category", self.catalog.ids_in_category, category)

        return ResolvedFilters(customers=customers, items=items)

    # ── Order statistics ────────────────────────────────────────────────

    def _order_snapshot(self, window: Window, filters: ResolvedFilters) -> tuple[OrderSnapshot, float, float]:
        orders = self._active_orders(window, filters)
        cancelled = self._query(
            "cancelled orders",
            self.orders.find,
            start=window.start,
            end=window.end,
            statuses=_CANCELLED,
            **filters.order_query(),
        )
        total = len(orders)
        revenue = sum(o.total_amount for o in orders)
        aov = revenue / total if total > 0 else 0.0
        completed = sum(1 for o in orders if o.status in self.config.completed_statuses)
        snapshot = OrderSnapshot(
            total_orders=total,
            total_revenue=round(revenue, 2),
            average_order_value=round(aov, 2),
            completed_orders=completed,
            cancelled_orders=len(cancelled),
        )
        return snapshot, revenue, aov

    def get_order_stats(self, window: Window, filters: AnalyticsFilters | None = None) -> OrderStats:
        resolved = self.resolve_filters(filters)
        current, revenue, aov = self._order_snapshot(window, resolved)
        previous, prev_revenue, prev_aov = self._order_snapshot(window.previous(), resolved)
        return OrderStats(
            **current.model_dump(),
            percent_change=OrderPercentChange(
                orders=percent_change(current.total_orders, previous.total_orders),
                revenue=percent_change(revenue, prev_revenue),
                aov=percent_change(aov, prev_aov),
            ),
            previous=previous,
        )

    # ── Customer statistics ─────────────────────────────────────────────

    def _customer_snapshot(self, window: Window, filters: ResolvedFilters) -> CustomerSnapshot:
        active = self._query(
            "active customers",
            self.orders.distinct_customers,
            start=window.start,
            end=window.end,
            exclude_statuses=_CANCELLED,
            **filters.order_query(),
        )
        new = self._query(
            "new customers",
            self.customers.created_between,
            window.start,
            window.end,
            customers=filters.customers,
        )
        repeat = 0
        for customer_id in active:
            customer = self._query("customer", self.customers.get, customer_id)
            if customer is not None and customer.created_at < window.start:
                repeat += 1
        return CustomerSnapshot(
            total_customers=len(active),
            new_customers=len(new),
            repeat_customers=repeat,
        )

    def get_customer_stats(self, window: Window, filters: AnalyticsFilters | None = None) -> CustomerStats:
        resolved = self.resolve_filters(filters)
        current = self._customer_snapshot(window, resolved)
        previous = self._customer_snapshot(window.previous(), resolved)
        return CustomerStats(
            **current.model_dump(),
            percent_change=CustomerPercentChange(
                total=percent_change(current.total_customers, previous.total_customers),
                new=percent_change(current.new_customers, previous.new_customers),
                repeat=percent_change(current.repeat_customers, previous.repeat_customers),
            ),
            previous=previous,
        )

    # ── Dishes, trends, regions ─────────────────────────────────────────

    def get_popular_dishes(self, window: Window, filters: AnalyticsFilters | None = None) -> list[PopularDish]:
        resolved = self.resolve_filters(filters)
        orders = self._active_orders(window, resolved)

        names: dict[str, str] = {}
        rows: list[dict[str, Any]] = []
        for order in orders:
            for line in order.items:
                if resolved.items is not None and line.menu_item not in resolved.items:
                    continue
                if line.menu_item not in names:
                    item = self._query("catalog item", self.catalog.get, line.menu_item)
                    if item is None:
                        continue
                    names[line.menu_item] = item.name
                rows.append({
                    "id": line.menu_item,
                    "quantity": line.quantity,
                    "revenue": line.price * line.quantity,
                })

        if not rows:
            return []

        df = pd.DataFrame(rows)
        grouped = (
            df.groupby("id", as_index=False)
            .agg(count=("quantity", "sum"), revenue=("revenue", "sum"))
            .sort_values(["count", "id"], ascending=[False, True])
        )
        return [
            PopularDish(
                id=row["id"],
                name=names[row["id"]],
                count=int(row["count"]),
                revenue=round(float(row["revenue"]), 2),
            )
            for row in grouped.to_dict("records")
        ]

    def get_order_trends(self, window: Window, filters: AnalyticsFilters | None = None) -> list[TrendPoint]:
        """One point per bucket covering the window, zero-filled where no orders landed.

        Buckets are aligned to UTC midnight, so a 7-day window that starts
        mid-day touches 8 calendar dates and yields 8 daily points.
        """
        resolved = self.resolve_filters(filters)
        step = bucket_size(window, self.config)
        first = window.start.replace(hour=0, minute=0, second=0, microsecond=0)
        axis = pd.date_range(start=first, end=window.end, freq=pd.Timedelta(step), inclusive="left")

        orders = [0] * len(axis)
        revenue = [0.0] * len(axis)
        for order in self._active_orders(window, resolved):
            index = (order.created_at - first) // step
            if 0 <= index < len(axis):
                orders[index] += 1
                revenue[index] += order.total_amount

        return [
            TrendPoint(date=ts.date(), orders=orders[i], revenue=round(revenue[i], 2))
            for i, ts in enumerate(axis)
        ]

    def _order_region(self, order: Order) -> str:
        if order.delivery_address and order.delivery_address.state:
            return regions.classify(order.delivery_address.state)
        customer = self._query("customer", self.customers.get, order.user)
        address = customer.default_address() if customer else None
        if address and address.state:
            return regions.classify(address.state)
        return regions.OTHER

    def get_regional_orders(self, window: Window, filters: AnalyticsFilters | None = None) -> list[RegionalOrders]:
        resolved = self.resolve_filters(filters)
        stats: dict[str, dict[str, float]] = {
            region: {"count": 0, "revenue": 0.0} for region in regions.CANONICAL_REGIONS
        }
        for order in self._active_orders(window, resolved):
            bucket = stats.setdefault(self._order_region(order), {"count": 0, "revenue": 0.0})
            bucket["count"] += 1
            bucket["revenue"] += order.total_amount

        result = [
            RegionalOrders(region=region, count=int(data["count"]), revenue=round(data["revenue"], 2))
            for region, data in stats.items()
        ]
        return sorted(result, key=lambda r: r.count, reverse=True)

"""
In-memory collaborator stores.

The order, customer and catalog stores stand in for the persistence layer of
the surrounding backend. They expose only the narrow queries the
recommendation and analytics core needs. Preference and tag records live in
keyed upsert stores that hand out copies, so callers always do an explicit
read-modify-write.
"""
from __future__ import annotations

import json
import threading
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from .models import Customer, MenuItem, MenuItemTag, Order, UserPreference


class OrderStore:
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = threading.Lock()

    def add(self, order: Order) -> None:
        with self._lock:
            self._orders[order.id] = order

    def all(self) -> list[Order]:
        with self._lock:
            return list(self._orders.values())

    def find(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        statuses: Iterable[str] | None = None,
        exclude_statuses: Iterable[str] | None = None,
        customers: set[str] | None = None,
        items: set[str] | None = None,
    ) -> list[Order]:
        """Return orders created in ``[start, end)`` matching every given filter.

        ``None`` disables a filter; an empty ``customers``/``items`` set
        matches nothing. An order matches ``items`` when any line does.
        """
        wanted = set(statuses) if statuses is not None else None
        unwanted = set(exclude_statuses or ())
        matched: list[Order] = []
        for order in self.all():
            if start is not None and order.created_at < start:
                continue
            if end is not None and order.created_at >= end:
                continue
            if wanted is not None and order.status not in wanted:
                continue
            if order.status in unwanted:
                continue
            if customers is not None and order.user not in customers:
                continue
            if items is not None and not any(line.menu_item in items for line in order.items):
                continue
            matched.append(order)
        matched.sort(key=lambda o: o.created_at)
        return matched

    def distinct_customers(self, **filters: Any) -> set[str]:
        return {order.user for order in self.find(**filters)}

    def clear(self) -> None:
        with self._lock:
            self._orders.clear()


class CustomerStore:
    def __init__(self) -> None:
        self._customers: dict[str, Customer] = {}
        self._lock = threading.Lock()

    def add(self, customer: Customer) -> None:
        with self._lock:
            self._customers[customer.id] = customer

    def get(self, customer_id: str) -> Customer | None:
        with self._lock:
            return self._customers.get(customer_id)

    def all(self) -> list[Customer]:
        with self._lock:
            return list(self._customers.values())

    def find_by_state(self, predicate: Callable[[str], bool]) -> set[str]:
        """Ids of customers with any saved address whose state satisfies *predicate*."""
        return {
            c.id
            for c in self.all()
            if any(a.state and predicate(a.state) for a in c.addresses)
        }

    def created_between(
        self,
        start: datetime,
        end: datetime,
        customers: set[str] | None = None,
    ) -> list[Customer]:
        return [
            c
            for c in self.all()
            if start <= c.created_at < end and (customers is None or c.id in customers)
        ]

    def clear(self) -> None:
        with self._lock:
            self._customers.clear()


class Catalog:
    def __init__(self) -> None:
        self._items: dict[str, MenuItem] = {}
        self._lock = threading.Lock()

    def add(self, item: MenuItem) -> None:
        with self._lock:
            self._items[item.id] = item

    def get(self, item_id: str) -> MenuItem | None:
        with self._lock:
            return self._items.get(item_id)

    def all(self) -> list[MenuItem]:
        with self._lock:
            return sorted(self._items.values(), key=lambda i: i.id)

    def ids_in_category(self, category: str) -> set[str]:
        return {item.id for item in self.all() if item.category == category}

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


class PreferenceStore:
    def __init__(self) -> None:
        self._records: dict[str, UserPreference] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> UserPreference | None:
        with self._lock:
            record = self._records.get(user_id)
            return record.model_copy(deep=True) if record else None

    def upsert(self, record: UserPreference) -> None:
        with self._lock:
            self._records[record.user] = record.model_copy(deep=True)

    def all(self) -> list[UserPreference]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records.values()]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


class TagStore:
    def __init__(self) -> None:
        self._tags: dict[str, MenuItemTag] = {}
        self._lock = threading.Lock()

    def get(self, item_id: str) -> MenuItemTag | None:
        with self._lock:
            tag = self._tags.get(item_id)
            return tag.model_copy(deep=True) if tag else None

    def upsert(self, tag: MenuItemTag) -> None:
        with self._lock:
            self._tags[tag.menu_item] = tag.model_copy(deep=True)

    def all(self) -> list[MenuItemTag]:
        with self._lock:
            return [t.model_copy(deep=True) for t in self._tags.values()]

    def with_occasion(self, occasion: str) -> list[MenuItemTag]:
        return [t for t in self.all() if occasion in t.occasion_tags]

    def clear(self) -> None:
        with self._lock:
            self._tags.clear()


_orders = OrderStore()
_customers = CustomerStore()
_catalog = Catalog()
_preferences = PreferenceStore()
_tags = TagStore()


def get_order_store() -> OrderStore:
    return _orders


def get_customer_store() -> CustomerStore:
    return _customers


def get_catalog() -> Catalog:
    return _catalog


def get_preference_store() -> PreferenceStore:
    return _preferences


def get_tag_store() -> TagStore:
    return _tags


def clear_stores() -> None:
    for store in (_orders, _customers, _catalog, _preferences, _tags):
        store.clear()


def load_snapshot(source: str | Path | dict[str, Any]) -> dict[str, int]:
    """Fill the stores from a JSON snapshot file or an already-parsed dict.

    Recognised keys: ``menu_items``, ``customers``, ``orders``,
    ``preferences`` and ``tags``. Returns how many records of each kind
    were loaded.
    """
    if isinstance(source, dict):
        data = source
    else:
        data = json.loads(Path(source).read_text(encoding="utf-8"))

    counts: dict[str, int] = {}
    for raw in data.get("menu_items", []):
        _catalog.add(MenuItem.model_validate(raw))
    counts["menu_items"] = len(data.get("menu_items", []))

    for raw in data.get("customers", []):
        _customers.add(Customer.model_validate(raw))
    counts["customers"] = len(data.get("customers", []))

    for raw in data.get("orders", []):
        _orders.add(Order.model_validate(raw))
    counts["orders"] = len(data.get("orders", []))

    for raw in data.get("preferences", []):
        _preferences.upsert(UserPreference.model_validate(raw))
    counts["preferences"] = len(data.get("preferences", []))

    for raw in data.get("tags", []):
        _tags.upsert(MenuItemTag.model_validate(raw))
    counts["tags"] = len(data.get("tags", []))

    return counts


def dump_snapshot(target: str | Path) -> None:
    """Write the computed preference and tag records to a JSON file."""
    data = {
        "preferences": [r.model_dump(mode="json") for r in _preferences.all()],
        "tags": [t.model_dump(mode="json") for t in _tags.all()],
    }
    Path(target).write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

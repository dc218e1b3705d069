from __future__ import annotations

import pytest

from dishcore.data.models import Address, Customer, MenuItem, NutritionInfo, Order, OrderLine
from dishcore.data.stores import clear_stores, get_catalog, get_customer_store, get_order_store


@pytest.fixture(autouse=True)
def _clean_stores():
    clear_stores()
    yield
    clear_stores()


@pytest.fixture
def add_item():
    def _add(item_id, category="main", price=10.0, calories=500, protein=10, fat=20, name=None):
        item = MenuItem(
            id=item_id,
            name=name or item_id.title(),
            price=price,
            category=category,
            nutrition=NutritionInfo(calories=calories, protein=protein, fat=fat),
        )
        get_catalog().add(item)
        return item

    return _add


@pytest.fixture
def add_customer():
    def _add(customer_id, created_at, states=(), default_state=None):
        addresses = [Address(state=s) for s in states]
        if default_state:
            addresses.append(Address(state=default_state, is_default=True))
        customer = Customer(id=customer_id, created_at=created_at, addresses=addresses)
        get_customer_store().add(customer)
        return customer

    return _add


@pytest.fixture
def add_order():
    counter = {"n": 0}

    def _add(user, items, created_at, status="delivered", total=None, state=None, order_id=None):
        counter["n"] += 1
        lines = []
        for entry in items:
            if isinstance(entry, str):
                lines.append(OrderLine(menu_item=entry, quantity=1, price=10.0))
            else:
                item_id, quantity, price = entry
                lines.append(OrderLine(menu_item=item_id, quantity=quantity, price=price))
        order = Order(
            id=order_id or f"o{counter['n']}",
            user=user,
            items=lines,
            total_amount=total if total is not None else sum(l.price * l.quantity for l in lines),
            status=status,
            created_at=created_at,
            delivery_address=Address(state=state) if state else None,
        )
        get_order_store().add(order)
        return order

    return _add

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderPercentChange(_CamelModel):
    orders: float = 0.0
    revenue: float = 0.0
    aov: float = 0.0


class OrderSnapshot(_CamelModel):
    total_orders: int = 0
    total_revenue: float = 0.0
    average_order_value: float = 0.0
    completed_orders: int = 0
    cancelled_orders: int = 0


class OrderStats(OrderSnapshot):
    percent_change: OrderPercentChange = Field(default_factory=OrderPercentChange)
    previous: OrderSnapshot = Field(default_factory=OrderSnapshot)


class CustomerPercentChange(_CamelModel):
    total: float = 0.0
    new: float = 0.0
    repeat: float = 0.0


class CustomerSnapshot(_CamelModel):
    total_customers: int = 0
    new_customers: int = 0
    repeat_customers: int = 0


class CustomerStats(CustomerSnapshot):
    percent_change: CustomerPercentChange = Field(default_factory=CustomerPercentChange)
    previous: CustomerSnapshot = Field(default_factory=CustomerSnapshot)


class PopularDish(_CamelModel):
    id: str
    name: str
    count: int
    revenue: float


class TrendPoint(_CamelModel):
    date: dt.date
    orders: int = 0
    revenue: float = 0.0


class RegionalOrders(_CamelModel):
    region: str
    count: int = 0
    revenue: float = 0.0

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ItemViewedEvent(_CamelModel):
    user_id: str = Field(..., min_length=1)
    item_id: str = Field(..., min_length=1)


class OrderPlacedEvent(_CamelModel):
    user_id: str = Field(..., min_length=1)
    item_ids: list[str] = Field(..., min_length=1)


class EventAccepted(_CamelModel):
    status: str = "accepted"


class OccasionItem(_CamelModel):
    id: str
    name: str
    price: float
    category: str
    occasion_tags: list[str]


class PersonalizedResponse(_CamelModel):
    recommendations: list[str]


class OccasionResponse(_CamelModel):
    occasion: str
    items: list[OccasionItem]


class Combo(_CamelModel):
    items: list[str]
    total_price: float


class ComboResponse(_CamelModel):
    combos: list[Combo]


class RebuildResponse(_CamelModel):
    status: str
    users_seeded: int
    users_skipped: int
    items_tagged: int
    items_ranked: int

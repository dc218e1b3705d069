from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

CATEGORIES = ("main", "side", "dessert", "beverage")

Category = Literal["main", "side", "dessert", "beverage"]
OrderStatus = Literal["pending", "confirmed", "preparing", "ready", "delivered", "cancelled"]


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NutritionInfo(BaseModel):
    calories: float = 0.0
    protein: float = 0.0
    fat: float = 0.0


class MenuItem(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    price: float = Field(default=0.0, ge=0.0)
    category: Category
    ingredients: list[str] = Field(default_factory=list)
    nutrition: NutritionInfo = Field(default_factory=NutritionInfo)


class Address(BaseModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    is_default: bool = False


class Customer(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    created_at: datetime
    addresses: list[Address] = Field(default_factory=list)

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def default_address(self) -> Address | None:
        for address in self.addresses:
            if address.is_default:
                return address
        return self.addresses[0] if self.addresses else None


class OrderLine(BaseModel):
    menu_item: str
    quantity: int = Field(default=1, ge=1)
    price: float = Field(default=0.0, ge=0.0)


class Order(BaseModel):
    id: str = Field(..., min_length=1)
    user: str
    items: list[OrderLine] = Field(default_factory=list)
    total_amount: float = 0.0
    status: OrderStatus = "pending"
    created_at: datetime
    delivery_address: Address | None = None

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def item_ids(self) -> list[str]:
        """Distinct menu item ids in line order."""
        return list(dict.fromkeys(line.menu_item for line in self.items))


class PreferredNutrition(BaseModel):
    min_protein: float | None = Field(default=None, ge=0.0)
    max_calories: float | None = Field(default=None, ge=0.0)


class UserPreference(BaseModel):
    user: str
    favorite_categories: list[str] = Field(default_factory=list)
    favorite_items: list[str] = Field(default_factory=list)
    last_viewed_items: list[str] = Field(default_factory=list)
    disliked_ingredients: list[str] = Field(default_factory=list)
    dietary_restrictions: list[str] = Field(default_factory=list)
    preferred_nutrition: PreferredNutrition = Field(default_factory=PreferredNutrition)
    updated_at: datetime = Field(default_factory=utcnow)
    source: Literal["online", "batch"] = "online"


class MenuItemTag(BaseModel):
    menu_item: str
    occasion_tags: list[str] = Field(default_factory=list)
    recommended_with: list[str] = Field(default_factory=list)
    co_counts: dict[str, int] = Field(default_factory=dict)

from __future__ import annotations

from ..data.models import MenuItem

OCCASIONS = ("birthday", "celebration", "party", "diet", "healthy")


def occasion_tags_for(item: MenuItem) -> list[str]:
    """Derive occasion tags from an item's category and nutrition."""
    tags: set[str] = set()
    if item.category == "dessert":
        tags.update(("birthday", "celebration"))
    if item.category in ("main", "side"):
        tags.add("party")
    if item.nutrition.calories < 400:
        tags.add("diet")
    if item.nutrition.protein > 15 and item.nutrition.fat < 10:
        tags.add("healthy")
    return sorted(tags)

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta

from ..config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig
from ..data.models import utcnow
from ..data.stores import (
    Catalog,
    OrderStore,
    PreferenceStore,
    TagStore,
    get_catalog,
    get_order_store,
    get_preference_store,
    get_tag_store,
)
from ..errors import ValidationError
from .cooccurrence import build_co_occurrence, rank_co_occurrence
from .models import OccasionItem
from .occasions import OCCASIONS, occasion_tags_for


class RecommendationService:
    def __init__(
        self,
        orders: OrderStore | None = None,
        catalog: Catalog | None = None,
        preferences: PreferenceStore | None = None,
        tags: TagStore | None = None,
        config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.orders = orders or get_order_store()
        self.catalog = catalog or get_catalog()
        self.preferences = preferences or get_preference_store()
        self.tags = tags or get_tag_store()
        self.config = config
        self.clock = clock

    # ── Personalized ────────────────────────────────────────────────────

    def get_personalized(self, user_id: str, limit: int | None = None) -> list[str]:
        """Items most often ordered together with the user's favorites.

        Falls back to the globally most ordered items when the user has no
        preference record or nothing co-occurs with their favorites.
        """
        limit = limit or self.config.personalized_limit
        record = self.preferences.get(user_id)
        if record is None or not record.favorite_items:
            return self.popular_items(limit)

        favorites = set(record.favorite_items)
        weights: Counter[str] = Counter()
        for favorite in record.favorite_items:
            tag = self.tags.get(favorite)
            if tag is None:
                continue
            for co_item in tag.recommended_with:
                if co_item in favorites or self.catalog.get(co_item) is None:
                    continue
                weights[co_item] += tag.co_counts.get(co_item, 1)

        if not weights:
            return self.popular_items(limit)

        favorite_categories = set(record.favorite_categories)

        def rank(item_id: str) -> tuple[int, bool, str]:
            item = self.catalog.get(item_id)
            outside = item is None or item.category not in favorite_categories
            return (-weights[item_id], outside, item_id)

        return sorted(weights, key=rank)[:limit]

    def popular_items(self, limit: int) -> list[str]:
        """Most ordered catalog items, padded with the rest of the catalog."""
        counts: Counter[str] = Counter()
        for order in self.orders.find(exclude_statuses=("cancelled",)):
            for line in order.items:
                counts[line.menu_item] += 1

        ranked = [
            item_id
            for item_id, _ in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
            if self.catalog.get(item_id) is not None
        ]
        if len(ranked) < limit:
            seen = set(ranked)
            ranked += [item.id for item in self.catalog.all() if item.id not in seen]
        return ranked[:limit]

    # ── Special occasion ────────────────────────────────────────────────

    def get_special_occasion(self, occasion: str, limit: int | None = None) -> list[OccasionItem]:
        occasion = (occasion or "").strip().lower()
        if occasion not in OCCASIONS:
            raise ValidationError(
                f"Unknown occasion {occasion!r}; expected one of {', '.join(OCCASIONS)}"
            )
        limit = limit or self.config.occasion_limit

        stored = {t.menu_item: t.occasion_tags for t in self.tags.all() if t.occasion_tags}
        matching = {t.menu_item for t in self.tags.with_occasion(occasion)}
        items = self.catalog.all()
        tagged = [i for i in items if i.id in matching]
        if len(tagged) < limit:
            # Items the batch job has not tagged yet
            tagged += [
                i for i in items
                if i.id not in stored and occasion in occasion_tags_for(i)
            ]

        return [
            OccasionItem(
                id=item.id,
                name=item.name,
                price=item.price,
                category=item.category,
                occasion_tags=stored.get(item.id) or occasion_tags_for(item),
            )
            for item in tagged[:limit]
        ]

    # ── Smart combos ────────────────────────────────────────────────────

    def _combo_ranking(self, depth: int) -> dict[str, list[tuple[str, int]]]:
        since = self.clock() - timedelta(days=self.config.combo_recency_days)
        recent = self.orders.find(start=since, exclude_statuses=("cancelled",))
        if len(recent) >= self.config.combo_min_orders:
            return rank_co_occurrence(build_co_occurrence(recent), top_n=depth)

        return {
            tag.menu_item: [(co, tag.co_counts.get(co, 0)) for co in tag.recommended_with]
            for tag in self.tags.all()
            if tag.recommended_with
        }

    def _saved_partners(self, item_id: str) -> list[str]:
        tag = self.tags.get(item_id)
        return list(tag.recommended_with) if tag else []

    def _category_combo(self, size: int) -> list[str]:
        """Highest-protein main, then a side, a beverage and a dessert."""
        items = self.catalog.all()
        mains = sorted(
            (i for i in items if i.category == "main"),
            key=lambda i: (-i.nutrition.protein, i.id),
        )
        picks = [mains[0].id] if mains else []
        for category in ("side", "beverage", "dessert"):
            match = next((i for i in items if i.category == category), None)
            if match is not None:
                picks.append(match.id)
        return picks[:size]

    def get_smart_combos(
        self,
        base_item_id: str | None = None,
        size: int | None = None,
        limit: int | None = None,
    ) -> list[list[str]]:
        """Groups of items frequently ordered together.

        Recent orders are used when there are enough of them; otherwise the
        persisted co-occurrence projection. A base item short of partners in
        that ranking is topped up from its own saved ``recommended_with``.
        With no co-occurrence data at all, a single category combo is built
        from the catalog. Every group has at least two distinct items.
        """
        size = size or self.config.combo_size
        limit = limit or self.config.combo_limit
        if size < 2:
            raise ValidationError("A combo needs at least 2 items")
        if base_item_id is not None and self.catalog.get(base_item_id) is None:
            raise ValidationError(f"Unknown base item {base_item_id!r}")

        ranking = self._combo_ranking(depth=size - 1)

        def group_for(anchor: str) -> list[str]:
            members = [anchor] + [co for co, _ in ranking.get(anchor, ()) if co != anchor]
            return list(dict.fromkeys(members))[:size]

        if base_item_id is not None:
            group = group_for(base_item_id)
            if len(group) < size:
                saved = [
                    co for co in self._saved_partners(base_item_id)
                    if self.catalog.get(co) is not None
                ]
                group = list(dict.fromkeys(group + saved))[:size]
            return [group] if len(group) >= 2 else []

        anchors = sorted(ranking, key=lambda a: (-sum(c for _, c in ranking[a]), a))
        combos: list[list[str]] = []
        seen: set[frozenset[str]] = set()
        for anchor in anchors:
            group = group_for(anchor)
            key = frozenset(group)
            if len(group) < 2 or key in seen:
                continue
            seen.add(key)
            combos.append(group)
            if len(combos) >= limit:
                break

        if not ranking:
            group = self._category_combo(size)
            if len(group) >= 2:
                combos.append(group)
        return combos

    def combo_price(self, combo: list[str]) -> float:
        total = 0.0
        for item_id in combo:
            item = self.catalog.get(item_id)
            if item is not None:
                total += item.price
        return round(total, 2)

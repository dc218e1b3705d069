"""
Offline rebuild of recommendation data from the full order history.

The job runs three steps in order, each committing through keyed upserts:

1. **Preference seed** - favorite items and categories per user, ranked by
   total ordered quantity.
2. **Occasion tags** - deterministic occasion labels for every catalog item.
3. **Co-occurrence** - for every item, the items most often found in the same
   order, persisted as ``recommended_with``.

A failing step stops the run; earlier steps keep what they wrote, and a
rerun from scratch converges to the same result.

Usage:
    python -m dishcore.recommendations.cooccurrence [snapshot.json] [output.json]
"""
from __future__ import annotations

import logging
import sys
import threading
from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ..config import DEFAULT_APP_CONFIG, DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig
from ..data.models import MenuItemTag, Order, UserPreference, utcnow
from ..data.stores import (
    Catalog,
    OrderStore,
    PreferenceStore,
    TagStore,
    dump_snapshot,
    get_catalog,
    get_order_store,
    get_preference_store,
    get_tag_store,
    load_snapshot,
)
from ..errors import BatchAlreadyRunningError, BatchStepError
from ..logging_setup import setup_logging
from .occasions import occasion_tags_for

logger = logging.getLogger(__name__)

SEED_FAVORITE_ITEMS = 5
SEED_FAVORITE_CATEGORIES = 3


class BatchState(str, Enum):
    idle = "idle"
    running_preference_seed = "running_preference_seed"
    running_occasion_tags = "running_occasion_tags"
    running_co_occurrence = "running_co_occurrence"
    failed = "failed"


@dataclass
class BatchReport:
    started_at: datetime
    finished_at: datetime | None = None
    users_seeded: int = 0
    users_skipped: int = 0
    items_tagged: int = 0
    items_ranked: int = 0


# ---------------------------------------------------------------------------
# Pure co-occurrence functions
# ---------------------------------------------------------------------------


def build_co_occurrence(orders: Iterable[Order]) -> dict[str, Counter[str]]:
    """Count, for every item, how many orders it shares with each other item.

    Presence-based: quantities are ignored and an order with k distinct items
    contributes k*(k-1) directed increments.
    """
    matrix: dict[str, Counter[str]] = defaultdict(Counter)
    for order in orders:
        ids = order.item_ids()
        for i in ids:
            for j in ids:
                if i != j:
                    matrix[i][j] += 1
    return dict(matrix)


def rank_co_occurrence(
    matrix: dict[str, Counter[str]],
    top_n: int = 5,
) -> dict[str, list[tuple[str, int]]]:
    """Top co-items per item by count descending, ties by ascending id."""
    return {
        item: sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:top_n]
        for item, counts in matrix.items()
        if counts
    }


def seed_favorites(orders: Iterable[Order]) -> list[str]:
    """Item ids ranked by total ordered quantity, ties by ascending id."""
    quantities: Counter[str] = Counter()
    for order in orders:
        for line in order.items:
            quantities[line.menu_item] += line.quantity
    ranked = sorted(quantities.items(), key=lambda kv: (-kv[1], kv[0]))
    return [item for item, _ in ranked[:SEED_FAVORITE_ITEMS]]


# ---------------------------------------------------------------------------
# Batch job
# ---------------------------------------------------------------------------

_run_lock = threading.Lock()


class CoOccurrenceBuilder:
    def __init__(
        self,
        orders: OrderStore | None = None,
        catalog: Catalog | None = None,
        preferences: PreferenceStore | None = None,
        tags: TagStore | None = None,
        config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
    ) -> None:
        self.orders = orders or get_order_store()
        self.catalog = catalog or get_catalog()
        self.preferences = preferences or get_preference_store()
        self.tags = tags or get_tag_store()
        self.config = config
        self.state = BatchState.idle

    def run(self) -> BatchReport:
        """Run all steps once. Only one run may be active per process."""
        if not _run_lock.acquire(blocking=False):
            raise BatchAlreadyRunningError("A recommendation rebuild is already running")
        try:
            report = BatchReport(started_at=utcnow())
            steps = (
                (BatchState.running_preference_seed, self.seed_preferences),
                (BatchState.running_occasion_tags, self.tag_occasions),
                (BatchState.running_co_occurrence, self.rank_co_items),
            )
            for state, step in steps:
                self.state = state
                try:
                    step(report)
                except Exception as exc:
                    self.state = BatchState.failed
                    logger.exception("Recommendation rebuild failed during %s", state.value)
                    raise BatchStepError(state.value) from exc
            self.state = BatchState.idle
            report.finished_at = utcnow()
            logger.info(
                "Recommendation rebuild complete: %d users seeded, %d skipped, "
                "%d items tagged, %d items ranked",
                report.users_seeded,
                report.users_skipped,
                report.items_tagged,
                report.items_ranked,
            )
            return report
        finally:
            _run_lock.release()

    def _may_seed(self, existing: UserPreference | None) -> bool:
        if existing is None or self.config.seed_policy == "overwrite":
            return True
        # No favorites yet: cold start, even if views were tracked online
        return existing.source == "batch" or not existing.favorite_items

    def seed_preferences(self, report: BatchReport) -> None:
        by_user: dict[str, list[Order]] = defaultdict(list)
        for order in self.orders.all():
            by_user[order.user].append(order)

        for user_id, user_orders in by_user.items():
            existing = self.preferences.get(user_id)
            if not self._may_seed(existing):
                report.users_skipped += 1
                continue

            favorites = seed_favorites(user_orders)
            categories: list[str] = []
            for item_id in favorites:
                item = self.catalog.get(item_id)
                if item is not None and item.category not in categories:
                    categories.append(item.category)

            record = existing or UserPreference(user=user_id)
            record.favorite_items = favorites
            record.favorite_categories = categories[:SEED_FAVORITE_CATEGORIES]
            record.updated_at = utcnow()
            record.source = "batch"
            self.preferences.upsert(record)
            report.users_seeded += 1

        logger.info("Seeded preferences for %d users", report.users_seeded)

    def tag_occasions(self, report: BatchReport) -> None:
        for item in self.catalog.all():
            tag = self.tags.get(item.id) or MenuItemTag(menu_item=item.id)
            tag.occasion_tags = occasion_tags_for(item)
            self.tags.upsert(tag)
            report.items_tagged += 1

        logger.info("Tagged %d menu items with occasion tags", report.items_tagged)

    def rank_co_items(self, report: BatchReport) -> None:
        ranking = rank_co_occurrence(
            build_co_occurrence(self.orders.all()),
            top_n=self.config.top_co_items,
        )

        for item_id, ranked in ranking.items():
            tag = self.tags.get(item_id) or MenuItemTag(menu_item=item_id)
            tag.recommended_with = [co for co, _ in ranked]
            tag.co_counts = dict(ranked)
            self.tags.upsert(tag)
            report.items_ranked += 1

        # Items that lost every co-occurrence since the previous run
        for tag in self.tags.all():
            if tag.menu_item not in ranking and tag.recommended_with:
                tag.recommended_with = []
                tag.co_counts = {}
                self.tags.upsert(tag)

        logger.info("Updated co-occurrence data for %d menu items", report.items_ranked)


def main(argv: list[str] | None = None) -> int:
    setup_logging(DEFAULT_APP_CONFIG.log_level)
    args = sys.argv[1:] if argv is None else argv
    source = args[0] if args else DEFAULT_APP_CONFIG.data_file
    if not source:
        logger.error("No snapshot given; pass a path or set DISHCORE_DATA_FILE")
        return 2

    counts = load_snapshot(source)
    logger.info("Loaded snapshot %s: %s", source, counts)
    try:
        CoOccurrenceBuilder().run()
    except BatchStepError as exc:
        logger.error("Rebuild stopped at step %s; rerun once the cause is fixed", exc.step)
        return 1
    if len(args) > 1:
        dump_snapshot(args[1])
        logger.info("Wrote preferences and tags to %s", args[1])
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager

from ..data.models import UserPreference, utcnow
from ..data.stores import Catalog, PreferenceStore, get_catalog, get_preference_store
from ..errors import PreferenceUpdateError

logger = logging.getLogger(__name__)

MAX_FAVORITE_CATEGORIES = 3
MAX_FAVORITE_ITEMS = 10
MAX_LAST_VIEWED = 10


class KeyedLock:
    """One lock per key, kept only while some caller holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, tuple[threading.Lock, int]] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key) or (threading.Lock(), 0)
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[key]
                if users == 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)


def apply_view(record: UserPreference, item_id: str, category: str) -> UserPreference:
    """Move *item_id* to the front of the recently viewed list and note its category."""
    viewed = [item_id] + [i for i in record.last_viewed_items if i != item_id]
    record.last_viewed_items = viewed[:MAX_LAST_VIEWED]
    if category not in record.favorite_categories:
        record.favorite_categories.append(category)
        record.favorite_categories = record.favorite_categories[-MAX_FAVORITE_CATEGORIES:]
    return record


def apply_order(record: UserPreference, item_ids: Sequence[str]) -> UserPreference:
    """Append newly ordered items to the favorites, keeping the most recent ten."""
    for item_id in item_ids:
        if item_id not in record.favorite_items:
            record.favorite_items.append(item_id)
    record.favorite_items = record.favorite_items[-MAX_FAVORITE_ITEMS:]
    return record


class PreferenceTracker:
    """Best-effort online updater of user preference records.

    Every public method swallows and logs its own failures: tracking is
    auxiliary and must never break the request that triggered it. Updates
    for the same user are serialized; different users never wait on each
    other.
    """

    def __init__(
        self,
        preferences: PreferenceStore | None = None,
        catalog: Catalog | None = None,
    ) -> None:
        self.preferences = preferences or get_preference_store()
        self.catalog = catalog or get_catalog()
        self._locks = KeyedLock()

    def _update(self, user_id: str, mutate: Callable[[UserPreference], UserPreference]) -> None:
        with self._locks.hold(user_id):
            record = self.preferences.get(user_id) or UserPreference(user=user_id)
            record = mutate(record)
            record.updated_at = utcnow()
            record.source = "online"
            try:
                self.preferences.upsert(record)
            except Exception as exc:
                raise PreferenceUpdateError(f"Could not save preferences for user {user_id}") from exc

    def on_item_viewed(self, user_id: str, item_id: str) -> bool:
        """Record a view. Returns True when the preference record was updated."""
        try:
            item = self.catalog.get(item_id)
            if item is None:
                logger.debug("Ignoring view of unknown item %s", item_id)
                return False
            self._update(user_id, lambda r: apply_view(r, item_id, item.category))
            return True
        except Exception:
            logger.warning("Error tracking item view for user %s", user_id, exc_info=True)
            return False

    def on_order_placed(self, user_id: str, item_ids: Sequence[str]) -> bool:
        """Record the items of a successfully created order."""
        if not item_ids:
            return False
        try:
            self._update(user_id, lambda r: apply_order(r, list(item_ids)))
            return True
        except Exception:
            logger.warning("Error tracking order preferences for user %s", user_id, exc_info=True)
            return False


_tracker: PreferenceTracker | None = None


def get_tracker() -> PreferenceTracker:
    """Return the process-wide tracker bound to the default stores."""
    global _tracker
    if _tracker is None:
        _tracker = PreferenceTracker()
    return _tracker

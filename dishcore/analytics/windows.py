from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

import pandas as pd

from ..config import DEFAULT_ANALYTICS_CONFIG, AnalyticsConfig
from ..data.models import ensure_utc, utcnow
from ..errors import ValidationError

TIME_RANGES = ("day", "week", "month", "quarter", "year", "custom")
_DAILY_RANGES = ("day", "week", "month")


@dataclass(frozen=True)
class Window:
    """Half-open reporting period ``[start, end)``."""

    start: datetime
    end: datetime
    range_name: str = "custom"

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def previous(self) -> "Window":
        return Window(self.start - self.duration, self.start, self.range_name)


def parse_instant(value: str | datetime | None, field: str) -> datetime | None:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        parsed = pd.to_datetime(value, utc=True)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid {field}: {value!r}") from exc
    if pd.isna(parsed):
        raise ValidationError(f"Invalid {field}: {value!r}")
    return parsed.to_pydatetime()


def _period_start(range_name: str, now: datetime) -> datetime:
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if range_name == "day":
        return midnight
    if range_name == "week":
        return midnight - timedelta(days=midnight.weekday())
    if range_name == "month":
        return midnight.replace(day=1)
    if range_name == "quarter":
        return midnight.replace(month=(now.month - 1) // 3 * 3 + 1, day=1)
    return midnight.replace(month=1, day=1)


def resolve_window(
    range_name: str | None = None,
    start: str | datetime | None = None,
    end: str | datetime | None = None,
    now: datetime | None = None,
    config: AnalyticsConfig = DEFAULT_ANALYTICS_CONFIG,
) -> Window:
    """Turn a named range or explicit bounds into a concrete window.

    Named ranges run from the start of the current calendar period (UTC,
    weeks start on Monday) up to *now*. When both explicit bounds are given
    they win over the named range; an end in the future is clamped to *now*.
    """
    now = ensure_utc(now) if now is not None else utcnow()
    name = (range_name or config.default_time_range).strip().lower()
    if name not in TIME_RANGES:
        raise ValidationError(
            f"Unknown time range {range_name!r}; expected one of {', '.join(TIME_RANGES)}"
        )

    explicit_start = parse_instant(start, "start_date")
    explicit_end = parse_instant(end, "end_date")
    if (explicit_start is None) != (explicit_end is None):
        raise ValidationError("start_date and end_date must be given together")

    if explicit_start is not None and explicit_end is not None:
        explicit_end = min(explicit_end, now)
        if explicit_start >= explicit_end:
            raise ValidationError("start_date must be before end_date")
        return Window(explicit_start, explicit_end, "custom")

    if name == "custom":
        raise ValidationError("A custom time range needs start_date and end_date")

    return Window(_period_start(name, now), now, name)


def resolve_previous_window(window: Window) -> Window:
    """Window of identical duration ending where *window* starts."""
    return window.previous()


def bucket_size(window: Window, config: AnalyticsConfig = DEFAULT_ANALYTICS_CONFIG) -> timedelta:
    if window.range_name in _DAILY_RANGES:
        return timedelta(days=1)
    if window.range_name == "custom" and window.duration <= timedelta(days=config.custom_daily_max_days):
        return timedelta(days=1)
    return timedelta(weeks=1)

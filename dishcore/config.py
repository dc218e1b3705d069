from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


@dataclass(frozen=True)
class AppConfig:
    log_level: str = os.getenv("DISHCORE_LOG_LEVEL", "INFO")
    data_file: str = os.getenv("DISHCORE_DATA_FILE", "")


@dataclass(frozen=True)
class RecommendationConfig:
    personalized_limit: int = 5
    occasion_limit: int = 10
    combo_size: int = 3
    combo_limit: int = 5
    combo_recency_days: int = 7
    combo_min_orders: int = 5
    top_co_items: int = 5
    # "preserve_online" or "overwrite"
    seed_policy: str = os.getenv("DISHCORE_SEED_POLICY", "preserve_online")


@dataclass(frozen=True)
class AnalyticsConfig:
    completed_statuses: tuple[str, ...] = ("delivered", "ready")
    default_time_range: str = "month"
    custom_daily_max_days: int = 31


DEFAULT_APP_CONFIG = AppConfig()
DEFAULT_RECOMMENDATION_CONFIG = RecommendationConfig()
DEFAULT_ANALYTICS_CONFIG = AnalyticsConfig()

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from .analytics.aggregator import AnalyticsAggregator, AnalyticsFilters
from .analytics.models import (
    CustomerStats,
    OrderStats,
    PopularDish,
    RegionalOrders,
    TrendPoint,
)
from .analytics.windows import Window, resolve_window
from .config import DEFAULT_APP_CONFIG
from .data.models import MenuItem
from .data.stores import get_catalog, load_snapshot
from .errors import (
    BatchAlreadyRunningError,
    BatchStepError,
    UpstreamQueryError,
    ValidationError,
)
from .logging_setup import setup_logging
from .recommendations.cooccurrence import CoOccurrenceBuilder
from .recommendations.models import (
    Combo,
    ComboResponse,
    EventAccepted,
    ItemViewedEvent,
    OccasionResponse,
    OrderPlacedEvent,
    PersonalizedResponse,
    RebuildResponse,
)
from .recommendations.preferences import get_tracker
from .recommendations.service import RecommendationService

setup_logging(DEFAULT_APP_CONFIG.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if DEFAULT_APP_CONFIG.data_file:
        counts = load_snapshot(DEFAULT_APP_CONFIG.data_file)
        logger.info("Loaded snapshot %s: %s", DEFAULT_APP_CONFIG.data_file, counts)
    yield


app = FastAPI(title="Dish Recommendation & Analytics API", version="1.0.0", lifespan=lifespan)

recommender = RecommendationService()
aggregator = AnalyticsAggregator()


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(UpstreamQueryError)
async def _upstream_error(request: Request, exc: UpstreamQueryError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/menu/{item_id}", response_model=MenuItem)
def menu_item(
    item_id: str,
    background_tasks: BackgroundTasks,
    user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> MenuItem:
    item = get_catalog().get(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Menu item not found")
    if user_id:
        background_tasks.add_task(get_tracker().on_item_viewed, user_id, item_id)
    return item


# ── Tracking events ──────────────────────────────────────────────────────
# The tracker runs after the response is sent and never fails the request.


@app.post("/events/item-viewed", response_model=EventAccepted, status_code=202)
def item_viewed(body: ItemViewedEvent, background_tasks: BackgroundTasks) -> EventAccepted:
    background_tasks.add_task(get_tracker().on_item_viewed, body.user_id, body.item_id)
    return EventAccepted()


@app.post("/events/order-placed", response_model=EventAccepted, status_code=202)
def order_placed(body: OrderPlacedEvent, background_tasks: BackgroundTasks) -> EventAccepted:
    background_tasks.add_task(get_tracker().on_order_placed, body.user_id, body.item_ids)
    return EventAccepted()


# ── Recommendations ──────────────────────────────────────────────────────


@app.get("/recommendations/personalized", response_model=PersonalizedResponse)
def personalized(
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
    limit: int | None = None,
) -> PersonalizedResponse:
    if limit is not None and not 1 <= limit <= 50:
        raise ValidationError("limit must be between 1 and 50")
    return PersonalizedResponse(recommendations=recommender.get_personalized(user_id, limit))


@app.get("/recommendations/special-occasion", response_model=OccasionResponse)
def special_occasion(occasion: str, limit: int | None = None) -> OccasionResponse:
    if limit is not None and not 1 <= limit <= 50:
        raise ValidationError("limit must be between 1 and 50")
    items = recommender.get_special_occasion(occasion, limit)
    return OccasionResponse(occasion=occasion.strip().lower(), items=items)


@app.get("/recommendations/combos", response_model=ComboResponse)
def combos(base_item: str | None = None, size: int | None = None) -> ComboResponse:
    groups = recommender.get_smart_combos(base_item_id=base_item, size=size)
    return ComboResponse(
        combos=[Combo(items=g, total_price=recommender.combo_price(g)) for g in groups]
    )


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.post("/admin/recommendations/rebuild", response_model=RebuildResponse)
def rebuild_recommendations() -> RebuildResponse:
    try:
        report = CoOccurrenceBuilder().run()
    except BatchAlreadyRunningError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except BatchStepError as exc:
        raise HTTPException(status_code=500, detail=f"Rebuild failed at step {exc.step}") from exc
    return RebuildResponse(
        status="completed",
        users_seeded=report.users_seeded,
        users_skipped=report.users_skipped,
        items_tagged=report.items_tagged,
        items_ranked=report.items_ranked,
    )


def analytics_params(
    time_range: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    region: str | None = None,
    category: str | None = None,
) -> tuple[Window, AnalyticsFilters]:
    window = resolve_window(time_range, start_date, end_date)
    return window, AnalyticsFilters(region=region, category=category)


@app.get("/analytics/orders/stats", response_model=OrderStats)
def order_stats(params: tuple[Window, AnalyticsFilters] = Depends(analytics_params)) -> OrderStats:
    return aggregator.get_order_stats(*params)


@app.get("/analytics/customers/stats", response_model=CustomerStats)
def customer_stats(params: tuple[Window, AnalyticsFilters] = Depends(analytics_params)) -> CustomerStats:
    return aggregator.get_customer_stats(*params)


@app.get("/analytics/dishes/popular", response_model=list[PopularDish])
def popular_dishes(params: tuple[Window, AnalyticsFilters] = Depends(analytics_params)) -> list[PopularDish]:
    return aggregator.get_popular_dishes(*params)


@app.get("/analytics/orders/trends", response_model=list[TrendPoint])
def order_trends(params: tuple[Window, AnalyticsFilters] = Depends(analytics_params)) -> list[TrendPoint]:
    return aggregator.get_order_trends(*params)


@app.get("/analytics/orders/regional", response_model=list[RegionalOrders])
def regional_orders(params: tuple[Window, AnalyticsFilters] = Depends(analytics_params)) -> list[RegionalOrders]:
    return aggregator.get_regional_orders(*params)

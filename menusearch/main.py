"""FastAPI application wiring the search service."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Literal, Optional

from fastapi import BackgroundTasks, Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import Settings, settings
from .container import ServiceContainer
from .errors import InvalidRequest, SearchServiceError
from .models import (
    CacheClearRequest,
    EntityKind,
    Pagination,
    Product,
    ProductFilters,
    ReindexReport,
    SearchFilters,
    SearchResponse,
    SuggestionResponse,
    Venue,
    VenueFilters,
)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

PRODUCT_PARAMS = {"q", "restaurantId", "category", "available", "minPrice", "maxPrice", "page", "size"}
VENUE_PARAMS = {"q", "cuisine", "priceRange", "minRating", "page", "size"}

logger = logging.getLogger(__name__)


def configure_logging(level_name: str) -> None:
    level = logging.getLevelName(level_name.upper())
    # force=True replaces uvicorn's default handlers so every module logs the same way.
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "elastic_transport"):
        logging.getLogger(name).setLevel(level)
    logger.info("Logging configured at %s", level_name.upper())


def get_container(request: Request) -> ServiceContainer:
    container = request.app.state.container
    if container is None:
        raise SearchServiceError("Service is not initialised")
    return container


def _reject_unknown_params(request: Request, allowed: set[str]) -> None:
    unknown = sorted(set(request.query_params) - allowed)
    if unknown:
        raise InvalidRequest(f"Unknown query parameters: {', '.join(unknown)}")


def _pagination(page: int, size: Optional[int], defaults: Settings) -> Pagination:
    try:
        size = defaults.default_page_size if size is None else size
        return Pagination(page=page, size=size).clamped(defaults.max_page_size)
    except ValidationError as exc:
        raise InvalidRequest(exc.errors()[0]["msg"]) from exc


async def _run_search(
    container: ServiceContainer,
    kind: EntityKind,
    q: str,
    filters: SearchFilters,
    pagination: Pagination,
) -> SearchResponse:
    result = await asyncio.to_thread(container.search.search, kind, q, filters, pagination)
    return SearchResponse.from_result(result, filters, query=q)


def create_app(container: Optional[ServiceContainer] = None, app_settings: Settings = settings) -> FastAPI:
    configure_logging(app_settings.log_level)
    app = FastAPI(title="Menu Search Service")
    app.state.container = container

    @app.on_event("startup")
    async def startup_event() -> None:
        if app.state.container is None:
            app.state.container = ServiceContainer.build(app_settings)
        await asyncio.to_thread(app.state.container.startup)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        if app.state.container is not None:
            await asyncio.to_thread(app.state.container.close)

    @app.exception_handler(SearchServiceError)
    async def service_error_handler(request: Request, exc: SearchServiceError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        if errors:
            first = errors[0]
            message = f"{first['msg']} (field: {' -> '.join(str(loc) for loc in first['loc'])})"
        else:
            message = "Request validation failed"
        return JSONResponse(status_code=400, content={"detail": message})

    @app.get("/health")
    async def health(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
        status = await asyncio.to_thread(container.engine.health)
        indices: Dict[str, Any] = {}
        if status is not None:
            for index in container.schema.index_names().values():
                try:
                    exists = await asyncio.to_thread(container.engine.index_exists, index)
                    docs = await asyncio.to_thread(container.engine.count, index) if exists else 0
                except SearchServiceError:
                    exists, docs = False, None
                indices[index] = {"exists": exists, "docs": docs}
        return {
            "status": "ok" if status is not None else "degraded",
            "elasticsearch": status,
            "indices": indices,
            "cache": type(container.cache.backend).__name__,
            "reindexing": container.indexing.reindex_running,
        }

    @app.get("/search/products", response_model=SearchResponse)
    async def search_products(
        request: Request,
        q: str = "",
        restaurantId: Optional[str] = None,
        category: Optional[str] = None,
        available: Optional[bool] = None,
        minPrice: Optional[float] = None,
        maxPrice: Optional[float] = None,
        page: int = 1,
        size: Optional[int] = None,
        container: ServiceContainer = Depends(get_container),
    ) -> SearchResponse:
        _reject_unknown_params(request, PRODUCT_PARAMS)
        try:
            filters = ProductFilters(
                venueId=restaurantId,
                category=category,
                available=available,
                minPrice=minPrice,
                maxPrice=maxPrice,
            )
        except ValidationError as exc:
            raise InvalidRequest(exc.errors()[0]["msg"]) from exc
        pagination = _pagination(page, size, container.settings)
        return await _run_search(container, EntityKind.PRODUCT, q, filters, pagination)

    @app.get("/search/restaurants", response_model=SearchResponse)
    async def search_restaurants(
        request: Request,
        q: str = "",
        cuisine: Optional[str] = None,
        priceRange: Optional[int] = None,
        minRating: Optional[float] = None,
        page: int = 1,
        size: Optional[int] = None,
        container: ServiceContainer = Depends(get_container),
    ) -> SearchResponse:
        _reject_unknown_params(request, VENUE_PARAMS)
        try:
            filters = VenueFilters(cuisine=cuisine, priceRange=priceRange, minRating=minRating)
        except ValidationError as exc:
            raise InvalidRequest(exc.errors()[0]["msg"]) from exc
        pagination = _pagination(page, size, container.settings)
        return await _run_search(container, EntityKind.VENUE, q, filters, pagination)

    @app.get("/suggestions", response_model=SuggestionResponse)
    async def suggestions(
        q: str = Query(..., description="Prefix to complete"),
        kind_name: Literal["products", "restaurants"] = Query("products", alias="type"),
        limit: Optional[int] = None,
        container: ServiceContainer = Depends(get_container),
    ) -> SuggestionResponse:
        kind = EntityKind(kind_name)
        items = await asyncio.to_thread(container.suggestions.suggest, kind, q, limit)
        return SuggestionResponse(query=q, type=kind, suggestions=items)

    @app.post("/index/product", status_code=201)
    async def index_product(
        product: Product,
        background_tasks: BackgroundTasks,
        background: bool = False,
        container: ServiceContainer = Depends(get_container),
    ) -> JSONResponse:
        if background:
            background_tasks.add_task(container.indexing.notify_upsert, product)
            return JSONResponse(status_code=202, content={"id": product.id, "status": "accepted"})
        await asyncio.to_thread(container.indexing.index_product, product)
        return JSONResponse(status_code=201, content={"id": product.id, "status": "indexed"})

    @app.post("/index/restaurant", status_code=201)
    async def index_restaurant(
        venue: Venue,
        background_tasks: BackgroundTasks,
        background: bool = False,
        container: ServiceContainer = Depends(get_container),
    ) -> JSONResponse:
        if background:
            background_tasks.add_task(container.indexing.notify_upsert, venue)
            return JSONResponse(status_code=202, content={"id": venue.id, "status": "accepted"})
        await asyncio.to_thread(container.indexing.index_venue, venue)
        return JSONResponse(status_code=201, content={"id": venue.id, "status": "indexed"})

    @app.delete("/index/product/{product_id}")
    async def delete_product(product_id: str, container: ServiceContainer = Depends(get_container)) -> dict:
        removed = await asyncio.to_thread(container.indexing.delete_product, product_id)
        return {"id": product_id, "deleted": removed}

    @app.delete("/index/restaurant/{venue_id}")
    async def delete_restaurant(venue_id: str, container: ServiceContainer = Depends(get_container)) -> dict:
        removed = await asyncio.to_thread(container.indexing.delete_venue, venue_id)
        return {"id": venue_id, "deleted": removed}

    @app.post("/reindex", response_model=ReindexReport)
    async def reindex(container: ServiceContainer = Depends(get_container)) -> ReindexReport:
        return await asyncio.to_thread(container.indexing.reindex_all)

    @app.post("/cache/clear")
    async def clear_cache(
        payload: Optional[CacheClearRequest] = Body(default=None),
        container: ServiceContainer = Depends(get_container),
    ) -> dict:
        pattern = payload.pattern if payload and payload.pattern else "*"
        cleared = await asyncio.to_thread(container.cache.invalidate, pattern)
        return {"cleared": cleared, "pattern": pattern}

    return app


app = create_app()

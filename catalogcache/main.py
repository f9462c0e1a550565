from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from starlette.requests import Request

from catalogcache.cache import QueryCache
from catalogcache.config import Settings, get_settings
from catalogcache.models import (
    CacheStats,
    DailyStatsResponse,
    HealthResponse,
    InvalidateRequest,
    InvalidateResponse,
    Product,
    ProductListResponse,
    ProductQuery,
    ProductSortBy,
    ProductUpdate,
    SortOrder,
    SupplierListResponse,
)
from catalogcache.service import CatalogService
from catalogcache.upstream import CatalogClient, UpstreamAPIError
from catalogcache.utils import parse_bearer_token


def configure_logging(level: str) -> None:
    logger = logging.getLogger("catalogcache")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if logger.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(handler)


class ServiceContainer:
    def __init__(self, settings: Settings) -> None:
        cache = QueryCache(
            max_entries=settings.cache_max_entries,
            default_ttl_seconds=settings.cache_default_ttl_seconds,
            sweep_interval_seconds=settings.cache_sweep_interval_seconds,
        )
        client = CatalogClient(settings=settings)

        self.settings = settings
        self.cache = cache
        self.client = client
        self.catalog_service = CatalogService(settings=settings, client=client, cache=cache)

    async def start(self) -> None:
        self.cache.start_sweeper()

    async def close(self) -> None:
        self.cache.destroy()
        await self.client.close()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    container = ServiceContainer(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await container.start()
        yield
        await container.close()

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(UpstreamAPIError)
    async def upstream_error_handler(_: Request, exc: UpstreamAPIError) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content={"detail": str(exc), "upstream_status": exc.status_code},
        )

    def get_catalog_service() -> CatalogService:
        return app.state.container.catalog_service

    def get_cache() -> QueryCache:
        return app.state.container.cache

    @app.get("/health", response_model=HealthResponse)
    async def health(cache: QueryCache = Depends(get_cache)) -> HealthResponse:
        return HealthResponse(cache=cache.get_health_status())

    @app.get("/v1/cache/stats", response_model=CacheStats)
    async def cache_stats(cache: QueryCache = Depends(get_cache)) -> CacheStats:
        return cache.get_stats()

    @app.post("/v1/cache/invalidate", response_model=InvalidateResponse)
    async def invalidate(body: InvalidateRequest, cache: QueryCache = Depends(get_cache)) -> InvalidateResponse:
        if body.key:
            return InvalidateResponse(removed=int(cache.invalidate(body.key)))
        return InvalidateResponse(removed=cache.invalidate_pattern(body.pattern or ""))

    @app.delete("/v1/cache", response_model=InvalidateResponse)
    async def clear_cache(cache: QueryCache = Depends(get_cache)) -> InvalidateResponse:
        removed = len(cache)
        cache.clear()
        return InvalidateResponse(removed=removed)

    @app.get("/v1/products", response_model=ProductListResponse)
    async def list_products(
        search: str | None = None,
        supplier_id: int | None = None,
        brand_id: int | None = None,
        include_inactive: bool = False,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=50, ge=1, le=200),
        sort_by: ProductSortBy = ProductSortBy.updated_at,
        sort_order: SortOrder = SortOrder.desc,
        authorization: str | None = Header(default=None, alias="Authorization"),
        service: CatalogService = Depends(get_catalog_service),
    ) -> ProductListResponse:
        query = ProductQuery(
            search=search,
            supplier_id=supplier_id,
            brand_id=brand_id,
            include_inactive=include_inactive,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        return await service.list_products(query, token=parse_bearer_token(authorization))

    @app.get("/v1/products/{product_id}", response_model=Product)
    async def get_product(
        product_id: int,
        authorization: str | None = Header(default=None, alias="Authorization"),
        service: CatalogService = Depends(get_catalog_service),
    ) -> Product:
        product = await service.get_product(product_id, token=parse_bearer_token(authorization))
        if product is None:
            raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
        return product

    @app.patch("/v1/products/{product_id}", response_model=Product)
    async def update_product(
        product_id: int,
        body: ProductUpdate,
        authorization: str | None = Header(default=None, alias="Authorization"),
        service: CatalogService = Depends(get_catalog_service),
    ) -> Product:
        product = await service.update_product(product_id, body, token=parse_bearer_token(authorization))
        if product is None:
            raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
        return product

    @app.get("/v1/suppliers", response_model=SupplierListResponse)
    async def list_suppliers(
        authorization: str | None = Header(default=None, alias="Authorization"),
        service: CatalogService = Depends(get_catalog_service),
    ) -> SupplierListResponse:
        return await service.list_suppliers(token=parse_bearer_token(authorization))

    @app.get("/v1/stats/daily", response_model=DailyStatsResponse)
    async def daily_stats(
        authorization: str | None = Header(default=None, alias="Authorization"),
        service: CatalogService = Depends(get_catalog_service),
    ) -> DailyStatsResponse:
        return await service.daily_stats(token=parse_bearer_token(authorization))

    return app


app = create_app()

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from catalogcache.cache import QueryCache
from catalogcache.config import Settings
from catalogcache.models import (
    DailyStatsResponse,
    Product,
    ProductListResponse,
    ProductQuery,
    ProductUpdate,
    QueryMeta,
    Supplier,
    SupplierListResponse,
)
from catalogcache.upstream import CatalogClient
from catalogcache.utils import auth_fingerprint

logger = logging.getLogger("catalogcache")

T = TypeVar("T")

PRODUCTS_NAMESPACE = "products"
SUPPLIERS_NAMESPACE = "suppliers"
STATS_NAMESPACE = "stats"


class ProductNotFoundError(LookupError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} was not found.")
        self.product_id = product_id


@dataclass
class CachedResult:
    value: Any
    cached: bool
    took_ms: int

    @property
    def meta(self) -> QueryMeta:
        return QueryMeta(cached=self.cached, took_ms=self.took_ms)


class CatalogService:
    def __init__(self, settings: Settings, client: CatalogClient, cache: QueryCache) -> None:
        self.settings = settings
        self.client = client
        self.cache = cache

    async def list_products(self, query: ProductQuery, *, token: str | None) -> ProductListResponse:
        params = query.to_params()
        key = self.cache.generate_key(PRODUCTS_NAMESPACE, "list", {**params, "tenant": auth_fingerprint(token)})

        result = await self._cached(
            key,
            lambda: self.client.list_products(params, token=token),
            self.settings.ttl_short_seconds,
        )
        payload = result.value
        products = [Product.model_validate(item) for item in payload.get("products", [])]
        return ProductListResponse(products=products, total=payload.get("total", len(products)), meta=result.meta)

    async def get_product(self, product_id: int, *, token: str | None) -> Product | None:
        key = self._product_key(product_id, token)

        async def fetch() -> dict[str, Any]:
            payload = await self.client.get_product(product_id, token=token)
            if payload is None:
                raise ProductNotFoundError(product_id)
            return payload

        try:
            result = await self._cached(key, fetch, self.settings.ttl_medium_seconds)
        except ProductNotFoundError:
            logger.info("Product %d not found upstream", product_id)
            return None
        return Product.model_validate(result.value)

    async def update_product(
        self, product_id: int, changes: ProductUpdate, *, token: str | None
    ) -> Product | None:
        payload = await self.client.update_product(
            product_id,
            changes.model_dump(exclude_unset=True),
            token=token,
        )
        removed = self.invalidate_product(product_id)
        logger.info("Product %d updated; invalidated %d cached queries", product_id, removed)
        if payload is None:
            return None
        return Product.model_validate(payload)

    async def list_suppliers(self, *, token: str | None) -> SupplierListResponse:
        key = self.cache.generate_key(SUPPLIERS_NAMESPACE, "list", {"tenant": auth_fingerprint(token)})
        result = await self._cached(
            key,
            lambda: self.client.list_suppliers(token=token),
            self.settings.ttl_long_seconds,
        )
        suppliers = [Supplier.model_validate(item) for item in result.value]
        return SupplierListResponse(suppliers=suppliers, meta=result.meta)

    async def daily_stats(self, *, token: str | None) -> DailyStatsResponse:
        key = self.cache.generate_key(STATS_NAMESPACE, "daily", {"tenant": auth_fingerprint(token)})
        result = await self._cached(
            key,
            lambda: self.client.daily_stats(token=token),
            self.settings.ttl_stats_seconds,
        )
        return DailyStatsResponse(stats=result.value, meta=result.meta)

    def invalidate_product(self, product_id: int) -> int:
        # Detail keys for every tenant plus every listing, which may include the product.
        detail_prefix = f'{PRODUCTS_NAMESPACE}:detail:{{"id":{product_id},'
        removed = self.cache.invalidate_pattern(detail_prefix)
        removed += self.cache.invalidate_pattern(f"{PRODUCTS_NAMESPACE}:list:*")
        return removed

    def _product_key(self, product_id: int, token: str | None) -> str:
        return self.cache.generate_key(
            PRODUCTS_NAMESPACE,
            "detail",
            {"id": product_id, "tenant": auth_fingerprint(token)},
        )

    async def _cached(self, key: str, producer: Callable[[], Awaitable[T]], ttl_seconds: int) -> CachedResult:
        started = time.perf_counter()
        fetched = False

        async def tracked() -> T:
            nonlocal fetched
            fetched = True
            return await producer()

        value = await self.cache.wrap(key, tracked, ttl_seconds)
        took_ms = int((time.perf_counter() - started) * 1000)
        logger.debug("%s %s in %dms", "miss" if fetched else "hit", key, took_ms)
        return CachedResult(value=value, cached=not fetched, took_ms=took_ms)

from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CacheTTL(IntEnum):
    SHORT = 300
    STATS = 900
    MEDIUM = 1800
    LONG = 3600


class CacheStats(BaseModel):
    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    total_lookups: int = 0
    hit_rate: float = 0.0
    size: int = 0
    max_entries: int = 0


class HealthStatus(BaseModel):
    is_healthy: bool
    memory_usage: int
    hit_rate: float
    total_entries: int


class HealthResponse(BaseModel):
    status: str = "ok"
    cache: HealthStatus


class InvalidateRequest(BaseModel):
    key: str | None = None
    pattern: str | None = None

    @model_validator(mode="after")
    def validate_target(self) -> "InvalidateRequest":
        if bool(self.key) == bool(self.pattern):
            raise ValueError("Provide exactly one of `key` or `pattern`.")
        return self


class InvalidateResponse(BaseModel):
    removed: int


class SortOrder(StrEnum):
    desc = "desc"
    asc = "asc"


class ProductSortBy(StrEnum):
    name = "name"
    created_at = "createdAt"
    updated_at = "updatedAt"


class ProductQuery(BaseModel):
    search: str | None = None
    supplier_id: int | None = None
    brand_id: int | None = None
    include_inactive: bool = False

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1, le=200)
    sort_by: ProductSortBy = ProductSortBy.updated_at
    sort_order: SortOrder = SortOrder.desc

    @model_validator(mode="after")
    def normalize_search(self) -> "ProductQuery":
        if self.search is not None:
            self.search = " ".join(self.search.split()) or None
        return self

    def to_params(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Product(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    sku: str | None = None
    supplier_id: int | None = None
    brand_id: int | None = None
    active: bool = True


class ProductUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    sku: str | None = None
    supplier_id: int | None = None
    brand_id: int | None = None
    active: bool | None = None


class Supplier(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    status: str | None = None


class QueryMeta(BaseModel):
    cached: bool = False
    took_ms: int = 0


class ProductListResponse(BaseModel):
    products: list[Product]
    total: int
    meta: QueryMeta


class SupplierListResponse(BaseModel):
    suppliers: list[Supplier]
    meta: QueryMeta


class DailyStatsResponse(BaseModel):
    stats: dict[str, Any]
    meta: QueryMeta

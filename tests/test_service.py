from __future__ import annotations

from typing import Any

import pytest

from catalogcache.cache import QueryCache
from catalogcache.config import Settings
from catalogcache.models import ProductQuery, ProductUpdate
from catalogcache.service import CatalogService
from catalogcache.upstream import UpstreamAPIError


class FakeCatalogClient:
    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.products: dict[int, dict[str, Any]] = {
            1: {"id": 1, "name": "Garrafa térmica", "sku": "GT-1", "supplier_id": 3},
            2: {"id": 2, "name": "Caneca", "sku": "CN-2", "supplier_id": 3},
        }
        self.fail_stats = False

    async def list_products(self, params: dict[str, Any], *, token: str | None) -> dict[str, Any]:
        self.calls.append(("list_products", params))
        items = list(self.products.values())
        return {"products": items, "total": len(items)}

    async def get_product(self, product_id: int, *, token: str | None) -> dict[str, Any] | None:
        self.calls.append(("get_product", product_id))
        return self.products.get(product_id)

    async def update_product(
        self, product_id: int, changes: dict[str, Any], *, token: str | None
    ) -> dict[str, Any] | None:
        self.calls.append(("update_product", product_id))
        if product_id not in self.products:
            return None
        self.products[product_id] = {**self.products[product_id], **changes}
        return self.products[product_id]

    async def list_suppliers(self, *, token: str | None) -> list[dict[str, Any]]:
        self.calls.append(("list_suppliers", None))
        return [{"id": 3, "name": "Acme", "status": "ativo"}]

    async def daily_stats(self, *, token: str | None) -> dict[str, Any]:
        self.calls.append(("daily_stats", None))
        if self.fail_stats:
            raise UpstreamAPIError(503, "stats unavailable")
        return {"orders": 12, "revenue": 340.5}

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)


def _service() -> tuple[CatalogService, FakeCatalogClient, QueryCache]:
    settings = Settings()
    client = FakeCatalogClient()
    cache = QueryCache(max_entries=100)
    return CatalogService(settings=settings, client=client, cache=cache), client, cache  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_list_products_is_cached_per_query() -> None:
    service, client, _ = _service()

    first = await service.list_products(ProductQuery(search="caneca"), token=None)
    second = await service.list_products(ProductQuery(search="  caneca "), token=None)
    other_page = await service.list_products(ProductQuery(search="caneca", page=2), token=None)

    assert first.meta.cached is False
    assert second.meta.cached is True
    assert other_page.meta.cached is False
    assert first.total == 2
    assert [product.name for product in second.products] == ["Garrafa térmica", "Caneca"]
    assert client.count("list_products") == 2


@pytest.mark.asyncio
async def test_cache_keys_are_separated_per_tenant() -> None:
    service, client, _ = _service()

    await service.list_products(ProductQuery(), token="tenant-a")
    await service.list_products(ProductQuery(), token="tenant-b")
    repeat = await service.list_products(ProductQuery(), token="tenant-a")

    assert repeat.meta.cached is True
    assert client.count("list_products") == 2


@pytest.mark.asyncio
async def test_missing_product_is_not_cached() -> None:
    service, client, cache = _service()

    assert await service.get_product(99, token=None) is None
    assert await service.get_product(99, token=None) is None

    assert client.count("get_product") == 2
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_update_invalidates_detail_and_listings() -> None:
    service, client, cache = _service()
    await service.get_product(1, token="tenant-a")
    await service.get_product(1, token="tenant-b")
    await service.get_product(2, token="tenant-a")
    await service.list_products(ProductQuery(), token="tenant-a")
    await service.list_suppliers(token="tenant-a")
    assert len(cache) == 5

    updated = await service.update_product(1, ProductUpdate(name="Garrafa 1L"), token="tenant-a")

    assert updated is not None
    assert updated.name == "Garrafa 1L"
    assert len(cache) == 2

    refreshed = await service.get_product(1, token="tenant-a")
    assert refreshed is not None
    assert refreshed.name == "Garrafa 1L"
    assert client.count("get_product") == 4

    await service.get_product(2, token="tenant-a")
    assert client.count("get_product") == 4


@pytest.mark.asyncio
async def test_update_unknown_product_returns_none() -> None:
    service, _, _ = _service()

    assert await service.update_product(42, ProductUpdate(active=False), token=None) is None


@pytest.mark.asyncio
async def test_suppliers_use_long_ttl() -> None:
    service, client, cache = _service()

    response = await service.list_suppliers(token=None)
    again = await service.list_suppliers(token=None)

    assert response.suppliers[0].name == "Acme"
    assert again.meta.cached is True
    assert client.count("list_suppliers") == 1
    key = cache.generate_key("suppliers", "list", {"tenant": "anon"})
    entry = cache._store[key]
    assert entry.expires_at - entry.created_at == pytest.approx(service.settings.ttl_long_seconds)


@pytest.mark.asyncio
async def test_daily_stats_failure_propagates_and_is_not_cached() -> None:
    service, client, cache = _service()
    client.fail_stats = True

    with pytest.raises(UpstreamAPIError):
        await service.daily_stats(token=None)
    assert len(cache) == 0

    client.fail_stats = False
    response = await service.daily_stats(token=None)
    cached = await service.daily_stats(token=None)

    assert response.stats == {"orders": 12, "revenue": 340.5}
    assert response.meta.cached is False
    assert cached.meta.cached is True
    assert client.count("daily_stats") == 2

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

from catalogcache.config import Settings

logger = logging.getLogger("catalogcache")


@dataclass
class RequestResult:
    payload: Any | None
    status_code: int
    headers: dict[str, str]


class UpstreamAPIError(RuntimeError):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class CatalogClient:
    """Thin async client for the back-office REST API."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        headers = {
            "Accept": "application/json",
            "User-Agent": "catalogcache/0.1",
        }
        self._http = httpx.AsyncClient(
            base_url=self.settings.upstream_api_base,
            timeout=self.settings.upstream_timeout_seconds,
            headers=headers,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def list_products(self, params: dict[str, Any], *, token: str | None) -> dict[str, Any]:
        result = await self._request_json(method="GET", path="/products", token=token, params=params)
        payload = result.payload if isinstance(result.payload, dict) else {}
        products = payload.get("products", payload.get("items", []))
        total = payload.get("total", len(products))
        return {"products": products, "total": total}

    async def get_product(self, product_id: int, *, token: str | None) -> dict[str, Any] | None:
        result = await self._request_json(
            method="GET",
            path=f"/products/{product_id}",
            token=token,
            allow_404=True,
        )
        if result.status_code == 404:
            return None
        return result.payload if isinstance(result.payload, dict) else None

    async def update_product(
        self, product_id: int, changes: dict[str, Any], *, token: str | None
    ) -> dict[str, Any] | None:
        result = await self._request_json(
            method="PATCH",
            path=f"/products/{product_id}",
            token=token,
            json_body=changes,
            allow_404=True,
        )
        if result.status_code == 404:
            return None
        return result.payload if isinstance(result.payload, dict) else None

    async def list_suppliers(self, *, token: str | None) -> list[dict[str, Any]]:
        result = await self._request_json(method="GET", path="/suppliers", token=token)
        payload = result.payload
        if isinstance(payload, dict):
            payload = payload.get("suppliers", payload.get("items", []))
        return payload if isinstance(payload, list) else []

    async def daily_stats(self, *, token: str | None) -> dict[str, Any]:
        result = await self._request_json(method="GET", path="/stats/daily", token=token)
        return result.payload if isinstance(result.payload, dict) else {}

    async def _request_json(
        self,
        *,
        method: str,
        path: str,
        token: str | None,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        allow_404: bool = False,
    ) -> RequestResult:
        request_headers: dict[str, str] = {}
        token = token or self.settings.upstream_api_token
        if token:
            request_headers["Authorization"] = f"Bearer {token}"

        max_attempts = max(0, self.settings.upstream_retry_attempts)
        # Only reads are retried.
        retryable = method == "GET"

        for attempt in range(max_attempts + 1):
            try:
                response = await self._http.request(
                    method=method,
                    url=path,
                    params=params,
                    json=json_body,
                    headers=request_headers,
                )
            except httpx.TransportError as exc:
                if retryable and attempt < max_attempts:
                    sleep_seconds = self._backoff_seconds({}, attempt)
                    logger.warning("Upstream %s %s failed (%s); retrying in %.2fs", method, path, exc, sleep_seconds)
                    await asyncio.sleep(sleep_seconds)
                    continue
                raise UpstreamAPIError(503, f"Upstream request {method} {path} failed: {exc}") from exc

            payload = self._safe_json(response)
            status = response.status_code

            if status == 404 and allow_404:
                return RequestResult(payload=None, status_code=status, headers=dict(response.headers))

            should_retry = retryable and (status >= 500 or status == 429)
            if should_retry and attempt < max_attempts:
                sleep_seconds = self._backoff_seconds(response.headers, attempt)
                logger.warning(
                    "Upstream %s %s returned %d; retrying in %.2fs", method, path, status, sleep_seconds
                )
                await asyncio.sleep(sleep_seconds)
                continue

            if status >= 400:
                message = self._extract_error_message(payload) or f"Upstream API request failed with {status}."
                raise UpstreamAPIError(status, message)

            return RequestResult(payload=payload, status_code=status, headers=dict(response.headers))

        raise UpstreamAPIError(502, "Upstream API request failed after retries.")

    @staticmethod
    def _safe_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _extract_error_message(payload: Any) -> str | None:
        if isinstance(payload, dict):
            for field_name in ("message", "error"):
                message = payload.get(field_name)
                if isinstance(message, str):
                    return message
        return None

    def _backoff_seconds(self, headers: Any, attempt: int) -> float:
        retry_after = headers.get("retry-after")
        if retry_after:
            try:
                return max(0.0, float(retry_after))
            except ValueError:
                pass

        base = self.settings.upstream_backoff_base_seconds
        return min(8.0, base * (2**attempt) + random.uniform(0.0, 0.25))

"""Async client for the Ghostfolio REST API.

Read-only: the agent never places orders. Authentication uses a bearer
token, either the shared GHOSTFOLIO_BEARER_TOKEN or the token of the
user who is chatting.

Usage:
    async with GhostfolioClient(base_url, token) as client:
        details = await client.get_portfolio_details()
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class GhostfolioAPIError(Exception):
    """Raised when a Ghostfolio request fails or returns an error status."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail}")


class GhostfolioClient:
    def __init__(
        self,
        base_url: str = "http://localhost:3333",
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> GhostfolioClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET `path` and return decoded JSON, raising GhostfolioAPIError on failure."""
        try:
            response = await self._http.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise GhostfolioAPIError(504, f"Ghostfolio API timed out on {path}") from exc
        except httpx.HTTPError as exc:
            raise GhostfolioAPIError(502, f"Ghostfolio API unreachable: {exc}") from exc

        if response.status_code >= 400:
            logger.debug("Ghostfolio %s returned %s", path, response.status_code)
            raise GhostfolioAPIError(response.status_code, response.text[:200])
        return response.json()

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_portfolio_details(self, with_markets: bool = True) -> dict:
        params = {"withMarkets": "true"} if with_markets else None
        return await self.get("/api/v1/portfolio/details", params=params)

    async def get_orders(self) -> dict:
        return await self.get("/api/v1/order")

    async def get_symbol(self, data_source: str, symbol: str, history_days: int = 0) -> dict:
        params = {"includeHistoricalData": history_days} if history_days else None
        return await self.get(f"/api/v1/symbol/{data_source}/{symbol}", params=params)

    async def health(self) -> bool:
        try:
            await self.get("/api/v1/health")
        except GhostfolioAPIError:
            return False
        return True

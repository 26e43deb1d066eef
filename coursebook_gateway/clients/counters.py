"""
Counters client — read-through to the statistics service.

Counter documents come back as {isNotFound} or {counterValue}; the login
stats document is a map {map: {counters: {...}}}.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from coursebook_gateway.core.exceptions import DownstreamError
from coursebook_gateway.gateway_logging import get_logger

SERVICE = "counters"


@dataclass(frozen=True)
class CounterReply:
    found: bool
    value: Any = None


class CountersClient:
    """Async httpx client for the counters service."""

    def __init__(
        self,
        base_url: str,
        timeout_sec: float = 10.0,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Any = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout_sec, transport=transport)
        self._logger = logger or get_logger(__name__)

    async def _get(self, *segments: str) -> dict[str, Any]:
        path = "/" + "/".join(quote(s, safe="") for s in segments)
        try:
            resp = await self._client.get(path)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            self._logger.error("counters_call_failed", path=path, error=str(e))
            raise DownstreamError(SERVICE, str(e) or type(e).__name__) from e
        if not isinstance(data, dict):
            raise DownstreamError(SERVICE, "Counters service returned an unexpected body")
        self._logger.info("counters_replied", path=path)
        return data

    async def counter(self, *segments: str) -> CounterReply:
        """Counter value at /<segments...>."""
        data = await self._get(*segments)
        if data.get("isNotFound"):
            return CounterReply(found=False)
        return CounterReply(found=True, value=data.get("counterValue"))

    async def login_attempts(self, ip: str) -> CounterReply:
        data = await self._get("login", ip)
        if data.get("isNotFound"):
            return CounterReply(found=False)
        counters = (data.get("map") or {}).get("counters")
        return CounterReply(found=True, value=counters)

    async def aclose(self) -> None:
        await self._client.aclose()

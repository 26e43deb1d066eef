"""
Document store client — login check and course/wish reads.

The store answers every call with a JSON body {statusCode, message} (plus
{authorized} for login); the HTTP status of its own response is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from coursebook_gateway.core.exceptions import DownstreamError
from coursebook_gateway.gateway_logging import get_logger

SERVICE = "document_store"


@dataclass(frozen=True)
class StoreReply:
    status_code: int
    message: Any = None
    authorized: bool = False


def _parse_reply(data: Any) -> StoreReply:
    if not isinstance(data, dict):
        raise DownstreamError(SERVICE, "Document store returned an unexpected body")
    try:
        status_code = int(data.get("statusCode"))
    except (TypeError, ValueError) as e:
        raise DownstreamError(SERVICE, "Document store reply has no statusCode") from e
    return StoreReply(
        status_code=status_code,
        message=data.get("message"),
        authorized=bool(data.get("authorized", False)),
    )


class DocumentStoreClient:
    """Async httpx client for the document store's HTTP interface."""

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

    async def _call(self, method: str, path: str, **kwargs: Any) -> StoreReply:
        try:
            resp = await self._client.request(method, path, **kwargs)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            self._logger.error("document_store_call_failed", method=method, path=path, error=str(e))
            raise DownstreamError(SERVICE, str(e) or type(e).__name__) from e
        reply = _parse_reply(data)
        self._logger.info("document_store_replied", method=method, path=path, status=reply.status_code)
        return reply

    async def login(self, username: str, password: str) -> StoreReply:
        return await self._call("POST", "/login", json={"username": username, "password": password})

    async def list_entities(
        self,
        entity: str,
        page: int = 0,
        per_page: int = 10,
        search: str | None = None,
    ) -> StoreReply:
        """GET /{entity}?page=&perPage=[&search=] for entity in (course, wish)."""
        params: dict[str, Any] = {"page": page, "perPage": per_page}
        if search:
            params["search"] = search
        return await self._call("GET", f"/{entity}", params=params)

    async def get_entity(self, entity: str, entity_id: str) -> StoreReply:
        return await self._call("GET", f"/{entity}/{quote(entity_id, safe='')}")

    async def aclose(self) -> None:
        await self._client.aclose()

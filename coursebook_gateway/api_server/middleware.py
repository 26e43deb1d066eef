"""
HTTP middleware — request logging with per-request ids.

Pure ASGI so it never buffers bodies or hides client disconnects from the
routes that wait on them.
"""

from __future__ import annotations

import time
from typing import Any
from uuid import uuid4

from coursebook_gateway.gateway_logging import bind_request, get_logger

REQUEST_ID_HEADER = b"x-request-id"


class RequestLoggingMiddleware:
    """Bind request_id into structlog contextvars and log one line per request."""

    def __init__(self, app: Any, logger: Any = None) -> None:
        self.app = app
        self._logger = logger or get_logger(__name__)

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = ""
        for name, value in scope.get("headers") or []:
            if name == REQUEST_ID_HEADER:
                request_id = value.decode("latin-1")
                break
        request_id = request_id or uuid4().hex
        bind_request(request_id)
        started = time.perf_counter()
        status_holder: dict[str, int] = {}

        async def send_wrapper(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                status_holder["status"] = message["status"]
                headers = list(message.get("headers") or [])
                headers.append((REQUEST_ID_HEADER, request_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            self._logger.info(
                "http_request",
                method=scope.get("method"),
                path=scope.get("path"),
                status=status_holder.get("status"),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )

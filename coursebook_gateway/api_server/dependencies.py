"""
Shared request helpers: gateway context lookup, body parsing, caller IP and
token authentication.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request

from coursebook_gateway.auth.tokens import TokenService
from coursebook_gateway.clients.counters import CountersClient
from coursebook_gateway.clients.document_store import DocumentStoreClient
from coursebook_gateway.config.settings import GatewaySettings
from coursebook_gateway.core.exceptions import ValidationError
from coursebook_gateway.correlation.registry import PendingResponseRegistry
from coursebook_gateway.correlation.router import CompletionRouter
from coursebook_gateway.messaging.consumer import CompletionConsumer
from coursebook_gateway.messaging.publisher import OutboundPublisher


@dataclass
class GatewayContext:
    """Every collaborator the routes need, constructed once at startup."""

    settings: GatewaySettings
    tokens: TokenService
    publisher: OutboundPublisher
    registry: PendingResponseRegistry
    router: CompletionRouter
    document_store: DocumentStoreClient
    counters: CountersClient
    logger: Any
    consumer: CompletionConsumer | None = None


def get_context(request: Request) -> GatewayContext:
    return request.app.state.context


async def read_body(request: Request) -> dict[str, Any]:
    """JSON or urlencoded form body as a dict; anything else is empty."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded") or content_type.startswith(
        "multipart/form-data"
    ):
        form = await request.form()
        return dict(form)
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError("Request body must be valid JSON.") from e
    return data if isinstance(data, dict) else {}


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def authenticate(request: Request, ctx: GatewayContext) -> str:
    """Verify the Authorization header; raises AuthError, returns the subject."""
    return ctx.tokens.verify(request.headers.get("Authorization"))


def require_subject(request: Request, ctx: GatewayContext = Depends(get_context)) -> str:
    """Dependency form of authenticate() for routes with no body validation."""
    return authenticate(request, ctx)

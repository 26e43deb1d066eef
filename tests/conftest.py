"""
Pytest fixtures for gateway tests.

The broker is replaced by a recording publisher; the document store and the
counters service by httpx.MockTransport handlers. A scripted worker can
answer published commands through the CompletionRouter, the same path the
AMQP reply queue and POST /respond use.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import httpx
import pytest

from coursebook_gateway.clients.counters import CountersClient
from coursebook_gateway.clients.document_store import DocumentStoreClient
from coursebook_gateway.config.settings import GatewaySettings
from coursebook_gateway.core.exceptions import PublishError, PublishFailure
from coursebook_gateway.correlation.router import CompletionEvent
from coursebook_gateway.messaging.publisher import OutboundPublisher

TEST_SECRET = "test-secret"


class RecordingPublisher(OutboundPublisher):
    """Keeps every published message instead of talking to a broker."""

    def __init__(self) -> None:
        super().__init__("amqp://recording/")
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.failing_keys: set[str] = set()
        self.hooks: list[Callable[[str, dict[str, Any]], None]] = []
        # seconds each publish stays in flight after the message is handed over
        self.latency = 0.0

    async def publish(self, routing_key, message, *, correlation_id=None) -> None:
        if routing_key in self.failing_keys:
            raise PublishError(PublishFailure.CONNECT_FAILED, routing_key, "Unable to create connection: refused")
        self.sent.append((routing_key, dict(message)))
        for hook in self.hooks:
            hook(routing_key, dict(message))
        if self.latency:
            await asyncio.sleep(self.latency)

    async def close(self) -> None:
        return None

    def messages(self, routing_key: str) -> list[dict[str, Any]]:
        return [m for key, m in self.sent if key == routing_key]


class ScriptedWorker:
    """Answers document commands carrying a correlationId with a scripted completion."""

    def __init__(self) -> None:
        self.replies: dict[str, dict[str, Any]] = {}
        self.router = None
        self.delay = 0.01

    def reply(self, action: str, outcome_code: int, **fields: Any) -> None:
        self.replies[action] = {"outcomeCode": outcome_code, **fields}

    def __call__(self, routing_key: str, message: dict[str, Any]) -> None:
        reply = self.replies.get(message.get("action", ""))
        correlation_id = message.get("correlationId")
        if reply is None or correlation_id is None or self.router is None:
            return
        event = CompletionEvent.model_validate(
            {"correlationId": correlation_id, "actionKind": message["action"], **reply}
        )
        loop = asyncio.get_running_loop()
        if self.delay:
            loop.call_later(self.delay, self.router.on_completion, event)
        else:
            loop.call_soon(self.router.on_completion, event)


@pytest.fixture
def settings() -> GatewaySettings:
    return GatewaySettings(
        jwt_secret=TEST_SECRET,
        registration_timeout_sec=0.3,
        creation_timeout_sec=0.3,
        pending_timeout_sec=0.3,
        document_store_url="http://documents.test",
        counters_url="http://counters.test",
    )


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def store_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def store_routes() -> dict[tuple[str, str], Any]:
    """(method, path) -> JSON body the fake document store answers with."""
    return {}


@pytest.fixture
def counter_routes() -> dict[str, Any]:
    """path -> JSON body the fake counters service answers with."""
    return {}


@pytest.fixture
def document_store(settings, store_routes, store_requests) -> DocumentStoreClient:
    def handler(request: httpx.Request) -> httpx.Response:
        store_requests.append(request)
        body = store_routes.get((request.method, request.url.path))
        if body is None:
            return httpx.Response(404, json={"statusCode": 404, "message": "not found"})
        return httpx.Response(200, json=body)

    return DocumentStoreClient(settings.document_store_url, transport=httpx.MockTransport(handler))


@pytest.fixture
def counters(settings, counter_routes) -> CountersClient:
    def handler(request: httpx.Request) -> httpx.Response:
        body = counter_routes.get(request.url.path, {"isNotFound": True})
        return httpx.Response(200, json=body)

    return CountersClient(settings.counters_url, transport=httpx.MockTransport(handler))


@pytest.fixture
def context(settings, publisher, document_store, counters):
    from coursebook_gateway.api_server.server import build_context

    return build_context(settings, publisher=publisher, document_store=document_store, counters=counters)


@pytest.fixture
def worker(context, publisher) -> ScriptedWorker:
    scripted = ScriptedWorker()
    scripted.router = context.router
    publisher.hooks.append(scripted)
    return scripted


@pytest.fixture
def client(context):
    """FastAPI TestClient over the injected context; lifespan runs for the test's duration."""
    from fastapi.testclient import TestClient

    from coursebook_gateway.api_server.server import create_app

    with TestClient(create_app(context=context)) as test_client:
        yield test_client


@pytest.fixture
def token(context) -> str:
    return context.tokens.issue("ada")

"""
Completion consumer — reads worker completion events from a reply queue.

Plays the same role as POST /respond, over the broker: every message on the
queue is parsed as a CompletionEvent and handed to the CompletionRouter.
Messages are acked after handling; unparsable ones are dropped (after
releasing their pending entry when a correlation id can be recovered).
"""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable

import aio_pika
from aio_pika.abc import AbstractConnection, AbstractIncomingMessage, AbstractQueue
from pydantic import ValidationError as PydanticValidationError

from coursebook_gateway.correlation.router import CompletionEvent, CompletionRouter
from coursebook_gateway.gateway_logging import get_logger

Connector = Callable[[str], Awaitable[AbstractConnection]]

PREFETCH_COUNT = 32


def recover_correlation_id(raw: Any) -> str | None:
    """Best-effort correlation id from a completion body that failed validation."""
    if not isinstance(raw, dict):
        return None
    for key in ("correlationId", "uuid", "correlation_id"):
        value = raw.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class CompletionConsumer:
    """Bind a durable reply queue to the exchange and route every completion."""

    def __init__(
        self,
        url: str,
        router: CompletionRouter,
        queue_name: str,
        *,
        exchange_name: str = "coursebook",
        exchange_type: str = "direct",
        routing_key: str = "gateway",
        connect: Connector | None = None,
        logger: Any = None,
    ) -> None:
        self._url = url
        self._router = router
        self._queue_name = queue_name
        self._exchange_name = exchange_name
        self._exchange_type = aio_pika.ExchangeType(exchange_type)
        self._routing_key = routing_key
        self._connect = connect or aio_pika.connect_robust
        self._logger = logger or get_logger(__name__)
        self._connection: AbstractConnection | None = None
        self._queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None

    def handle_body(self, body: bytes) -> bool:
        """Parse and route one completion body. Returns True when a caller was answered."""
        try:
            raw = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self._logger.error("consumer_invalid_json", error=str(e))
            return False
        try:
            event = CompletionEvent.model_validate(raw)
        except PydanticValidationError as e:
            self._logger.error("consumer_invalid_completion", error=str(e))
            return self._router.on_malformed(recover_correlation_id(raw))
        return self._router.on_completion(event)

    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        async with message.process(requeue=False):
            self.handle_body(message.body)

    async def start(self) -> None:
        connection = await self._connect(self._url)
        channel = await connection.channel()
        await channel.set_qos(prefetch_count=PREFETCH_COUNT)
        exchange = await channel.declare_exchange(self._exchange_name, self._exchange_type, durable=True)
        queue = await channel.declare_queue(self._queue_name, durable=True)
        await queue.bind(exchange, routing_key=self._routing_key)
        self._consumer_tag = await queue.consume(self._on_message)
        self._connection = connection
        self._queue = queue
        self._logger.info(
            "consumer_started",
            queue=self._queue_name,
            exchange=self._exchange_name,
            routing_key=self._routing_key,
        )

    async def stop(self) -> None:
        if self._queue is not None and self._consumer_tag is not None:
            await self._queue.cancel(self._consumer_tag)
        if self._connection is not None and not self._connection.is_closed:
            await self._connection.close()
        self._queue = None
        self._consumer_tag = None
        self._connection = None
        self._logger.info("consumer_stopped", queue=self._queue_name)

"""
Outbound publisher — fire-and-forget command messages over AMQP (aio-pika).

- One connection and channel shared by every call site; creation is guarded
  by an asyncio.Lock so concurrent publishes never dial more than once.
- A failed connection is never cached: the next publish dials again.
- No retry loop. Failures surface as PublishError and the caller decides.
- Delivery beyond the broker boundary is the broker's contract.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Mapping

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange

from coursebook_gateway.core.exceptions import PublishError, PublishFailure
from coursebook_gateway.gateway_logging import get_logger

Connector = Callable[[str], Awaitable[AbstractConnection]]

DEFAULT_EXCHANGE = "coursebook"


async def _connect(url: str) -> AbstractConnection:
    return await aio_pika.connect(url)


def encode_message(message: Mapping[str, Any]) -> bytes:
    return json.dumps(dict(message), separators=(",", ":"), default=str).encode("utf-8")


class OutboundPublisher:
    """Publish JSON command envelopes to a named exchange with a routing key."""

    def __init__(
        self,
        url: str,
        exchange_name: str = DEFAULT_EXCHANGE,
        exchange_type: str = "direct",
        *,
        connect: Connector | None = None,
        logger: Any = None,
    ) -> None:
        self._url = url
        self._exchange_name = exchange_name
        self._exchange_type = aio_pika.ExchangeType(exchange_type)
        self._connect = connect or _connect
        self._logger = logger or get_logger(__name__)
        self._lock = asyncio.Lock()
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None

    @property
    def connected(self) -> bool:
        return (
            self._exchange is not None
            and self._connection is not None
            and not self._connection.is_closed
            and self._channel is not None
            and not self._channel.is_closed
        )

    async def _ensure_exchange(self, routing_key: str) -> AbstractExchange:
        async with self._lock:
            if self.connected:
                return self._exchange
            await self._reset()
            try:
                connection = await self._connect(self._url)
            except Exception as e:
                self._logger.error("publisher_connect_failed", routing_key=routing_key, error=str(e))
                raise PublishError(
                    PublishFailure.CONNECT_FAILED,
                    routing_key,
                    f"Unable to create connection: {e}",
                ) from e
            try:
                channel = await connection.channel()
                exchange = await channel.declare_exchange(
                    self._exchange_name,
                    self._exchange_type,
                    durable=True,
                )
            except Exception as e:
                self._logger.error("publisher_channel_failed", routing_key=routing_key, error=str(e))
                await _close_quietly(connection, self._logger)
                raise PublishError(
                    PublishFailure.CHANNEL_FAILED,
                    routing_key,
                    f"Unable to create channel: {e}",
                ) from e
            self._connection = connection
            self._channel = channel
            self._exchange = exchange
            self._logger.info(
                "publisher_connected",
                exchange=self._exchange_name,
                exchange_type=self._exchange_type.value,
            )
            return exchange

    async def publish(
        self,
        routing_key: str,
        message: Mapping[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> None:
        """Publish message tagged with routing_key. Raises PublishError on any broker failure."""
        exchange = await self._ensure_exchange(routing_key)
        amqp_message = aio_pika.Message(
            body=encode_message(message),
            content_type="application/json",
            correlation_id=correlation_id,
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
        )
        try:
            await exchange.publish(amqp_message, routing_key=routing_key)
        except Exception as e:
            self._logger.error("publisher_publish_failed", routing_key=routing_key, error=str(e))
            async with self._lock:
                await self._reset()
            raise PublishError(
                PublishFailure.CHANNEL_FAILED,
                routing_key,
                f"Unable to publish message: {e}",
            ) from e
        self._logger.info(
            "publisher_sent",
            routing_key=routing_key,
            action=message.get("action"),
            correlation_id=correlation_id,
        )

    async def publish_best_effort(self, routing_key: str, message: Mapping[str, Any]) -> bool:
        """Publish a secondary message; failures are logged and reported as False."""
        try:
            await self.publish(routing_key, message)
        except PublishError as e:
            self._logger.warning(
                "publisher_best_effort_failed",
                routing_key=routing_key,
                action=message.get("action"),
                kind=e.kind.value,
            )
            return False
        return True

    async def _reset(self) -> None:
        connection = self._connection
        self._connection = None
        self._channel = None
        self._exchange = None
        if connection is not None:
            await _close_quietly(connection, self._logger)

    async def close(self) -> None:
        async with self._lock:
            await self._reset()


async def _close_quietly(connection: AbstractConnection, logger: Any) -> None:
    if connection.is_closed:
        return
    try:
        await connection.close()
    except Exception as e:
        logger.debug("publisher_close_failed", error=str(e))

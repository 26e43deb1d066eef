"""
Pytest tests for OutboundPublisher connection handling. aio-pika connections
are replaced by in-memory fakes injected through the connect callable.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from coursebook_gateway.core.exceptions import PublishError, PublishFailure
from coursebook_gateway.messaging.publisher import OutboundPublisher


class FakeExchange:
    def __init__(self, fail: bool = False) -> None:
        self.published = []
        self.fail = fail

    async def publish(self, message, routing_key):
        if self.fail:
            raise ConnectionError("channel closed by broker")
        self.published.append((routing_key, message))


class FakeChannel:
    def __init__(self, exchange: FakeExchange, fail: bool = False) -> None:
        self.exchange = exchange
        self.fail = fail
        self.is_closed = False
        self.declared = []

    async def declare_exchange(self, name, type, durable=False):
        if self.fail:
            raise RuntimeError("access refused")
        self.declared.append((name, type, durable))
        return self.exchange


class FakeConnection:
    def __init__(self, channel: FakeChannel) -> None:
        self._channel = channel
        self.is_closed = False

    async def channel(self):
        return self._channel

    async def close(self):
        self.is_closed = True


class Dialer:
    """Connect callable that counts dials and can fail the first N."""

    def __init__(self, failures: int = 0, channel_fail: bool = False, publish_fail: bool = False) -> None:
        self.calls = 0
        self.failures = failures
        self.channel_fail = channel_fail
        self.publish_fail = publish_fail
        self.connections: list[FakeConnection] = []

    async def __call__(self, url):
        self.calls += 1
        await asyncio.sleep(0)
        if self.calls <= self.failures:
            raise ConnectionRefusedError("connection refused")
        conn = FakeConnection(FakeChannel(FakeExchange(self.publish_fail), self.channel_fail))
        self.connections.append(conn)
        return conn


def test_publish_encodes_json_with_routing_key():
    dialer = Dialer()

    async def scenario():
        publisher = OutboundPublisher("amqp://test/", "coursebook", connect=dialer)
        await publisher.publish("mongo", {"action": "REGISTRATION", "username": "ada"}, correlation_id="c1")
        return publisher

    asyncio.run(scenario())
    exchange = dialer.connections[0]._channel.exchange
    routing_key, message = exchange.published[0]
    assert routing_key == "mongo"
    assert json.loads(message.body) == {"action": "REGISTRATION", "username": "ada"}
    assert message.correlation_id == "c1"
    assert message.content_type == "application/json"
    name, exchange_type, durable = dialer.connections[0]._channel.declared[0]
    assert name == "coursebook"
    assert exchange_type.value == "direct"
    assert durable is True


def test_connection_is_reused():
    dialer = Dialer()

    async def scenario():
        publisher = OutboundPublisher("amqp://test/", connect=dialer)
        for i in range(3):
            await publisher.publish("riak", {"action": "LOGIN", "n": i})

    asyncio.run(scenario())
    assert dialer.calls == 1
    assert len(dialer.connections[0]._channel.exchange.published) == 3


def test_concurrent_publishes_dial_once():
    dialer = Dialer()

    async def scenario():
        publisher = OutboundPublisher("amqp://test/", connect=dialer)
        await asyncio.gather(*(publisher.publish("riak", {"action": "LOGIN", "n": i}) for i in range(20)))

    asyncio.run(scenario())
    assert dialer.calls == 1


def test_connect_failure_is_reported_and_not_cached():
    dialer = Dialer(failures=1)

    async def scenario():
        publisher = OutboundPublisher("amqp://test/", connect=dialer)
        with pytest.raises(PublishError) as exc:
            await publisher.publish("mongo", {"action": "REGISTRATION"})
        assert exc.value.kind is PublishFailure.CONNECT_FAILED
        assert exc.value.routing_key == "mongo"
        assert publisher.connected is False
        await publisher.publish("mongo", {"action": "REGISTRATION"})
        return publisher.connected

    assert asyncio.run(scenario()) is True
    assert dialer.calls == 2


def test_channel_failure_closes_connection():
    dialer = Dialer(channel_fail=True)

    async def scenario():
        publisher = OutboundPublisher("amqp://test/", connect=dialer)
        with pytest.raises(PublishError) as exc:
            await publisher.publish("mongo", {"action": "COURSE_CREATE"})
        return exc.value.kind

    assert asyncio.run(scenario()) is PublishFailure.CHANNEL_FAILED
    assert dialer.connections[0].is_closed is True


def test_publish_failure_drops_cached_channel():
    dialer = Dialer(publish_fail=True)

    async def scenario():
        publisher = OutboundPublisher("amqp://test/", connect=dialer)
        with pytest.raises(PublishError) as exc:
            await publisher.publish("mongo", {"action": "COURSE_CREATE"})
        return exc.value.kind, publisher.connected

    kind, connected = asyncio.run(scenario())
    assert kind is PublishFailure.CHANNEL_FAILED
    assert connected is False


def test_closed_connection_triggers_redial():
    dialer = Dialer()

    async def scenario():
        publisher = OutboundPublisher("amqp://test/", connect=dialer)
        await publisher.publish("mongo", {"action": "COURSE_DELETE"})
        dialer.connections[0].is_closed = True
        await publisher.publish("mongo", {"action": "COURSE_DELETE"})
        await publisher.close()

    asyncio.run(scenario())
    assert dialer.calls == 2
    assert dialer.connections[1].is_closed is True


def test_best_effort_reports_failure_without_raising():
    dialer = Dialer(failures=10)

    async def scenario():
        publisher = OutboundPublisher("amqp://test/", connect=dialer)
        return await publisher.publish_best_effort("riak", {"action": "LOGIN"})

    assert asyncio.run(scenario()) is False

"""
Pytest tests for PendingResponseRegistry: exactly-once delivery across
resolve, expiry, cancel and shutdown.
"""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from coursebook_gateway.core.exceptions import DuplicateCorrelationId
from coursebook_gateway.correlation.models import (
    SHUTDOWN_MESSAGE,
    TIMEOUT_MESSAGE,
    ActionKind,
    Outcome,
)
from coursebook_gateway.correlation.registry import PendingResponseRegistry


def _registry(**kwargs) -> PendingResponseRegistry:
    return PendingResponseRegistry(
        {ActionKind.REGISTRATION: 0.2, ActionKind.COURSE_CREATE: 0.1},
        default_timeout_sec=0.05,
        **kwargs,
    )


def test_resolve_before_timeout_delivers_outcome():
    async def scenario():
        registry = _registry()
        sink = registry.expect("cid-1", ActionKind.REGISTRATION)
        assert "cid-1" in registry
        assert registry.resolve_once("cid-1", Outcome(201, "token")) is True
        outcome = await sink
        assert "cid-1" not in registry
        return outcome

    assert asyncio.run(scenario()) == Outcome(201, "token")


def test_second_resolve_is_noop():
    async def scenario():
        registry = _registry()
        sink = registry.expect("cid-1", ActionKind.REGISTRATION)
        first = registry.resolve_once("cid-1", Outcome(201, "first"))
        second = registry.resolve_once("cid-1", Outcome(500, "second"))
        return first, second, await sink

    first, second, outcome = asyncio.run(scenario())
    assert (first, second) == (True, False)
    assert outcome.body == "first"


def test_unknown_id_is_noop():
    registry = _registry()
    assert registry.resolve_once("never-registered", Outcome(201, "x")) is False
    assert registry.cancel("never-registered") is False


def test_timeout_delivers_processing_outcome_after_bound():
    async def scenario():
        registry = _registry()
        started = time.monotonic()
        outcome = await registry.wait_for("cid-1", ActionKind.COURSE_CREATE)
        return outcome, time.monotonic() - started, len(registry)

    outcome, elapsed, remaining = asyncio.run(scenario())
    assert outcome == Outcome(202, TIMEOUT_MESSAGE)
    assert 0.09 <= elapsed < 1.0
    assert remaining == 0


def test_per_action_timeouts_and_default():
    registry = _registry()
    assert registry.timeout_for(ActionKind.REGISTRATION) == 0.2
    assert registry.timeout_for(ActionKind.COURSE_CREATE) == 0.1
    assert registry.timeout_for(ActionKind.WISH_CREATE) == 0.05


def test_resolve_after_expiry_is_noop():
    async def scenario():
        registry = _registry()
        outcome = await registry.wait_for("cid-1", ActionKind.WISH_CREATE, timeout=0.02)
        late = registry.resolve_once("cid-1", Outcome(201, "late"))
        return outcome, late

    outcome, late = asyncio.run(scenario())
    assert outcome.body == TIMEOUT_MESSAGE
    assert late is False


def test_expiry_after_resolve_does_not_double_fire():
    async def scenario():
        registry = _registry()
        sink = registry.expect("cid-1", ActionKind.WISH_CREATE, timeout=0.02)
        registry.resolve_once("cid-1", Outcome(201, "done"))
        outcome = await sink
        # let the (cancelled) timer's deadline pass
        await asyncio.sleep(0.05)
        return outcome

    assert asyncio.run(scenario()).body == "done"


def test_duplicate_registration_fails_fast():
    async def scenario():
        registry = _registry()
        registry.expect("cid-1", ActionKind.REGISTRATION)
        with pytest.raises(DuplicateCorrelationId):
            registry.expect("cid-1", ActionKind.REGISTRATION)
        assert len(registry) == 1
        registry.cancel("cid-1")

    asyncio.run(scenario())


def test_id_can_be_reused_after_resolution():
    async def scenario():
        registry = _registry()
        registry.expect("cid-1", ActionKind.REGISTRATION)
        registry.resolve_once("cid-1", Outcome(201, "a"))
        sink = registry.expect("cid-1", ActionKind.REGISTRATION)
        registry.resolve_once("cid-1", Outcome(409, "b"))
        return await sink

    assert asyncio.run(scenario()).status_code == 409


def test_cancel_releases_without_delivery():
    async def scenario():
        registry = _registry()
        sink = registry.expect("cid-1", ActionKind.REGISTRATION)
        assert registry.cancel("cid-1") is True
        assert registry.resolve_once("cid-1", Outcome(201, "late")) is False
        await asyncio.sleep(0.25)
        return sink.cancelled(), len(registry)

    cancelled, remaining = asyncio.run(scenario())
    assert cancelled is True
    assert remaining == 0


def test_cancelled_waiter_releases_entry():
    async def scenario():
        registry = _registry()
        task = asyncio.ensure_future(registry.wait_for("cid-1", ActionKind.REGISTRATION))
        await asyncio.sleep(0)
        assert "cid-1" in registry
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return len(registry)

    assert asyncio.run(scenario()) == 0


def test_close_resolves_everything_once():
    async def scenario():
        registry = _registry()
        sinks = [registry.expect(f"cid-{i}", ActionKind.REGISTRATION) for i in range(5)]
        released = registry.close()
        outcomes = [await s for s in sinks]
        return released, outcomes, registry.close()

    released, outcomes, second_close = asyncio.run(scenario())
    assert released == 5
    assert all(o == Outcome(503, SHUTDOWN_MESSAGE) for o in outcomes)
    assert second_close == 0


def test_resolution_racing_expiry_delivers_exactly_once():
    """Many ids whose completion lands right at the deadline: each sink gets exactly one outcome."""

    async def scenario():
        registry = _registry()
        loop = asyncio.get_running_loop()
        deliveries = []
        sinks = {}
        for i in range(200):
            cid = f"cid-{i}"
            sinks[cid] = registry.expect(cid, ActionKind.WISH_CREATE, timeout=0.02)
            loop.call_later(0.02, lambda c=cid: deliveries.append(registry.resolve_once(c, Outcome(201, "ok"))))
        results = await asyncio.gather(*sinks.values())
        await asyncio.sleep(0.05)
        return results, deliveries, len(registry)

    results, deliveries, remaining = asyncio.run(scenario())
    assert len(results) == 200
    resolved = sum(1 for d in deliveries if d)
    timed_out = sum(1 for r in results if r.status_code == 202)
    assert resolved + timed_out == 200
    assert remaining == 0


def test_resolve_from_foreign_thread():
    async def scenario():
        registry = _registry()
        sink = registry.expect("cid-1", ActionKind.REGISTRATION)
        results = []
        thread = threading.Thread(target=lambda: results.append(registry.resolve_once("cid-1", Outcome(201, "t"))))
        thread.start()
        outcome = await sink
        thread.join()
        return outcome, results

    outcome, results = asyncio.run(scenario())
    assert outcome.body == "t"
    assert results == [True]

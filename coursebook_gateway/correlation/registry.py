"""
Pending response registry — suspended HTTP callers keyed by correlation id.

Every registered entry is resolved exactly once: by a completion
(resolve_once), by its timer (expiry), by the transport (cancel) or by
shutdown (close). All four paths go through _take(), which removes the entry
under one lock, so only the path that removes it may touch the sink.

Sinks are asyncio futures owned by the caller's event loop. Delivery from a
foreign thread is marshalled onto that loop.
"""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from coursebook_gateway.core.exceptions import DuplicateCorrelationId
from coursebook_gateway.correlation.models import (
    ActionKind,
    Outcome,
    shutdown_outcome,
    timeout_outcome,
)
from coursebook_gateway.gateway_logging import get_logger

DEFAULT_TIMEOUT_SEC = 5.0


@dataclass(eq=False)
class PendingEntry:
    """Suspended-caller record held between register and resolution."""

    correlation_id: str
    action: ActionKind
    created_at: float
    timeout_sec: float
    sink: asyncio.Future
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)


def _on_loop_thread(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


def _set_outcome(sink: asyncio.Future, outcome: Outcome) -> None:
    # The caller may have been cancelled by the transport in the meantime
    if not sink.done():
        sink.set_result(outcome)


def _cancel_sink(sink: asyncio.Future) -> None:
    if not sink.done():
        sink.cancel()


class PendingResponseRegistry:
    """Concurrency-safe map of correlation id -> PendingEntry with per-entry expiry."""

    def __init__(
        self,
        timeouts: Mapping[ActionKind, float] | None = None,
        default_timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        *,
        clock: Callable[[], float] = time.monotonic,
        logger: Any = None,
    ) -> None:
        self._timeouts = dict(timeouts or {})
        self._default_timeout_sec = default_timeout_sec
        self._clock = clock
        self._logger = logger or get_logger(__name__)
        self._entries: dict[str, PendingEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, correlation_id: object) -> bool:
        with self._lock:
            return correlation_id in self._entries

    def timeout_for(self, action: ActionKind) -> float:
        return self._timeouts.get(action, self._default_timeout_sec)

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(
        self,
        correlation_id: str,
        sink: asyncio.Future,
        action: ActionKind,
        timeout: float | None = None,
    ) -> None:
        """
        Insert an entry and arm its expiry timer on the sink's loop.

        Must be called from the thread running the sink's loop. Raises
        DuplicateCorrelationId if the id is already pending.
        """
        timeout_sec = self.timeout_for(action) if timeout is None else timeout
        loop = sink.get_loop()
        entry = PendingEntry(
            correlation_id=correlation_id,
            action=action,
            created_at=self._clock(),
            timeout_sec=timeout_sec,
            sink=sink,
        )
        with self._lock:
            if correlation_id in self._entries:
                raise DuplicateCorrelationId(correlation_id)
            self._entries[correlation_id] = entry
            entry.timer = loop.call_later(timeout_sec, self._expire, correlation_id, entry)
        self._logger.debug(
            "registry_registered",
            correlation_id=correlation_id,
            action=action.value,
            timeout_sec=timeout_sec,
        )

    def expect(
        self,
        correlation_id: str,
        action: ActionKind,
        timeout: float | None = None,
    ) -> asyncio.Future:
        """Create a sink on the running loop, register it and return it for awaiting."""
        sink = asyncio.get_running_loop().create_future()
        self.register(correlation_id, sink, action, timeout)
        return sink

    async def wait_for(
        self,
        correlation_id: str,
        action: ActionKind,
        timeout: float | None = None,
    ) -> Outcome:
        """
        Register and suspend until resolved or expired.

        If the awaiting task is cancelled, the entry is cancelled too so no
        late delivery is attempted.
        """
        sink = self.expect(correlation_id, action, timeout)
        try:
            return await sink
        except asyncio.CancelledError:
            self.cancel(correlation_id)
            raise

    # -------------------------------------------------------------------------
    # Terminal transitions
    # -------------------------------------------------------------------------

    def _take(self, correlation_id: str, expected: PendingEntry | None = None) -> PendingEntry | None:
        """Remove and return the entry if present (and identical to expected, when given)."""
        with self._lock:
            entry = self._entries.get(correlation_id)
            if entry is None or (expected is not None and entry is not expected):
                return None
            del self._entries[correlation_id]
        if entry.timer is not None:
            timer = entry.timer
            loop = entry.sink.get_loop()
            if _on_loop_thread(loop):
                timer.cancel()
            elif not loop.is_closed():
                loop.call_soon_threadsafe(timer.cancel)
        return entry

    def _deliver(self, entry: PendingEntry, outcome: Outcome) -> None:
        loop = entry.sink.get_loop()
        if _on_loop_thread(loop):
            _set_outcome(entry.sink, outcome)
        elif not loop.is_closed():
            loop.call_soon_threadsafe(_set_outcome, entry.sink, outcome)

    def resolve_once(self, correlation_id: str, outcome: Outcome) -> bool:
        """
        Remove the entry and deliver outcome to its sink.

        Returns False when the id is unknown, already resolved, expired or
        cancelled; a late or duplicate completion is a no-op.
        """
        entry = self._take(correlation_id)
        if entry is None:
            return False
        self._deliver(entry, outcome)
        self._logger.info(
            "registry_resolved",
            correlation_id=correlation_id,
            action=entry.action.value,
            status=outcome.status_code,
            waited_ms=round((self._clock() - entry.created_at) * 1000, 2),
        )
        return True

    def _expire(self, correlation_id: str, entry: PendingEntry) -> None:
        taken = self._take(correlation_id, entry)
        if taken is None:
            return
        self._deliver(taken, timeout_outcome())
        self._logger.warning(
            "registry_expired",
            correlation_id=correlation_id,
            action=taken.action.value,
            timeout_sec=taken.timeout_sec,
        )

    def cancel(self, correlation_id: str) -> bool:
        """Release the entry without delivering an outcome (client went away)."""
        entry = self._take(correlation_id)
        if entry is None:
            return False
        loop = entry.sink.get_loop()
        if _on_loop_thread(loop):
            _cancel_sink(entry.sink)
        elif not loop.is_closed():
            loop.call_soon_threadsafe(_cancel_sink, entry.sink)
        self._logger.info("registry_cancelled", correlation_id=correlation_id, action=entry.action.value)
        return True

    def close(self) -> int:
        """Resolve every pending entry with the shutdown outcome. Returns how many were released."""
        with self._lock:
            ids = list(self._entries)
        released = 0
        for correlation_id in ids:
            entry = self._take(correlation_id)
            if entry is None:
                continue
            self._deliver(entry, shutdown_outcome())
            released += 1
        if released:
            self._logger.warning("registry_closed_with_pending", released=released)
        return released

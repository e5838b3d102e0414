from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Protocol

from .enums import BroadcastEvent

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Subscriber(Protocol):
    def deliver(self, message: dict[str, Any]) -> None: ...


class BroadcastChannel:
    """Registry of live subscribers with sequenced, best-effort fan-out.

    ``publish`` is called by the store while it still holds its lock, so the
    ``seq`` of events matches the order in which mutations were applied.
    Subscribers must only enqueue in ``deliver``; a subscriber that raises is
    dropped and never retried.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()
        self._seq = 0

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._seq

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> bool:
        with self._lock:
            try:
                self._subscribers.remove(subscriber)
            except ValueError:
                return False
            return True

    def publish(self, event_name: BroadcastEvent | str, payload: dict[str, Any]) -> dict[str, Any]:
        event = BroadcastEvent(event_name)
        with self._lock:
            self._seq += 1
            message = {
                "type": "event",
                "event": event.value,
                "seq": self._seq,
                "serverTime": utcnow().isoformat(),
                "payload": payload,
            }
            recipients = list(self._subscribers)

        stale_subscribers: list[Subscriber] = []
        for subscriber in recipients:
            try:
                subscriber.deliver(message)
            except Exception:
                logger.warning(
                    "Dropping subscriber %r after failed delivery of %s",
                    subscriber,
                    event.value,
                    exc_info=True,
                )
                stale_subscribers.append(subscriber)

        for stale_subscriber in stale_subscribers:
            self.unsubscribe(stale_subscriber)

        logger.debug("Published %s seq=%s to %s subscriber(s)", event.value, message["seq"], len(recipients))
        return message


class QueueSubscriber:
    """Outbound queue of one realtime session.

    ``deliver`` is safe to call from any thread; messages are handed to the
    owning event loop in call order, which keeps delivery FIFO per session.
    When more than ``max_pending`` messages pile up the session is closed
    instead of buffering without bound.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, max_pending: int = 1000) -> None:
        self._loop = loop
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._max_pending = max_pending
        self._closed = False
        self.overflowed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, message: dict[str, Any]) -> None:
        self._loop.call_soon_threadsafe(self._enqueue, message)

    def _enqueue(self, message: dict[str, Any]) -> None:
        if self._closed:
            return
        if self._queue.qsize() >= self._max_pending:
            self.overflowed = True
            self.close()
            return
        self._queue.put_nowait(message)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def get(self) -> dict[str, Any] | None:
        """Next outbound message, or ``None`` once the session is closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

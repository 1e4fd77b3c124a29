"""
Event Bus — ordered pub/sub for stream events.

Carries the tagged union TokenEvent / CompleteEvent / ErrorEvent from the
GenerationCoordinator to any number of subscribers.

Design:
- Each queue subscriber gets its own asyncio.Queue (no cross-talk)
- Callback listeners are invoked inline, in publish order
- publish() is synchronous and never blocks the publisher
- One StreamChannel per streaming operation assigns token indices and
  closes itself on the first terminal event, so nothing published through
  it can follow a completion or error

Usage:
    bus = EventBus()

    queue = bus.subscribe()
    async for event in bus.listen(queue):
        print(event.type, event.to_dict())

    sub = bus.add_listener("onToken", lambda event: print(event.token))
    sub.remove()
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, AsyncGenerator, Callable

from ondevice_ai.kernel.contracts import (
    EVENT_TYPES,
    CompleteEvent,
    ErrorEvent,
    FinishReason,
    StreamEvent,
    TokenEvent,
)

logger = logging.getLogger(__name__)

# Sentinel to signal end of stream
_STREAM_END = object()

Listener = Callable[[StreamEvent], Any]


class Subscription:
    """Handle returned by add_listener(). remove() is idempotent."""

    def __init__(self, bus: "EventBus", event_type: str, listener: Listener) -> None:
        self._bus = bus
        self.event_type = event_type
        self.listener = listener

    def remove(self) -> None:
        self._bus.remove_listener(self.event_type, self.listener)


class EventBus:
    """
    Lightweight pub/sub for stream events.

    Single event loop; no locking needed. Slow queue consumers only ever
    fill their own queue.
    """

    def __init__(self, maxsize: int = 1000) -> None:
        self._maxsize = maxsize
        self._queues: list[asyncio.Queue] = []
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    # ─── Publishing ───────────────────────────────────────────

    def publish(self, event: StreamEvent) -> int:
        """
        Deliver an event to every listener and queue subscriber.

        Returns the number of deliveries. Listener exceptions are logged and
        do not stop delivery to the others.
        """
        delivered = 0
        for listener in list(self._listeners.get(event.type, [])):
            try:
                listener(event)
                delivered += 1
            except Exception:
                logger.exception("Event listener for %s failed", event.type)

        for queue in list(self._queues):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Event bus: subscriber queue full, dropping %s", event.type)
        return delivered

    def channel(
        self,
        epoch: int,
        is_live: Callable[[], bool] | None = None,
        operation_id: str = "",
    ) -> "StreamChannel":
        """Open a StreamChannel for one streaming operation."""
        return StreamChannel(self, epoch, is_live, operation_id)

    # ─── Queue subscribers ────────────────────────────────────

    def subscribe(self, maxsize: int | None = None) -> asyncio.Queue:
        """Subscribe with a queue. Read it directly or through listen()."""
        queue: asyncio.Queue = asyncio.Queue(
            maxsize=self._maxsize if maxsize is None else maxsize
        )
        self._queues.append(queue)
        logger.debug("Event bus subscriber added (total: %d)", len(self._queues))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        """Remove a queue subscriber. Safe to call twice."""
        try:
            self._queues.remove(queue)
        except ValueError:
            pass

    def end(self, queue: asyncio.Queue) -> None:
        """End one listen() loop once it has drained what is already queued."""
        try:
            queue.put_nowait(_STREAM_END)
        except asyncio.QueueFull:
            # Drop the oldest event to make room for the marker.
            queue.get_nowait()
            queue.put_nowait(_STREAM_END)

    async def listen(self, queue: asyncio.Queue) -> AsyncGenerator[StreamEvent, None]:
        """Yield events from a subscriber queue until end() or close()."""
        while True:
            item = await queue.get()
            if item is _STREAM_END:
                break
            yield item

    # ─── Callback listeners ───────────────────────────────────

    def add_listener(self, event_type: str, listener: Listener) -> Subscription:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        self._listeners[event_type].append(listener)
        return Subscription(self, event_type, listener)

    def remove_listener(self, event_type: str, listener: Listener) -> None:
        try:
            self._listeners[event_type].remove(listener)
        except ValueError:
            pass

    # ─── Introspection / cleanup ──────────────────────────────

    def subscriber_count(self) -> int:
        """Queue subscribers plus callback listeners."""
        return len(self._queues) + sum(len(v) for v in self._listeners.values())

    def close(self) -> None:
        """End every listen() loop and drop all subscribers."""
        for queue in self._queues:
            try:
                queue.put_nowait(_STREAM_END)
            except asyncio.QueueFull:
                pass
        self._queues.clear()
        self._listeners.clear()


class StreamChannel:
    """
    Event emitter for exactly one streaming operation.

    - token indices are assigned here, strictly increasing from 0
    - the first complete()/error() closes the channel; later calls are no-ops
    - ``is_live`` gates every emission; once it reports False (operation
      superseded or cancelled) tokens are dropped
    """

    def __init__(
        self,
        bus: EventBus,
        epoch: int,
        is_live: Callable[[], bool] | None = None,
        operation_id: str = "",
    ) -> None:
        self._bus = bus
        self.epoch = epoch
        self.operation_id = operation_id
        self._is_live = is_live or (lambda: True)
        self._next_index = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def forwarded(self) -> int:
        """Number of tokens actually delivered."""
        return self._next_index

    def token(self, text: str) -> bool:
        """Forward one token. Returns False if it was suppressed."""
        if self._closed or not self._is_live():
            return False
        event = TokenEvent(
            token=text,
            index=self._next_index,
            epoch=self.epoch,
            operation_id=self.operation_id,
        )
        self._next_index += 1
        self._bus.publish(event)
        return True

    def complete(self, reason: FinishReason = FinishReason.COMPLETE) -> bool:
        if self._closed:
            return False
        self._closed = True
        self._bus.publish(
            CompleteEvent(
                total_tokens=self._next_index,
                finish_reason=reason,
                epoch=self.epoch,
                operation_id=self.operation_id,
            )
        )
        return True

    def error(self, message: str, code: str) -> bool:
        if self._closed:
            return False
        self._closed = True
        self._bus.publish(
            ErrorEvent(
                message=message, code=code, epoch=self.epoch, operation_id=self.operation_id
            )
        )
        return True

    def discard(self) -> None:
        """Close without emitting anything (superseded operation)."""
        self._closed = True

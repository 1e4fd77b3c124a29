"""Tests for EventBus and StreamChannel — ordered stream-event delivery."""

import asyncio

import pytest

from ondevice_ai.kernel.contracts import CompleteEvent, FinishReason, TokenEvent
from ondevice_ai.kernel.event_bus import EventBus


# ─── EventBus ────────────────────────────────────────────────────


class TestEventBus:
    @pytest.mark.asyncio
    async def test_publish_and_listen(self):
        bus = EventBus()
        queue = bus.subscribe()

        bus.publish(TokenEvent(token="hi", index=0))
        bus.close()

        events = [e async for e in bus.listen(queue)]
        assert len(events) == 1
        assert events[0].token == "hi"

    @pytest.mark.asyncio
    async def test_multiple_subscribers(self):
        bus = EventBus()
        q1 = bus.subscribe()
        q2 = bus.subscribe()

        delivered = bus.publish(TokenEvent(token="a", index=0))
        assert delivered == 2
        bus.close()

        assert [e.token async for e in bus.listen(q1)] == ["a"]
        assert [e.token async for e in bus.listen(q2)] == ["a"]

    def test_listeners_receive_only_their_type(self):
        bus = EventBus()
        tokens, completions = [], []
        bus.add_listener("onToken", tokens.append)
        bus.add_listener("onComplete", completions.append)

        bus.publish(TokenEvent(token="x", index=0))
        bus.publish(CompleteEvent(total_tokens=1, finish_reason=FinishReason.COMPLETE))

        assert [e.token for e in tokens] == ["x"]
        assert [e.total_tokens for e in completions] == [1]

    def test_unknown_event_type_rejected(self):
        bus = EventBus()
        with pytest.raises(ValueError):
            bus.add_listener("onSomething", lambda e: None)

    def test_subscription_remove_is_idempotent(self):
        bus = EventBus()
        received = []
        sub = bus.add_listener("onToken", received.append)
        assert bus.subscriber_count() == 1

        sub.remove()
        sub.remove()  # Should not raise
        bus.publish(TokenEvent(token="x", index=0))

        assert received == []
        assert bus.subscriber_count() == 0

    def test_failing_listener_does_not_block_others(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.add_listener("onToken", broken)
        bus.add_listener("onToken", received.append)

        delivered = bus.publish(TokenEvent(token="x", index=0))
        assert delivered == 1
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_idempotent(self):
        bus = EventBus()
        queue = bus.subscribe()
        bus.unsubscribe(queue)
        bus.unsubscribe(queue)  # Should not raise
        assert bus.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_without_blocking(self):
        bus = EventBus()
        queue = bus.subscribe(maxsize=1)

        bus.publish(TokenEvent(token="a", index=0))
        bus.publish(TokenEvent(token="b", index=1))

        assert queue.qsize() == 1
        assert queue.get_nowait().token == "a"

    @pytest.mark.asyncio
    async def test_listen_preserves_order(self):
        bus = EventBus()
        queue = bus.subscribe()
        for i in range(5):
            bus.publish(TokenEvent(token=str(i), index=i))
        bus.close()

        indices = [e.index async for e in bus.listen(queue)]
        assert indices == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_end_stops_one_listener_after_queued_events(self):
        bus = EventBus()
        ended = bus.subscribe()
        other = bus.subscribe()
        bus.publish(TokenEvent(token="a", index=0))

        bus.end(ended)
        bus.publish(TokenEvent(token="b", index=1))

        assert [e.token async for e in bus.listen(ended)] == ["a"]
        assert other.qsize() == 2

    @pytest.mark.asyncio
    async def test_end_makes_room_in_full_queue(self):
        bus = EventBus()
        queue = bus.subscribe(maxsize=1)
        bus.publish(TokenEvent(token="a", index=0))

        bus.end(queue)

        assert [e async for e in bus.listen(queue)] == []


# ─── StreamChannel ───────────────────────────────────────────────


class TestStreamChannel:
    def _recorded(self):
        bus = EventBus()
        events = []
        for event_type in ("onToken", "onComplete", "onError"):
            bus.add_listener(event_type, events.append)
        return bus, events

    def test_indices_increase_from_zero(self):
        bus, events = self._recorded()
        channel = bus.channel(epoch=3, operation_id="op-1")

        channel.token("a")
        channel.token("b")
        channel.complete()

        assert [e.index for e in events[:2]] == [0, 1]
        assert events[-1].total_tokens == 2
        assert all(e.epoch == 3 and e.operation_id == "op-1" for e in events)

    def test_nothing_after_terminal_event(self):
        bus, events = self._recorded()
        channel = bus.channel(epoch=1)

        channel.token("a")
        assert channel.complete(FinishReason.CANCELLED) is True
        assert channel.token("late") is False
        assert channel.complete() is False
        assert channel.error("late", "X") is False

        assert [e.type for e in events] == ["onToken", "onComplete"]
        assert events[-1].finish_reason is FinishReason.CANCELLED

    def test_error_closes_channel(self):
        bus, events = self._recorded()
        channel = bus.channel(epoch=1)

        channel.error("bad", "GENERATION_ERROR")
        channel.complete()

        assert len(events) == 1
        assert events[0].to_dict() == {"message": "bad", "code": "GENERATION_ERROR"}

    def test_liveness_gate_suppresses_tokens(self):
        bus, events = self._recorded()
        live = {"value": True}
        channel = bus.channel(epoch=1, is_live=lambda: live["value"])

        channel.token("a")
        live["value"] = False
        assert channel.token("b") is False

        assert channel.forwarded == 1
        assert len(events) == 1

    def test_discard_emits_nothing(self):
        bus, events = self._recorded()
        channel = bus.channel(epoch=1)

        channel.discard()
        channel.complete()

        assert channel.closed
        assert events == []

    def test_wire_shapes(self):
        assert TokenEvent(token="t", index=4).to_dict() == {"token": "t", "index": 4}
        complete = CompleteEvent(total_tokens=7, finish_reason=FinishReason.MAX_TOKENS)
        assert complete.to_dict() == {"totalTokens": 7, "finishReason": "maxTokens"}

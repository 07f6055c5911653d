"""
Unit tests for the non-blocking side channel.
"""

import asyncio

import pytest

from infrastructure.side_channel import SideChannel


class RecordingSink:
    def __init__(self):
        self.events = []
        self.received = asyncio.Event()

    def __call__(self, event):
        self.events.append(event)
        self.received.set()


@pytest.mark.unit
class TestSideChannel:
    def test_emit_outside_loop_stays_queued(self):
        channel = SideChannel(sinks=[])

        assert channel.emit("model_selection", selected_model="m1") is True
        assert channel.pending == 1

    def test_full_queue_drops_events(self):
        channel = SideChannel(max_size=1, sinks=[])

        assert channel.emit("a") is True
        assert channel.emit("b") is False
        assert channel.get_statistics()["dropped"] == 1

    @pytest.mark.asyncio
    async def test_consumer_delivers_in_background(self):
        sink = RecordingSink()
        channel = SideChannel(sinks=[sink])

        channel.emit("recommendations", user_id="u1")
        await asyncio.wait_for(sink.received.wait(), timeout=1)

        assert sink.events[0]["event"] == "recommendations"
        assert sink.events[0]["user_id"] == "u1"
        assert "timestamp" in sink.events[0]
        await channel.stop()

    @pytest.mark.asyncio
    async def test_stop_flushes_remaining_events(self):
        sink = RecordingSink()
        channel = SideChannel(sinks=[sink])

        for i in range(3):
            channel.emit("event", n=i)
        await channel.stop()

        assert [e["n"] for e in sink.events] == [0, 1, 2]
        assert channel.pending == 0

    @pytest.mark.asyncio
    async def test_failing_sink_never_reaches_producer(self):
        def broken(event):
            raise RuntimeError("sink offline")

        sink = RecordingSink()
        channel = SideChannel(sinks=[broken, sink])

        channel.emit("event")
        await channel.stop()

        stats = channel.get_statistics()
        assert stats["sink_errors"] == 1
        assert stats["delivered"] == 1
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_async_sinks_are_awaited(self):
        received = []

        async def sink(event):
            received.append(event["event"])

        channel = SideChannel(sinks=[])
        channel.add_sink(sink)
        channel.emit("event")

        assert await channel.flush() == 1
        assert received == ["event"]
        await channel.stop()

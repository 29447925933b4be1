import asyncio

import pytest

from transit_matrix.services.events import ProgressEmitter, ProgressTracker, create_progress_emitter
from transit_matrix.services.routing.buffer import FlushBuffer


def test_buffer_flushes_per_key_at_batch_size() -> None:
    flushed = []
    buffer = FlushBuffer(lambda key, items: flushed.append((key, items)), batch_size=2)

    assert buffer.add("A", 1) is False
    assert buffer.add("B", 10) is False
    assert buffer.add("A", 2) is True

    assert flushed == [("A", [1, 2])]
    assert buffer.pending("A") == 0
    assert buffer.pending("B") == 1

    assert buffer.flush_all() == 1
    assert flushed[-1] == ("B", [10])
    assert buffer.flush_count == 2
    assert buffer.keys() == []


def test_buffer_stage_hands_back_full_batches() -> None:
    buffer = FlushBuffer(batch_size=2)

    assert buffer.stage("A", 1) == []
    assert buffer.stage("A", 2) == [1, 2]
    assert buffer.stage("A", 3) == []
    assert buffer.take("A") == [3]
    assert buffer.take("A") == []
    assert buffer.flush_count == 2

    buffer.stage("B", 1)
    with pytest.raises(RuntimeError):
        buffer.flush("B")


def test_buffer_rejects_empty_batches() -> None:
    with pytest.raises(ValueError):
        FlushBuffer(lambda key, items: None, batch_size=0)


def test_failing_subscriber_does_not_block_others() -> None:
    emitter = ProgressEmitter()
    received = []

    def broken(event):
        raise RuntimeError("subscriber bug")

    emitter.subscribe(broken)
    emitter.subscribe(received.append)

    emitter.emit_start("build_routes", total=3)
    emitter.emit_progress("build_routes", 1, 3)

    assert [event.type for event in received] == ["start", "progress"]


def test_unsubscribe_stops_delivery() -> None:
    emitter = ProgressEmitter()
    received = []
    unsubscribe = emitter.subscribe(received.append)

    emitter.emit_complete("calculate_deciles", "done")
    unsubscribe()
    emitter.emit_complete("calculate_deciles", "again")

    assert [event.message for event in received] == ["done"]


def test_coroutine_subscribers_are_scheduled_not_awaited() -> None:
    emitter = ProgressEmitter()
    received = []

    async def slow(event):
        await asyncio.sleep(0)
        received.append(event.stage)

    emitter.subscribe(slow)

    async def run():
        emitter.emit_start("simplify_routes")
        assert received == []
        await asyncio.sleep(0.01)

    asyncio.run(run())
    assert received == ["simplify_routes"]


def test_tracker_keeps_latest_event_per_stage() -> None:
    tracker = ProgressTracker()
    emitter = create_progress_emitter(tracker)

    emitter.emit_start("build_routes", total=2)
    emitter.emit_progress("build_routes", 2, 2)
    emitter.emit_error("calculate_reachability", ValueError("no data"))

    snapshot = tracker.snapshot()
    assert snapshot["build_routes"]["type"] == "progress"
    assert snapshot["build_routes"]["current"] == 2
    assert snapshot["calculate_reachability"]["error"] == "no data"

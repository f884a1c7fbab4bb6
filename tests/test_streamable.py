import asyncio

import pytest

from domain.errors import InvalidStateError
from domain.streaming.streamable import StreamableUI, StreamableValue


def test_append_accumulates_and_notifies_synchronously() -> None:
    value = StreamableValue()
    seen: list[tuple[str, str | None, bool]] = []
    value.subscribe(lambda snap: seen.append((snap.value, snap.delta, snap.done)))

    value.append("Photo")
    value.append("synthesis")

    assert value.value == "Photosynthesis"
    assert seen == [("", None, False), ("Photo", "Photo", False), ("Photosynthesis", "synthesis", False)]


def test_completed_value_rejects_append_and_complete() -> None:
    value = StreamableValue()
    value.append("draft")
    value.complete("final answer")

    with pytest.raises(InvalidStateError):
        value.append("more")
    with pytest.raises(InvalidStateError):
        value.complete()

    assert value.done is True
    assert value.value == "final answer"


def test_complete_without_value_keeps_buffer() -> None:
    value = StreamableValue()
    value.append("a")
    value.append("b")
    value.complete()

    assert value.value == "ab"


def test_late_subscriber_sees_final_state() -> None:
    value = StreamableValue()
    value.append("done text")
    value.complete()

    seen = []
    unsubscribe = value.subscribe(seen.append)
    unsubscribe()

    assert len(seen) == 1
    assert seen[0].value == "done text"
    assert seen[0].done is True
    assert value.subscriber_count == 0


def test_unsubscribe_stops_notifications() -> None:
    value = StreamableValue()
    seen = []
    unsubscribe = value.subscribe(seen.append)
    unsubscribe()
    value.append("x")

    assert len(seen) == 1


def test_failing_subscriber_does_not_break_producer() -> None:
    value = StreamableValue()
    seen = []

    def broken(snapshot):
        if snapshot.delta:
            raise RuntimeError("render failed")

    value.subscribe(broken)
    value.subscribe(seen.append)
    value.append("x")

    assert seen[-1].value == "x"


def test_fail_is_terminal() -> None:
    value = StreamableValue()
    error = RuntimeError("boom")
    value.fail(error)

    assert value.done is True
    assert value.error is error
    with pytest.raises(InvalidStateError):
        value.append("x")


@pytest.mark.asyncio
async def test_updates_iterates_until_completion() -> None:
    value = StreamableValue()

    async def produce() -> None:
        for chunk in ["a", "b", "c"]:
            await asyncio.sleep(0)
            value.append(chunk)
        value.complete()

    producer = asyncio.create_task(produce())
    snapshots = [snapshot async for snapshot in value.updates()]
    await producer

    assert snapshots[-1].done is True
    assert snapshots[-1].value == "abc"
    assert "".join(snapshot.delta or "" for snapshot in snapshots) == "abc"
    assert value.subscriber_count == 0


def test_streamable_ui_replaces_fragment() -> None:
    handle = StreamableUI("spinner")
    seen = []
    handle.subscribe(lambda snap: seen.append(snap.value))

    handle.update("pending")
    handle.complete("card")

    assert seen == ["spinner", "pending", "card"]
    with pytest.raises(InvalidStateError):
        handle.update("other")

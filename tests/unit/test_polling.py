from __future__ import annotations

import asyncio
import uuid

import pytest

from marketplace_chat.application.exceptions import StoreUnavailableError
from marketplace_chat.client.polling import PollingLoop
from marketplace_chat.client.state import ChatViewState
from tests.conftest import FakeStore, make_conversation, make_message


class _Source:
    """Fetch function scripted with results and errors, in order."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.mark.asyncio
async def test_run_once_applies_result():
    applied = []
    loop = PollingLoop("t", _Source(1), applied.append, interval=1)

    assert await loop.run_once() is True
    assert applied == [1]


@pytest.mark.asyncio
async def test_failed_thread_poll_keeps_rendered_sequence():
    """A network error leaves the rendered thread untouched."""
    store = FakeStore()
    conv = store.add_conversation(make_conversation())
    store.messages.extend(make_message(conversation_id=conv.id, content=f"m{i}") for i in range(3))
    state = ChatViewState()
    state.open_thread(conv.id)

    loop = PollingLoop(
        "thread",
        lambda: store.list_messages(conv.id),
        lambda msgs: state.apply_messages(conv.id, msgs),
        interval=3,
    )
    await loop.run_once()
    before = state.thread.value

    store.fail("list_messages")
    assert await loop.run_once() is False

    assert state.thread.value == before
    assert len(before) == 3


@pytest.mark.asyncio
async def test_short_response_does_not_regress_thread():
    store = FakeStore()
    conv = store.add_conversation(make_conversation())
    store.messages.extend(make_message(conversation_id=conv.id, content=f"m{i}") for i in range(3))
    state = ChatViewState()
    state.open_thread(conv.id)
    state.apply_messages(conv.id, store.thread(conv.id))
    before = state.thread.value

    state.apply_messages(conv.id, store.thread(conv.id)[:1])

    assert state.thread.value == before


@pytest.mark.asyncio
async def test_errors_are_swallowed_and_counted():
    loop = PollingLoop("t", _Source(StoreUnavailableError("down"), RuntimeError("boom")), lambda _r: None, interval=1)

    assert await loop.run_once() is False
    assert await loop.run_once() is False
    assert loop.consecutive_failures == 2


@pytest.mark.asyncio
async def test_backoff_grows_and_resets():
    loop = PollingLoop(
        "t",
        _Source(*[StoreUnavailableError("down")] * 6, "ok"),
        lambda _r: None,
        interval=2,
        max_backoff=20,
    )
    assert loop.next_delay() == 2

    delays = []
    for _ in range(6):
        await loop.run_once()
        delays.append(loop.next_delay())
    await loop.run_once()

    assert delays == [4, 8, 16, 20, 20, 20]
    assert loop.next_delay() == 2


@pytest.mark.asyncio
async def test_degraded_after_threshold_then_recovered():
    events = []
    loop = PollingLoop(
        "t",
        _Source(*[StoreUnavailableError("down")] * 3, "ok"),
        lambda _r: None,
        interval=1,
        failure_threshold=3,
        on_degraded=lambda: events.append("degraded"),
        on_recovered=lambda: events.append("recovered"),
    )

    await loop.run_once()
    await loop.run_once()
    assert events == []
    await loop.run_once()
    assert events == ["degraded"]
    assert loop.degraded is True

    await loop.run_once()
    assert events == ["degraded", "recovered"]


@pytest.mark.asyncio
async def test_stop_discards_in_flight_result():
    gate = asyncio.Event()
    applied = []

    async def slow_fetch():
        await gate.wait()
        return "stale"

    loop = PollingLoop("t", slow_fetch, applied.append, interval=1)
    in_flight = asyncio.create_task(loop.run_once())
    await asyncio.sleep(0)

    await loop.stop()
    gate.set()

    assert await in_flight is False
    assert applied == []


@pytest.mark.asyncio
async def test_started_loop_fetches_immediately_and_stops():
    source = _Source("first")
    applied = []
    loop = PollingLoop("t", source, applied.append, interval=30)

    loop.start()
    for _ in range(10):
        await asyncio.sleep(0)
    assert applied == ["first"]
    assert loop.running

    await loop.stop()
    assert not loop.running


@pytest.mark.asyncio
async def test_trigger_wakes_loop_early():
    source = _Source("a", "b")
    applied = []
    loop = PollingLoop("t", source, applied.append, interval=30)
    loop.start()
    for _ in range(10):
        await asyncio.sleep(0)

    loop.trigger()
    for _ in range(10):
        await asyncio.sleep(0)

    await loop.stop()
    assert applied == ["a", "b"]


@pytest.mark.asyncio
async def test_loop_survives_failures():
    source = _Source(StoreUnavailableError("down"), "ok")
    applied = []
    loop = PollingLoop("t", source, applied.append, interval=0.01, max_backoff=0.02)

    loop.start()
    await asyncio.sleep(0.1)
    await loop.stop()

    assert "ok" in applied
    assert source.calls >= 2


@pytest.mark.asyncio
async def test_inactive_thread_fetch_dropped_after_switch():
    state = ChatViewState()
    a, b = uuid.uuid4(), uuid.uuid4()
    state.open_thread(a)
    state.open_thread(b)

    state.apply_messages(a, [make_message(conversation_id=a)])

    assert state.thread.value == []

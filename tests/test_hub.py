from __future__ import annotations

import asyncio
import logging
from typing import List

import pytest

from sse_hub.models import Subscriber
from sse_hub.web.events import Hub


def received(sub: Subscriber) -> List[str]:
    """Everything queued for ``sub`` so far, without the end marker."""
    out: List[str] = []
    while not sub.outbox.empty():
        msg = sub.outbox.get_nowait()
        if msg is not None:
            out.append(msg)
    return out


def test_publish_reaches_every_subscriber_in_order():
    async def scenario():
        hub = Hub()
        hub.start()
        a, b = hub.subscribe(), hub.subscribe()
        for i in range(20):
            hub.publish(f"m{i}")
        await hub.flush()
        await hub.stop()
        return received(a), received(b)

    a, b = asyncio.run(scenario())
    expected = [f"m{i}" for i in range(20)]
    assert a == expected
    assert b == expected


def test_end_to_end_register_deregister_scenario():
    async def scenario():
        hub = Hub()
        hub.start()
        subs = [hub.subscribe() for _ in range(3)]
        assert [s.id for s in subs] == [1, 2, 3]
        hub.publish("A")
        hub.deregister(2)
        hub.publish("B")
        await hub.flush()
        result = {s.id: received(s) for s in subs}
        await hub.stop()
        return result

    assert asyncio.run(scenario()) == {1: ["A", "B"], 2: ["A"], 3: ["A", "B"]}


def test_subscriber_registered_after_publish_misses_it():
    async def scenario():
        hub = Hub()
        hub.start()
        early = hub.subscribe()
        hub.publish("before")
        late = hub.subscribe()
        hub.publish("after")
        await hub.flush()
        await hub.stop()
        return received(early), received(late)

    early, late = asyncio.run(scenario())
    assert early == ["before", "after"]
    assert late == ["after"]


def test_register_applies_before_later_publish_even_without_loop_running():
    async def scenario():
        hub = Hub()
        sub = hub.subscribe()
        hub.publish("queued")
        hub.start()
        await hub.flush()
        await hub.stop()
        return received(sub)

    assert asyncio.run(scenario()) == ["queued"]


def test_deregister_unknown_or_twice_is_noop():
    async def scenario():
        hub = Hub()
        hub.start()
        sub = hub.subscribe()
        other = hub.subscribe()
        hub.deregister(999)
        hub.deregister(sub.id)
        hub.deregister(sub.id)
        hub.publish("x")
        await hub.flush()
        count = hub.subscriber_count
        await hub.stop()
        return sub, other, count

    sub, other, count = asyncio.run(scenario())
    assert count == 1
    assert sub.closed
    assert received(sub) == []
    assert received(other) == ["x"]


def test_deregister_closes_outbox_and_wakes_reader():
    async def scenario():
        hub = Hub()
        hub.start()
        sub = hub.subscribe()
        reader = asyncio.ensure_future(sub.outbox.get())
        await hub.flush()
        hub.deregister(sub.id)
        msg = await asyncio.wait_for(reader, timeout=1)
        await hub.stop()
        return msg

    assert asyncio.run(scenario()) is None


def test_stalled_subscriber_does_not_block_others():
    async def scenario():
        hub = Hub(outbox_size=2)
        hub.start()
        stalled = hub.subscribe()
        live = Subscriber(id=hub.new_subscriber().id, outbox=asyncio.Queue())
        hub.register(live)
        for i in range(10):
            hub.publish(str(i))
        await asyncio.wait_for(hub.flush(), timeout=1)
        stats = hub.stats()
        await hub.stop()
        return stalled, live, stats

    stalled, live, stats = asyncio.run(scenario())
    assert received(live) == [str(i) for i in range(10)]
    assert stalled.dropped == 8
    assert stats.dropped == 8
    assert stats.delivered == 12
    assert stats.published == 10


def test_deregister_during_publish_burst_does_not_deadlock():
    async def scenario():
        hub = Hub(outbox_size=5)
        hub.start()
        keep = Subscriber(id=hub.new_subscriber().id, outbox=asyncio.Queue())
        hub.register(keep)
        churn = [hub.subscribe() for _ in range(10)]
        for i in range(50):
            hub.publish(str(i))
            if i < len(churn):
                hub.deregister(churn[i].id)
        await asyncio.wait_for(hub.flush(), timeout=1)
        count = hub.subscriber_count
        await hub.stop()
        return keep, churn, count

    keep, churn, count = asyncio.run(scenario())
    assert count == 1
    assert received(keep) == [str(i) for i in range(50)]
    assert all(s.closed for s in churn)


def test_ids_stay_unique_after_removals():
    async def scenario():
        hub = Hub()
        hub.start()
        first = [hub.subscribe() for _ in range(3)]
        hub.deregister(first[0].id)
        hub.deregister(first[1].id)
        later = [hub.subscribe() for _ in range(3)]
        await hub.flush()
        await hub.stop()
        return [s.id for s in first], [s.id for s in later]

    first, later = asyncio.run(scenario())
    assert first == [1, 2, 3]
    assert later == [4, 5, 6]


def test_duplicate_registration_replaces_previous(caplog: pytest.LogCaptureFixture):
    async def scenario():
        hub = Hub()
        hub.start()
        old = hub.subscribe()
        new = Subscriber(id=old.id, outbox=asyncio.Queue())
        hub.register(new)
        hub.publish("x")
        await hub.flush()
        count = hub.subscriber_count
        await hub.stop()
        return old, new, count

    with caplog.at_level(logging.WARNING, logger="sse_hub.web.events"):
        old, new, count = asyncio.run(scenario())
    assert count == 1
    assert old.closed
    assert received(old) == []
    assert received(new) == ["x"]
    assert "registered twice" in caplog.text


def test_failing_subscriber_is_isolated():
    class Broken(Subscriber):
        def offer(self, message: str) -> bool:
            raise RuntimeError("socket gone")

    async def scenario():
        hub = Hub()
        hub.start()
        hub.register(Broken(id=hub.new_subscriber().id))
        good = hub.subscribe()
        hub.publish("a")
        hub.publish("b")
        await hub.flush()
        running = hub.running
        await hub.stop()
        return good, running

    good, running = asyncio.run(scenario())
    assert running
    assert received(good) == ["a", "b"]


def test_stop_closes_everyone_and_is_idempotent():
    async def scenario():
        hub = Hub()
        hub.start()
        subs = [hub.subscribe() for _ in range(3)]
        hub.publish("last")
        await hub.stop()
        await hub.stop()
        late = hub.subscribe()
        hub.publish("ignored")
        return subs, late, hub

    subs, late, hub = asyncio.run(scenario())
    assert not hub.running
    assert hub.subscriber_count == 0
    for s in subs:
        assert s.closed
        assert received(s) == ["last"]
    assert late.closed
    assert received(late) == []


def test_stop_without_start_closes_pending_registrations():
    async def scenario():
        hub = Hub()
        sub = hub.subscribe()
        await hub.stop()
        return sub

    assert asyncio.run(scenario()).closed


@pytest.mark.parametrize("size", [0, -1])
def test_hub_rejects_unbounded_outbox(size: int):
    with pytest.raises(ValueError, match="outbox_size"):
        Hub(outbox_size=size)


def test_close_makes_room_for_end_marker():
    async def scenario():
        sub = Subscriber(id=1, outbox=asyncio.Queue(maxsize=2))
        assert sub.offer("a")
        assert sub.offer("b")
        assert not sub.offer("c")
        sub.close()
        sub.close()
        assert not sub.offer("d")
        return sub

    sub = asyncio.run(scenario())
    assert sub.dropped == 1
    assert sub.outbox.get_nowait() == "b"
    assert sub.outbox.get_nowait() is None

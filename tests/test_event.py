import pytest
import trio
import trio.testing

from discord_ipc.event import DispatchEvent, EventManager, ReadyEvent


def test_listeners_must_be_async():
    events = EventManager()

    with pytest.raises(TypeError):
        events.add_listener(ReadyEvent, lambda event: None)


def test_event_types_must_be_event_classes():
    events = EventManager()

    async def listener(event):
        pass

    with pytest.raises(TypeError):
        events.add_listener("ready", listener)


@pytest.mark.trio
async def test_fire_event_runs_every_listener(nursery):
    events = EventManager()
    events.nursery = nursery
    seen = []

    async def first(event):
        seen.append(("first", event.data))

    async def second(event):
        seen.append(("second", event.data))

    async def unrelated(event):
        seen.append(("unrelated", event))

    events.add_listener(ReadyEvent, first)
    events.add_listener(ReadyEvent, second)
    events.add_listener(DispatchEvent, unrelated)

    events.fire_event(ReadyEvent({"v": 1}))
    await trio.testing.wait_all_tasks_blocked()

    assert sorted(seen) == [("first", {"v": 1}), ("second", {"v": 1})]

    events.remove_listener(ReadyEvent, first)
    seen.clear()
    events.fire_event(ReadyEvent({"v": 2}))
    await trio.testing.wait_all_tasks_blocked()

    assert seen == [("second", {"v": 2})]


@pytest.mark.trio
async def test_failing_listener_is_contained(nursery):
    events = EventManager()
    events.nursery = nursery
    seen = []

    async def broken(event):
        raise RuntimeError("oops")

    async def working(event):
        seen.append(event)

    events.add_listener(ReadyEvent, broken)
    events.add_listener(ReadyEvent, working)

    events.fire_event(ReadyEvent(None))
    await trio.testing.wait_all_tasks_blocked()

    assert len(seen) == 1


@pytest.mark.trio
async def test_wait_for_with_predicate(nursery):
    events = EventManager()
    events.nursery = nursery

    async def fire():
        events.fire_event(DispatchEvent("GUILD_STATUS", {}))
        events.fire_event(DispatchEvent("ACTIVITY_JOIN", {"secret": "s"}))

    nursery.start_soon(fire)
    with trio.fail_after(5):
        event = await events.wait_for(DispatchEvent, lambda e: e.event == "ACTIVITY_JOIN")

    assert event.data == {"secret": "s"}

    await trio.testing.wait_all_tasks_blocked()
    assert len(events.temporary_listeners) == 0


@pytest.mark.trio
async def test_wait_for_cancelled_removes_listener(autojump_clock):
    events = EventManager()

    with trio.move_on_after(1):
        await events.wait_for(ReadyEvent)

    assert len(events.temporary_listeners) == 0

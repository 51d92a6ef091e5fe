import asyncio

from gaze_rooms.models.events import BroadcastEvent, PresenceEvent, PresenceKind
from gaze_rooms.pipeline import EventDispatcher


def presence(kind, key=None):
    return PresenceEvent(kind=kind, room=1, key=key)


async def test_presence_events_handled_in_order():
    dispatcher = EventDispatcher()
    handled = []
    dispatcher.on_presence(handled.append)

    events = [
        presence(PresenceKind.JOIN, "a"),
        presence(PresenceKind.SYNC),
        presence(PresenceKind.LEAVE, "a"),
        presence(PresenceKind.SYNC),
    ]
    for event in events:
        dispatcher.put_presence(event)

    await dispatcher.start()
    await dispatcher.drain()
    await dispatcher.stop()

    assert handled == events


async def test_async_handlers_are_awaited_one_at_a_time():
    dispatcher = EventDispatcher()
    active = []
    overlap = []

    async def slow(event):
        active.append(event)
        overlap.append(len(active))
        await asyncio.sleep(0.001)
        active.remove(event)

    dispatcher.on_presence(slow)
    await dispatcher.start()
    for key in "abc":
        dispatcher.put_presence(presence(PresenceKind.JOIN, key))
    await dispatcher.drain()
    await dispatcher.stop()

    assert overlap == [1, 1, 1]


async def test_failing_handler_does_not_stop_lane(caplog):
    dispatcher = EventDispatcher()
    handled = []

    def flaky(event):
        if event.key == "bad":
            raise ValueError("boom")
        handled.append(event.key)

    dispatcher.on_presence(flaky)
    await dispatcher.start()
    for key in ("a", "bad", "b"):
        dispatcher.put_presence(presence(PresenceKind.JOIN, key))
    await dispatcher.drain()
    await dispatcher.stop()

    assert handled == ["a", "b"]
    assert "Handler failed on presence event" in caplog.text


async def test_broadcast_lane_is_separate():
    dispatcher = EventDispatcher()
    presences, broadcasts = [], []
    dispatcher.on_presence(presences.append)
    dispatcher.on_broadcast(broadcasts.append)

    await dispatcher.start()
    dispatcher.put_broadcast(BroadcastEvent(room=1, event="eye_tracking", payload={"userId": "b"}))
    await dispatcher.drain()
    await dispatcher.stop()

    assert presences == []
    assert [b.payload for b in broadcasts] == [{"userId": "b"}]


async def test_stop_and_restart():
    dispatcher = EventDispatcher()
    handled = []
    dispatcher.on_presence(handled.append)

    await dispatcher.start()
    assert dispatcher.is_running
    await dispatcher.stop()
    assert not dispatcher.is_running
    await dispatcher.stop()

    await dispatcher.start()
    dispatcher.put_presence(presence(PresenceKind.SYNC))
    await dispatcher.drain()
    await dispatcher.stop()

    assert len(handled) == 1

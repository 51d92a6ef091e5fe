import asyncio

from gaze_rooms.models.events import PresenceKind
from gaze_rooms.realtime import (
    InMemoryRealtimeHub,
    PhoenixRealtimeClient,
    SubscribeStatus,
    apply_diff,
    apply_state,
)

from .conftest import presence_meta, settle


def recorder(channel):
    events = []
    for kind in PresenceKind:
        channel.on_presence(kind, lambda key, kind=kind: events.append((kind, key)))
    return events


class TestInMemoryHub:

    async def test_track_fans_out_join_then_sync(self, hub):
        watcher = hub.channel("room_1", presence_key="w")
        await watcher.subscribe()
        events = recorder(watcher)

        joiner = hub.channel("room_1", presence_key="j")
        await joiner.subscribe()
        await joiner.track(presence_meta(1)[0])
        await settle()

        assert events == [(PresenceKind.JOIN, "j"), (PresenceKind.SYNC, None)]
        assert set(watcher.presence_state()) == {"j"}
        assert hub.members("room_1") == ["j"]

    async def test_unsubscribe_untracks(self, hub):
        watcher = hub.channel("room_1", presence_key="w")
        await watcher.subscribe()
        leaver = hub.channel("room_1", presence_key="l")
        await leaver.subscribe()
        await leaver.track(presence_meta(1)[0])
        await settle()
        events = recorder(watcher)

        await leaver.unsubscribe()
        await settle()

        assert events == [(PresenceKind.LEAVE, "l"), (PresenceKind.SYNC, None)]
        assert hub.members("room_1") == []
        assert hub.subscribers("room_1") == 1

    async def test_retrack_replaces_payload(self, hub):
        channel = hub.channel("room_1", presence_key="me")
        await channel.subscribe()
        await channel.track({"online_at": "t0", "room": 1})
        await channel.track({"online_at": "t0", "room": 1, "x": 0.5, "y": 0.5})
        assert channel.presence_state() == {"me": [{"online_at": "t0", "room": 1, "x": 0.5, "y": 0.5}]}

    async def test_broadcast_skips_sender(self, hub):
        sender = hub.channel("room_1", presence_key="s")
        receiver = hub.channel("room_1", presence_key="r")
        other_room = hub.channel("room_2", presence_key="o")
        for channel in (sender, receiver, other_room):
            await channel.subscribe()

        received = {"s": [], "r": [], "o": []}
        sender.on_broadcast("eye_tracking", received["s"].append)
        receiver.on_broadcast("eye_tracking", received["r"].append)
        other_room.on_broadcast("eye_tracking", received["o"].append)

        await sender.send("eye_tracking", {"userId": "s"})
        await settle()

        assert received == {"s": [], "r": [{"userId": "s"}], "o": []}

    async def test_refused_channel(self):
        hub = InMemoryRealtimeHub(refuse=("room_discovery",))
        channel = hub.channel("room_discovery")
        assert await channel.subscribe() is SubscribeStatus.CHANNEL_ERROR
        assert channel.presence_state() == {}


class TestPresenceTransforms:

    def test_state_snapshot(self):
        snapshot = {
            "a": {"metas": [{"online_at": "t0", "phx_ref": "1"}]},
            "b": {"metas": [{"online_at": "t1", "phx_ref": "2"}]},
        }
        state, joined, left = apply_state({"gone": [{"phx_ref": "0"}]}, snapshot)
        assert set(state) == {"a", "b"}
        assert joined == ["a", "b"]
        assert left == ["gone"]

    def test_state_snapshot_known_members_not_rejoined(self):
        current = {"a": [{"online_at": "t0", "phx_ref": "1"}]}
        state, joined, left = apply_state(current, {"a": {"metas": [{"online_at": "t0", "phx_ref": "1"}]}})
        assert state == current
        assert joined == []
        assert left == []

    def test_diff_join_and_leave(self):
        current = {"a": [{"phx_ref": "1"}], "b": [{"phx_ref": "2"}]}
        diff = {
            "joins": {"c": {"metas": [{"phx_ref": "3"}]}},
            "leaves": {"b": {"metas": [{"phx_ref": "2"}]}},
        }
        state, joined, left = apply_diff(current, diff)
        assert set(state) == {"a", "c"}
        assert joined == ["c"]
        assert left == ["b"]
        assert set(current) == {"a", "b"}

    def test_diff_retrack_keeps_member(self):
        current = {"a": [{"online_at": "t0", "phx_ref": "1"}]}
        diff = {
            "joins": {"a": {"metas": [{"online_at": "t0", "x": 0.2, "phx_ref": "2"}]}},
            "leaves": {"a": {"metas": [{"online_at": "t0", "phx_ref": "1"}]}},
        }
        state, joined, left = apply_diff(current, diff)
        assert state == {"a": [{"online_at": "t0", "x": 0.2, "phx_ref": "2"}]}
        assert joined == ["a"]
        assert left == []


class FakeWebSocket:

    def __init__(self):
        self.closed = False
        self.sent = []

    async def send_json(self, message):
        self.sent.append(message)

    async def close(self):
        self.closed = True


def connected_client(**kwargs) -> PhoenixRealtimeClient:
    client = PhoenixRealtimeClient("ws://localhost:4000/realtime/v1/", **kwargs)
    client._ws = FakeWebSocket()
    return client


class TestPhoenixChannel:

    async def test_join_ok(self):
        client = connected_client(join_timeout_s=1.0)
        channel = client.channel("room_1", presence_key="me")

        task = asyncio.create_task(channel.subscribe())
        await settle()

        join = client._ws.sent[0]
        assert join["topic"] == "realtime:room_1"
        assert join["event"] == "phx_join"
        assert join["payload"]["config"]["presence"] == {"key": "me"}
        assert join["payload"]["config"]["broadcast"] == {"ack": False, "self": False}

        client._route({"topic": join["topic"], "event": "phx_reply", "payload": {"status": "ok"}, "ref": join["ref"]})
        assert await task is SubscribeStatus.SUBSCRIBED

    async def test_join_error_reply(self):
        client = connected_client(join_timeout_s=1.0)
        channel = client.channel("room_discovery")

        task = asyncio.create_task(channel.subscribe())
        await settle()
        join = client._ws.sent[0]
        client._route({"topic": join["topic"], "event": "phx_reply", "payload": {"status": "error"}, "ref": join["ref"]})

        assert await task is SubscribeStatus.CHANNEL_ERROR

    async def test_join_timeout(self):
        client = connected_client(join_timeout_s=0.01)
        assert await client.channel("room_1").subscribe() is SubscribeStatus.TIMED_OUT

    async def test_join_without_connection(self):
        client = PhoenixRealtimeClient("ws://localhost:4000/realtime/v1")
        assert await client.channel("room_1").subscribe() is SubscribeStatus.CLOSED

    async def test_presence_and_broadcast_messages(self):
        client = connected_client()
        channel = client.channel("room_1", presence_key="me")
        client._channels[channel.topic] = channel
        events = recorder(channel)
        broadcasts = []
        channel.on_broadcast("eye_tracking", broadcasts.append)

        client._route({
            "topic": "realtime:room_1",
            "event": "presence_state",
            "payload": {"me": {"metas": [{"online_at": "t0", "phx_ref": "1"}]}},
            "ref": None,
        })
        client._route({
            "topic": "realtime:room_1",
            "event": "presence_diff",
            "payload": {"joins": {"b": {"metas": [{"online_at": "t1", "phx_ref": "2"}]}}, "leaves": {}},
            "ref": None,
        })
        client._route({
            "topic": "realtime:room_1",
            "event": "broadcast",
            "payload": {"type": "broadcast", "event": "eye_tracking", "payload": {"userId": "b"}},
            "ref": None,
        })

        assert events == [
            (PresenceKind.JOIN, "me"),
            (PresenceKind.SYNC, None),
            (PresenceKind.JOIN, "b"),
            (PresenceKind.SYNC, None),
        ]
        assert set(channel.presence_state()) == {"me", "b"}
        assert broadcasts == [{"userId": "b"}]

    async def test_track_and_send_wire_format(self):
        client = connected_client()
        channel = client.channel("room_1", presence_key="me")
        channel._joined = True

        await channel.track({"online_at": "t0", "room": 1})
        await channel.send("eye_tracking", {"userId": "me"})

        track, broadcast = client._ws.sent
        assert track["event"] == "presence"
        assert track["payload"] == {"type": "presence", "event": "track", "payload": {"online_at": "t0", "room": 1}}
        assert broadcast["event"] == "broadcast"
        assert broadcast["payload"] == {"type": "broadcast", "event": "eye_tracking", "payload": {"userId": "me"}}

import json

from gaze_rooms.__main__ import build_client, build_provider_factory
from gaze_rooms.configs import AppSettings
from gaze_rooms.feed import ViewFeed, view_message
from gaze_rooms.models.gaze import GazeSample
from gaze_rooms.models.presence import RoomView, Seat, SeatedParticipant
from gaze_rooms.providers import DummyGazeProvider
from gaze_rooms.realtime import InMemoryRealtimeHub, PhoenixRealtimeClient


def test_view_message_shape():
    view = RoomView((
        SeatedParticipant("b", "t1", Seat.CENTER, 1),
        SeatedParticipant("c", "t2", Seat.TOP_LEFT, 1),
    ))
    eyes = {"b": GazeSample("b", True, 0.25, 0.75)}

    message = view_message(view, eyes, {"connected": True, "calibrated": True, "joined": True})

    assert message["flags"]["joined"] is True
    b, c = message["participants"]
    assert b == {
        "userId": "b",
        "position": "center",
        "cell": [2, 2],
        "alignment": "center",
        "eyes": {"userId": "b", "isBlinking": True, "gazeX": 0.25, "gazeY": 0.75},
    }
    assert c["position"] == "topLeft"
    assert c["alignment"] == "end"
    assert c["eyes"] is None
    json.dumps(message)


async def test_send_before_start_is_noop():
    feed = ViewFeed("inproc://view-test")
    await feed.send({"participants": []})
    await feed.close()


def test_build_client():
    settings = AppSettings()
    assert isinstance(build_client(settings, in_memory=True), InMemoryRealtimeHub)
    assert isinstance(build_client(settings, in_memory=False), PhoenixRealtimeClient)


def test_build_dummy_provider_factory():
    factory = build_provider_factory(AppSettings(), dummy=True)
    assert factory.func is DummyGazeProvider
    assert factory.keywords == {"width": 1920, "height": 1080}

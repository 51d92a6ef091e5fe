from .events import BroadcastEvent, PresenceEvent, PresenceKind
from .gaze import EyePatches, GazeSample, RawGazeFrame
from .presence import PresenceRecord, RoomView, Seat, SeatedParticipant

__all__ = [
    "BroadcastEvent",
    "EyePatches",
    "GazeSample",
    "PresenceEvent",
    "PresenceKind",
    "PresenceRecord",
    "RawGazeFrame",
    "RoomView",
    "Seat",
    "SeatedParticipant",
]

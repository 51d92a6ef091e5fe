from .configs import AppSettings
from .core import RoomSession
from .errors import (
    GazeRoomsError,
    MalformedPresenceError,
    ProviderBusyError,
    ProviderUnavailableError,
    RoomConnectionError,
)
from .models import GazeSample, RoomView, Seat
from .pipeline import GazeBroadcastPipeline
from .presence import PresenceReconciler, SeatAssigner, SeatTable
from .rooms import RoomRouter
from .signals import BrightnessBlinkDetector, limit

__all__ = [
    "AppSettings",
    "BrightnessBlinkDetector",
    "GazeBroadcastPipeline",
    "GazeRoomsError",
    "GazeSample",
    "MalformedPresenceError",
    "PresenceReconciler",
    "ProviderBusyError",
    "ProviderUnavailableError",
    "RoomConnectionError",
    "RoomRouter",
    "RoomSession",
    "RoomView",
    "Seat",
    "SeatAssigner",
    "SeatTable",
    "limit",
]

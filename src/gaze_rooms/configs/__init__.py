from .app import (
    AppSettings,
    BlinkSettings,
    CalibrationSettings,
    FeedSettings,
    RealtimeSettings,
    RoomSettings,
    ThrottleSettings,
    ViewportSettings,
)
from .utils import LoggingConfig

__all__ = [
    "AppSettings",
    "BlinkSettings",
    "CalibrationSettings",
    "FeedSettings",
    "LoggingConfig",
    "RealtimeSettings",
    "RoomSettings",
    "ThrottleSettings",
    "ViewportSettings",
]

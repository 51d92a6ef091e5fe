import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, PositiveInt, field_validator

from .utils import LoggingConfig

logger = logging.getLogger(__name__)


def _package_version() -> str:
    try:
        return version("gaze-rooms")
    except PackageNotFoundError:
        return "0.0.0+local"


class ViewportSettings(BaseModel):
    """Size of the local viewport used to normalise raw gaze coordinates."""
    width_px: PositiveInt = Field(1920)
    height_px: PositiveInt = Field(1080)


class RealtimeSettings(BaseModel):
    """Connection to the realtime presence/broadcast backend."""
    use_in_memory: bool = Field(False, description="Use the process-local hub instead of a network backend.")
    url: str = Field("ws://localhost:4000/realtime/v1", description="Base websocket URL of the realtime service.")
    api_key: str = Field("", description="API key sent as the `apikey` query parameter.")
    heartbeat_interval_s: float = Field(25.0, gt=0, description="Interval between Phoenix heartbeats.")
    join_timeout_s: float = Field(10.0, gt=0, description="How long to wait for a channel join reply.")


class RoomSettings(BaseModel):
    """Room sharding parameters."""
    discovery_channel: str = "room_discovery"
    room_prefix: str = "room_"
    capacity: int = Field(10, description="Members per room, self included.")
    first_room: PositiveInt = 1
    max_rooms: Optional[PositiveInt] = Field(None, description="Give up after this many rooms. None means unbounded.")

    @field_validator("capacity")
    @classmethod
    def validate_capacity(cls, value: int) -> int:
        if value < 2:
            raise ValueError("A room must hold at least two members.")
        return value


class BlinkSettings(BaseModel):
    """Rolling-baseline blink detection parameters."""
    window_size: PositiveInt = 30
    threshold_multiplier: float = Field(1.2, gt=1.0)
    debounce_ms: float = Field(100.0, ge=0)
    stride: PositiveInt = Field(4, description="Pixel sampling stride along both patch axes.")


class ThrottleSettings(BaseModel):
    broadcast_window_ms: float = Field(50.0, gt=0)
    cursor_window_ms: float = Field(200.0, gt=0)


class CalibrationSettings(BaseModel):
    """Settings for the calibration procedure."""
    points_to_calibrate: list[tuple[float, float]] = Field(
        default=[
            (0.1, 0.1), (0.9, 0.1),
            (0.5, 0.5),
            (0.1, 0.9), (0.9, 0.9),
        ],
        description="List of normalized (0-1) screen coordinates to use as calibration targets."
    )


class FeedSettings(BaseModel):
    enabled: bool = False
    host: str = "tcp://*:5556"


class AppSettings(BaseSettings):
    """
    Main application settings, loaded from environment variables and defaults.
    """
    use_dummy_mode: bool = False

    viewport: ViewportSettings = Field(default_factory=ViewportSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    rooms: RoomSettings = Field(default_factory=RoomSettings)
    blink: BlinkSettings = Field(default_factory=BlinkSettings)
    throttle: ThrottleSettings = Field(default_factory=ThrottleSettings)
    calibration: CalibrationSettings = Field(default_factory=CalibrationSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)

    # Logging
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="GAZE_ROOMS__",
        env_file=".env",
        env_nested_delimiter='__',
        case_sensitive=False
    )

    @property
    def version(self) -> str:
        return _package_version()

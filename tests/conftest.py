import asyncio
from typing import Optional, Union

import numpy as np
import pytest

from gaze_rooms.models.gaze import EyePatches
from gaze_rooms.providers.base import GazeProvider
from gaze_rooms.providers.session import ProviderSession
from gaze_rooms.realtime.memory import InMemoryRealtimeHub


class FakeClock:
    """Manually advanced monotonic clock, in seconds."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider(GazeProvider):
    """Serves fixed eye patches; frames are put on the queue by the test."""

    def __init__(self, queue=None, stop_event=None, patches: Union[EyePatches, Exception, None] = None):
        super().__init__(
            queue if queue is not None else asyncio.Queue(),
            stop_event if stop_event is not None else asyncio.Event(),
        )
        self.patches = patches
        self.calibration_points: list[tuple[float, float, str]] = []
        self.ran = False

    async def run(self) -> None:
        self.ran = True
        try:
            await self._stop_event.wait()
        finally:
            self._put_end()

    async def eye_patches(self) -> Optional[EyePatches]:
        if isinstance(self.patches, Exception):
            raise self.patches
        return self.patches

    async def record_calibration(self, x: float, y: float, label: str = "click") -> None:
        self.calibration_points.append((x, y, label))


def flat_patch(brightness: float, shape: tuple[int, int] = (8, 8)) -> np.ndarray:
    return np.full((*shape, 3), brightness, dtype=np.float64)


def presence_meta(second: int, **extra) -> list[dict]:
    return [{"online_at": f"2026-01-01T00:00:{second:02d}+00:00", **extra}]


async def settle(rounds: int = 25) -> None:
    """Lets queued call_soon callbacks and dispatcher lanes run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def occupy(hub: InMemoryRealtimeHub, room: str, count: int, prefix: str = "peer") -> list:
    """Subscribes and tracks `count` raw members in `room`."""
    channels = []
    for i in range(count):
        channel = hub.channel(room, presence_key=f"{prefix}-{i}")
        await channel.subscribe()
        await channel.track(presence_meta(i)[0])
        channels.append(channel)
    await settle()
    return channels


@pytest.fixture(autouse=True)
def release_provider_lease():
    yield
    ProviderSession._active = None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hub() -> InMemoryRealtimeHub:
    return InMemoryRealtimeHub()

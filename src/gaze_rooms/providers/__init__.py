from .base import FrameQueue, GazeProvider
from .dummy import DummyGazeProvider
from .session import ProviderFactory, ProviderSession

__all__ = [
    "DummyGazeProvider",
    "FrameQueue",
    "GazeProvider",
    "ProviderFactory",
    "ProviderSession",
]

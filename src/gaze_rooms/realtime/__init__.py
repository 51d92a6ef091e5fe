from .base import PresenceState, RealtimeChannel, RealtimeClient, SubscribeStatus
from .memory import InMemoryChannel, InMemoryRealtimeHub
from .phoenix import PhoenixChannel, PhoenixRealtimeClient
from .presence import apply_diff, apply_state

__all__ = [
    "InMemoryChannel",
    "InMemoryRealtimeHub",
    "PhoenixChannel",
    "PhoenixRealtimeClient",
    "PresenceState",
    "RealtimeChannel",
    "RealtimeClient",
    "SubscribeStatus",
    "apply_diff",
    "apply_state",
]

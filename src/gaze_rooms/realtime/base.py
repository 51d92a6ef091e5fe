from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from ..models.events import PresenceKind

PresenceState = dict[str, list[dict[str, Any]]]
PresenceHandler = Callable[[Optional[str]], None]
BroadcastHandler = Callable[[Mapping[str, Any]], None]


class SubscribeStatus(str, Enum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


class RealtimeChannel(ABC):
    """
    One named channel on the realtime backend.

    Presence is replicated per key and announced to subscribers as
    join/leave/sync callbacks; broadcasts are relayed to current subscribers
    only and never replayed. Handlers are plain callables invoked on the
    event loop; they must not block.
    """

    def __init__(self, name: str, presence_key: Optional[str] = None):
        self.name = name
        self.presence_key = presence_key
        self._presence_handlers: dict[PresenceKind, list[PresenceHandler]] = {kind: [] for kind in PresenceKind}
        self._broadcast_handlers: dict[str, list[BroadcastHandler]] = {}

    def on_presence(self, kind: PresenceKind, handler: PresenceHandler) -> "RealtimeChannel":
        """
        Registers a presence handler. Join/leave handlers receive the
        affected key, sync handlers receive None.
        """
        self._presence_handlers[PresenceKind(kind)].append(handler)
        return self

    def on_broadcast(self, event: str, handler: BroadcastHandler) -> "RealtimeChannel":
        self._broadcast_handlers.setdefault(event, []).append(handler)
        return self

    def _emit_presence(self, kind: PresenceKind, key: Optional[str] = None) -> None:
        for handler in list(self._presence_handlers[kind]):
            handler(key)

    def _emit_broadcast(self, event: str, payload: Mapping[str, Any]) -> None:
        for handler in list(self._broadcast_handlers.get(event, ())):
            handler(payload)

    @abstractmethod
    async def subscribe(self) -> SubscribeStatus:
        """Joins the channel and returns the backend's verdict."""
        ...

    @abstractmethod
    async def track(self, payload: Mapping[str, Any]) -> None:
        """Publishes (or replaces) this client's presence payload."""
        ...

    @abstractmethod
    def presence_state(self) -> PresenceState:
        """Current replicated membership: key -> list of metas."""
        ...

    @abstractmethod
    async def send(self, event: str, payload: Mapping[str, Any]) -> None:
        """Sends an ephemeral broadcast to the other subscribers."""
        ...

    @abstractmethod
    async def unsubscribe(self) -> None:
        ...


class RealtimeClient(ABC):
    """Connection to a realtime presence/broadcast backend."""

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    def channel(self, name: str, presence_key: Optional[str] = None) -> RealtimeChannel:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

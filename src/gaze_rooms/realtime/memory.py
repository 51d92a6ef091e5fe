import asyncio
import copy
import logging
from typing import Any, Mapping, Optional

from ..models.events import PresenceKind
from .base import PresenceState, RealtimeChannel, RealtimeClient, SubscribeStatus

logger = logging.getLogger(__name__)


class InMemoryRealtimeHub(RealtimeClient):
    """
    A process-local stand-in for the realtime backend.

    Every channel created from the same hub shares presence and broadcast
    delivery, which makes it suitable for development and tests without a
    network. Callbacks are delivered asynchronously via `loop.call_soon`,
    in the order the hub emits them.
    """

    def __init__(self, refuse: tuple[str, ...] = ()):
        """
        Args:
            refuse: Channel names whose subscription is answered with
                    CHANNEL_ERROR, to simulate an unreachable backend.
        """
        self._refuse = set(refuse)
        self._presence: dict[str, PresenceState] = {}
        self._subscribers: dict[str, list["InMemoryChannel"]] = {}
        self.connected = False

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        for name in list(self._subscribers):
            for channel in list(self._subscribers.get(name, [])):
                await channel.unsubscribe()
        self.connected = False

    def channel(self, name: str, presence_key: Optional[str] = None) -> "InMemoryChannel":
        return InMemoryChannel(self, name, presence_key)

    def refuse(self, name: str) -> None:
        self._refuse.add(name)

    def members(self, name: str) -> list[str]:
        return list(self._presence.get(name, {}))

    def subscribers(self, name: str) -> int:
        return len(self._subscribers.get(name, []))

    # --- Hub internals (called by channels) ---

    def _subscribe(self, channel: "InMemoryChannel") -> SubscribeStatus:
        if channel.name in self._refuse:
            return SubscribeStatus.CHANNEL_ERROR
        subscribers = self._subscribers.setdefault(channel.name, [])
        if channel not in subscribers:
            subscribers.append(channel)
        return SubscribeStatus.SUBSCRIBED

    def _state(self, name: str) -> PresenceState:
        return copy.deepcopy(self._presence.get(name, {}))

    def _track(self, channel: "InMemoryChannel", payload: Mapping[str, Any]) -> None:
        self._presence.setdefault(channel.name, {})[channel.presence_key] = [dict(payload)]
        self._fan_out_presence(channel.name, PresenceKind.JOIN, channel.presence_key)

    def _untrack(self, channel: "InMemoryChannel") -> None:
        room = self._presence.get(channel.name, {})
        if room.pop(channel.presence_key, None) is not None:
            self._fan_out_presence(channel.name, PresenceKind.LEAVE, channel.presence_key)
        if not room:
            self._presence.pop(channel.name, None)

    def _unsubscribe(self, channel: "InMemoryChannel") -> None:
        subscribers = self._subscribers.get(channel.name, [])
        if channel in subscribers:
            subscribers.remove(channel)
        if not subscribers:
            self._subscribers.pop(channel.name, None)

    def _fan_out_presence(self, name: str, kind: PresenceKind, key: Optional[str]) -> None:
        loop = asyncio.get_running_loop()
        for subscriber in list(self._subscribers.get(name, [])):
            loop.call_soon(subscriber._deliver_presence, kind, key)
            loop.call_soon(subscriber._deliver_presence, PresenceKind.SYNC, None)

    def _fan_out_broadcast(self, sender: "InMemoryChannel", event: str, payload: Mapping[str, Any]) -> None:
        loop = asyncio.get_running_loop()
        for subscriber in list(self._subscribers.get(sender.name, [])):
            if subscriber is not sender:
                loop.call_soon(subscriber._deliver_broadcast, event, dict(payload))


class InMemoryChannel(RealtimeChannel):

    def __init__(self, hub: InMemoryRealtimeHub, name: str, presence_key: Optional[str] = None):
        super().__init__(name, presence_key)
        self._hub = hub
        self._subscribed = False

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    async def subscribe(self) -> SubscribeStatus:
        await asyncio.sleep(0)
        status = self._hub._subscribe(self)
        self._subscribed = status is SubscribeStatus.SUBSCRIBED
        logger.debug(f"Channel '{self.name}' subscribe -> {status.value}")
        return status

    async def track(self, payload: Mapping[str, Any]) -> None:
        if not self._subscribed:
            raise RuntimeError(f"Cannot track on '{self.name}' before subscribing.")
        if self.presence_key is None:
            raise RuntimeError(f"Channel '{self.name}' has no presence key.")
        self._hub._track(self, payload)

    def presence_state(self) -> PresenceState:
        if not self._subscribed:
            return {}
        return self._hub._state(self.name)

    async def send(self, event: str, payload: Mapping[str, Any]) -> None:
        if not self._subscribed:
            return
        self._hub._fan_out_broadcast(self, event, payload)

    async def unsubscribe(self) -> None:
        if not self._subscribed:
            return
        self._subscribed = False
        self._hub._unsubscribe(self)
        if self.presence_key is not None:
            self._hub._untrack(self)

    def _deliver_presence(self, kind: PresenceKind, key: Optional[str]) -> None:
        if self._subscribed:
            self._emit_presence(kind, key)

    def _deliver_broadcast(self, event: str, payload: Mapping[str, Any]) -> None:
        if self._subscribed:
            self._emit_broadcast(event, payload)

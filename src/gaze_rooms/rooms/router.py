import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..configs import RoomSettings
from .state import RouterState
from ..errors import RoomConnectionError
from ..models.events import BroadcastEvent, PresenceEvent, PresenceKind
from ..realtime.base import RealtimeChannel, RealtimeClient, SubscribeStatus

logger = logging.getLogger(__name__)

PresenceSink = Callable[[PresenceEvent], None]
BroadcastSink = Callable[[BroadcastEvent], None]


@dataclass(frozen=True)
class JoinedRoom:
    """A room this client has been admitted to."""
    number: int
    channel: RealtimeChannel
    presence_payload: dict[str, Any]
    admitting_event: PresenceEvent


class RoomRouter:
    """
    Finds a room with spare capacity and joins it.

    Room n is joined optimistically: subscribe, track, and when our own
    join event arrives count the other members. If the room is full we
    leave and try n + 1. The check is reactive only, so simultaneous
    joiners can briefly push a room over capacity; the next overflowing
    joiner is routed onward, which is how the soft limit converges.
    """

    def __init__(
        self,
        client: RealtimeClient,
        participant_id: str,
        settings: Optional[RoomSettings] = None,
        presence_sink: Optional[PresenceSink] = None,
        broadcast_sink: Optional[BroadcastSink] = None,
        broadcast_events: tuple[str, ...] = ("eye_tracking",),
    ):
        """
        Args:
            client: Connected realtime client.
            participant_id: Our presence key.
            settings: Room sharding parameters.
            presence_sink: Receives every presence event of the room
                           channels. Defaults to `resolve_join`; a session
                           routes them through its dispatcher instead and
                           calls `resolve_join` from there.
            broadcast_sink: Receives broadcasts of the joined room.
            broadcast_events: Broadcast event names to subscribe to.
        """
        self._client = client
        self._participant_id = participant_id
        self._settings = settings or RoomSettings()
        self._presence_sink = presence_sink or self.resolve_join
        self._broadcast_sink = broadcast_sink
        self._broadcast_events = broadcast_events

        self.state = RouterState.IDLE
        self.room_number: Optional[int] = None
        self._discovery: Optional[RealtimeChannel] = None
        self._channel: Optional[RealtimeChannel] = None
        self._admission: Optional[asyncio.Future] = None
        self.presence_payload: dict[str, Any] = {}

    @property
    def participant_id(self) -> str:
        return self._participant_id

    @property
    def channel(self) -> Optional[RealtimeChannel]:
        return self._channel

    @property
    def is_joined(self) -> bool:
        return self.state is RouterState.JOINED

    def room_name(self, number: int) -> str:
        return f"{self._settings.room_prefix}{number}"

    async def join_any_room(self) -> JoinedRoom:
        """
        Discovers the backend, then joins the first room with space.

        Raises:
            RoomConnectionError: The discovery or a room subscription was
                                 refused, or `max_rooms` was exhausted.
        """
        await self._discover()

        number = self._settings.first_room
        while True:
            if self._settings.max_rooms is not None and number >= self._settings.first_room + self._settings.max_rooms:
                self.state = RouterState.CONNECTION_FAILED
                raise RoomConnectionError(f"All {self._settings.max_rooms} rooms are full.")

            joined = await self._try_room(number)
            if joined is not None:
                return joined
            number += 1

    async def _discover(self) -> None:
        # The discovery channel only tells us the transport is ready.
        self.state = RouterState.DISCOVERING
        self._discovery = self._client.channel(self._settings.discovery_channel)
        logger.info(f"Subscribing to discovery channel '{self._discovery.name}'...")

        status = await self._discovery.subscribe()
        if status is not SubscribeStatus.SUBSCRIBED:
            self.state = RouterState.CONNECTION_FAILED
            logger.error(f"Discovery channel not ready ({status.value}); no room will be joined.")
            raise RoomConnectionError(f"Discovery subscription failed: {status.value}")
        logger.info("Realtime backend ready.")

    async def _try_room(self, number: int) -> Optional[JoinedRoom]:
        """Joins room `number`. Returns None when it turned out to be full."""
        self.state = RouterState.JOINING
        self.room_number = number
        self._admission = asyncio.get_running_loop().create_future()

        channel = self._client.channel(self.room_name(number), presence_key=self._participant_id)
        self._channel = channel
        self._bind(channel, number)

        logger.info(f"Joining room {channel.name}...")
        status = await channel.subscribe()
        if status is not SubscribeStatus.SUBSCRIBED:
            self.state = RouterState.CONNECTION_FAILED
            self._channel = None
            raise RoomConnectionError(f"Subscription to {channel.name} failed: {status.value}")

        payload = {"online_at": datetime.now(timezone.utc).isoformat(), "room": number}
        self.presence_payload = payload
        await channel.track(payload)

        admitted, event = await self._admission
        if not admitted:
            await channel.unsubscribe()
            self._channel = None
            self.presence_payload = {}
            return None

        logger.info(f"Joined {channel.name} with {len(event.state) - 1} other member(s).")
        return JoinedRoom(number=number, channel=channel, presence_payload=payload, admitting_event=event)

    def _bind(self, channel: RealtimeChannel, number: int) -> None:
        """Registers backend callbacks; each snapshots membership on delivery."""
        for kind in PresenceKind:
            channel.on_presence(
                kind,
                lambda key, kind=kind: self._presence_sink(
                    PresenceEvent(kind=kind, room=number, key=key, state=channel.presence_state())
                ),
            )
        if self._broadcast_sink is not None:
            for name in self._broadcast_events:
                channel.on_broadcast(
                    name,
                    lambda payload, name=name: self._broadcast_sink(
                        BroadcastEvent(room=number, event=name, payload=payload)
                    ),
                )

    def resolve_join(self, event: PresenceEvent) -> bool:
        """
        Feeds one presence event to the admission logic.

        Returns True when the event belongs to the room we are (now) joined
        to and should be reconciled; False for events of abandoned rooms or
        of a room still waiting for our own join.
        """
        if event.room != self.room_number:
            return False

        if self.state is RouterState.JOINED:
            return True

        if (
            self.state is not RouterState.JOINING
            or event.kind is not PresenceKind.JOIN
            or event.key != self._participant_id
            or self._admission is None
            or self._admission.done()
        ):
            return False

        others = [key for key in event.state if key != self._participant_id]
        if len(others) >= self._settings.capacity - 1:
            logger.info(
                f"{self.room_name(event.room)} is full ({len(others)} others), trying {self.room_name(event.room + 1)}."
            )
            self._admission.set_result((False, event))
            return False

        self.state = RouterState.JOINED
        self._admission.set_result((True, event))
        return True

    async def leave(self) -> None:
        """Unsubscribes from the room and discovery channels."""
        channels = [c for c in (self._channel, self._discovery) if c is not None]
        self._channel = None
        self._discovery = None
        if self._admission is not None and not self._admission.done():
            self._admission.cancel()

        for channel in channels:
            try:
                await channel.unsubscribe()
            except Exception:
                logger.exception(f"Failed to unsubscribe from '{channel.name}'.")

        self.state = RouterState.LEFT
        self.room_number = None
        logger.info("Left room and discovery channels.")

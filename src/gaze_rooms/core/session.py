import asyncio
import logging
import uuid
from typing import Callable, Optional

from ..configs import AppSettings
from ..errors import GazeRoomsError, MalformedPresenceError
from ..models.events import PresenceEvent, PresenceKind
from ..models.presence import RoomView
from ..pipeline.broadcast import EYE_TRACKING_EVENT, GazeBroadcastPipeline
from ..pipeline.dispatcher import EventDispatcher
from ..presence.reconciler import PresenceReconciler
from ..providers.base import GazeProvider
from ..providers.session import ProviderFactory, ProviderSession
from ..realtime.base import RealtimeClient
from ..rooms.router import JoinedRoom, RoomRouter
from ..signals.blink import BrightnessBlinkDetector

logger = logging.getLogger(__name__)

ViewListener = Callable[["RoomSession"], None]


class RoomSession:
    """
    The headless core of one visitor.

    Owns the provider lease, the room router, the event dispatcher and all
    per-room state (seat cache, brightness window, peer eye state). The
    presentation layer reads `view`, `eye_tracking_state` and the
    `connected` / `calibrated` / `joined` flags.
    """

    def __init__(
        self,
        client: RealtimeClient,
        provider_factory: ProviderFactory,
        settings: Optional[AppSettings] = None,
        participant_id: Optional[str] = None,
    ):
        self.settings = settings or AppSettings()
        self.participant_id = participant_id or uuid.uuid4().hex

        self._client = client
        self._provider_session = ProviderSession(provider_factory)
        self._dispatcher = EventDispatcher()
        self._router: Optional[RoomRouter] = None
        self._reconciler: Optional[PresenceReconciler] = None
        self._reconciler_room: Optional[int] = None
        self._frame_task: Optional[asyncio.Task] = None
        self._view_listeners: list[ViewListener] = []

        blink = self.settings.blink
        self.pipeline = GazeBroadcastPipeline(
            participant_id=self.participant_id,
            detector=BrightnessBlinkDetector(
                window_size=blink.window_size,
                threshold_multiplier=blink.threshold_multiplier,
                debounce_ms=blink.debounce_ms,
                stride=blink.stride,
            ),
            viewport=self.settings.viewport,
            broadcast_window_ms=self.settings.throttle.broadcast_window_ms,
            cursor_window_ms=self.settings.throttle.cursor_window_ms,
        )

        self._dispatcher.on_presence(self._handle_presence)
        self._dispatcher.on_broadcast(self.pipeline.on_peer_broadcast)

        self.connected = False
        self.calibrated = False
        self.joined = False
        self.room: Optional[JoinedRoom] = None
        self.full_view = RoomView()

    # --- Presentation-facing state ---

    @property
    def view(self) -> RoomView:
        """Seated members of the current room, self excluded."""
        return self.full_view.without(self.participant_id)

    @property
    def eye_tracking_state(self):
        return self.pipeline.eye_tracking_state

    @property
    def provider(self) -> Optional[GazeProvider]:
        return self._provider_session.provider

    @property
    def router(self) -> Optional[RoomRouter]:
        return self._router

    def add_view_listener(self, listener: ViewListener) -> None:
        """`listener` is called after every accepted reconciliation."""
        self._view_listeners.append(listener)

    # --- Actions ---

    async def start(self) -> GazeProvider:
        """Acquires the gaze provider and starts the frame loop."""
        provider = await self._provider_session.acquire()
        if self._frame_task is None:
            self._frame_task = asyncio.create_task(self.pipeline.run(provider))
        return provider

    async def calibrate(self, points: Optional[list[tuple[float, float]]] = None) -> bool:
        """
        Records one calibration sample per point (normalised coordinates)
        and marks the session calibrated.
        """
        provider = self._provider_session.provider
        if provider is None:
            logger.error("Cannot calibrate: provider session not started.")
            return False

        points = points if points is not None else self.settings.calibration.points_to_calibrate
        viewport = self.settings.viewport
        logger.info(f"Recording {len(points)} calibration points...")
        for x, y in points:
            await provider.record_calibration(x * viewport.width_px, y * viewport.height_px, "click")

        self.calibrated = True
        logger.info("Calibration complete.")
        return True

    async def join(self) -> bool:
        """
        Routes this visitor into a room with spare capacity.

        Returns False if not calibrated yet or the backend never confirmed
        the connection; the session is then left disconnected.
        """
        if not self.calibrated:
            logger.warning("Join aborted: calibrate first.")
            return False
        if self.joined:
            logger.warning("Already joined a room.")
            return True

        await self._dispatcher.start()
        self._router = RoomRouter(
            self._client,
            self.participant_id,
            self.settings.rooms,
            presence_sink=self._dispatcher.put_presence,
            broadcast_sink=self._dispatcher.put_broadcast,
            broadcast_events=(EYE_TRACKING_EVENT,),
        )

        try:
            room = await self._router.join_any_room()
        except GazeRoomsError:
            logger.exception("Could not join a room.")
            self.connected = False
            await self._leave_room()
            return False

        self.connected = True
        self.room = room
        self.joined = True
        return True

    async def _handle_presence(self, event: PresenceEvent) -> None:
        if self._router is None or not self._router.resolve_join(event):
            return

        if self._reconciler is None or self._reconciler_room != event.room:
            self._enter_room(event)

        try:
            self.full_view = self._reconciler.reconcile(event.state, sync=event.kind is PresenceKind.SYNC)
        except MalformedPresenceError:
            logger.exception(f"Rejected presence {event.kind.value} in room {event.room}; keeping previous view.")
            return

        for listener in self._view_listeners:
            try:
                listener(self)
            except Exception:
                logger.exception("View listener failed.")

    def _enter_room(self, event: PresenceEvent) -> None:
        """Fresh per-room state on admission; nothing carries over."""
        self._reconciler = PresenceReconciler(self.participant_id)
        self._reconciler.add_prune_listener(self.pipeline.retain)
        self._reconciler_room = event.room
        self.pipeline.attach(self._router.channel, self._router.presence_payload)

    async def restart(self) -> bool:
        """Leaves the room and rejoins from scratch (e.g. after recalibration)."""
        await self._leave_room()
        return await self.join()

    async def _leave_room(self) -> None:
        self.pipeline.detach()
        if self._router is not None:
            await self._router.leave()
            self._router = None
        await self._dispatcher.stop()
        await self.pipeline.flush()
        self.pipeline.reset()

        self._reconciler = None
        self._reconciler_room = None
        self.room = None
        self.joined = False
        self.connected = False
        self.full_view = RoomView()

    async def stop(self) -> None:
        """Tears everything down. Safe to call on any exit path."""
        logger.info("Stopping room session...")
        try:
            await self._leave_room()
        finally:
            await self._provider_session.release()
            if self._frame_task is not None:
                await asyncio.gather(self._frame_task, return_exceptions=True)
                self._frame_task = None
            self.calibrated = False
            logger.info("Room session stopped.")

    async def __aenter__(self) -> "RoomSession":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

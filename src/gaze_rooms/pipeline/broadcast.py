import asyncio
import logging
import time
from typing import Any, Callable, Iterable, Mapping, Optional

from ..configs import ViewportSettings
from ..models.events import BroadcastEvent
from ..models.gaze import GazeSample, RawGazeFrame
from ..providers.base import GazeProvider
from ..realtime.base import RealtimeChannel
from ..signals.blink import BrightnessBlinkDetector
from ..signals.throttle import limit
from ..types import _END
from ..utils.logging import ThrottledLogger

logger = logging.getLogger(__name__)

EYE_TRACKING_EVENT = "eye_tracking"


class GazeBroadcastPipeline:
    """
    Provider frames -> blink detection -> throttle -> ephemeral broadcast,
    and peer broadcasts -> local eye-tracking state.

    Gaze and blink never go into the replicated presence payload: a
    presence update triggers a sync for every member, while gaze changes
    at frame rate.
    """

    def __init__(
        self,
        participant_id: str,
        detector: BrightnessBlinkDetector,
        viewport: ViewportSettings,
        broadcast_window_ms: float,
        cursor_window_ms: float,
        provider: Optional[GazeProvider] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            participant_id: Id that tags every outgoing sample.
            detector: Blink detector owned by the current room session.
            viewport: Viewport used to normalise screen coordinates.
            broadcast_window_ms: Throttle window of the gaze broadcast.
            cursor_window_ms: Throttle window of cursor presence updates.
            provider: Source of eye patches; also set by `run`.
            clock: Time source shared by the throttles.
        """
        self._participant_id = participant_id
        self._detector = detector
        self._viewport = viewport
        self._provider = provider

        self._channel: Optional[RealtimeChannel] = None
        self._presence_payload: dict[str, Any] = {}
        self._pending: set[asyncio.Task] = set()

        self._broadcast = limit(self._schedule_send, broadcast_window_ms, clock)
        self._cursor = limit(self._schedule_track, cursor_window_ms, clock)
        self._miss_logger = ThrottledLogger(logger, interval_sec=5)

        self.eye_tracking_state: dict[str, GazeSample] = {}
        self.last_sample: Optional[GazeSample] = None

    @property
    def is_attached(self) -> bool:
        return self._channel is not None

    @property
    def detector(self) -> BrightnessBlinkDetector:
        return self._detector

    def attach(self, channel: RealtimeChannel, presence_payload: Mapping[str, Any]) -> None:
        """
        Binds the pipeline to a freshly joined room channel.

        Per-room state (brightness window, throttle windows, peer state) is
        discarded so nothing carries over from a previous room.
        """
        self.reset()
        self._channel = channel
        self._presence_payload = dict(presence_payload)
        logger.info(f"Gaze broadcast attached to '{channel.name}'.")

    def detach(self) -> None:
        self._channel = None
        self._presence_payload = {}

    def reset(self) -> None:
        self._detector.reset()
        self._broadcast.reset()
        self._cursor.reset()
        self._miss_logger.reset()
        self.eye_tracking_state.clear()
        self.last_sample = None

    # --- Outgoing ---

    async def on_frame(self, frame: RawGazeFrame) -> Optional[GazeSample]:
        """
        Processes one provider frame. Never raises: a bad frame is logged
        and dropped so the frame loop keeps running.
        """
        try:
            if not frame.is_valid:
                return None

            patches = await self._provider.eye_patches() if self._provider else None
            if patches is None:
                self._miss_logger.warning("No eye patches detected, skipping frame.")
                return None

            is_blinking = self._detector.update(patches.left, patches.right)

            sample = GazeSample.from_screen(
                self._participant_id,
                is_blinking,
                frame.x,
                frame.y,
                self._viewport.width_px,
                self._viewport.height_px,
            )
            self.last_sample = sample

            if self._channel is not None:
                self._broadcast(sample)
            return sample

        except Exception:
            logger.exception("Error processing gaze frame.")
            return None

    def track_cursor(self, x: float, y: float) -> None:
        """
        Re-tracks presence with a normalised cursor position, throttled.

        The payload keeps the original `online_at` and never carries a
        seat, so join ordering and seat assignment are unaffected.
        """
        if self._channel is None:
            return
        self._cursor(
            min(1.0, max(0.0, x / self._viewport.width_px)),
            min(1.0, max(0.0, y / self._viewport.height_px)),
        )

    def _schedule_send(self, sample: GazeSample) -> None:
        self._spawn(self._channel.send(EYE_TRACKING_EVENT, sample.to_payload()), "broadcast")

    def _schedule_track(self, x: float, y: float) -> None:
        self._spawn(self._channel.track({**self._presence_payload, "x": x, "y": y}), "cursor track")

    def _spawn(self, coro, what: str) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)

        def _on_complete(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(f"Gaze {what} failed: {t.exception()}")

        task.add_done_callback(_on_complete)

    async def flush(self) -> None:
        """Waits for in-flight sends to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def run(self, provider: Optional[GazeProvider] = None) -> None:
        """Consumes the provider's frame queue until it ends."""
        if provider is not None:
            self._provider = provider
        if self._provider is None:
            raise RuntimeError("GazeBroadcastPipeline.run needs a provider.")

        queue = self._provider.output_queue
        try:
            while True:
                frame = await queue.get()
                if frame is _END:
                    break
                await self.on_frame(frame)
        except asyncio.CancelledError:
            logger.info("Gaze frame loop cancelled.")
        finally:
            logger.info("Gaze frame loop finished.")

    # --- Incoming ---

    def on_peer_broadcast(self, event: BroadcastEvent) -> None:
        """Upserts a peer's sample, last value wins."""
        if event.event != EYE_TRACKING_EVENT:
            return
        try:
            sample = GazeSample.from_payload(event.payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed gaze broadcast in room {event.room}: {e}")
            return

        if sample.participant_id == self._participant_id:
            return
        self.eye_tracking_state[sample.participant_id] = sample

    def retain(self, present_ids: Iterable[str]) -> None:
        """Drops eye state of participants no longer in the room."""
        present = set(present_ids)
        for participant_id in [pid for pid in self.eye_tracking_state if pid not in present]:
            del self.eye_tracking_state[participant_id]

import asyncio
import logging
import math
import time
from typing import Optional

import numpy as np

from ..models.gaze import EyePatches, RawGazeFrame
from .base import GazeProvider

logger = logging.getLogger(__name__)


class DummyGazeProvider(GazeProvider):
    """
    A GazeProvider that simulates a webcam tracker for development and testing.

    Gaze follows a circular path across the viewport. Eye patches are flat
    grey images with a little noise; every `blink_interval_s` they brighten
    for `blink_duration_s` the way closed lids do on a real camera.
    """

    def __init__(
        self,
        *args,
        width: int = 1920,
        height: int = 1080,
        frequency: int = 30,
        radius: float = 0.3,
        speed: float = 0.2,
        blink_interval_s: float = 3.0,
        blink_duration_s: float = 0.15,
        patch_shape: tuple[int, int] = (24, 48),
        seed: Optional[int] = None,
        **kwargs,
    ):
        """
        Args:
            width: Viewport width in pixels.
            height: Viewport height in pixels.
            frequency: The frequency in Hz to emit gaze frames.
            radius: Radius of the circular path, as a fraction of the viewport.
            speed: Revolutions per second along the circle.
            blink_interval_s: Time between simulated blinks.
            blink_duration_s: How long each simulated blink lasts.
            patch_shape: (height, width) of the generated eye patches.
            seed: Seed for the patch noise generator.
        """
        super().__init__(*args, **kwargs)
        if frequency <= 0:
            raise ValueError("Frequency must be positive.")

        self._width = width
        self._height = height
        self._interval_s = 1.0 / frequency
        self._radius = radius
        self._speed = speed
        self._blink_interval_s = blink_interval_s
        self._blink_duration_s = blink_duration_s
        self._patch_shape = patch_shape
        self._rng = np.random.default_rng(seed)
        self._start_time = time.monotonic()

        self.calibration_points: list[tuple[float, float, str]] = []

    def is_blinking_at(self, elapsed_s: float) -> bool:
        if self._blink_interval_s <= 0:
            return False
        return (elapsed_s % self._blink_interval_s) < self._blink_duration_s

    def _patch(self, brightness: float) -> np.ndarray:
        noise = self._rng.normal(0.0, 2.0, size=(*self._patch_shape, 3))
        return np.clip(brightness + noise, 0, 255).astype(np.uint8)

    async def eye_patches(self) -> Optional[EyePatches]:
        elapsed = time.monotonic() - self._start_time
        brightness = 170.0 if self.is_blinking_at(elapsed) else 80.0
        return EyePatches(left=self._patch(brightness), right=self._patch(brightness))

    async def record_calibration(self, x: float, y: float, label: str = "click") -> None:
        self.calibration_points.append((x, y, label))

    async def run(self) -> None:
        """
        Generates and queues frames at the configured frequency until the
        stop event is set.
        """
        self._start_time = time.monotonic()
        frame_counter = 0

        logger.info("Starting dummy gaze stream...")
        try:
            while not self._stop_event.is_set():
                target_time = self._start_time + (frame_counter * self._interval_s)
                elapsed = time.monotonic() - self._start_time

                angle = elapsed * self._speed * 2 * math.pi
                x = (0.5 + self._radius * math.cos(angle)) * self._width
                y = (0.5 + self._radius * math.sin(angle)) * self._height

                frame = RawGazeFrame(x=x, y=y, timestamp=elapsed)
                try:
                    self._output_queue.put_nowait(frame)
                except asyncio.QueueFull:
                    logger.debug("Frame queue full, dropping dummy frame.")

                sleep_duration = target_time + self._interval_s - time.monotonic()
                if sleep_duration > 0:
                    try:
                        await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_duration)
                    except asyncio.TimeoutError:
                        pass

                frame_counter += 1

        except asyncio.CancelledError:
            logger.info("Dummy provider run task was cancelled.")
        finally:
            self._put_end()
            logger.info("DummyGazeProvider has stopped.")
